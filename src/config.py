import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    ENVIRONMENT = os.getenv("ENVIRONMENT", "dev").lower()

    # Firebase project
    FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID")
    FIREBASE_API_KEY = os.getenv("FIREBASE_API_KEY")

    # Account used by the orchestrator and scripts
    SESSION_EMAIL = os.getenv("SESSION_EMAIL")
    SESSION_PASSWORD = os.getenv("SESSION_PASSWORD")

    # Every owner's data lives under {OWNERS_COLLECTION}/{uid}/...
    OWNERS_COLLECTION = os.getenv("OWNERS_COLLECTION", "users")
    CUSTOMERS_COLLECTION = "customers"
    AIRLINES_COLLECTION = "airlines"
    SALES_COLLECTION = "sales"

    # "id" stores plain ids on sales, "reference" stores document references
    SALE_REFERENCE_MODE = os.getenv("SALE_REFERENCE_MODE", "id").lower()

    NOTIFICATION_AUTO_HIDE_MS = int(os.getenv("NOTIFICATION_AUTO_HIDE_MS", "6000"))
    SUMMARY_INTERVAL_SECONDS = int(os.getenv("SUMMARY_INTERVAL_SECONDS", "60"))

    # Output Paths
    EXPORT_DIR = os.getenv("EXPORT_DIR", "data/output/sales")

    # Placeholders shown when a sale points at something not loaded
    UNKNOWN_CUSTOMER_LABEL = "Unknown customer"
    UNKNOWN_AIRLINE_LABEL = "Unknown airline"
    UNKNOWN_NAME_LABEL = "Unknown"

    @classmethod
    def get_log_level(cls) -> str:
        """Returns the log level name, DEBUG by default outside production."""
        env_level = os.getenv("LOG_LEVEL")
        if env_level:
            return env_level.upper()
        return "INFO" if cls.is_prd() else "DEBUG"

    @classmethod
    def owner_path(cls, owner_id: str) -> str:
        return f"{cls.OWNERS_COLLECTION}/{owner_id}"

    @classmethod
    def collection_path(cls, owner_id: str, collection: str) -> str:
        return f"{cls.owner_path(owner_id)}/{collection}"

    @classmethod
    def uses_sale_references(cls) -> bool:
        return cls.SALE_REFERENCE_MODE == "reference"

    @classmethod
    def check_and_create_dirs(cls):
        """Ensures the export directory exists."""
        os.makedirs(cls.EXPORT_DIR, exist_ok=True)

    @classmethod
    def is_prd(cls) -> bool:
        return cls.ENVIRONMENT == "prd"

    @classmethod
    def is_dev(cls) -> bool:
        return cls.ENVIRONMENT == "dev"
