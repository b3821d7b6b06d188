import os
import sys
from datetime import date, timedelta

# Adiciona o diretório raiz do projeto ao PYTHONPATH para ele achar a pasta 'src'
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from src.auth.identity import IdentityClient
from src.backend.firestore import FirestoreCollectionClient
from src.config import Config
from src.logging_config import setup_logging
from src.sync.services import Services, create_services

SAMPLE_CUSTOMERS = [
    {
        "name": "João Silva (Teste)",
        "cpf": "12345678901",
        "email": "joao.teste@crm.dev",
        "phone": "5511988887777",
    },
    {
        "name": "Maria Santos (Teste)",
        "cpf": "10987654321",
        "email": "maria.teste@crm.dev",
        "phone": "5511977776666",
    },
]

SAMPLE_AIRLINES = ["LATAM", "GOL", "Azul"]


def seed_owner(services: Services, owner_id: str) -> dict:
    """Creates a few customers, airlines and sales for one owner."""
    customer_ids = [services.customers.add(c, owner_id) for c in SAMPLE_CUSTOMERS]
    airline_ids = [services.airlines.add({"name": n}, owner_id) for n in SAMPLE_AIRLINES]

    sale_ids = []
    today = date.today()
    for i in range(6):
        sale_ids.append(
            services.sales.add(
                {
                    "date": today - timedelta(days=i * 3),
                    "customer_id": customer_ids[i % len(customer_ids)],
                    "airline_id": airline_ids[i % len(airline_ids)],
                    "value": 850.0 + i * 120,
                    "cost": 700.0 + i * 90,
                },
                owner_id,
            )
        )

    return {"customers": customer_ids, "airlines": airline_ids, "sales": sale_ids}


if __name__ == "__main__":
    setup_logging()
    client = FirestoreCollectionClient()
    identity_client = IdentityClient(collection_client=client)

    response = identity_client.login(Config.SESSION_EMAIL, Config.SESSION_PASSWORD)
    if response.error:
        print(f"Login failed: {response.error}")
        sys.exit(1)

    created = seed_owner(create_services(client), response.identity.uid)
    print(
        f"Sample data generated for {response.identity.uid}: "
        f"{len(created['customers'])} customers, {len(created['airlines'])} airlines, "
        f"{len(created['sales'])} sales"
    )
