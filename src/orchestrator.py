import argparse
import logging
import schedule
import time
import sys
import os

# Garante que o diretório raiz está no path para importar src
sys.path.append(os.getcwd())

from src.auth.identity import IdentityClient
from src.backend.firestore import FirestoreCollectionClient
from src.config import Config
from src.logging_config import setup_logging
from src.logic.reporting import export_sales_csv, format_sales_summary, summarize_sales
from src.session import SyncSession
from src.store.selectors import resolve_sale_rows
from src.store.state import ClientStore
from src.sync.services import create_services

logger = logging.getLogger(__name__)


def report_job(store: ClientStore):
    """Prints the summary of whatever the live subscriptions currently hold."""
    state = store.state
    for kind in ("customers", "airlines", "sales"):
        current = state.slice(kind)
        if current.error:
            logger.warning(f"{kind} subscription reported: {current.error}")
    print(format_sales_summary(summarize_sales(resolve_sale_rows(state))))


def export_job(store: ClientStore):
    path = export_sales_csv(resolve_sale_rows(store.state))
    logger.info(f"Sales exported to {path}")


def start_session(email: str, password: str):
    """Signs in and starts the live sync. Returns (session, identity_client)."""
    client = FirestoreCollectionClient()
    identity_client = IdentityClient(collection_client=client)
    store = ClientStore()
    session = SyncSession(create_services(client), store)
    session.bind(identity_client)

    response = identity_client.login(email, password)
    if response.error:
        session.close()
        raise RuntimeError(f"Login failed: {response.error}")
    return session, identity_client


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Mantém a sincronização ao vivo e imprime o resumo de vendas."
    )
    parser.add_argument("--email", default=Config.SESSION_EMAIL)
    parser.add_argument("--password", default=Config.SESSION_PASSWORD)
    parser.add_argument(
        "--export-once",
        action="store_true",
        help="Espera o primeiro snapshot, exporta o CSV e encerra",
    )
    args = parser.parse_args(argv)

    setup_logging()
    print("--- SALES SYNC ORCHESTRATOR ---")
    print(f"Environment: {Config.ENVIRONMENT.upper()}")

    if not args.email or not args.password:
        print("SESSION_EMAIL and SESSION_PASSWORD must be provided (env or arguments).")
        sys.exit(1)

    session, identity_client = start_session(args.email, args.password)
    store = session.store

    try:
        if args.export_once:
            # Snapshots arrive on the SDK's watch threads
            while store.state.sales.loading:
                time.sleep(0.2)
            export_job(store)
            return

        interval = Config.SUMMARY_INTERVAL_SECONDS
        schedule.every(interval).seconds.do(report_job, store)
        schedule.every().day.at("23:55").do(export_job, store)
        print(f"Live sync running. Summary every {interval}s...")

        while True:
            schedule.run_pending()
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nStopping...")
    finally:
        identity_client.sign_out()
        session.close()
        schedule.clear()


if __name__ == "__main__":
    main()
