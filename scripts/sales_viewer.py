import os
import sys

# Adiciona o diretório raiz do projeto ao PYTHONPATH para ele achar a pasta 'src'
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from src.auth.identity import IdentityClient
from src.backend.firestore import FirestoreCollectionClient
from src.config import Config
from src.store.selectors import resolve_sale_rows
from src.store.state import ClientStore, EntityKind
from src.sync.services import create_services


def load_store(owner_id: str) -> ClientStore:
    """One-shot read of every collection into a fresh store (no live listeners)."""
    services = create_services(FirestoreCollectionClient())
    store = ClientStore()
    for kind, service in services.by_kind().items():
        store.set_items(kind, service.fetch_all(owner_id))
    return store


def print_recent_sales(store: ClientStore, limit=5):
    rows = resolve_sale_rows(store.state)[:limit]

    print("-" * 80)
    print(f"{'DATE':<12} | {'CUSTOMER':<20} | {'AIRLINE':<12} | {'VALUE':<12} | {'PROFIT'}")
    print("-" * 80)

    if not rows:
        print("Nenhuma venda encontrada.")

    for row in rows:
        print(f"{row.date.isoformat():<12} | {row.customer_name[:18]:<20} | {row.airline_name[:10]:<12} | R$ {row.value:<9.2f} | R$ {row.profit:.2f}")

    print("-" * 80)


def stats(store: ClientStore):
    print(f"📊 Resumo:")
    print(f"   👥 Clientes:     {len(store.slice(EntityKind.CUSTOMERS).items)}")
    print(f"   ✈️  Companhias:   {len(store.slice(EntityKind.AIRLINES).items)}")
    print(f"   🛒 Vendas:       {len(store.slice(EntityKind.SALES).items)}\n")


if __name__ == "__main__":
    response = IdentityClient().login(Config.SESSION_EMAIL, Config.SESSION_PASSWORD)
    if response.error:
        print(f"Login failed: {response.error}")
        sys.exit(1)

    print("\n--- VISUALIZADOR RÁPIDO DE VENDAS ---")
    store = load_store(response.identity.uid)
    stats(store)

    print("Últimas 5 vendas (Ordem Decrescente):")
    print_recent_sales(store, 5)
