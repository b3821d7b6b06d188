import threading
from dataclasses import dataclass
from typing import Dict

from src.backend.base import CollectionClient
from src.store.state import EntityKind
from src.sync.airlines import AirlineService
from src.sync.base import EntitySyncService
from src.sync.customers import CustomerService
from src.sync.sales import SaleService


@dataclass
class Services:
    customers: CustomerService
    airlines: AirlineService
    sales: SaleService

    def by_kind(self) -> Dict[EntityKind, EntitySyncService]:
        return {
            EntityKind.CUSTOMERS: self.customers,
            EntityKind.AIRLINES: self.airlines,
            EntityKind.SALES: self.sales,
        }

    def unsubscribe_all(self):
        for service in self.by_kind().values():
            service.unsubscribe_all()


def create_services(client: CollectionClient) -> Services:
    """
    Builds one service per entity kind sharing the given backend client.
    Their subscriptions also share one delivery lock: snapshots from
    different watch threads reach the callbacks one at a time.
    """
    delivery_lock = threading.RLock()
    return Services(
        customers=CustomerService(client, delivery_lock),
        airlines=AirlineService(client, delivery_lock),
        sales=SaleService(client, delivery_lock),
    )
