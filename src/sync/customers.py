from src.config import Config
from src.models.mappers import customer_from_document
from src.models.schemas import Customer, CustomerInput, CustomerUpdate
from src.sync.base import EntitySyncService


class CustomerService(EntitySyncService[Customer]):
    entity_name = "customer"
    input_model = CustomerInput
    update_model = CustomerUpdate

    @property
    def collection_name(self) -> str:
        return Config.CUSTOMERS_COLLECTION

    def to_domain(self, doc) -> Customer:
        return customer_from_document(doc)
