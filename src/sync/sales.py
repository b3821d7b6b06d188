from typing import Any, Dict, List

from src.config import Config
from src.models.mappers import sale_from_document, sale_to_payload
from src.models.schemas import Sale, SaleInput, SaleUpdate
from src.sync.base import EntitySyncService


class SaleService(EntitySyncService[Sale]):
    entity_name = "sale"
    order_by = ("date", "desc")
    input_model = SaleInput
    update_model = SaleUpdate

    @property
    def collection_name(self) -> str:
        return Config.SALES_COLLECTION

    def to_domain(self, doc) -> Sale:
        return sale_from_document(doc)

    def to_payload(self, fields: Dict[str, Any], owner_id: str) -> Dict[str, Any]:
        if not Config.uses_sale_references():
            return sale_to_payload(fields)

        def reference(collection: str, doc_id: str):
            return self.client.reference(
                f"{Config.collection_path(owner_id, collection)}/{doc_id}"
            )

        return sale_to_payload(fields, reference_factory=reference)

    def arrange(self, records: List[Sale]) -> List[Sale]:
        # Newest first whatever the backend index did; ties keep backend order
        return sorted(records, key=lambda sale: sale.date, reverse=True)
