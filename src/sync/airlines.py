from src.config import Config
from src.models.mappers import airline_from_document
from src.models.schemas import Airline, AirlineInput, AirlineUpdate
from src.sync.base import EntitySyncService


class AirlineService(EntitySyncService[Airline]):
    entity_name = "airline"
    input_model = AirlineInput
    update_model = AirlineUpdate

    @property
    def collection_name(self) -> str:
        return Config.AIRLINES_COLLECTION

    def to_domain(self, doc) -> Airline:
        return airline_from_document(doc)
