from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, List, Optional, TypeVar

from src.config import Config
from src.models.schemas import Sale
from src.store.state import StoreState

T = TypeVar("T")


@dataclass(frozen=True)
class SaleRow:
    """A sale joined with the display names of what it references."""

    id: str
    date: date
    customer_id: str
    customer_name: str
    airline_id: str
    airline_name: str
    value: float
    cost: float
    profit: float
    created_at: datetime
    updated_at: Optional[datetime]


def find_by_id(items: Iterable[T], item_id: str) -> Optional[T]:
    for item in items:
        if getattr(item, "id", None) == item_id:
            return item
    return None


def resolve_sale_rows(state: StoreState) -> List[SaleRow]:
    """
    Sales and their references arrive on independent subscriptions, so a
    customer or airline can be missing (not loaded yet, or deleted). Those
    render as placeholders instead of failing.
    """
    customer_names = {c.id: c.name for c in state.customers.items}
    airline_names = {a.id: a.name for a in state.airlines.items}

    rows = []
    for sale in state.sales.items:
        rows.append(_to_row(sale, customer_names, airline_names))
    return rows


def _to_row(sale: Sale, customer_names: dict, airline_names: dict) -> SaleRow:
    return SaleRow(
        id=sale.id,
        date=sale.date,
        customer_id=sale.customer_id,
        customer_name=customer_names.get(sale.customer_id, Config.UNKNOWN_CUSTOMER_LABEL),
        airline_id=sale.airline_id,
        airline_name=airline_names.get(sale.airline_id, Config.UNKNOWN_AIRLINE_LABEL),
        value=sale.value,
        cost=sale.cost,
        profit=sale.profit,
        created_at=sale.created_at,
        updated_at=sale.updated_at,
    )
