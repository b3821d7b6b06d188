import pytest
from datetime import date, datetime, timezone
from unittest.mock import MagicMock, patch
from src.backend.base import RemoteDocument
from src.backend.memory import InMemoryCollectionClient, MemoryReference
from src.config import Config
from src.errors import (
    AuthenticationRequired,
    ErrorKind,
    FieldValidationError,
    NotFoundError,
    TransportError,
)
from src.models.schemas import CustomerInput
from src.sync.base import SubscriptionState
from src.sync.services import create_services

OWNER = "owner-1"
ANA = {"name": "Ana", "cpf": "12345678901", "email": "ana@x.com", "phone": "111"}


@pytest.fixture
def client():
    return InMemoryCollectionClient()


@pytest.fixture
def services(client):
    return create_services(client)


class Recorder:
    """Collects every delivery of a subscription."""

    def __init__(self):
        self.snapshots = []
        self.errors = []

    def on_data(self, items):
        self.snapshots.append(items)

    def on_error(self, error):
        self.errors.append(error)

    @property
    def latest(self):
        return self.snapshots[-1]


def _sale_fields(**overrides):
    data = {
        "date": date(2024, 3, 1),
        "customer_id": "c1",
        "airline_id": "a1",
        "value": 100.0,
        "cost": 80.0,
    }
    data.update(overrides)
    return data


# =====================================================================
# Cenários ponta a ponta (assinatura + escrita)
# =====================================================================


def test_add_customer_arrives_through_subscription(services):
    """
    Login -> assinatura entrega [] -> add -> próxima entrega contém exatamente
    um cliente com os dados enviados, id e createdAt do servidor.
    """
    rec = Recorder()
    services.customers.subscribe(OWNER, rec.on_data, rec.on_error)
    assert rec.snapshots == [[]]

    new_id = services.customers.add(ANA, OWNER)

    assert len(rec.latest) == 1
    customer = rec.latest[0]
    assert customer.id == new_id
    assert (customer.name, customer.cpf, customer.email, customer.phone) == (
        "Ana", "12345678901", "ana@x.com", "111"
    )
    assert customer.created_at.tzinfo is not None
    assert customer.updated_at is None
    assert rec.errors == []


def test_add_accepts_validated_model(services, client):
    new_id = services.customers.add(CustomerInput(**ANA), OWNER)
    stored = client.get(f"users/{OWNER}/customers/{new_id}")
    assert stored["name"] == "Ana"
    assert isinstance(stored["createdAt"], datetime)


def test_update_customer_touches_only_supplied_fields(services):
    rec = Recorder()
    services.customers.subscribe(OWNER, rec.on_data, rec.on_error)
    new_id = services.customers.add(ANA, OWNER)
    original = rec.latest[0]

    services.customers.update(new_id, {"name": "Ana B"}, OWNER)
    first_update = rec.latest[0]
    services.customers.update(new_id, {"phone": "222"}, OWNER)
    second_update = rec.latest[0]

    assert first_update.name == "Ana B"
    assert (first_update.cpf, first_update.email, first_update.phone) == (
        original.cpf, original.email, original.phone
    )
    assert first_update.created_at == original.created_at
    assert first_update.updated_at > original.created_at
    assert second_update.updated_at > first_update.updated_at
    assert second_update.name == "Ana B"


def test_update_rejects_cpf_change_before_backend(services, client):
    new_id = services.customers.add(ANA, OWNER)
    with pytest.raises(FieldValidationError) as exc_info:
        services.customers.update(new_id, {"cpf": "10987654321"}, OWNER)
    assert "cpf" in exc_info.value.fields
    assert client.get(f"users/{OWNER}/customers/{new_id}")["cpf"] == "12345678901"


@pytest.mark.parametrize(
    "fields",
    [{"value": None}, {"date": None}, {"cost": None}, {"customer_id": None}],
)
def test_update_sale_rejects_explicit_none(services, client, fields):
    """Null explícito não pode apagar campo obrigatório da venda."""
    sale_id = services.sales.add(_sale_fields(), OWNER)
    before = client.get(f"users/{OWNER}/sales/{sale_id}")

    with pytest.raises(FieldValidationError) as exc_info:
        services.sales.update(sale_id, fields, OWNER)

    assert set(exc_info.value.fields) == set(fields)
    assert client.get(f"users/{OWNER}/sales/{sale_id}") == before


def test_update_customer_rejects_explicit_none(services, client):
    new_id = services.customers.add(ANA, OWNER)
    with pytest.raises(FieldValidationError) as exc_info:
        services.customers.update(new_id, {"email": None, "name": None}, OWNER)
    assert set(exc_info.value.fields) == {"email", "name"}

    stored = client.get(f"users/{OWNER}/customers/{new_id}")
    assert (stored["name"], stored["email"]) == ("Ana", "ana@x.com")
    assert "updatedAt" not in stored


def test_update_customer_rejects_explicit_none_cpf(services):
    new_id = services.customers.add(ANA, OWNER)
    with pytest.raises(FieldValidationError):
        services.customers.update(new_id, {"cpf": None}, OWNER)


def test_update_missing_document_is_not_found(services):
    with pytest.raises(NotFoundError) as exc_info:
        services.airlines.update("missing", {"name": "GOL"}, OWNER)
    assert exc_info.value.kind is ErrorKind.NOT_FOUND


def test_delete_missing_sale_keeps_existing_list(services):
    rec = Recorder()
    services.sales.subscribe(OWNER, rec.on_data, rec.on_error)
    kept = services.sales.add(_sale_fields(), OWNER)
    gone = services.sales.add(_sale_fields(), OWNER)
    services.sales.delete(gone, OWNER)
    before = list(rec.latest)
    deliveries = len(rec.snapshots)

    with pytest.raises(NotFoundError):
        services.sales.delete(gone, OWNER)

    assert [s.id for s in before] == [kept]
    assert len(rec.snapshots) == deliveries
    assert rec.errors == []


def test_sales_are_delivered_newest_first(services):
    rec = Recorder()
    services.sales.subscribe(OWNER, rec.on_data, rec.on_error)
    for day in (5, 20, 1):
        services.sales.add(_sale_fields(date=date(2024, 1, day)), OWNER)

    assert [s.date.day for s in rec.latest] == [20, 5, 1]


def test_customers_keep_backend_order(services):
    rec = Recorder()
    services.customers.subscribe(OWNER, rec.on_data, rec.on_error)
    services.customers.add(dict(ANA, name="Zeca"), OWNER)
    services.customers.add(dict(ANA, name="Ana"), OWNER)
    assert [c.name for c in rec.latest] == ["Zeca", "Ana"]


def test_owners_never_see_each_other(services):
    other = Recorder()
    services.customers.subscribe("owner-2", other.on_data, other.on_error)
    services.customers.add(ANA, OWNER)
    assert other.snapshots == [[]]
    assert services.customers.fetch_all("owner-2") == []
    assert len(services.customers.fetch_all(OWNER)) == 1


# =====================================================================
# MC/DC: autenticação e validação antes do backend
# =====================================================================


@pytest.mark.parametrize("owner", [None, "", "   "])
def test_operations_require_an_owner(owner):
    client = MagicMock()
    services = create_services(client)

    with pytest.raises(AuthenticationRequired):
        services.customers.add(ANA, owner)
    with pytest.raises(AuthenticationRequired):
        services.sales.update("s1", {"value": 1}, owner)
    with pytest.raises(AuthenticationRequired):
        services.sales.delete("s1", owner)
    with pytest.raises(AuthenticationRequired):
        services.airlines.subscribe(owner, MagicMock(), MagicMock())

    client.add.assert_not_called()
    client.update.assert_not_called()
    client.delete.assert_not_called()
    client.subscribe.assert_not_called()


@pytest.mark.parametrize(
    "fields, bad_field",
    [
        (_sale_fields(value=0), "value"),
        (_sale_fields(value=-5), "value"),
        (_sale_fields(cost=-1), "cost"),
        ({k: v for k, v in _sale_fields().items() if k != "date"}, "date"),
    ],
)
def test_invalid_sale_never_reaches_backend(fields, bad_field):
    client = MagicMock()
    services = create_services(client)

    with pytest.raises(FieldValidationError) as exc_info:
        services.sales.add(fields, OWNER)

    assert bad_field in exc_info.value.fields
    assert exc_info.value.kind is ErrorKind.VALIDATION
    client.add.assert_not_called()


def test_unexpected_backend_failure_becomes_transport_error():
    client = MagicMock()
    client.add.side_effect = RuntimeError("socket closed")
    services = create_services(client)

    with pytest.raises(TransportError, match="Error adding airline: socket closed"):
        services.airlines.add({"name": "GOL"}, OWNER)


def test_typed_backend_failure_is_passed_through(services, client):
    client.fail_next_write(TransportError("Error adding: unavailable"))
    with pytest.raises(TransportError, match="unavailable"):
        services.customers.add(ANA, OWNER)


def test_write_stamps_server_timestamp():
    client = MagicMock()
    client.server_timestamp.return_value = "SERVER"
    client.add.return_value = "new-id"
    services = create_services(client)

    assert services.sales.add(_sale_fields(), OWNER) == "new-id"
    path, payload = client.add.call_args.args
    assert path == f"{Config.OWNERS_COLLECTION}/{OWNER}/sales"
    assert payload == {
        "date": datetime(2024, 3, 1, tzinfo=timezone.utc),
        "customerId": "c1",
        "airlineId": "a1",
        "value": 100.0,
        "cost": 80.0,
        "createdAt": "SERVER",
    }

    services.sales.update("s1", {"cost": 0}, OWNER)
    path, payload = client.update.call_args.args
    assert path == f"{Config.OWNERS_COLLECTION}/{OWNER}/sales/s1"
    assert payload == {"cost": 0.0, "updatedAt": "SERVER"}


@pytest.mark.parametrize(
    "kind, setting",
    [
        ("customers", "CUSTOMERS_COLLECTION"),
        ("airlines", "AIRLINES_COLLECTION"),
        ("sales", "SALES_COLLECTION"),
    ],
)
def test_collection_names_follow_config(services, kind, setting):
    service = getattr(services, kind)
    with patch.object(Config, setting, "renamed"):
        assert service.collection_path(OWNER) == f"{Config.OWNERS_COLLECTION}/{OWNER}/renamed"
    assert service.collection_path(OWNER).endswith(f"/{kind}")


def test_reference_mode_stores_document_references(services, client):
    with patch.object(Config, "SALE_REFERENCE_MODE", "reference"):
        sale_id = services.sales.add(_sale_fields(), OWNER)

    stored = client.get(f"users/{OWNER}/sales/{sale_id}")
    assert stored["customerId"] == MemoryReference(f"users/{OWNER}/customers/c1")

    # Reading back still yields plain ids
    sale = services.sales.fetch_all(OWNER)[0]
    assert (sale.customer_id, sale.airline_id) == ("c1", "a1")


# =====================================================================
# Ciclo de vida da assinatura
# =====================================================================


def test_subscribe_then_unsubscribe_before_any_event(services, client):
    client.auto_flush = False
    rec = Recorder()
    subscription = services.customers.subscribe(OWNER, rec.on_data, rec.on_error)
    services.customers.unsubscribe(subscription)

    services.customers.add(ANA, OWNER)
    client.emit_error(services.customers.collection_path(OWNER), TransportError("x"))
    client.flush()

    assert rec.snapshots == []
    assert rec.errors == []
    assert subscription.state is SubscriptionState.TERMINATED
    assert client.listener_count == 0


def test_in_flight_delivery_after_cancel_is_dropped():
    """O backend ainda entrega um snapshot que já estava a caminho no cancelamento."""
    captured = {}
    detach = MagicMock()

    def fake_subscribe(path, on_snapshot, on_error, order_by=None):
        captured.update(on_snapshot=on_snapshot, on_error=on_error)
        return detach

    client = MagicMock()
    client.subscribe.side_effect = fake_subscribe
    service = create_services(client).sales
    rec = Recorder()

    subscription = service.subscribe(OWNER, rec.on_data, rec.on_error)
    service.unsubscribe(subscription)
    service.unsubscribe(subscription)

    captured["on_snapshot"]([RemoteDocument(id="s1", data={"value": 10})])
    captured["on_error"](TransportError("late"))

    detach.assert_called_once()
    assert rec.snapshots == []
    assert rec.errors == []


def test_unsubscribe_accepts_none(services):
    services.sales.unsubscribe(None)


def test_resubscribing_same_owner_releases_previous_listener(services, client):
    first, second = Recorder(), Recorder()
    old = services.customers.subscribe(OWNER, first.on_data, first.on_error)
    new = services.customers.subscribe(OWNER, second.on_data, second.on_error)

    services.customers.add(ANA, OWNER)

    assert old.state is SubscriptionState.TERMINATED
    assert new.active
    assert client.listener_count == 1
    assert first.snapshots == [[]]
    assert len(second.latest) == 1


def test_service_state_per_owner(services):
    assert services.airlines.state(OWNER) is SubscriptionState.IDLE
    subscription = services.airlines.subscribe(OWNER, MagicMock(), MagicMock())
    assert services.airlines.state(OWNER) is SubscriptionState.SUBSCRIBED
    services.airlines.unsubscribe(subscription)
    assert services.airlines.state(OWNER) is SubscriptionState.IDLE


def test_subscription_failure_is_reported_once_and_not_retried(services, client):
    rec = Recorder()
    subscription = services.sales.subscribe(OWNER, rec.on_data, rec.on_error)
    path = services.sales.collection_path(OWNER)

    client.emit_error(path, TransportError("Failed to subscribe to sales updates."))
    client.emit_error(path, TransportError("again"))
    services.sales.add(_sale_fields(), OWNER)

    assert len(rec.errors) == 1
    assert rec.errors[0].kind is ErrorKind.TRANSPORT
    assert rec.snapshots == [[]]
    assert subscription.state is SubscriptionState.TERMINATED
    assert services.sales.state(OWNER) is SubscriptionState.IDLE


def test_subscription_refused_at_setup(services, client):
    path = services.customers.collection_path(OWNER)
    client.fail_subscriptions(path, AuthenticationRequired("Missing or insufficient permissions."))
    rec = Recorder()

    subscription = services.customers.subscribe(OWNER, rec.on_data, rec.on_error)

    assert [e.kind for e in rec.errors] == [ErrorKind.AUTHENTICATION_REQUIRED]
    assert not subscription.active
    assert client.listener_count == 0


def test_setup_exception_from_client_is_reported_not_raised():
    client = MagicMock()
    client.subscribe.side_effect = RuntimeError("boom")
    rec = Recorder()

    subscription = create_services(client).customers.subscribe(
        OWNER, rec.on_data, rec.on_error
    )

    assert isinstance(rec.errors[0], TransportError)
    assert subscription.state is SubscriptionState.TERMINATED


def test_unsubscribe_all_stops_every_owner(services, client):
    services.customers.subscribe("a", MagicMock(), MagicMock())
    services.customers.subscribe("b", MagicMock(), MagicMock())
    services.customers.unsubscribe_all()
    assert client.listener_count == 0


# =====================================================================
# Snapshot stream
# =====================================================================


def test_stream_yields_snapshots_until_closed(services):
    with services.airlines.stream(OWNER) as stream:
        assert stream.get(timeout=1) == []
        services.airlines.add({"name": "GOL"}, OWNER)
        assert [a.name for a in stream.get(timeout=1)] == ["GOL"]

    assert list(stream) == []
    assert not stream.subscription.active
    services.airlines.add({"name": "Azul"}, OWNER)
    with pytest.raises(StopIteration):
        stream.get(timeout=1)


def test_stream_raises_reported_error_and_ends(services, client):
    stream = services.sales.stream(OWNER)
    assert next(stream) == []
    client.emit_error(services.sales.collection_path(OWNER), TransportError("reset"))

    with pytest.raises(TransportError):
        next(stream)
    with pytest.raises(StopIteration):
        next(stream)
