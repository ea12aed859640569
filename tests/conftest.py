import pytest

from flowtrack.application.create_order import CreateOrderUseCase, parse_new_order
from flowtrack.application.update_order_status import UpdateOrderStatusUseCase
from flowtrack.database import make_engine, make_session_factory, init_models
from flowtrack.domain.models import Actor, Role
from flowtrack.infrastructure.unit_of_work import UnitOfWork
from tests.fakes import FakeBlobStore


@pytest.fixture()
async def session_factory(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'flowtrack.db'}")
    factory = make_session_factory(engine)
    await init_models(engine, factory)
    yield factory
    await engine.dispose()


@pytest.fixture()
def uow(session_factory):
    return UnitOfWork(session_factory)


@pytest.fixture()
def blob_store():
    return FakeBlobStore()


@pytest.fixture()
def transition(uow, blob_store):
    return UpdateOrderStatusUseCase(uow, blob_store, upload_timeout=0.2)


@pytest.fixture()
def team():
    return Actor(id="u-team", name="Tina Team", email="tina@example.com", role=Role.TEAM)


@pytest.fixture()
def admin():
    return Actor(id="u-admin", name="Ada Admin", email="ada@example.com", role=Role.ADMIN)


@pytest.fixture()
def sales():
    return Actor(id="u-sales", name="Sam Sales", email="sam@example.com", role=Role.SALES)


@pytest.fixture()
def digitizer():
    return Actor(id="u-dig", name="Dora Digitizer", email="dora@example.com", role=Role.DIGITIZER)


@pytest.fixture()
def vendor():
    return Actor(id="u-ven", name="Vic Vendor", email="vic@example.com", role=Role.VENDOR)


@pytest.fixture()
def create_order(uow):
    async def _create(**overrides):
        data = {"customer_name": "Jane Doe", "product_name": "10 x Mug"}
        data.update(overrides)
        return await CreateOrderUseCase(uow)(parse_new_order(data))
    return _create


@pytest.fixture()
def load_order(uow):
    async def _load(order_id):
        async with uow() as u:
            return await u.orders.get_by_id(order_id)
    return _load


@pytest.fixture()
def force_state(uow):
    """Arrange an order directly in the store, bypassing the transition engine."""
    async def _force(order_id, **fields):
        async with uow() as u:
            order = await u.orders.get_by_id(order_id)
            updated = await u.orders.update(order.model_copy(update=fields), expected_version=order.version)
            await u.commit()
        return updated
    return _force
