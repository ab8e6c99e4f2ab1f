import pytest

from stockledger.config.settings import StockConfig
from stockledger.core.billing_service import BillingService
from stockledger.core.exceptions import StorageError
from stockledger.core.ledger_engine import LedgerEngine
from stockledger.core.stock_engine import StockReconciliationEngine
from stockledger.db.core import MemoryStore


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def stock_config():
    return StockConfig()


@pytest.fixture
def engine(store, stock_config):
    return StockReconciliationEngine(store, stock_config)


@pytest.fixture
def bardana(engine):
    return engine.ensure_bardana()


@pytest.fixture
def ledger(store):
    return LedgerEngine(store)


@pytest.fixture
def billing(store, engine, ledger):
    return BillingService(store, stock=engine, ledger=ledger)


class FailingStore(MemoryStore):
    """Memory store whose writes fail once armed, for every collection or only the named ones."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_writes = False
        self.fail_on = set()

    def put_many(self, collections):
        hit = self.fail_on.intersection(collections)
        if self.fail_writes or hit:
            name = next(iter(hit)) if hit else next(iter(collections))
            raise StorageError("disk full", collection=name, step="write")
        super().put_many(collections)


@pytest.fixture
def failing_store():
    return FailingStore()
