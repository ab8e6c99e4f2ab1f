import copy
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, TypeVar

from sqlalchemy import create_engine, select
from sqlalchemy.engine.url import URL
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from stockledger.config.database import DEFAULT_SQLITE_URL
from stockledger.core.exceptions import DataValidationError, StorageError
from stockledger.db.model import CollectionDocument, create_schema
from stockledger.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class Collections:
    """Names of the collections the reconciliation core reads and writes."""
    ITEMS = "items"
    SALES_INVOICES = "sales-invoices"
    SALES_PAYMENTS = "sales-payments"
    PURCHASE_BILLS = "purchase-bills"
    PURCHASE_PAYMENTS = "purchase-payments"
    STOCK_TRANSACTIONS = "stock-transactions"

    ALL = (
        ITEMS, SALES_INVOICES, SALES_PAYMENTS,
        PURCHASE_BILLS, PURCHASE_PAYMENTS, STOCK_TRANSACTIONS,
    )


class DocumentStore(ABC):
    """
    Key-value document store holding whole collections.

    A missing collection reads as an empty list. Writes always replace the
    full collection; there is no partial update.
    """

    @abstractmethod
    def get(self, collection: str) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    def put_many(self, collections: Dict[str, List[Dict[str, Any]]]) -> None:
        """Replace several collections in one atomic write."""
        pass

    def put(self, collection: str, records: List[Dict[str, Any]]) -> None:
        self.put_many({collection: records})

    def read_records(self, collection: str, factory: Callable[[Dict[str, Any]], T]) -> List[T]:
        """Read a collection and validate each record through ``factory``."""
        records = []
        for idx, raw in enumerate(self.get(collection)):
            if not isinstance(raw, dict):
                raise DataValidationError(f"{collection}[{idx}] is not a record: {raw!r}")
            try:
                records.append(factory(raw))
            except DataValidationError as e:
                raise DataValidationError(f"{collection}[{idx}]: {e}") from e
        return records


class MemoryStore(DocumentStore):
    """In-process store; used by tests and embedding callers."""

    def __init__(self, initial: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self._data: Dict[str, List[Dict[str, Any]]] = copy.deepcopy(initial or {})
        self.write_count = 0

    def get(self, collection: str) -> List[Dict[str, Any]]:
        return copy.deepcopy(self._data.get(collection) or [])

    def put_many(self, collections: Dict[str, List[Dict[str, Any]]]) -> None:
        staged = {name: copy.deepcopy(list(records)) for name, records in collections.items()}
        self._data.update(staged)
        self.write_count += 1


class SQLStore(DocumentStore):
    """
    SQLAlchemy-backed store keeping one JSON row per collection.

    ``put_many`` runs inside a single session transaction so a product
    update and its stock-transaction append commit or roll back together.
    """

    def __init__(self, env: Optional[Dict[str, Any]] = None):
        env = env or {}
        self.url = self._build_url(env)
        self.engine = create_engine(self.url, echo=bool(env.get("echo")))
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        try:
            create_schema(self.engine)
        except SQLAlchemyError as e:
            raise StorageError(f"Could not initialise schema: {e}", step="connect") from e

    @staticmethod
    def _build_url(env: Dict[str, Any]):
        if env.get('url'):
            return env['url']
        if env.get('host') and env.get('dbname'):
            return URL.create(
                drivername="postgresql+psycopg2",
                username=env.get('user'),
                password=env.get('password'),
                host=env.get('host'),
                port=env.get('port'),
                database=env.get('dbname'),
            )
        return DEFAULT_SQLITE_URL

    def get(self, collection: str) -> List[Dict[str, Any]]:
        try:
            with self.SessionLocal() as session:
                row = session.get(CollectionDocument, collection)
                return copy.deepcopy(row.payload) if row and row.payload else []
        except SQLAlchemyError as e:
            logger.error(f"[DB ERROR] read failed for '{collection}': {e}")
            raise StorageError(f"Failed to read '{collection}': {e}", collection=collection, step="read") from e

    def put_many(self, collections: Dict[str, List[Dict[str, Any]]]) -> None:
        if not collections:
            return

        session = self.SessionLocal()
        current = None
        try:
            rows = {
                row.name: row
                for row in session.execute(
                    select(CollectionDocument).where(CollectionDocument.name.in_(list(collections)))
                ).scalars()
            }
            for current, records in collections.items():
                row = rows.get(current)
                if row is None:
                    session.add(CollectionDocument(name=current, payload=list(records), revision=1,
                                                   updated_at=datetime.now()))
                else:
                    row.payload = list(records)
                    row.revision = (row.revision or 0) + 1
                    row.updated_at = datetime.now()
            current = None
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            names = ", ".join(collections)
            logger.error(f"[DB ERROR] write failed for [{names}]: {e}")
            raise StorageError(
                f"Failed to write [{names}]; no collection was changed: {e}",
                collection=current,
                step="write",
            ) from e
        finally:
            session.close()
