"""
Stock reconciliation.

Turns sale, purchase and reversal line items (entered in kg) into stock
movements on products (held in bags), keeps the universal Bardana item
moving with the total kg of every document, and logs one stock
transaction per movement. Each product update is written together with
its transaction log entry in a single ``put_many`` call.
"""
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, Union

from stockledger.config.settings import StockConfig
from stockledger.core.exceptions import DataValidationError, DuplicateItemError, ItemNotFoundError
from stockledger.core.units import kg_to_bags, display_kg
from stockledger.db.core import Collections, DocumentStore
from stockledger.models.records import (
    Item, ItemCategory, LineItem, StockTransaction, TransactionType, TransactionStatus,
)
from stockledger.utils.helpers import now_iso
from stockledger.utils.logger import get_logger

LineItemInput = Union[LineItem, Dict[str, Any]]

INVOICE = "invoice"
BILL = "bill"
MANUAL = "manual"
REVERSAL = "stock_transaction"


class ProcessedDocuments:
    """
    Remembers which documents have already moved stock.

    A document counts as processed when it was marked during this
    process's lifetime, or when a persisted stock transaction of the
    matching type already references it, so the guard survives restarts.
    """

    def __init__(self):
        self._seen: Set[Tuple[str, str]] = set()

    def is_processed(self, reference_type: str, reference_id: str,
                     transaction_type: TransactionType,
                     transactions: Iterable[StockTransaction]) -> bool:
        if (reference_type, reference_id) in self._seen:
            return True
        for tx in transactions:
            if (tx.reference_type == reference_type and tx.reference_id == reference_id
                    and tx.transaction_type == transaction_type):
                self._seen.add((reference_type, reference_id))
                return True
        return False

    def mark(self, reference_type: str, reference_id: str) -> None:
        self._seen.add((reference_type, reference_id))


@dataclass
class ReconciliationResult:
    """Outcome of one stock-affecting call."""
    reference_id: Optional[str] = None
    transactions: List[StockTransaction] = field(default_factory=list)
    matched: List[str] = field(default_factory=list)
    unmatched: List[str] = field(default_factory=list)
    bardana_bags: float = 0.0
    bardana_missing: bool = False
    duplicate: bool = False

    @property
    def has_warnings(self) -> bool:
        return bool(self.unmatched) or self.bardana_missing


def _aggregate(items: Iterable[LineItemInput]) -> "OrderedDict[str, Tuple[float, float]]":
    """Sum kg and line value per exact item name, keeping first-seen order."""
    totals: "OrderedDict[str, Tuple[float, float]]" = OrderedDict()
    for raw in items:
        line = raw if isinstance(raw, LineItem) else LineItem.from_dict(raw)
        kg, value = totals.get(line.item_name, (0.0, 0.0))
        totals[line.item_name] = (kg + line.quantity, value + line.total)
    return totals


class StockReconciliationEngine:
    """
    Applies stock movements in bag units.

    Sales are applied at most once per invoice id. Purchases are not
    guarded unless ``StockConfig.guard_purchases`` is set. Overselling is
    allowed: stock is clamped at zero and nothing checks availability
    before a sale.
    """

    def __init__(self, store: DocumentStore, config: Optional[StockConfig] = None,
                 tracker: Optional[ProcessedDocuments] = None):
        self.store = store
        self.config = config or StockConfig()
        self.tracker = tracker if tracker is not None else ProcessedDocuments()
        self.logger = get_logger(self.__class__.__name__)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_items(self) -> List[Item]:
        return self.store.read_records(Collections.ITEMS, Item.from_dict)

    def list_transactions(self) -> List[StockTransaction]:
        return self.store.read_records(Collections.STOCK_TRANSACTIONS, StockTransaction.from_dict)

    def get_item(self, product_name: str) -> Optional[Item]:
        """Exact, case-sensitive name lookup."""
        for item in self.list_items():
            if item.product_name == product_name:
                return item
        return None

    def get_bardana(self) -> Optional[Item]:
        return self._find_bardana(self.list_items())

    def current_stock_kg(self, product_name: str) -> int:
        """Stock in whole kg; 0 when the product does not exist."""
        item = self.get_item(product_name)
        if item is None:
            return 0
        return display_kg(item.stock_bags)

    def has_sufficient_stock(self, product_name: str, required_kg: float) -> bool:
        return self.current_stock_kg(product_name) >= required_kg

    def low_stock_items(self) -> List[Item]:
        return [item for item in self.list_items() if item.is_low_stock]

    def transactions_for(self, reference_id: str) -> List[StockTransaction]:
        return [tx for tx in self.list_transactions() if tx.reference_id == reference_id]

    def item_history(self, product_name: str) -> List[StockTransaction]:
        item = self.get_item(product_name)
        if item is None:
            return []
        return [tx for tx in self.list_transactions() if tx.item_id == item.id]

    # ------------------------------------------------------------------
    # Catalogue
    # ------------------------------------------------------------------

    def create_item(
        self,
        product_name: str,
        category: ItemCategory = ItemCategory.PRIMARY,
        purchase_price: float = 0.0,
        sale_price: float = 0.0,
        opening_stock_kg: float = 0.0,
        low_stock_kg: float = 0.0,
        as_of_date: Optional[str] = None,
        is_universal: bool = False,
    ) -> Item:
        """Create a product; quantities are given in kg and stored in bags."""
        items = self.list_items()
        wanted = (product_name or "").strip().lower()
        if any(existing.product_name.lower() == wanted for existing in items):
            raise DuplicateItemError(f"A product named '{product_name}' already exists")

        item = Item(
            product_name=product_name,
            category=category,
            purchase_price=purchase_price,
            sale_price=sale_price,
            stock_bags=kg_to_bags(opening_stock_kg),
            low_stock_bags=kg_to_bags(low_stock_kg),
            as_of_date=as_of_date or now_iso()[:10],
            is_universal=is_universal,
        )
        opening = StockTransaction(
            item_id=item.id,
            item_name=item.product_name,
            transaction_type=TransactionType.OPENING_STOCK,
            quantity_kg=float(opening_stock_kg),
            previous_stock=0.0,
            new_stock=item.stock_bags,
            rate=item.purchase_price,
            total_value=item.purchase_price * float(opening_stock_kg),
            note="Opening stock",
        )
        self._commit(items + [item], [opening])
        self.logger.info(f"Created item '{item.product_name}' with {item.stock_bags:.4f} bags")
        return item

    def ensure_bardana(self) -> Item:
        """Create the universal Bardana item if it does not exist yet."""
        items = self.list_items()
        bardana = self._find_bardana(items)
        if bardana is not None:
            return bardana

        name = self.config.bardana_name
        for existing in items:
            if existing.product_name.lower() == name.lower():
                self.logger.warning(f"Flagging existing item '{existing.product_name}' as the universal item")
                existing.is_universal = True
                existing.updated_at = now_iso()
                self._commit(items, [])
                return existing

        self.logger.info(f"Bootstrapping universal item '{name}'")
        return self.create_item(
            product_name=name,
            category=ItemCategory.PRIMARY,
            opening_stock_kg=0.0,
            low_stock_kg=self.config.bardana_low_stock_kg,
            is_universal=True,
        )

    def _find_bardana(self, items: List[Item]) -> Optional[Item]:
        name = self.config.bardana_name.lower()
        for item in items:
            if item.is_universal and item.product_name.lower() == name:
                return item
        return None

    # ------------------------------------------------------------------
    # Movements
    # ------------------------------------------------------------------

    def apply_sale(self, items: Iterable[LineItemInput], invoice_id: Optional[str] = None) -> ReconciliationResult:
        """Reduce stock for a sale; a given invoice id moves stock only once."""
        transactions = self.list_transactions()
        if invoice_id and self.tracker.is_processed(INVOICE, invoice_id, TransactionType.SALE, transactions):
            self.logger.info(f"Invoice {invoice_id} already applied to stock, skipping")
            return ReconciliationResult(reference_id=invoice_id, duplicate=True)

        result = self._move(items, -1, TransactionType.SALE, INVOICE, invoice_id, "customer", transactions)
        if invoice_id:
            self.tracker.mark(INVOICE, invoice_id)
        return result

    def apply_purchase(self, items: Iterable[LineItemInput], bill_id: Optional[str] = None) -> ReconciliationResult:
        """Increase stock for a purchase."""
        transactions = self.list_transactions()
        if (self.config.guard_purchases and bill_id
                and self.tracker.is_processed(BILL, bill_id, TransactionType.PURCHASE, transactions)):
            self.logger.info(f"Bill {bill_id} already applied to stock, skipping")
            return ReconciliationResult(reference_id=bill_id, duplicate=True)

        result = self._move(items, 1, TransactionType.PURCHASE, BILL, bill_id, "supplier", transactions)
        if bill_id:
            self.tracker.mark(BILL, bill_id)
        return result

    def revert_sale(self, items: Iterable[LineItemInput], invoice_id: Optional[str] = None,
                    extra: Optional[Dict[str, List[Dict[str, Any]]]] = None) -> ReconciliationResult:
        """
        Add a sale's quantities back to stock and Bardana.

        The invoice stays marked as processed, so applying the same invoice
        again after a revert is still a no-op. Collections in ``extra`` are
        written in the same ``put_many`` as the stock change.
        """
        return self._move(items, 1, TransactionType.RETURN, INVOICE, invoice_id, "customer",
                          self.list_transactions(), extra)

    def revert_purchase(self, items: Iterable[LineItemInput], bill_id: Optional[str] = None,
                        extra: Optional[Dict[str, List[Dict[str, Any]]]] = None) -> ReconciliationResult:
        """Take a purchase's quantities back out of stock and Bardana, clamped at zero."""
        return self._move(items, -1, TransactionType.RETURN, BILL, bill_id, "supplier",
                          self.list_transactions(), extra)

    def adjust_stock(self, product_name: str, delta_kg: float, note: str = "") -> ReconciliationResult:
        """Manual correction; Bardana does not co-move."""
        item_list = self.list_items()
        item = next((i for i in item_list if i.product_name == product_name), None)
        if item is None:
            raise ItemNotFoundError(f"No product named '{product_name}'")
        if delta_kg == 0:
            return ReconciliationResult(reference_id=None)

        direction = 1 if delta_kg > 0 else -1
        tx = self._shift(item, direction, abs(float(delta_kg)), TransactionType.ADJUSTMENT,
                         MANUAL, None, None, 0.0, note or "Manual adjustment")
        self._commit(item_list, [tx])
        return ReconciliationResult(transactions=[tx], matched=[item.product_name])

    def reverse_transaction(self, transaction_id: str, note: str = "") -> StockTransaction:
        """
        Append a compensating transaction for ``transaction_id``.

        The original record is left as written; a transaction counts as
        reversed once another transaction references it.
        """
        transactions = self.list_transactions()
        original = next((tx for tx in transactions if tx.id == transaction_id), None)
        if original is None:
            raise ItemNotFoundError(f"No stock transaction '{transaction_id}'")
        if original.status == TransactionStatus.REVERSAL:
            raise DataValidationError(f"{transaction_id} is itself a reversal")
        if any(tx.reference_type == REVERSAL and tx.reference_id == transaction_id for tx in transactions):
            raise DataValidationError(f"{transaction_id} has already been reversed")

        item_list = self.list_items()
        item = next((i for i in item_list if i.id == original.item_id), None)
        if item is None:
            raise ItemNotFoundError(f"Item '{original.item_name}' of {transaction_id} no longer exists")

        direction = -original.direction
        if original.transaction_type == TransactionType.SALE:
            tx_type = TransactionType.RETURN
        else:
            tx_type = TransactionType.ADJUSTMENT

        tx = self._shift(item, direction, original.quantity_kg, tx_type, REVERSAL, transaction_id,
                         original.party_type, original.rate, note or f"Reversal of {transaction_id}")
        tx.status = TransactionStatus.REVERSAL
        self._commit(item_list, [tx], transactions)
        self.logger.info(f"Reversed {transaction_id} with {tx.id}")
        return tx

    def _move(
        self,
        items: Iterable[LineItemInput],
        direction: int,
        tx_type: TransactionType,
        reference_type: str,
        reference_id: Optional[str],
        party_type: str,
        transactions: List[StockTransaction],
        extra: Optional[Dict[str, List[Dict[str, Any]]]] = None,
    ) -> ReconciliationResult:
        result = ReconciliationResult(reference_id=reference_id)
        totals = _aggregate(items)
        if not totals and not extra:
            return result

        item_list = self.list_items()
        # The universal item only moves through the co-movement below
        by_name = {i.product_name: i for i in reversed(item_list) if not i.is_universal}
        new_transactions = []

        for name, (kg, value) in totals.items():
            # Zero-quantity lines move nothing
            if kg == 0:
                continue
            item = by_name.get(name)
            if item is None:
                result.unmatched.append(name)
                self.logger.warning(f"No product named '{name}' for {reference_type} "
                                    f"{reference_id or '-'}; {kg:g} kg not applied to any product")
                continue
            rate = value / kg
            new_transactions.append(self._shift(item, direction, kg, tx_type, reference_type,
                                                reference_id, party_type, rate))
            result.matched.append(name)

        total_kg = sum(kg for kg, _ in totals.values())
        bardana = self._find_bardana(item_list)
        if total_kg > 0:
            if bardana is None:
                result.bardana_missing = True
                self.logger.warning(f"Universal item '{self.config.bardana_name}' missing; "
                                    f"{total_kg:g} kg not mirrored")
            else:
                new_transactions.append(self._shift(bardana, direction, total_kg, tx_type, reference_type,
                                                    reference_id, party_type, 0.0, "Bardana co-movement"))
                result.bardana_bags = kg_to_bags(total_kg)

        if new_transactions or extra:
            self._commit(item_list, new_transactions, transactions, extra)
        result.transactions = new_transactions
        self.logger.info(f"{tx_type.value} {reference_id or '-'}: {len(result.matched)} products moved, "
                         f"{len(result.unmatched)} unmatched, Bardana {direction * result.bardana_bags:+.4f} bags")
        return result

    def _shift(
        self,
        item: Item,
        direction: int,
        kg: float,
        tx_type: TransactionType,
        reference_type: Optional[str],
        reference_id: Optional[str],
        party_type: Optional[str],
        rate: float,
        note: str = "",
    ) -> StockTransaction:
        """Mutate ``item`` in place and return the matching transaction."""
        bags = kg_to_bags(kg)
        previous = item.stock_bags
        target = previous + direction * bags
        new_stock = max(0.0, target)
        if target < 0:
            note = (note + "; " if note else "") + f"clamped at zero, short by {-target:.4f} bags"

        item.stock_bags = new_stock
        item.updated_at = now_iso()

        return StockTransaction(
            item_id=item.id,
            item_name=item.product_name,
            transaction_type=tx_type,
            quantity_kg=kg,
            quantity_bags=bags,
            direction=direction,
            previous_stock=previous,
            new_stock=new_stock,
            reference_type=reference_type,
            reference_id=reference_id,
            rate=rate,
            total_value=rate * kg,
            party_type=party_type,
            note=note,
        )

    def _commit(self, items: List[Item], new_transactions: List[StockTransaction],
                existing: Optional[List[StockTransaction]] = None,
                extra: Optional[Dict[str, List[Dict[str, Any]]]] = None) -> None:
        payload = dict(extra or {})
        payload[Collections.ITEMS] = [i.to_dict() for i in items]
        if new_transactions:
            if existing is None:
                existing = self.list_transactions()
            payload[Collections.STOCK_TRANSACTIONS] = [tx.to_dict() for tx in existing + new_transactions]
        self.store.put_many(payload)
