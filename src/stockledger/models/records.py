from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any, List

from stockledger.core.exceptions import DataValidationError
from stockledger.core.units import kg_to_bags, bags_to_kg
from stockledger.utils.helpers import generate_id, generate_transaction_id, now_iso


class ItemCategory(str, Enum):
    PRIMARY = "Primary"
    KIRANA = "Kirana"


class TransactionType(str, Enum):
    SALE = "sale"
    PURCHASE = "purchase"
    RETURN = "return"
    ADJUSTMENT = "adjustment"
    OPENING_STOCK = "opening_stock"

    @property
    def default_direction(self) -> int:
        return -1 if self in (TransactionType.SALE, TransactionType.ADJUSTMENT) else 1


class TransactionStatus(str, Enum):
    COMPLETED = "completed"
    REVERSAL = "reversal"


class DocumentKind(str, Enum):
    INVOICE = "invoice"
    BILL = "bill"


class DocumentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentDirection(str, Enum):
    IN = "in"
    OUT = "out"


class PartyType(str, Enum):
    CUSTOMER = "customer"
    SUPPLIER = "supplier"


def _enum(enum_cls, value, label):
    try:
        return value if isinstance(value, enum_cls) else enum_cls(value)
    except ValueError:
        raise DataValidationError(f"Invalid {label}: {value!r}")


def _number(value, label, allow_negative=False) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise DataValidationError(f"{label} must be a number, got {value!r}")
    if not allow_negative and number < 0:
        raise DataValidationError(f"{label} cannot be negative")
    return number


def _require(data: Dict[str, Any], key: str, kind: str):
    if key not in data:
        raise DataValidationError(f"{kind} record is missing '{key}'")
    return data[key]


@dataclass
class Item:
    """Product with stock held in bags."""

    product_name: str
    category: ItemCategory = ItemCategory.PRIMARY
    purchase_price: float = 0.0
    sale_price: float = 0.0
    stock_bags: float = 0.0
    low_stock_bags: float = 0.0
    as_of_date: Optional[str] = None
    is_universal: bool = False
    id: str = field(default_factory=generate_id)
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)

    def __post_init__(self):
        if not self.product_name or not str(self.product_name).strip():
            raise DataValidationError("product_name is required")
        self.product_name = str(self.product_name).strip()
        self.category = _enum(ItemCategory, self.category, "category")
        self.purchase_price = _number(self.purchase_price, "Purchase price")
        self.sale_price = _number(self.sale_price, "Sale price")
        self.stock_bags = _number(self.stock_bags, "Stock")
        self.low_stock_bags = _number(self.low_stock_bags, "Low stock threshold")
        self.is_universal = bool(self.is_universal)

    @property
    def stock_kg(self) -> float:
        return bags_to_kg(self.stock_bags)

    @property
    def is_low_stock(self) -> bool:
        return self.stock_bags <= self.low_stock_bags

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'product_name': self.product_name,
            'category': self.category.value,
            'purchase_price': self.purchase_price,
            'sale_price': self.sale_price,
            'stock_bags': self.stock_bags,
            'low_stock_bags': self.low_stock_bags,
            'as_of_date': self.as_of_date,
            'is_universal': self.is_universal,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Item":
        return cls(
            id=_require(data, 'id', 'Item'),
            product_name=_require(data, 'product_name', 'Item'),
            category=data.get('category', ItemCategory.PRIMARY),
            purchase_price=data.get('purchase_price', 0.0),
            sale_price=data.get('sale_price', 0.0),
            stock_bags=data.get('stock_bags', 0.0),
            low_stock_bags=data.get('low_stock_bags', 0.0),
            as_of_date=data.get('as_of_date'),
            is_universal=data.get('is_universal', False),
            created_at=data.get('created_at') or now_iso(),
            updated_at=data.get('updated_at') or now_iso(),
        )


@dataclass
class LineItem:
    """One line of an invoice or bill; quantity is in kilograms."""

    item_name: str
    quantity: float
    rate: float = 0.0
    total: Optional[float] = None
    id: str = field(default_factory=generate_id)

    def __post_init__(self):
        self.item_name = "" if self.item_name is None else str(self.item_name)
        self.quantity = _number(self.quantity, f"Quantity of '{self.item_name}'")
        self.rate = _number(self.rate, f"Rate of '{self.item_name}'")
        if self.total is None:
            self.total = self.quantity * self.rate
        self.total = _number(self.total, f"Total of '{self.item_name}'")

    @property
    def quantity_bags(self) -> float:
        return kg_to_bags(self.quantity)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'item_name': self.item_name,
            'quantity': self.quantity,
            'rate': self.rate,
            'total': self.total,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LineItem":
        return cls(
            id=data.get('id') or generate_id(),
            item_name=_require(data, 'item_name', 'Line item'),
            quantity=_require(data, 'quantity', 'Line item'),
            rate=data.get('rate', 0.0),
            total=data.get('total'),
        )


@dataclass
class StockTransaction:
    """Immutable log entry for one stock-affecting event."""

    item_id: str
    item_name: str
    transaction_type: TransactionType
    quantity_kg: float
    previous_stock: float
    new_stock: float
    id: str = field(default_factory=generate_transaction_id)
    quantity_bags: Optional[float] = None
    direction: Optional[int] = None
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    rate: float = 0.0
    total_value: float = 0.0
    party_type: Optional[str] = None
    timestamp: str = field(default_factory=now_iso)
    note: str = ""
    status: TransactionStatus = TransactionStatus.COMPLETED

    def __post_init__(self):
        self.transaction_type = _enum(TransactionType, self.transaction_type, "transaction type")
        self.status = _enum(TransactionStatus, self.status, "transaction status")
        self.quantity_kg = _number(self.quantity_kg, "Transaction quantity")
        if self.quantity_bags is None:
            self.quantity_bags = kg_to_bags(self.quantity_kg)
        self.quantity_bags = _number(self.quantity_bags, "Transaction bags")
        if self.direction is None:
            self.direction = self.transaction_type.default_direction
        if self.direction not in (-1, 1):
            raise DataValidationError(f"Transaction direction must be -1 or 1, got {self.direction!r}")
        self.previous_stock = _number(self.previous_stock, "Previous stock")
        self.new_stock = _number(self.new_stock, "New stock")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'item_id': self.item_id,
            'item_name': self.item_name,
            'transaction_type': self.transaction_type.value,
            'quantity_kg': self.quantity_kg,
            'quantity_bags': self.quantity_bags,
            'direction': self.direction,
            'previous_stock': self.previous_stock,
            'new_stock': self.new_stock,
            'reference_type': self.reference_type,
            'reference_id': self.reference_id,
            'rate': self.rate,
            'total_value': self.total_value,
            'party_type': self.party_type,
            'timestamp': self.timestamp,
            'note': self.note,
            'status': self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StockTransaction":
        kind = 'Stock transaction'
        return cls(
            id=_require(data, 'id', kind),
            item_id=_require(data, 'item_id', kind),
            item_name=_require(data, 'item_name', kind),
            transaction_type=_require(data, 'transaction_type', kind),
            quantity_kg=_require(data, 'quantity_kg', kind),
            quantity_bags=data.get('quantity_bags'),
            direction=data.get('direction'),
            previous_stock=_require(data, 'previous_stock', kind),
            new_stock=_require(data, 'new_stock', kind),
            reference_type=data.get('reference_type'),
            reference_id=data.get('reference_id'),
            rate=data.get('rate', 0.0),
            total_value=data.get('total_value', 0.0),
            party_type=data.get('party_type'),
            timestamp=data.get('timestamp') or now_iso(),
            note=data.get('note', ""),
            status=data.get('status', TransactionStatus.COMPLETED),
        )


@dataclass
class BillingDocument:
    """Sale invoice or purchase bill."""

    kind: DocumentKind
    number: str
    party_name: str
    phone_number: str
    date: str
    items: List[LineItem] = field(default_factory=list)
    total_amount: Optional[float] = None
    status: DocumentStatus = DocumentStatus.PENDING
    id: str = field(default_factory=generate_id)

    def __post_init__(self):
        self.kind = _enum(DocumentKind, self.kind, "document kind")
        self.status = _enum(DocumentStatus, self.status, "document status")
        if not self.party_name:
            raise DataValidationError("party_name is required")
        self.phone_number = "" if self.phone_number is None else str(self.phone_number)
        self.number = str(self.number)
        self.items = [i if isinstance(i, LineItem) else LineItem.from_dict(i) for i in self.items]
        if self.total_amount is None:
            self.total_amount = sum(i.total for i in self.items)
        self.total_amount = _number(self.total_amount, "Document total")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'kind': self.kind.value,
            'number': self.number,
            'party_name': self.party_name,
            'phone_number': self.phone_number,
            'items': [i.to_dict() for i in self.items],
            'total_amount': self.total_amount,
            'date': self.date,
            'status': self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BillingDocument":
        kind = 'Billing document'
        return cls(
            id=_require(data, 'id', kind),
            kind=_require(data, 'kind', kind),
            number=_require(data, 'number', kind),
            party_name=_require(data, 'party_name', kind),
            phone_number=data.get('phone_number', ""),
            date=_require(data, 'date', kind),
            items=data.get('items') or [],
            total_amount=data.get('total_amount'),
            status=data.get('status', DocumentStatus.PENDING),
        )


@dataclass
class Payment:
    """Money received from a customer (in) or paid to a supplier (out)."""

    direction: PaymentDirection
    number: str
    party_name: str
    phone_number: str
    amount: float
    date: str
    total_amount: float = 0.0
    status: DocumentStatus = DocumentStatus.COMPLETED
    id: str = field(default_factory=generate_id)

    def __post_init__(self):
        self.direction = _enum(PaymentDirection, self.direction, "payment direction")
        self.status = _enum(DocumentStatus, self.status, "payment status")
        if not self.party_name:
            raise DataValidationError("party_name is required")
        self.phone_number = "" if self.phone_number is None else str(self.phone_number)
        self.number = "" if self.number is None else str(self.number)
        self.amount = _number(self.amount, "Payment amount")
        # Balance snapshot may be negative when the party is in credit
        self.total_amount = _number(self.total_amount, "Balance snapshot", allow_negative=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'direction': self.direction.value,
            'number': self.number,
            'party_name': self.party_name,
            'phone_number': self.phone_number,
            'amount': self.amount,
            'total_amount': self.total_amount,
            'date': self.date,
            'status': self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Payment":
        kind = 'Payment'
        return cls(
            id=_require(data, 'id', kind),
            direction=_require(data, 'direction', kind),
            number=data.get('number', ""),
            party_name=_require(data, 'party_name', kind),
            phone_number=data.get('phone_number', ""),
            amount=_require(data, 'amount', kind),
            total_amount=data.get('total_amount', 0.0),
            date=_require(data, 'date', kind),
            status=data.get('status', DocumentStatus.COMPLETED),
        )


@dataclass
class PartyBalance:
    """Derived running balance of one customer or supplier."""

    id: str
    name: str
    phone_number: str
    party_type: PartyType
    total_billed: float = 0.0
    total_paid: float = 0.0
    balance: float = 0.0
    last_transaction_date: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'phone_number': self.phone_number,
            'party_type': self.party_type.value,
            'total_billed': self.total_billed,
            'total_paid': self.total_paid,
            'balance': self.balance,
            'last_transaction_date': self.last_transaction_date,
        }


@dataclass
class PartyTransaction:
    id: str
    party_id: str
    type: str
    amount: float
    date: str
    reference: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'party_id': self.party_id,
            'type': self.type,
            'amount': self.amount,
            'date': self.date,
            'reference': self.reference,
        }
