from dataclasses import dataclass, replace
from datetime import date as date_cls
from typing import Iterable, List, Optional

from stockledger.config.settings import StockConfig
from stockledger.core.exceptions import DataValidationError, ItemNotFoundError
from stockledger.core.ledger_engine import LedgerEngine
from stockledger.core.numbering import next_document_number, next_payment_number, migrate_payment_numbers
from stockledger.core.stock_engine import StockReconciliationEngine, ReconciliationResult, LineItemInput
from stockledger.db.core import Collections, DocumentStore
from stockledger.models.records import (
    BillingDocument, DocumentKind, LineItem, Payment, PaymentDirection, PartyType,
)
from stockledger.utils.logger import get_logger


_PAYMENT_COLLECTIONS = {
    PaymentDirection.IN: Collections.SALES_PAYMENTS,
    PaymentDirection.OUT: Collections.PURCHASE_PAYMENTS,
}


def _check_amount(amount) -> None:
    try:
        valid = amount is not None and float(amount) > 0
    except (TypeError, ValueError):
        valid = False
    if not valid:
        raise DataValidationError("Payment amount must be greater than zero")


@dataclass
class DocumentResult:
    document: BillingDocument
    stock: ReconciliationResult
    outstanding_before: float = 0.0


class BillingService:
    """
    Records invoices, bills and payments and pushes their stock effect.

    A document is saved first and then applied to stock under its own id,
    so re-running the stock step for a saved invoice never double counts.
    """

    def __init__(self, store: DocumentStore, stock: Optional[StockReconciliationEngine] = None,
                 ledger: Optional[LedgerEngine] = None, config: Optional[StockConfig] = None):
        self.store = store
        self.stock = stock or StockReconciliationEngine(store, config)
        self.ledger = ledger or LedgerEngine(store)
        self.logger = get_logger(self.__class__.__name__)

    def _documents(self, collection: str) -> List[BillingDocument]:
        return self.store.read_records(collection, BillingDocument.from_dict)

    def _payments(self, collection: str) -> List[Payment]:
        return self.store.read_records(collection, Payment.from_dict)

    @staticmethod
    def _check_party(party_name: str, phone_number: str) -> None:
        if not party_name or not str(party_name).strip() or not phone_number:
            raise DataValidationError("Party name and phone number are required")

    def _create_document(self, kind: DocumentKind, collection: str, party_type: PartyType,
                         party_name: str, phone_number: str, items: Iterable[LineItemInput],
                         date: Optional[str]) -> BillingDocument:
        self._check_party(party_name, phone_number)
        lines = [i if isinstance(i, LineItem) else LineItem.from_dict(i) for i in items]
        if not lines:
            raise DataValidationError(f"{kind.value.capitalize()} needs at least one item")

        existing = self._documents(collection)
        document = BillingDocument(
            kind=kind,
            number=next_document_number(existing),
            party_name=party_name.strip(),
            phone_number=phone_number,
            date=date or date_cls.today().isoformat(),
            items=lines,
        )
        self.store.put(collection, [d.to_dict() for d in existing] + [document.to_dict()])
        self.logger.info(f"Saved {kind.value} #{document.number} for {document.party_name} "
                         f"({party_type.value}) total {document.total_amount:,.2f}")
        return document

    def create_invoice(self, party_name: str, phone_number: str, items: Iterable[LineItemInput],
                       date: Optional[str] = None) -> DocumentResult:
        outstanding = self.ledger.balance_for(party_name, phone_number, PartyType.CUSTOMER)
        if outstanding > 0:
            self.logger.warning(f"{party_name} already owes {outstanding:,.2f}")

        document = self._create_document(DocumentKind.INVOICE, Collections.SALES_INVOICES,
                                         PartyType.CUSTOMER, party_name, phone_number, items, date)
        stock = self.stock.apply_sale(document.items, invoice_id=document.id)
        return DocumentResult(document=document, stock=stock, outstanding_before=outstanding)

    def create_bill(self, party_name: str, phone_number: str, items: Iterable[LineItemInput],
                    date: Optional[str] = None) -> DocumentResult:
        outstanding = self.ledger.balance_for(party_name, phone_number, PartyType.SUPPLIER)
        document = self._create_document(DocumentKind.BILL, Collections.PURCHASE_BILLS,
                                         PartyType.SUPPLIER, party_name, phone_number, items, date)
        stock = self.stock.apply_purchase(document.items, bill_id=document.id)
        return DocumentResult(document=document, stock=stock, outstanding_before=outstanding)

    @staticmethod
    def _without(documents: List[BillingDocument], document_id: str, label: str):
        document = next((d for d in documents if d.id == document_id), None)
        if document is None:
            raise ItemNotFoundError(f"No {label} with id '{document_id}'")
        return document, [d.to_dict() for d in documents if d.id != document_id]

    def delete_invoice(self, invoice_id: str) -> ReconciliationResult:
        """
        Remove an invoice and add its quantities back to stock.

        The stock change and the shortened invoice list are one write.
        """
        document, remaining = self._without(self._documents(Collections.SALES_INVOICES), invoice_id, "invoice")
        result = self.stock.revert_sale(document.items, invoice_id=document.id,
                                        extra={Collections.SALES_INVOICES: remaining})
        self.logger.info(f"Deleted invoice #{document.number}")
        return result

    def delete_bill(self, bill_id: str) -> ReconciliationResult:
        """Remove a purchase bill and take its quantities back out of stock."""
        document, remaining = self._without(self._documents(Collections.PURCHASE_BILLS), bill_id, "bill")
        result = self.stock.revert_purchase(document.items, bill_id=document.id,
                                            extra={Collections.PURCHASE_BILLS: remaining})
        self.logger.info(f"Deleted bill #{document.number}")
        return result

    def _record_payment(self, direction: PaymentDirection, collection: str, party_type: PartyType,
                        party_name: str, phone_number: str, amount: float,
                        date: Optional[str]) -> Payment:
        self._check_party(party_name, phone_number)
        _check_amount(amount)

        payments = self._payments(collection)
        payment = Payment(
            direction=direction,
            number=next_payment_number(payments),
            party_name=party_name.strip(),
            phone_number=phone_number,
            amount=amount,
            # Informational snapshot of the balance before this payment
            total_amount=self.ledger.balance_for(party_name, phone_number, party_type),
            date=date or date_cls.today().isoformat(),
        )
        self.store.put(collection, [p.to_dict() for p in payments] + [payment.to_dict()])
        self.logger.info(f"Recorded {payment.number} ({direction.value}) {payment.amount:,.2f} "
                         f"for {payment.party_name}")
        return payment

    def record_payment_in(self, party_name: str, phone_number: str, amount: float,
                          date: Optional[str] = None) -> Payment:
        return self._record_payment(PaymentDirection.IN, Collections.SALES_PAYMENTS, PartyType.CUSTOMER,
                                    party_name, phone_number, amount, date)

    def record_payment_out(self, party_name: str, phone_number: str, amount: float,
                           date: Optional[str] = None) -> Payment:
        return self._record_payment(PaymentDirection.OUT, Collections.PURCHASE_PAYMENTS, PartyType.SUPPLIER,
                                    party_name, phone_number, amount, date)

    def _find_payment(self, direction: PaymentDirection, payment_id: str):
        collection = _PAYMENT_COLLECTIONS[PaymentDirection(direction)]
        payments = self._payments(collection)
        payment = next((p for p in payments if p.id == payment_id), None)
        if payment is None:
            raise ItemNotFoundError(f"No payment with id '{payment_id}'")
        return collection, payments, payment

    def delete_payment(self, direction: PaymentDirection, payment_id: str) -> Payment:
        """Remove a payment in or out; the party balance follows on the next read."""
        collection, payments, payment = self._find_payment(direction, payment_id)
        self.store.put(collection, [p.to_dict() for p in payments if p.id != payment_id])
        self.logger.info(f"Deleted {payment.number or payment.id} for {payment.party_name}")
        return payment

    def update_payment(self, direction: PaymentDirection, payment_id: str, amount: Optional[float] = None,
                       party_name: Optional[str] = None, phone_number: Optional[str] = None,
                       date: Optional[str] = None, number: Optional[str] = None) -> Payment:
        """
        Edit a recorded payment. Fields left as None keep their value; the
        balance snapshot taken when the payment was recorded is not touched.
        """
        collection, payments, payment = self._find_payment(direction, payment_id)
        party_name = payment.party_name if party_name is None else party_name
        phone_number = payment.phone_number if phone_number is None else phone_number
        amount = payment.amount if amount is None else amount
        self._check_party(party_name, phone_number)
        _check_amount(amount)

        updated = replace(
            payment,
            party_name=party_name.strip(),
            phone_number=phone_number,
            amount=amount,
            date=payment.date if date is None else date,
            number=payment.number if number is None else number,
        )
        self.store.put(collection, [(updated if p.id == payment_id else p).to_dict() for p in payments])
        self.logger.info(f"Updated {updated.number or updated.id} for {updated.party_name}: "
                         f"{updated.amount:,.2f}")
        return updated

    def migrate_payments(self) -> int:
        """Number any payments saved before payment numbers existed."""
        changed = 0
        for collection in (Collections.SALES_PAYMENTS, Collections.PURCHASE_PAYMENTS):
            payments = self._payments(collection)
            count = migrate_payment_numbers(payments)
            if count:
                self.store.put(collection, [p.to_dict() for p in payments])
                changed += count
        return changed
