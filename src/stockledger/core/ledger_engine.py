"""
Party ledger derivation.

Balances are never stored: they are folded on demand from the billing
documents and payments of one relationship direction (customers fold
sales invoices and payments in; suppliers fold purchase bills and
payments out). A balance is a plain sum, so event order never matters.
"""
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Union

from stockledger.db.core import Collections, DocumentStore
from stockledger.models.records import (
    BillingDocument, Payment, PartyBalance, PartyTransaction, PartyType, DocumentKind,
)
from stockledger.utils.field_normalizer import FieldNormalizer
from stockledger.utils.helpers import party_key
from stockledger.utils.logger import get_logger

LedgerEntry = Union[BillingDocument, Payment]

_SOURCES = {
    PartyType.CUSTOMER: (Collections.SALES_INVOICES, Collections.SALES_PAYMENTS),
    PartyType.SUPPLIER: (Collections.PURCHASE_BILLS, Collections.PURCHASE_PAYMENTS),
}


def _date_key(value: Optional[str]) -> datetime:
    # Unparseable dates sort as the oldest possible date
    return FieldNormalizer.parse_datetime(value) or datetime.min


def _later(current: Optional[str], incoming: Optional[str]) -> Optional[str]:
    if current is None:
        return incoming
    if incoming is None:
        return current
    if FieldNormalizer.parse_date(incoming, date.min) > FieldNormalizer.parse_date(current, date.min):
        return incoming
    return current


def _fold(parties: Dict[str, PartyBalance], entry: LedgerEntry, party_type: PartyType,
          billed: float = 0.0, paid: float = 0.0) -> None:
    key = party_key(entry.party_name, entry.phone_number)
    party = parties.get(key)
    if party is None:
        party = PartyBalance(
            id=key,
            name=entry.party_name,
            phone_number=entry.phone_number,
            party_type=party_type,
        )
        parties[key] = party

    party.total_billed += billed
    party.total_paid += paid
    party.balance = party.total_billed - party.total_paid
    party.last_transaction_date = _later(party.last_transaction_date, entry.date)


def compute_parties(
    documents: Iterable[BillingDocument],
    payments: Iterable[Payment],
    party_type: PartyType = PartyType.CUSTOMER,
) -> List[PartyBalance]:
    """
    Fold documents and payments into one balance per (name, phone) pair.

    Names are compared case-insensitively, phone numbers verbatim. A party
    may appear with documents only or payments only. Returned newest first
    by last transaction date.
    """
    party_type = PartyType(party_type)
    parties: Dict[str, PartyBalance] = {}

    for document in documents:
        _fold(parties, document, party_type, billed=document.total_amount)
    for payment in payments:
        _fold(parties, payment, party_type, paid=payment.amount)

    return sorted(parties.values(), key=lambda p: _date_key(p.last_transaction_date), reverse=True)


def _matches(entry: LedgerEntry, name: str, phone_number: str) -> bool:
    return entry.party_name.lower() == (name or "").lower() and entry.phone_number == phone_number


class LedgerEngine:
    """Reads the billing and payment collections and derives party ledgers."""

    def __init__(self, store: DocumentStore):
        self.store = store
        self.logger = get_logger(self.__class__.__name__)

    def _load(self, party_type: PartyType):
        documents_key, payments_key = _SOURCES[PartyType(party_type)]
        documents = self.store.read_records(documents_key, BillingDocument.from_dict)
        payments = self.store.read_records(payments_key, Payment.from_dict)
        return documents, payments

    def parties_by_type(self, party_type: PartyType) -> List[PartyBalance]:
        documents, payments = self._load(party_type)
        parties = compute_parties(documents, payments, party_type)
        self.logger.debug(f"Derived {len(parties)} {PartyType(party_type).value} balances "
                          f"from {len(documents)} documents and {len(payments)} payments")
        return parties

    def customers(self) -> List[PartyBalance]:
        return self.parties_by_type(PartyType.CUSTOMER)

    def suppliers(self) -> List[PartyBalance]:
        return self.parties_by_type(PartyType.SUPPLIER)

    def all_parties(self) -> List[PartyBalance]:
        """Customers and suppliers together, newest first."""
        parties = self.customers() + self.suppliers()
        return sorted(parties, key=lambda p: _date_key(p.last_transaction_date), reverse=True)

    def balance_for(self, name: str, phone_number: str,
                    party_type: PartyType = PartyType.CUSTOMER) -> float:
        """
        Balance of one party, 0 when it has no history.

        Positive means the customer owes the business, or the business owes
        the supplier.
        """
        key = party_key(name, phone_number)
        for party in self.parties_by_type(party_type):
            if party.id == key:
                return party.balance
        return 0.0

    def party_transactions(self, name: str, phone_number: str,
                           party_type: PartyType = PartyType.CUSTOMER) -> List[PartyTransaction]:
        """Documents and payments of one party, newest first."""
        documents, payments = self._load(party_type)
        party_id = party_key(name, phone_number)
        rows = []

        for document in documents:
            if _matches(document, name, phone_number):
                rows.append(PartyTransaction(
                    id=document.id,
                    party_id=party_id,
                    type=DocumentKind(document.kind).value,
                    amount=document.total_amount,
                    date=document.date,
                    reference=document.number,
                ))

        for payment in payments:
            if _matches(payment, name, phone_number):
                rows.append(PartyTransaction(
                    id=payment.id,
                    party_id=party_id,
                    type="payment",
                    amount=payment.amount,
                    date=payment.date,
                    reference=payment.number,
                ))

        return sorted(rows, key=lambda r: _date_key(r.date), reverse=True)

    def search_parties(self, query: str) -> List[PartyBalance]:
        lower_query = (query or "").lower()
        return [
            party for party in self.all_parties()
            if lower_query in party.name.lower() or lower_query in party.phone_number
        ]
