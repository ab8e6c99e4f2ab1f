import re
from typing import Iterable, List

from stockledger.models.records import BillingDocument, Payment

PAYMENT_PREFIX = "PAY-"
_PAYMENT_RE = re.compile(r"PAY-(\d+)")
_LEADING_DIGITS = re.compile(r"\s*(\d+)")


def _as_int(value) -> int:
    """Leading digits of a document number, so "12A" reads as 12; 0 when there are none."""
    match = _LEADING_DIGITS.match("" if value is None else str(value))
    return int(match.group(1)) if match else 0


def next_document_number(documents: Iterable[BillingDocument]) -> str:
    """Highest leading number of the documents plus one; numbers without digits count as 0."""
    highest = max((_as_int(doc.number) for doc in documents), default=0)
    return str(highest + 1)


def next_payment_number(payments: Iterable[Payment]) -> str:
    highest = 0
    for payment in payments:
        match = _PAYMENT_RE.search(payment.number or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return f"{PAYMENT_PREFIX}{highest + 1}"


def migrate_payment_numbers(payments: List[Payment]) -> int:
    """Give un-numbered payments PAY-<position>; returns how many changed."""
    changed = 0
    for index, payment in enumerate(payments):
        if not payment.number:
            payment.number = f"{PAYMENT_PREFIX}{index + 1}"
            changed += 1
    return changed
