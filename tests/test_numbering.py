from stockledger.core.numbering import migrate_payment_numbers, next_document_number, next_payment_number
from stockledger.models.records import BillingDocument, Payment


def doc(number):
    return BillingDocument(kind="invoice", number=number, party_name="A", phone_number="1",
                           date="2026-01-01", total_amount=1)


def pay(number):
    return Payment(direction="in", number=number, party_name="A", phone_number="1",
                   amount=1, date="2026-01-01")


def test_first_document_number():
    assert next_document_number([]) == "1"


def test_document_number_follows_highest():
    assert next_document_number([doc("3"), doc("11"), doc("7")]) == "12"


def test_non_numeric_document_numbers_ignored():
    assert next_document_number([doc("draft"), doc("2")]) == "3"


def test_payment_numbers():
    assert next_payment_number([]) == "PAY-1"
    assert next_payment_number([pay("PAY-4"), pay(""), pay("PAY-2")]) == "PAY-5"


def test_migrate_only_touches_unnumbered():
    payments = [pay(""), pay("PAY-9"), pay("")]

    assert migrate_payment_numbers(payments) == 2
    assert [p.number for p in payments] == ["PAY-1", "PAY-9", "PAY-3"]


def test_document_number_reads_leading_digits():
    assert next_document_number([doc("12A"), doc(" 7"), doc("B3")]) == "13"
