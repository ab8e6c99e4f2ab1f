import random

import pytest

from stockledger.config.settings import StockConfig
from stockledger.core.exceptions import (
    DataValidationError, DuplicateItemError, ItemNotFoundError, StorageError,
)
from stockledger.core.stock_engine import ProcessedDocuments, StockReconciliationEngine
from stockledger.db.core import Collections
from stockledger.models.records import LineItem, TransactionStatus, TransactionType


def bags(engine, name):
    return engine.get_item(name).stock_bags


def sale_line(name, kg, rate=10.0):
    return {"item_name": name, "quantity": kg, "rate": rate}


class TestApplySale:

    def test_reduces_product_and_bardana(self, engine, bardana):
        engine.create_item("Widget", opening_stock_kg=300)
        engine.adjust_stock("Bardana", 600)

        result = engine.apply_sale([sale_line("Widget", 60)], "INV-2")

        assert bags(engine, "Widget") == pytest.approx(8)
        assert bags(engine, "Bardana") == pytest.approx(18)
        assert result.matched == ["Widget"]
        assert result.bardana_bags == pytest.approx(2)
        assert [tx.transaction_type for tx in result.transactions] == [TransactionType.SALE] * 2
        assert all(tx.reference_id == "INV-2" for tx in result.transactions)

    def test_bardana_moves_even_when_product_unmatched(self, engine, bardana):
        engine.adjust_stock("Bardana", 300)

        result = engine.apply_sale([sale_line("Widget", 60)], "INV-2")

        assert result.unmatched == ["Widget"]
        assert result.has_warnings
        assert bags(engine, "Bardana") == pytest.approx(8)

    def test_same_invoice_applied_once(self, engine, bardana):
        engine.create_item("Rice", opening_stock_kg=900)
        engine.adjust_stock("Bardana", 900)
        items = [sale_line("Rice", 45)]

        engine.apply_sale(items, "INV-1")
        after_first = (bags(engine, "Rice"), bags(engine, "Bardana"), len(engine.list_transactions()))
        second = engine.apply_sale(items, "INV-1")

        assert second.duplicate
        assert second.transactions == []
        assert (bags(engine, "Rice"), bags(engine, "Bardana"), len(engine.list_transactions())) == after_first
        assert bags(engine, "Rice") == pytest.approx(30 - 1.5)

    def test_processed_mark_survives_restart(self, store, engine, bardana):
        engine.create_item("Rice", opening_stock_kg=900)
        engine.apply_sale([sale_line("Rice", 30)], "INV-9")

        restarted = StockReconciliationEngine(store, StockConfig(), ProcessedDocuments())
        result = restarted.apply_sale([sale_line("Rice", 30)], "INV-9")

        assert result.duplicate
        assert bags(restarted, "Rice") == pytest.approx(29)

    def test_oversell_clamps_at_zero(self, engine, bardana):
        engine.create_item("Dal", opening_stock_kg=30)

        result = engine.apply_sale([sale_line("Dal", 90)], "INV-3")

        product_tx = result.transactions[0]
        assert bags(engine, "Dal") == 0
        assert product_tx.previous_stock == pytest.approx(1)
        assert product_tx.new_stock == 0
        assert product_tx.quantity_bags == pytest.approx(3)
        assert "clamped at zero" in product_tx.note
        assert bags(engine, "Bardana") == 0

    def test_stock_never_negative_over_many_sales(self, engine, bardana):
        engine.create_item("Sugar", opening_stock_kg=500)
        rng = random.Random(7)

        for n in range(40):
            engine.apply_sale([sale_line("Sugar", rng.uniform(0, 80))], f"INV-{n}")
            assert engine.get_item("Sugar").stock_bags >= 0
            assert engine.get_bardana().stock_bags >= 0

        for tx in engine.list_transactions():
            assert tx.new_stock >= 0

    def test_lines_for_same_product_are_combined(self, engine, bardana):
        engine.create_item("Wheat", opening_stock_kg=600)

        result = engine.apply_sale([sale_line("Wheat", 30, 20), sale_line("Wheat", 60, 25)], "INV-4")

        product_txs = [tx for tx in result.transactions if tx.item_name == "Wheat"]
        assert len(product_txs) == 1
        assert product_txs[0].quantity_kg == 90
        assert product_txs[0].total_value == pytest.approx(30 * 20 + 60 * 25)
        assert bags(engine, "Wheat") == pytest.approx(17)

    def test_name_match_is_case_sensitive(self, engine, bardana):
        engine.create_item("Widget", opening_stock_kg=300)

        result = engine.apply_sale([sale_line("widget", 30)], "INV-5")

        assert result.unmatched == ["widget"]
        assert bags(engine, "Widget") == pytest.approx(10)

    def test_universal_item_named_in_a_line_moves_once(self, engine, bardana):
        engine.adjust_stock("Bardana", 300)

        result = engine.apply_sale([sale_line("Bardana", 30)], "INV-6")

        assert result.unmatched == ["Bardana"]
        assert bags(engine, "Bardana") == pytest.approx(9)

    def test_empty_sale_writes_nothing(self, store, engine, bardana):
        writes = store.write_count

        result = engine.apply_sale([], "INV-7")

        assert result.transactions == []
        assert store.write_count == writes
        assert engine.apply_sale([sale_line("Anything", 30)], "INV-7").duplicate

    def test_missing_bardana_is_reported(self, engine):
        engine.create_item("Widget", opening_stock_kg=300)

        result = engine.apply_sale([sale_line("Widget", 30)], "INV-8")

        assert result.bardana_missing
        assert bags(engine, "Widget") == pytest.approx(9)

    def test_negative_quantity_rejected(self, engine, bardana):
        with pytest.raises(DataValidationError):
            engine.apply_sale([sale_line("Widget", -30)], "INV-10")

    def test_accepts_line_item_objects(self, engine, bardana):
        engine.create_item("Widget", opening_stock_kg=300)

        engine.apply_sale([LineItem(item_name="Widget", quantity=15, rate=2)], "INV-11")

        assert bags(engine, "Widget") == pytest.approx(9.5)

    def test_zero_quantity_line_moves_nothing(self, engine, bardana):
        engine.create_item("Rice", opening_stock_kg=300)
        engine.adjust_stock("Bardana", 300)

        result = engine.apply_sale([sale_line("Rice", 0), sale_line("Ghost", 0), sale_line("Dal", 0)], "INV-12")

        assert result.transactions == []
        assert result.matched == []
        assert result.unmatched == []
        assert engine.transactions_for("INV-12") == []
        assert bags(engine, "Rice") == pytest.approx(10)

    def test_zero_quantity_line_beside_real_line(self, engine, bardana):
        engine.create_item("Rice", opening_stock_kg=300)
        engine.create_item("Dal", opening_stock_kg=300)

        result = engine.apply_sale([sale_line("Rice", 30), sale_line("Dal", 0)], "INV-13")

        assert result.matched == ["Rice"]
        assert [tx.item_name for tx in result.transactions] == ["Rice", "Bardana"]


class TestApplyPurchase:

    def test_purchase_increases_stock_and_bardana(self, engine, bardana):
        engine.create_item("Sack", opening_stock_kg=300)

        result = engine.apply_purchase([sale_line("Sack", 300)])

        assert bags(engine, "Sack") == pytest.approx(20)
        assert bags(engine, "Bardana") == pytest.approx(10)
        assert {tx.transaction_type for tx in result.transactions} == {TransactionType.PURCHASE}
        assert all(tx.direction == 1 for tx in result.transactions)

    def test_purchase_is_not_guarded_by_default(self, engine, bardana):
        engine.create_item("Sack", opening_stock_kg=300)

        engine.apply_purchase([sale_line("Sack", 300)], bill_id="B-1")
        second = engine.apply_purchase([sale_line("Sack", 300)], bill_id="B-1")

        assert not second.duplicate
        assert bags(engine, "Sack") == pytest.approx(30)

    def test_purchase_guard_can_be_enabled(self, store):
        engine = StockReconciliationEngine(store, StockConfig(guard_purchases=True))
        engine.ensure_bardana()
        engine.create_item("Sack", opening_stock_kg=300)

        engine.apply_purchase([sale_line("Sack", 300)], bill_id="B-1")
        second = engine.apply_purchase([sale_line("Sack", 300)], bill_id="B-1")

        assert second.duplicate
        assert bags(engine, "Sack") == pytest.approx(20)

    def test_unmatched_purchase_still_moves_bardana(self, engine, bardana):
        result = engine.apply_purchase([sale_line("Unknown", 90)])

        assert result.unmatched == ["Unknown"]
        assert bags(engine, "Bardana") == pytest.approx(3)


class TestRevertSale:

    def test_revert_adds_back_and_logs_returns(self, engine, bardana):
        engine.create_item("Widget", opening_stock_kg=300)
        engine.adjust_stock("Bardana", 300)
        items = [sale_line("Widget", 60)]
        engine.apply_sale(items, "INV-1")

        result = engine.revert_sale(items, "INV-1")

        assert bags(engine, "Widget") == pytest.approx(10)
        assert bags(engine, "Bardana") == pytest.approx(10)
        assert {tx.transaction_type for tx in result.transactions} == {TransactionType.RETURN}

    def test_revert_keeps_invoice_processed(self, engine, bardana):
        engine.create_item("Widget", opening_stock_kg=300)
        items = [sale_line("Widget", 60)]
        engine.apply_sale(items, "INV-1")
        engine.revert_sale(items, "INV-1")

        assert engine.apply_sale(items, "INV-1").duplicate
        assert bags(engine, "Widget") == pytest.approx(10)


class TestStockQueries:

    def test_current_stock_in_whole_kg(self, engine):
        engine.create_item("Oil", opening_stock_kg=100)

        assert engine.current_stock_kg("Oil") == 100
        assert engine.current_stock_kg("Missing") == 0

    def test_has_sufficient_stock(self, engine):
        engine.create_item("Oil", opening_stock_kg=100)

        assert engine.has_sufficient_stock("Oil", 100)
        assert not engine.has_sufficient_stock("Oil", 101)
        assert not engine.has_sufficient_stock("Missing", 1)

    def test_low_stock_items(self, engine, bardana):
        engine.create_item("Oil", opening_stock_kg=30, low_stock_kg=60)
        engine.create_item("Salt", opening_stock_kg=300, low_stock_kg=60)

        names = [item.product_name for item in engine.low_stock_items()]

        assert "Oil" in names
        assert "Bardana" in names
        assert "Salt" not in names

    def test_history_and_reference_lookup(self, engine, bardana):
        engine.create_item("Oil", opening_stock_kg=300)
        engine.apply_sale([sale_line("Oil", 30)], "INV-1")

        history = engine.item_history("Oil")
        assert [tx.transaction_type for tx in history] == [TransactionType.OPENING_STOCK, TransactionType.SALE]
        assert len(engine.transactions_for("INV-1")) == 2
        assert engine.item_history("Missing") == []

    def test_transactions_follow_sign_convention(self, engine, bardana):
        engine.create_item("Oil", opening_stock_kg=300)
        engine.apply_purchase([sale_line("Oil", 45)], bill_id="B-1")
        engine.apply_sale([sale_line("Oil", 500)], "INV-1")
        engine.revert_sale([sale_line("Oil", 20)], "INV-1")

        for tx in engine.list_transactions():
            assert tx.quantity_bags == pytest.approx(tx.quantity_kg / 30)
            assert tx.new_stock == pytest.approx(max(0.0, tx.previous_stock + tx.direction * tx.quantity_bags))


class TestCatalogue:

    def test_create_item_stores_bags(self, engine):
        item = engine.create_item("Chana", opening_stock_kg=45, low_stock_kg=15, purchase_price=50)

        assert item.stock_bags == pytest.approx(1.5)
        assert item.low_stock_bags == pytest.approx(0.5)
        opening = engine.item_history("Chana")[0]
        assert opening.transaction_type == TransactionType.OPENING_STOCK
        assert opening.new_stock == pytest.approx(1.5)

    def test_duplicate_name_is_case_insensitive(self, engine):
        engine.create_item("Chana")

        with pytest.raises(DuplicateItemError):
            engine.create_item("  CHANA ")

    def test_bardana_bootstrap_is_idempotent(self, engine):
        first = engine.ensure_bardana()
        second = engine.ensure_bardana()

        universal = [i for i in engine.list_items() if i.is_universal]
        assert first.id == second.id
        assert len(universal) == 1
        assert universal[0].stock_bags == 0
        assert universal[0].low_stock_bags == pytest.approx(10)
        openings = [tx for tx in engine.list_transactions() if tx.transaction_type == TransactionType.OPENING_STOCK]
        assert len(openings) == 1
        assert openings[0].quantity_kg == 0

    def test_existing_plain_bardana_is_flagged_universal(self, engine):
        engine.create_item("Bardana", opening_stock_kg=60)

        bardana = engine.ensure_bardana()

        assert bardana.is_universal
        assert bardana.stock_bags == pytest.approx(2)
        assert len(engine.list_items()) == 1


class TestAdjustAndReverse:

    def test_adjust_missing_item_raises(self, engine):
        with pytest.raises(ItemNotFoundError):
            engine.adjust_stock("Missing", 30)

    def test_negative_adjustment_clamps(self, engine):
        engine.create_item("Oil", opening_stock_kg=30)

        result = engine.adjust_stock("Oil", -60, note="spillage")

        tx = result.transactions[0]
        assert tx.transaction_type == TransactionType.ADJUSTMENT
        assert tx.direction == -1
        assert bags(engine, "Oil") == 0

    def test_reverse_sale_appends_return(self, engine, bardana):
        engine.create_item("Oil", opening_stock_kg=300)
        sale = engine.apply_sale([sale_line("Oil", 60)], "INV-1").transactions[0]

        reversal = engine.reverse_transaction(sale.id)

        assert reversal.transaction_type == TransactionType.RETURN
        assert reversal.status == TransactionStatus.REVERSAL
        assert reversal.reference_id == sale.id
        assert bags(engine, "Oil") == pytest.approx(10)
        stored = next(tx for tx in engine.list_transactions() if tx.id == sale.id)
        assert stored.status == TransactionStatus.COMPLETED

    def test_reverse_purchase_appends_negative_adjustment(self, engine, bardana):
        engine.create_item("Oil", opening_stock_kg=300)
        purchase = engine.apply_purchase([sale_line("Oil", 90)]).transactions[0]

        reversal = engine.reverse_transaction(purchase.id)

        assert reversal.transaction_type == TransactionType.ADJUSTMENT
        assert reversal.direction == -1
        assert bags(engine, "Oil") == pytest.approx(10)

    def test_reverse_twice_rejected(self, engine, bardana):
        engine.create_item("Oil", opening_stock_kg=300)
        sale = engine.apply_sale([sale_line("Oil", 60)], "INV-1").transactions[0]
        reversal = engine.reverse_transaction(sale.id)

        with pytest.raises(DataValidationError):
            engine.reverse_transaction(sale.id)
        with pytest.raises(DataValidationError):
            engine.reverse_transaction(reversal.id)

    def test_reverse_unknown_transaction(self, engine):
        with pytest.raises(ItemNotFoundError):
            engine.reverse_transaction("STX-missing")


class TestStorageFailures:

    def test_failed_write_changes_nothing(self, failing_store):
        engine = StockReconciliationEngine(failing_store)
        engine.ensure_bardana()
        engine.create_item("Oil", opening_stock_kg=300)
        before_items = failing_store.get(Collections.ITEMS)
        before_txs = failing_store.get(Collections.STOCK_TRANSACTIONS)

        failing_store.fail_writes = True
        with pytest.raises(StorageError) as excinfo:
            engine.apply_sale([sale_line("Oil", 60)], "INV-1")

        assert excinfo.value.step == "write"
        assert failing_store.get(Collections.ITEMS) == before_items
        assert failing_store.get(Collections.STOCK_TRANSACTIONS) == before_txs

    def test_failed_sale_is_not_marked_processed(self, failing_store):
        engine = StockReconciliationEngine(failing_store)
        engine.ensure_bardana()
        engine.create_item("Oil", opening_stock_kg=300)

        failing_store.fail_writes = True
        with pytest.raises(StorageError):
            engine.apply_sale([sale_line("Oil", 60)], "INV-1")
        failing_store.fail_writes = False

        result = engine.apply_sale([sale_line("Oil", 60)], "INV-1")
        assert not result.duplicate
        assert bags(engine, "Oil") == pytest.approx(8)

    def test_malformed_record_rejected_at_read(self, store, engine):
        store.put(Collections.ITEMS, [{"id": "x", "product_name": "Oil", "stock_bags": -1}])

        with pytest.raises(DataValidationError):
            engine.list_items()
