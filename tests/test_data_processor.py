from stockledger.core.data_processor import DataProcessor, FieldMergeMode, ImportStats, conflict_key


def test_conflict_key_ignores_case_and_spaces():
    assert conflict_key({"name": "  Rice "}, ["name"]) == conflict_key({"name": "rice"}, ["name"])
    assert conflict_key({"name": float("nan")}, ["name"]) == (None,)


def test_merge_applies_rules_and_keeps_order():
    records = [
        {"name": "Rice", "kg": 30, "price": 40, "note": None},
        {"name": "Dal", "kg": 10, "price": 90, "note": None},
        {"name": "RICE", "kg": 60, "price": 42, "note": "restock"},
    ]

    merged, repeated = DataProcessor().deduplicate_records(
        records, ["name"], {"kg": FieldMergeMode.SUM, "price": FieldMergeMode.LAST}
    )

    assert [r["name"] for r in merged] == ["Rice", "Dal"]
    assert merged[0] == {"name": "Rice", "kg": 90, "price": 42, "note": "restock"}
    assert list(repeated) == [("rice",)]


def test_stats_duration():
    stats = ImportStats()
    assert stats.duration is None

    stats.finish()

    assert stats.duration >= 0
