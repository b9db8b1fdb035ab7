from __future__ import annotations

from sheetport.domain.types import ReconcileResult, Reference, RowError, RowOutcome


def test_reference_as_dict() -> None:
    assert Reference(4).as_dict() == {"id": 4}
    assert Reference("abc") == Reference("abc")


def test_result_counts_outcomes() -> None:
    result = ReconcileResult()

    for outcome in (RowOutcome.CREATED, RowOutcome.CREATED, RowOutcome.UPDATED, RowOutcome.SKIPPED):
        result.record(outcome)

    assert (result.created, result.updated, result.skipped) == (2, 1, 1)


def test_result_errors_keep_row_numbers() -> None:
    result = ReconcileResult()

    result.add_error("Failed creating on row 3: boom", row_number=3)
    result.add_error("Invalid data format for api::x.x")

    assert result.errors == [
        RowError("Failed creating on row 3: boom", 3),
        RowError("Invalid data format for api::x.x"),
    ]
    assert result.messages() == [
        "Failed creating on row 3: boom",
        "Invalid data format for api::x.x",
    ]


def test_reset_counts_keeps_errors() -> None:
    result = ReconcileResult(created=2, updated=1, skipped=4)
    result.add_error("boom")

    result.reset_counts()

    assert (result.created, result.updated, result.skipped) == (0, 0, 0)
    assert result.messages() == ["boom"]


def test_merge_adds_counts_and_errors() -> None:
    total = ReconcileResult(created=1)
    total.add_error("first")
    other = ReconcileResult(created=2, updated=3, skipped=1)
    other.add_error("second")

    total.merge(other)

    assert (total.created, total.updated, total.skipped) == (3, 3, 1)
    assert total.messages() == ["first", "second"]


def test_payload_and_summary_shapes() -> None:
    result = ReconcileResult(created=2, updated=1, skipped=5)
    result.add_error("boom", row_number=2)

    assert result.as_payload() == {"created": 2, "updated": 1, "errors": ["boom"]}
    assert result.summary() == {"total": 3, "created": 2, "updated": 1, "errors": 1}
