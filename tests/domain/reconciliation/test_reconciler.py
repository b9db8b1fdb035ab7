from __future__ import annotations

import pytest

from sheetport.config import ReconcileSettings
from sheetport.domain.reconciliation import BulkReconciler, has_identifier
from sheetport.domain.schema import SchemaRegistry
from sheetport.domain.types import Reference
from tests.helpers.records import InMemoryRecordStore
from tests.helpers.schema import COMPANY, PERSON, TAG


@pytest.fixture
def reconciler(
    registry: SchemaRegistry,
    store: InMemoryRecordStore,
    settings: ReconcileSettings,
) -> BulkReconciler:
    return BulkReconciler(
        schema=registry,
        unit_of_work_factory=store.unit_of_work,
        settings=settings,
    )


@pytest.fixture
def batch_reconciler(
    registry: SchemaRegistry,
    store: InMemoryRecordStore,
    batch_settings: ReconcileSettings,
) -> BulkReconciler:
    return BulkReconciler(
        schema=registry,
        unit_of_work_factory=store.unit_of_work,
        settings=batch_settings,
    )


def test_new_row_is_created_with_split_list(
    reconciler: BulkReconciler,
    store: InMemoryRecordStore,
) -> None:
    result = reconciler.reconcile(
        {COMPANY: [{"id": None, "name": "Acme", "tagList": "red|blue"}]}
    )

    assert (result.created, result.updated, result.skipped) == (1, 0, 0)
    assert result.errors == []
    assert store.calls == [("create", COMPANY, {"name": "Acme", "tagList": ["red", "blue"]})]
    assert store.stored(COMPANY) == [{"id": 1, "name": "Acme", "tagList": ["red", "blue"]}]
    assert store.commits == 1


def test_unchanged_row_is_skipped(
    reconciler: BulkReconciler,
    store: InMemoryRecordStore,
) -> None:
    company_id = store.seed(COMPANY, {"name": "Acme"})

    result = reconciler.reconcile({COMPANY: [{"id": company_id, "name": "Acme"}]})

    assert (result.created, result.updated, result.skipped) == (0, 0, 1)
    assert store.calls == []


def test_changed_row_is_updated(
    reconciler: BulkReconciler,
    store: InMemoryRecordStore,
) -> None:
    company_id = store.seed(COMPANY, {"name": "Acme", "employees": 10})

    result = reconciler.reconcile(
        {COMPANY: [{"id": company_id, "name": "Acme", "employees": 11}]}
    )

    assert (result.created, result.updated) == (0, 1)
    assert store.get(COMPANY, company_id)["employees"] == 11
    assert result.summary() == {"total": 1, "created": 0, "updated": 1, "errors": 0}


def test_unknown_relation_value_fails_only_that_row(
    reconciler: BulkReconciler,
    store: InMemoryRecordStore,
) -> None:
    result = reconciler.reconcile({COMPANY: [{"name": "Acme", "owner": "nobody@x.io"}]})

    assert (result.created, result.updated) == (0, 0)
    assert result.messages() == [
        'Failed creating on row 2: Failed processing field owner with value "nobody@x.io": '
        "Data with email nobody@x.io not found"
    ]
    assert result.errors[0].row_number == 2
    assert store.stored(COMPANY) == []
    assert store.calls == []


def test_failed_update_reports_updating(
    reconciler: BulkReconciler,
    store: InMemoryRecordStore,
) -> None:
    company_id = store.seed(COMPANY, {"name": "Good"})
    store.rejected_names.add("Bad")

    result = reconciler.reconcile({COMPANY: [{"id": company_id, "name": "Bad"}]})

    assert result.messages() == ["Failed updating on row 2: name Bad rejected"]
    assert store.get(COMPANY, company_id)["name"] == "Good"
    assert store.rollbacks == 1


def test_per_row_mode_keeps_successful_rows(
    reconciler: BulkReconciler,
    store: InMemoryRecordStore,
) -> None:
    store.rejected_names.add("Bad")

    result = reconciler.reconcile(
        {COMPANY: [{"name": "First"}, {"name": "Bad"}, {"name": "Third"}]}
    )

    assert result.created == 2
    assert result.messages() == ["Failed creating on row 3: name Bad rejected"]
    assert [record["name"] for record in store.stored(COMPANY)] == ["First", "Third"]


def test_batch_mode_rolls_back_the_whole_slice(
    batch_reconciler: BulkReconciler,
    store: InMemoryRecordStore,
) -> None:
    store.rejected_names.add("Bad")

    result = batch_reconciler.reconcile(
        {COMPANY: [{"name": "First"}, {"name": "Bad"}, {"name": "Third"}]}
    )

    assert (result.created, result.updated, result.skipped) == (0, 0, 0)
    assert result.messages() == ["Failed creating on row 3: name Bad rejected"]
    assert store.stored(COMPANY) == []
    assert [call[0] for call in store.calls] == ["create", "create"]
    assert store.commits == 0


def test_batch_mode_commits_each_slice_once(
    batch_reconciler: BulkReconciler,
    store: InMemoryRecordStore,
) -> None:
    result = batch_reconciler.reconcile(
        {
            TAG: [{"name": "red"}, {"name": "blue"}],
            COMPANY: [{"name": "Acme", "tags": "blue|red"}],
        }
    )

    assert result.created == 3
    assert result.errors == []
    assert store.commits == 2
    assert store.stored(COMPANY)[0]["tags"] == [Reference(2), Reference(1)]


def test_unknown_record_type_is_reported_and_other_slices_continue(
    reconciler: BulkReconciler,
    store: InMemoryRecordStore,
) -> None:
    result = reconciler.reconcile(
        {"api::missing.missing": [{"name": "x"}], TAG: [{"name": "red"}]}
    )

    assert result.created == 1
    assert result.messages() == ["Content type api::missing.missing not found"]
    assert result.errors[0].row_number is None


def test_non_list_slice_is_rejected(reconciler: BulkReconciler) -> None:
    result = reconciler.reconcile({COMPANY: {"name": "Acme"}})  # type: ignore[dict-item]

    assert result.messages() == [f"Invalid data format for {COMPANY}"]


@pytest.mark.parametrize("raw_id", ["null", "undefined", "", None, 99])
def test_rows_without_a_usable_id_are_created_without_it(
    reconciler: BulkReconciler,
    store: InMemoryRecordStore,
    raw_id: object,
) -> None:
    result = reconciler.reconcile({COMPANY: [{"id": raw_id, "name": "Acme"}]})

    assert result.created == 1
    assert store.calls == [("create", COMPANY, {"name": "Acme"})]


def test_system_keys_are_never_written(
    reconciler: BulkReconciler,
    store: InMemoryRecordStore,
) -> None:
    reconciler.reconcile(
        {COMPANY: [{"name": "Acme", "documentId": "abc", "createdAt": "2024-01-01"}]}
    )

    assert store.calls == [("create", COMPANY, {"name": "Acme"})]


def test_non_object_row_is_a_row_error(reconciler: BulkReconciler) -> None:
    result = reconciler.reconcile({COMPANY: ["Acme"]})

    assert result.messages() == ["Failed creating on row 2: Expected an object per row, got str"]


def test_component_update_keeps_stored_component_id(
    reconciler: BulkReconciler,
    store: InMemoryRecordStore,
) -> None:
    company_id = store.seed(
        COMPANY,
        {"name": "Acme", "address": {"id": "a1", "street": "Old St", "city": "Berlin"}},
    )

    result = reconciler.reconcile({COMPANY: [{"id": company_id, "address_street": "New St"}]})

    assert result.updated == 1
    assert store.calls == [("update", COMPANY, {"address": {"street": "New St", "id": "a1"}})]


def test_nested_entries_skip_unflattening(
    reconciler: BulkReconciler,
    store: InMemoryRecordStore,
) -> None:
    person_id = store.seed(PERSON, {"email": "ann@example.com", "name": "Ann"})

    result = reconciler.reconcile(
        {
            COMPANY: [
                {
                    "name": "Acme",
                    "address_street": "Main St",
                    "owner": "ann@example.com",
                }
            ]
        },
        unflatten=False,
    )

    assert result.created == 1
    assert store.calls == [
        (
            "create",
            COMPANY,
            {"name": "Acme", "address_street": "Main St", "owner": Reference(person_id)},
        )
    ]


@pytest.mark.parametrize(
    ("value", "expected"),
    [(7, True), ("7", True), ("null", False), (" undefined ", False), ("", False), (None, False)],
)
def test_has_identifier(value: object, expected: bool) -> None:
    assert has_identifier(value) is expected
