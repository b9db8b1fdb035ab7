from __future__ import annotations

from sheetport.domain.reconciliation.components import merge_components
from tests.helpers.schema import company_type, make_registry


def test_single_component_inherits_stored_id() -> None:
    merged = merge_components(
        {"address": {"street": "New St"}},
        {"address": {"id": "a1", "street": "Old St", "city": "Berlin"}},
        company_type(),
        schema=make_registry(),
        delimiter="|",
    )

    assert merged == {"address": {"street": "New St", "id": "a1"}}


def test_explicit_component_id_wins() -> None:
    merged = merge_components(
        {"address": {"id": "a9", "street": "New St"}},
        {"address": {"id": "a1"}},
        company_type(),
        schema=make_registry(),
        delimiter="|",
    )

    assert merged == {"address": {"id": "a9", "street": "New St"}}


def test_repeating_components_merge_by_position_and_split_list_subfields() -> None:
    merged = merge_components(
        {"contacts": [{"label": "HQ", "phones": "1|2"}, {"label": "Ops"}]},
        {"contacts": [{"id": "c1", "label": "Main", "phones": ["9"]}]},
        company_type(),
        schema=make_registry(),
        delimiter="|",
    )

    assert merged == {
        "contacts": [
            {"label": "HQ", "phones": ["1", "2"], "id": "c1"},
            {"label": "Ops"},
        ]
    }


def test_new_records_get_no_component_ids() -> None:
    merged = merge_components(
        {"address": {"street": "Main St"}, "name": "Acme"},
        None,
        company_type(),
        schema=make_registry(),
        delimiter="|",
    )

    assert merged == {"address": {"street": "Main St"}, "name": "Acme"}


def test_cleared_component_is_left_alone() -> None:
    merged = merge_components(
        {"address": None},
        {"address": {"id": "a1", "street": "Old St"}},
        company_type(),
        schema=make_registry(),
        delimiter="|",
    )

    assert merged == {"address": None}
