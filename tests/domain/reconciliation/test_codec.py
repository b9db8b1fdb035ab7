from __future__ import annotations

import json

import pytest

from sheetport.config import ReconcileSettings
from sheetport.domain.reconciliation.codec import (
    RowCodec,
    is_blank,
    parse_json_if_needed,
    split_list,
)
from sheetport.domain.reconciliation.diff import has_changes
from sheetport.domain.types import Reference
from tests.helpers.schema import company_type, make_registry


@pytest.fixture
def codec() -> RowCodec:
    return RowCodec()


def test_unflatten_splits_custom_list_fields(codec: RowCodec) -> None:
    row: dict[str, object] = {"id": None, "name": "Acme", "tagList": "red|blue"}

    record = codec.unflatten(row, company_type())

    assert record == {"id": None, "name": "Acme", "tagList": ["red", "blue"]}


def test_unflatten_nests_single_component_columns(codec: RowCodec) -> None:
    row: dict[str, object] = {"address_street": "Main St", "address_city": "Berlin"}

    record = codec.unflatten(row, company_type())

    assert record == {"address": {"street": "Main St", "city": "Berlin"}}


def test_unflatten_leaves_columns_that_only_look_like_components(codec: RowCodec) -> None:
    row: dict[str, object] = {"contacts_label": "HQ", "foo_bar": "x", "a_b_c": "y"}

    record = codec.unflatten(row, company_type())

    assert record == {"contacts_label": "HQ", "foo_bar": "x", "a_b_c": "y"}


def test_unflatten_maps_blank_cells_to_none(codec: RowCodec) -> None:
    row: dict[str, object] = {"name": "", "employees": None, "address_city": "   "}

    record = codec.unflatten(row, company_type())

    assert record == {"name": None, "employees": None, "address": {"city": None}}


def test_unflatten_parses_json_cells_and_keeps_invalid_json_literal(codec: RowCodec) -> None:
    row: dict[str, object] = {
        "contacts": '[{"label": "HQ"}]',
        "wishlist": "[1, 2",
        "name": "{not json",
    }

    record = codec.unflatten(row, company_type())

    assert record["contacts"] == [{"label": "HQ"}]
    assert record["wishlist"] == "[1, 2"
    assert record["name"] == "{not json"


def test_unflatten_accepts_custom_list_given_as_json_array(codec: RowCodec) -> None:
    record = codec.unflatten({"tagList": '["red", "blue"]'}, company_type())

    assert record == {"tagList": ["red", "blue"]}


def test_unflatten_honours_configured_delimiter() -> None:
    codec = RowCodec(ReconcileSettings(list_delimiter=";"))

    record = codec.unflatten({"tagList": "red;blue|green"}, company_type())

    assert record == {"tagList": ["red", "blue|green"]}


def test_flatten_projects_relations_components_and_lists(codec: RowCodec) -> None:
    record: dict[str, object] = {
        "id": 7,
        "documentId": "doc-7",
        "createdAt": "2024-01-01T00:00:00Z",
        "locale": "en",
        "name": "Acme",
        "address": {"id": "a1", "street": "Main St", "city": "Berlin"},
        "contacts": [{"id": "c1", "label": "HQ", "phones": ["1", "2"]}],
        "owner": {"id": 3, "email": "ann@example.com", "name": "Ann"},
        "tags": [{"id": 1, "name": "red"}, {"id": 2, "name": "blue"}],
        "tagList": ["red", "blue"],
    }

    row = codec.flatten(record, company_type())

    assert row == {
        "id": 7,
        "name": "Acme",
        "address_street": "Main St",
        "address_city": "Berlin",
        "contacts": json.dumps([{"label": "HQ", "phones": ["1", "2"]}]),
        "owner": "ann@example.com",
        "tags": "red|blue",
        "tagList": "red|blue",
    }


def test_flatten_omits_relation_without_shortcut_and_keeps_cleared_relation(
    codec: RowCodec,
) -> None:
    row = codec.flatten({"owner": {"id": 5}, "tags": None}, company_type())

    assert row == {"tags": None}


def test_flatten_skips_requested_fields(codec: RowCodec) -> None:
    row = codec.flatten(
        {"name": "Acme", "logo": {"id": 1, "url": "/logo.png"}},
        company_type(),
        skip={"logo"},
    )

    assert row == {"name": "Acme"}


def test_flatten_writes_references_as_their_id(codec: RowCodec) -> None:
    row = codec.flatten({"unknown": Reference(4)}, company_type())

    assert row == {"unknown": 4}


def test_primitive_and_component_records_round_trip(codec: RowCodec) -> None:
    record: dict[str, object] = {
        "id": 3,
        "name": "Acme",
        "employees": 12,
        "address": {"street": "Main St", "city": "Berlin"},
    }

    assert codec.unflatten(codec.flatten(record, company_type()), company_type()) == record


@pytest.mark.parametrize(
    ("value", "expected"),
    [(None, True), ("", True), ("  ", True), ("x", False), (0, False), ([], False)],
)
def test_is_blank(value: object, expected: bool) -> None:
    assert is_blank(value) is expected


def test_parse_json_if_needed_only_touches_bracketed_strings() -> None:
    assert parse_json_if_needed(" [1, 2] ") == [1, 2]
    assert parse_json_if_needed('{"a": 1}') == {"a": 1}
    assert parse_json_if_needed("plain") == "plain"
    assert parse_json_if_needed(5) == 5


def test_split_list_handles_scalars_lists_and_blanks() -> None:
    assert split_list("a|b", "|") == ["a", "b"]
    assert split_list(["a"], "|") == ["a"]
    assert split_list(None, "|") == []
    assert split_list(4, "|") == [4]


def test_plain_list_fields_round_trip_as_json(codec: RowCodec) -> None:
    record: dict[str, object] = {"id": 1, "wishlist": ["a", "b"], "address": {"city": ["x"]}}

    row = codec.flatten(record, company_type())

    assert row == {"id": 1, "wishlist": '["a", "b"]', "address_city": '["x"]'}
    restored = codec.unflatten(row, company_type())
    assert restored == record
    assert not has_changes(record, restored)


def test_relation_shortcut_uses_the_lookup_field_of_the_target() -> None:
    codec = RowCodec(schema=make_registry())
    record: dict[str, object] = {
        "owner": {"id": 3, "email": None, "name": "Bob"},
        "tags": [{"id": 1, "name": "red"}, {"id": 2, "name": ""}],
    }

    row = codec.flatten(record, company_type())

    assert row == {"tags": "red"}
    assert RowCodec().flatten(record, company_type()) == {"owner": "Bob", "tags": "red"}
