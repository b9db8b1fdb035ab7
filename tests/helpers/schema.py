"""Schema fixtures shared by domain, adapter and app tests."""

from __future__ import annotations

from typing import Final

from sheetport.domain.schema import Cardinality, FieldKind, FieldSpec, RecordType, SchemaRegistry

COMPANY: Final = "api::company.company"
PERSON: Final = "api::person.person"
TAG: Final = "api::tag.tag"
ADDRESS: Final = "shared.address"
CONTACT: Final = "shared.contact"
AUDIT_LOG: Final = "plugin::audit.log"

SCHEMA_DOCUMENT: Final[dict[str, object]] = {
    "contentTypes": {
        COMPANY: {
            "attributes": {
                "name": {"type": "string"},
                "employees": {"type": "integer"},
                "active": {"type": "boolean"},
                "tagList": {"type": "json", "customField": "plugin::tags.list", "default": "[]"},
                "internalNote": {"type": "string", "customField": "plugin::notes.note"},
                "owner": {"type": "relation", "relation": "manyToOne", "target": PERSON},
                "tags": {"type": "relation", "relation": "manyToMany", "target": TAG},
                "address": {"type": "component", "component": ADDRESS},
                "contacts": {"type": "component", "component": CONTACT, "repeatable": True},
                "logo": {"type": "media", "multiple": False},
                "wishlist": {"type": "json"},
            }
        },
        PERSON: {
            "attributes": {
                "email": {"type": "email"},
                "name": {"type": "string"},
            }
        },
        TAG: {"attributes": {"name": {"type": "string"}}},
    },
    "components": {
        ADDRESS: {"attributes": {"street": {"type": "string"}, "city": {"type": "string"}}},
        CONTACT: {
            "attributes": {
                "label": {"type": "string"},
                "phones": {"type": "json", "customField": "plugin::tags.list", "default": "[]"},
            }
        },
    },
}


def _id(data_type: str = "integer") -> FieldSpec:
    return FieldSpec(kind=FieldKind.IDENTIFIER, data_type=data_type)


def company_type() -> RecordType:
    return RecordType(
        identifier=COMPANY,
        fields={
            "id": _id(),
            "name": FieldSpec(),
            "employees": FieldSpec(data_type="integer"),
            "active": FieldSpec(data_type="boolean"),
            "tagList": FieldSpec(data_type="json", is_custom=True, is_custom_list=True),
            "internalNote": FieldSpec(is_custom=True),
            "owner": FieldSpec(kind=FieldKind.RELATION, data_type="relation", target=PERSON),
            "tags": FieldSpec(
                kind=FieldKind.RELATION,
                data_type="relation",
                cardinality=Cardinality.MANY,
                target=TAG,
            ),
            "address": FieldSpec(kind=FieldKind.COMPONENT, data_type="component", target=ADDRESS),
            "contacts": FieldSpec(
                kind=FieldKind.COMPONENT,
                data_type="component",
                cardinality=Cardinality.MANY,
                target=CONTACT,
            ),
            "logo": FieldSpec(kind=FieldKind.MEDIA, data_type="media"),
            "wishlist": FieldSpec(data_type="json"),
        },
    )


def make_registry() -> SchemaRegistry:
    """Registry equivalent to ``SCHEMA_DOCUMENT``, built by hand."""

    return SchemaRegistry(
        [
            company_type(),
            RecordType(
                identifier=PERSON,
                fields={"id": _id(), "email": FieldSpec(data_type="email"), "name": FieldSpec()},
            ),
            RecordType(identifier=TAG, fields={"id": _id(), "name": FieldSpec()}),
            RecordType(
                identifier=ADDRESS,
                fields={"id": _id("string"), "street": FieldSpec(), "city": FieldSpec()},
            ),
            RecordType(
                identifier=CONTACT,
                fields={
                    "id": _id("string"),
                    "label": FieldSpec(),
                    "phones": FieldSpec(data_type="json", is_custom=True, is_custom_list=True),
                },
            ),
            RecordType(identifier=AUDIT_LOG, fields={"id": _id(), "action": FieldSpec()}),
        ]
    )
