"""Load record-type definitions from a JSON schema document.

The document mirrors the host CMS's content-type dump::

    {
      "contentTypes": {
        "api::company.company": {
          "attributes": {
            "name": {"type": "string"},
            "tagList": {"type": "json", "customField": "plugin::tags.list", "default": "[]"},
            "owner": {"type": "relation", "relation": "manyToOne", "target": "api::person.person"},
            "address": {"type": "component", "component": "shared.address"}
          }
        }
      },
      "components": {
        "shared.address": {"attributes": {"street": {"type": "string"}}}
      }
    }
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, ClassVar, Final

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from sheetport.config.reconcile import IDENTIFIER_KEY
from sheetport.domain.errors import SchemaError
from sheetport.domain.schema import Cardinality, FieldKind, FieldSpec, RecordType, SchemaRegistry

if TYPE_CHECKING:
    from pathlib import Path

log = logging.getLogger(__name__)

TO_MANY_RELATIONS: Final[frozenset[str]] = frozenset(
    {"oneToMany", "manyToMany", "manyWay", "morphToMany", "morphMany"}
)
CUSTOM_LIST_TYPE: Final[str] = "json"
CUSTOM_LIST_DEFAULTS: Final[tuple[object, ...]] = ("[]", [])


class SchemaBaseModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)
    _logged_extra_keys: ClassVar[set[str]] = set()

    def model_post_init(self, _context: object, /) -> None:
        extras = self.__pydantic_extra__
        if not extras:
            return
        new_keys = set(extras).difference(self._logged_extra_keys)
        if not new_keys:
            return
        self._logged_extra_keys.update(new_keys)
        log.warning(
            "Schema %s: unmodeled keys: %s",
            type(self).__name__,
            ", ".join(sorted(new_keys)),
        )


class AttributeModel(SchemaBaseModel):
    type: str
    relation: str | None = None
    target: str | None = None
    component: str | None = None
    repeatable: bool = False
    multiple: bool = False
    custom_field: str | None = Field(default=None, alias="customField")
    default: object = None
    required: bool = False
    unique: bool = False
    private: bool = False
    enum: list[str] | None = None
    inversed_by: str | None = Field(default=None, alias="inversedBy")
    mapped_by: str | None = Field(default=None, alias="mappedBy")
    allowed_types: list[str] | None = Field(default=None, alias="allowedTypes")


class RecordTypeModel(SchemaBaseModel):
    attributes: dict[str, AttributeModel] = Field(default_factory=dict)
    kind: str | None = None
    collection_name: str | None = Field(default=None, alias="collectionName")
    info: dict[str, object] | None = None
    options: dict[str, object] | None = None


class SchemaDocument(SchemaBaseModel):
    content_types: dict[str, RecordTypeModel] = Field(default_factory=dict, alias="contentTypes")
    components: dict[str, RecordTypeModel] = Field(default_factory=dict)


def parse_schema(payload: object) -> SchemaRegistry:
    """Validate a decoded schema document and build the registry from it."""

    try:
        document = SchemaDocument.model_validate(payload)
    except PydanticValidationError as exc:
        raise SchemaError(f"Invalid schema document: {exc}") from exc

    record_types = [
        _record_type(identifier, model, identifier_type="integer")
        for identifier, model in document.content_types.items()
    ]
    record_types.extend(
        _record_type(identifier, model, identifier_type="string")
        for identifier, model in document.components.items()
    )
    log.info(
        "Loaded schema with %s content type(s) and %s component(s)",
        len(document.content_types),
        len(document.components),
    )
    return SchemaRegistry(record_types)


def load_schema(path: Path) -> SchemaRegistry:
    """Read and parse a schema document from ``path``."""

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise SchemaError(f"Schema file {path} not found") from exc
    except json.JSONDecodeError as exc:
        raise SchemaError(f"Schema file {path} is not valid JSON: {exc}") from exc
    return parse_schema(payload)


def _record_type(identifier: str, model: RecordTypeModel, *, identifier_type: str) -> RecordType:
    fields: dict[str, FieldSpec] = {
        IDENTIFIER_KEY: FieldSpec(kind=FieldKind.IDENTIFIER, data_type=identifier_type)
    }
    for name, attribute in model.attributes.items():
        fields[name] = _field_spec(identifier, name, attribute)
    return RecordType(identifier=identifier, fields=fields)


def _field_spec(owner: str, name: str, attribute: AttributeModel) -> FieldSpec:
    if attribute.type == "relation":
        if not attribute.target:
            raise SchemaError(f"Relation {owner}.{name} has no target")
        many = attribute.relation in TO_MANY_RELATIONS
        return FieldSpec(
            kind=FieldKind.RELATION,
            data_type=attribute.type,
            cardinality=Cardinality.MANY if many else Cardinality.ONE,
            target=attribute.target,
        )
    if attribute.type == "component":
        if not attribute.component:
            raise SchemaError(f"Component {owner}.{name} has no component reference")
        return FieldSpec(
            kind=FieldKind.COMPONENT,
            data_type=attribute.type,
            cardinality=Cardinality.MANY if attribute.repeatable else Cardinality.ONE,
            target=attribute.component,
        )
    if attribute.type == "media":
        return FieldSpec(
            kind=FieldKind.MEDIA,
            data_type=attribute.type,
            cardinality=Cardinality.MANY if attribute.multiple else Cardinality.ONE,
        )

    is_custom = attribute.custom_field is not None
    return FieldSpec(
        kind=FieldKind.PRIMITIVE,
        data_type=attribute.type,
        is_custom=is_custom,
        is_custom_list=(
            is_custom
            and attribute.type == CUSTOM_LIST_TYPE
            and attribute.default in CUSTOM_LIST_DEFAULTS
        ),
    )
