"""
Product field mapping

Every read and write of a product goes through the table below. Each entry
names an application field, how its value is coerced and whether it gets a
default when absent. A SchemaProfile then gives the storage column for every
field, so the table is the single place both directions consult.

There is one storage profile per deployed database. Their column names
disagree in places and are not unified:
- SQL_SCHEMA: snake_case columns (plus the lowercase custom-flag columns),
  array fields stored as JSON text.
- HOSTED_SCHEMA: camelCase names lowercased by the hosted store, array
  fields stored natively.
"""
import json
import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional

from pydantic import BaseModel

from schemas import Product

logger = logging.getLogger(__name__)

TEXT = "text"
DECIMAL = "decimal"
INTEGER = "integer"
BOOLEAN = "boolean"
ARRAY = "array"
TIMESTAMP = "timestamp"


def _string_item(item: Any) -> Optional[str]:
    return None if item is None else str(item)


def _specification_item(item: Any) -> Optional[dict]:
    if isinstance(item, BaseModel):
        item = item.model_dump(by_alias=True)
    if not isinstance(item, Mapping):
        return None
    return {"name": str(item.get("name") or ""), "value": str(item.get("value") or "")}


@dataclass(frozen=True)
class FieldSpec:
    name: str
    kind: str
    # Fields without a default are written only when the caller supplies them.
    defaulted: bool = True
    item: Callable[[Any], Any] = _string_item


FIELDS = (
    FieldSpec("id", TEXT, defaulted=False),
    FieldSpec("name", TEXT, defaulted=False),
    FieldSpec("description", TEXT, defaulted=False),
    FieldSpec("price", DECIMAL),
    FieldSpec("category", TEXT, defaulted=False),
    FieldSpec("imageUrl", TEXT),
    FieldSpec("stock", INTEGER),
    FieldSpec("featured", BOOLEAN),
    FieldSpec("discount", INTEGER),
    FieldSpec("createdAt", TIMESTAMP, defaulted=False),
    FieldSpec("descriptionImages", ARRAY),
    FieldSpec("specificationImages", ARRAY),
    FieldSpec("deliveryImages", ARRAY),
    FieldSpec("allowCustomization", BOOLEAN),
    FieldSpec("allowCustomName", BOOLEAN),
    FieldSpec("allowCustomModality", BOOLEAN),
    FieldSpec("allowCustomColorSelection", BOOLEAN),
    FieldSpec("colors", ARRAY),
    FieldSpec("specifications", ARRAY, item=_specification_item),
)

FIELD_NAMES = frozenset(field.name for field in FIELDS)

# Never part of an update's SET clause: id is the lookup key and
# createdAt is fixed at creation.
IMMUTABLE_FIELDS = frozenset({"id", "createdAt"})


@dataclass(frozen=True)
class SchemaProfile:
    name: str
    columns: Mapping[str, str]
    json_arrays: bool

    def __post_init__(self):
        missing = FIELD_NAMES - set(self.columns)
        unknown = set(self.columns) - FIELD_NAMES
        if missing or unknown:
            raise ValueError(
                f"Schema {self.name!r} must map every product field "
                f"(missing={sorted(missing)}, unknown={sorted(unknown)})"
            )

    def column(self, field: str) -> str:
        return self.columns[field]


SQL_SCHEMA = SchemaProfile(
    name="sql",
    columns={
        "id": "id",
        "name": "name",
        "description": "description",
        "price": "price",
        "category": "category",
        "imageUrl": "image_url",
        "stock": "stock",
        "featured": "featured",
        "discount": "discount",
        "createdAt": "created_at",
        "descriptionImages": "description_images",
        "specificationImages": "specification_images",
        "deliveryImages": "delivery_images",
        "allowCustomization": "allow_customization",
        "allowCustomName": "allowcustomname",
        "allowCustomModality": "allowcustommodality",
        "allowCustomColorSelection": "allowcustomcolorselection",
        "colors": "colors",
        "specifications": "specifications",
    },
    json_arrays=True,
)

HOSTED_SCHEMA = SchemaProfile(
    name="hosted",
    columns={field.name: field.name.lower() for field in FIELDS},
    json_arrays=False,
)


# Coercion helpers

def parse_decimal(value: Any, default: Optional[float] = 0.0) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number) or math.isinf(number):
        return default
    return number


def parse_integer(value: Any, default: int = 0) -> int:
    number = parse_decimal(value.strip() if isinstance(value, str) else value, None)
    return default if number is None else int(number)


def parse_boolean(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in ("", "0", "false")
    return bool(value)


def parse_timestamp(value: Any) -> datetime:
    """Aware UTC datetime; anything missing or unparsable becomes now."""
    moment = None
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, str) and value.strip():
        try:
            moment = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            logger.warning("Unparsable timestamp %r, using current time", value)
    if moment is None:
        return datetime.now(timezone.utc)
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def parse_array(value: Any, field: FieldSpec, product_id: Any = None) -> list:
    if value is None:
        return []
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8", errors="replace")
    if isinstance(value, str):
        if not value.strip():
            return []
        try:
            value = json.loads(value)
        except ValueError as exc:
            logger.warning("Malformed JSON in %s for product %s: %s", field.name, product_id, exc)
            return []
    if not isinstance(value, (list, tuple)):
        logger.warning("Expected a list in %s for product %s, got %s", field.name, product_id, type(value).__name__)
        return []
    items = (field.item(item) for item in value)
    return [item for item in items if item is not None]


def _as_mapping(data: Any) -> Mapping[str, Any]:
    if isinstance(data, BaseModel):
        return data.model_dump(by_alias=True)
    return data or {}


def _encode(field: FieldSpec, value: Any, schema: SchemaProfile) -> Any:
    if field.kind == DECIMAL:
        return parse_decimal(value)
    if field.kind == INTEGER:
        return parse_integer(value)
    if field.kind == BOOLEAN:
        return parse_boolean(value)
    if field.kind == ARRAY:
        items = parse_array(value, field)
        return json.dumps(items) if schema.json_arrays else items
    if field.kind == TIMESTAMP:
        # stored as naive UTC, both stores treat it that way
        return parse_timestamp(value).replace(tzinfo=None)
    return "" if value is None else str(value)


def _decode(field: FieldSpec, value: Any, product_id: Any) -> Any:
    if field.kind == DECIMAL:
        return parse_decimal(value)
    if field.kind == INTEGER:
        return parse_integer(value)
    if field.kind == BOOLEAN:
        return parse_boolean(value)
    if field.kind == ARRAY:
        return parse_array(value, field, product_id)
    if field.kind == TIMESTAMP:
        return parse_timestamp(value)
    return "" if value is None else str(value)


# Outbound: application -> storage row

def to_row(data: Any, schema: SchemaProfile, *, for_update: bool = False) -> Dict[str, Any]:
    values = _as_mapping(data)
    ignored = set(values) - FIELD_NAMES
    if ignored:
        logger.debug("Ignoring unknown product fields: %s", sorted(ignored))

    row = {}
    for field in FIELDS:
        if for_update and field.name in IMMUTABLE_FIELDS:
            continue
        value = values.get(field.name)
        if value is None and not field.defaulted:
            continue
        row[schema.column(field.name)] = _encode(field, value, schema)
    return row


def prepare_insert(data: Any, schema: SchemaProfile) -> Dict[str, Any]:
    values = dict(_as_mapping(data))
    if not values.get("id"):
        values["id"] = str(uuid.uuid4())
    values["createdAt"] = parse_timestamp(values.get("createdAt"))
    return to_row(values, schema)


def prepare_update(data: Any, schema: SchemaProfile) -> Dict[str, Any]:
    return to_row(data, schema, for_update=True)


# Inbound: storage row -> application

def from_row(row: Mapping[str, Any], schema: SchemaProfile) -> Product:
    product_id = row.get(schema.column("id"))
    values = {
        field.name: _decode(field, row.get(schema.column(field.name)), product_id)
        for field in FIELDS
    }
    return Product.model_validate(values)
