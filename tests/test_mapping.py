import json
import logging
from datetime import datetime, timedelta, timezone

import pytest

from mapping import (
    HOSTED_SCHEMA,
    SQL_SCHEMA,
    SchemaProfile,
    from_row,
    prepare_insert,
    prepare_update,
    to_row,
)
from conftest import make_product

ARRAY_FIELDS = ("descriptionImages", "specificationImages", "deliveryImages", "colors", "specifications")


@pytest.mark.parametrize("schema", [SQL_SCHEMA, HOSTED_SCHEMA], ids=lambda s: s.name)
def test_round_trip_keeps_every_field(schema, product):
    assert from_row(to_row(product, schema), schema) == product


def test_sql_row_uses_storage_column_names(product):
    row = to_row(product, SQL_SCHEMA)

    assert row["image_url"] == product.image_url
    assert row["allow_customization"] is True
    assert row["allowcustomname"] is True
    assert row["allowcustomcolorselection"] is False
    assert "imageUrl" not in row
    assert json.loads(row["description_images"]) == product.description_images
    assert json.loads(row["specifications"]) == [{"name": "Material", "value": "MDF 6mm"}]


def test_hosted_row_keeps_native_arrays(product):
    row = to_row(product, HOSTED_SCHEMA)

    assert row["imageurl"] == product.image_url
    assert row["allowcustomization"] is True
    assert row["colors"] == ["#000000", "#FFD700"]
    assert row["createdat"] == datetime(2024, 5, 1, 12, 30, 15, 250000)


@pytest.mark.parametrize("schema", [SQL_SCHEMA, HOSTED_SCHEMA], ids=lambda s: s.name)
def test_outbound_defaults_for_missing_optional_fields(schema):
    row = to_row({"name": "Chaveiro", "category": "acessorios"}, schema)

    assert row[schema.column("featured")] is False
    assert row[schema.column("discount")] == 0
    assert row[schema.column("stock")] == 0
    assert row[schema.column("price")] == 0
    assert row[schema.column("imageUrl")] == ""
    for field in ARRAY_FIELDS:
        expected = "[]" if schema.json_arrays else []
        assert row[schema.column(field)] == expected


def test_outbound_numeric_parse_falls_back_to_default():
    row = to_row({"price": "12,50", "stock": "7", "discount": "abc"}, SQL_SCHEMA)

    assert row["price"] == 0
    assert row["stock"] == 7
    assert row["discount"] == 0


def test_outbound_drops_unknown_keys():
    row = to_row({"name": "Troféu", "brand": "ACME", "image_url": "x.png"}, SQL_SCHEMA)

    assert "brand" not in row
    # only the application name is recognised on the way in
    assert row["image_url"] == ""


def test_insert_generates_id_and_timestamp():
    before = datetime.now(timezone.utc).replace(tzinfo=None)
    row = prepare_insert({"name": "Medalheiro", "price": 90, "category": "ciclismo", "stock": 3}, SQL_SCHEMA)

    assert row["id"]
    assert row["created_at"] >= before


def test_insert_keeps_supplied_id():
    row = prepare_insert({"id": "custom-id", "name": "Medalheiro"}, HOSTED_SCHEMA)

    assert row["id"] == "custom-id"


@pytest.mark.parametrize("schema", [SQL_SCHEMA, HOSTED_SCHEMA], ids=lambda s: s.name)
def test_update_never_emits_identity_or_timestamp(schema, product):
    row = prepare_update(product, schema)

    assert schema.column("createdAt") not in row
    assert schema.column("id") not in row
    assert row[schema.column("name")] == product.name


def test_update_without_timestamp_in_input_still_omits_it():
    row = prepare_update({"name": "Novo nome"}, SQL_SCHEMA)

    assert "created_at" not in row
    assert "id" not in row


def test_inbound_coerces_bad_values():
    product = from_row({"id": "x", "price": "abc", "stock": None, "featured": 1}, SQL_SCHEMA)

    assert product.price == 0
    assert product.stock == 0
    assert product.featured is True


def test_inbound_malformed_json_only_affects_that_field(product, caplog):
    row = to_row(product, SQL_SCHEMA)
    row["colors"] = "[#000000"

    with caplog.at_level(logging.WARNING, logger="mapping"):
        result = from_row(row, SQL_SCHEMA)

    assert result.colors == []
    assert result.description_images == product.description_images
    assert result.specifications == product.specifications
    assert result.name == product.name
    assert result.price == product.price
    assert "colors" in caplog.text


def test_inbound_non_list_json_becomes_empty():
    product = from_row({"id": "x", "delivery_images": '{"a": 1}'}, SQL_SCHEMA)

    assert product.delivery_images == []


def test_inbound_missing_timestamp_is_now():
    product = from_row({"id": "x", "name": "Sem data"}, HOSTED_SCHEMA)

    assert datetime.now(timezone.utc) - product.created_at < timedelta(seconds=5)


def test_inbound_naive_timestamp_is_utc():
    product = from_row({"id": "x", "created_at": datetime(2024, 1, 2, 3, 4, 5)}, SQL_SCHEMA)

    assert product.created_at == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


@pytest.mark.parametrize("stored, expected", [
    (0, False), (1, True), ("0", False), ("1", True), ("false", False), ("true", True), (None, False),
])
def test_inbound_boolean_normalisation(stored, expected):
    assert from_row({"id": "x", "allowcustomname": stored}, SQL_SCHEMA).allow_custom_name is expected


def test_inbound_fills_defaults_for_missing_columns():
    product = from_row({"id": "x", "name": "Mínimo"}, SQL_SCHEMA)

    assert product.description == ""
    assert product.image_url == ""
    assert product.discount == 0
    assert product.allow_customization is False
    assert product.colors == []
    assert product.available_colors()[0] == "#FF0000"


def test_profiles_must_cover_every_field():
    with pytest.raises(ValueError):
        SchemaProfile(name="broken", columns={"id": "id"}, json_arrays=False)


def test_final_price_applies_discount():
    assert make_product(price=200, discount=25).final_price == 150
    assert make_product(price=200, discount=0).final_price == 200
