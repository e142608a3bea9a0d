"""
Unit tests for records and marshal options.

Tests cover:
- Timestamp formatting and parsing
- MarshalOptions helpers
- Relationship construction, TTL and item conversion
- Payload encoding and decoding
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from sdk.entmap_sdk.errors import MarshalError, UnmarshalError
from sdk.entmap_sdk.records import (
    MarshalOptions,
    RefData,
    Relationship,
    dump_payload,
    format_timestamp,
    load_payload,
    new_marshal_options,
    new_relationship,
    parse_timestamp,
)
from tests.fixtures import EPOCH, FixedClock, Note, Order, Product


class TestTimestamps:
    """Tests for RFC 3339 timestamps."""

    def test_format_is_utc_with_z(self):
        assert format_timestamp(EPOCH) == "2024-01-15T12:00:00.000000Z"

    def test_format_converts_offset_to_utc(self):
        moment = datetime(2024, 1, 15, 14, 0, tzinfo=timezone(timedelta(hours=2)))
        assert format_timestamp(moment) == "2024-01-15T12:00:00.000000Z"

    def test_format_treats_naive_as_utc(self):
        assert format_timestamp(datetime(2024, 1, 15, 12, 0)) == "2024-01-15T12:00:00.000000Z"

    def test_parse_roundtrip(self):
        assert parse_timestamp(format_timestamp(EPOCH)) == EPOCH

    def test_formatted_timestamps_sort_chronologically(self):
        earlier = format_timestamp(EPOCH)
        later = format_timestamp(EPOCH + timedelta(microseconds=1))
        assert earlier < later


class TestMarshalOptions:
    """Tests for MarshalOptions."""

    def test_defaults(self):
        opts = new_marshal_options()

        assert opts.key_delimiter == "#"
        assert opts.label_delimiter == "/"
        assert opts.time_to_live is None
        assert not opts.skip_refs

    def test_with_self_target(self):
        opts = MarshalOptions().with_self_target("order", "O1")

        assert opts.source_key() == "order#O1"
        assert opts.target_key() == "order#O1"
        assert opts.label == "order"
        assert opts.item_key() == {"hk": "order#O1", "sk": "order#O1"}

    def test_helpers_return_new_values(self):
        base = MarshalOptions()
        derived = base.with_overrides(ref_sort_key="x")

        assert base.ref_sort_key == ""
        assert derived.ref_sort_key == "x"

    def test_ref_label_uses_source(self):
        opts = MarshalOptions().with_self_target("order", "O1")
        assert opts.ref_label("products") == "order/O1/products"

    def test_custom_delimiters(self):
        opts = MarshalOptions(key_delimiter="|", label_delimiter=":").with_self_target("order", "O1")

        assert opts.source_key() == "order|O1"
        assert opts.ref_label("products") == "order:O1:products"
        assert opts.split_label("order:O1:products") == ("order", "O1", "products")


class TestNewRelationship:
    """Tests for new_relationship."""

    def test_timestamps_default_to_clock(self):
        opts = MarshalOptions(tick=FixedClock()).with_self_target("order", "O1")
        rel = new_relationship({"id": "O1"}, opts)

        assert rel.created_at == EPOCH
        assert rel.updated_at == EPOCH
        assert rel.expires is None
        assert rel.is_self

    def test_explicit_timestamps_win(self):
        created = EPOCH - timedelta(days=1)
        opts = MarshalOptions(tick=FixedClock(), created=created).with_self_target("order", "O1")
        rel = new_relationship(None, opts)

        assert rel.created_at == created
        assert rel.updated_at == EPOCH

    def test_positive_ttl_sets_expires(self):
        opts = MarshalOptions(tick=FixedClock(), time_to_live=timedelta(hours=2))
        rel = new_relationship(None, opts.with_self_target("session", "S1"))

        assert rel.expires == EPOCH + timedelta(hours=2)

    @pytest.mark.parametrize("ttl", [timedelta(0), timedelta(seconds=-5)])
    def test_non_positive_ttl_never_expires(self, ttl):
        opts = MarshalOptions(tick=FixedClock(), time_to_live=ttl).with_self_target("session", "S1")
        assert new_relationship(None, opts).expires is None


class TestRelationshipItems:
    """Tests for Relationship.to_item / from_item."""

    def test_to_item_full(self):
        rel = Relationship(
            source="order#O1",
            target="product#P1",
            label="order/O1/products",
            created_at=EPOCH,
            updated_at=EPOCH,
            expires=EPOCH + timedelta(hours=1),
            data={"name": "products"},
            ref_sort_key="electronics",
        )

        assert rel.to_item() == {
            "hk": "order#O1",
            "sk": "product#P1",
            "label": "order/O1/products",
            "created_at": "2024-01-15T12:00:00.000000Z",
            "updated_at": "2024-01-15T12:00:00.000000Z",
            "expires": int((EPOCH + timedelta(hours=1)).timestamp()),
            "data": {"name": "products"},
            "gsi1_sk": "electronics",
        }

    def test_to_item_omits_empty_optionals(self):
        item = Relationship(source="a#1", target="a#1", label="a").to_item()

        assert item == {"hk": "a#1", "sk": "a#1", "label": "a"}

    def test_from_item_roundtrip(self):
        rel = Relationship(
            source="order#O1",
            target="order#O1",
            label="order",
            created_at=EPOCH,
            updated_at=EPOCH,
            expires=EPOCH + timedelta(hours=1),
            data={"id": "O1"},
            ref_sort_key="alice",
        )

        assert Relationship.from_item(rel.to_item()) == rel

    def test_from_item_accepts_decimal_expires(self):
        item = {"hk": "a#1", "sk": "a#1", "label": "a", "expires": Decimal("1705323600")}

        rel = Relationship.from_item(item)

        assert rel.expires == datetime.fromtimestamp(1705323600, tz=timezone.utc)

    def test_from_item_requires_keys(self):
        with pytest.raises(UnmarshalError, match="source and target"):
            Relationship.from_item({"hk": "a#1", "label": "a"})

    def test_from_item_rejects_bad_timestamp(self):
        with pytest.raises(UnmarshalError) as exc_info:
            Relationship.from_item({"hk": "a#1", "sk": "a#1", "created_at": "yesterday"})

        assert exc_info.value.source == "a#1"


class TestPayloads:
    """Tests for dump_payload / load_payload."""

    def test_excluded_fields_are_not_stored(self):
        order = Order(id="O1", customer="alice", products=[Product(id="P1")], created_at=EPOCH)

        assert dump_payload(order) == {"id": "O1", "customer": "alice", "status": "new"}

    def test_dataclass_payload(self):
        assert dump_payload(Note(id="N1", text="hi")) == {"id": "N1", "text": "hi"}
        assert load_payload({"id": "N1", "text": "hi"}, Note) == Note(id="N1", text="hi")

    def test_ref_data(self):
        ref = load_payload({"name": "products", "source_id": "O1", "target_id": "P1"}, RefData)
        assert ref.target_id == "P1"

    def test_load_rejects_wrong_shape(self):
        with pytest.raises(UnmarshalError, match="Product"):
            load_payload({"name": "no id"}, Product)

    def test_dump_rejects_unserializable(self):
        class Opaque:
            pass

        with pytest.raises(MarshalError):
            dump_payload(Opaque())
