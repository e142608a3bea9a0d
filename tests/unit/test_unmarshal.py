"""
Unit tests for the unmarshaling engine.

Tests cover:
- Decoding an entity partition into an existing instance
- Self-only and list decoding
- Error reporting for malformed records
"""

from typing import List, Tuple

import pytest
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from sdk.entmap_sdk.errors import ItemNotFoundError, UnmarshalError
from sdk.entmap_sdk.marshal import marshal_relationships
from sdk.entmap_sdk.records import MarshalOptions, Relationship
from sdk.entmap_sdk.unmarshal import (
    unmarshal_entity,
    unmarshal_list,
    unmarshal_self,
    unmarshal_table_key,
)
from tests.fixtures import EPOCH, FixedClock, Note, Order, Product, sample_order


class RecordingOrder(Order):
    """Order that remembers every ref it is handed."""

    seen: List[Tuple[str, str, str]] = Field(default_factory=list, exclude=True)

    def unmarshal_ref(self, name: str, id: str, rel: Relationship) -> None:
        self.seen.append((name, id, rel.label))
        super().unmarshal_ref(name, id, rel)


class FrozenNote(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    text: str = ""

    def marshal_self(self, opts: MarshalOptions) -> MarshalOptions:
        return opts.with_self_target("note", self.id)


def order_items(product_count=2):
    return [rel.to_item() for rel in marshal_relationships(sample_order(product_count), tick=FixedClock())]


class TestUnmarshalEntity:
    """Tests for unmarshal_entity."""

    def test_order_with_two_products(self):
        """Three records decode into an order with two product references."""
        order = Order(id="O1")

        relationships = unmarshal_entity(order_items(2), order)

        assert order.id == "O1"
        assert order.customer == "alice"
        assert [product.id for product in order.products] == ["P1", "P2"]
        assert [product.category for product in order.products] == ["electronics", "electronics"]
        assert len(relationships) == 3

    def test_self_metadata_is_absorbed(self):
        order = Order(id="O1")

        unmarshal_entity(order_items(0), order)

        assert order.created_at == EPOCH
        assert order.updated_at == EPOCH

    def test_ref_before_self_record(self):
        """Input order does not matter for correctness."""
        items = order_items(1)
        order = Order(id="O1")

        relationships = unmarshal_entity(list(reversed(items)), order)

        assert order.customer == "alice"
        assert [product.id for product in order.products] == ["P1"]
        assert [rel.target for rel in relationships] == ["product#P1", "order#O1"]

    def test_refs_ignored_without_ref_unmarshaler(self):
        items = order_items(2)
        note = Note(id="N1")

        items[0] = {**items[0], "hk": "note#N1", "sk": "note#N1", "label": "note", "data": {"id": "N1", "text": "x"}}
        relationships = unmarshal_entity(items, note)

        assert note.text == "x"
        assert len(relationships) == 3

    def test_empty_input_is_not_found(self):
        with pytest.raises(ItemNotFoundError):
            unmarshal_entity([], Order(id="O1"))

    def test_missing_data(self):
        items = order_items(0)
        del items[0]["data"]

        with pytest.raises(UnmarshalError, match="data attribute not found") as exc_info:
            unmarshal_entity(items, Order(id="O1"))

        assert exc_info.value.source == "order#O1"

    def test_malformed_label(self):
        items = order_items(1)
        items[1]["label"] = "order/O1"

        with pytest.raises(UnmarshalError, match="invalid label format") as exc_info:
            unmarshal_entity(items, Order(id="O1"))

        assert exc_info.value.target == "product#P1"

    def test_ref_record_with_single_segment_label(self):
        """A one-segment label on a ref record decodes with an empty name."""
        items = order_items(1)
        items[1]["label"] = "product"
        order = RecordingOrder(id="O1")

        relationships = unmarshal_entity(items, order)

        assert order.customer == "alice"
        assert order.seen == [("", "P1", "product")]
        assert order.products == []
        assert [rel.label for rel in relationships] == ["order", "product"]

    def test_frozen_entity(self):
        items = [{**order_items(0)[0], "hk": "note#N1", "sk": "note#N1", "label": "note", "data": {"id": "N1", "text": "x"}}]

        with pytest.raises(UnmarshalError, match="cannot assign payload") as exc_info:
            unmarshal_entity(items, FrozenNote(id="N1"))

        assert exc_info.value.source == "note#N1"
        assert exc_info.value.target == "note#N1"
        assert exc_info.value.label == "note"
        assert isinstance(exc_info.value.__cause__, ValidationError)

    def test_missing_keys(self):
        with pytest.raises(UnmarshalError, match="source and target"):
            unmarshal_entity([{"label": "order"}], Order(id="O1"))

    def test_custom_label_delimiter(self):
        items = [
            rel.to_item()
            for rel in marshal_relationships(sample_order(1), key_delimiter="|", label_delimiter=":")
        ]
        order = Order(id="O1")

        unmarshal_entity(items, order, label_delimiter=":")

        assert [product.id for product in order.products] == ["P1"]


class TestUnmarshalSelf:
    """Tests for unmarshal_self and unmarshal_table_key."""

    def test_decodes_new_instance(self):
        order, rel = unmarshal_self(order_items(0)[0], Order)

        assert order.id == "O1"
        assert order.created_at == EPOCH
        assert rel.label == "order"

    def test_table_key(self):
        assert unmarshal_table_key({"hk": "order#O1", "sk": "product#P1"}) == ("order#O1", "product#P1")

    def test_table_key_missing(self):
        with pytest.raises(UnmarshalError) as exc_info:
            unmarshal_table_key({"hk": "order#O1"})

        assert exc_info.value.source == "order#O1"
        assert exc_info.value.target is None


class TestUnmarshalList:
    """Tests for unmarshal_list."""

    def test_decodes_in_order(self):
        items = [
            marshal_relationships(Product(id=f"P{i}", category="books"))[0].to_item()
            for i in (3, 1, 2)
        ]

        products, relationships = unmarshal_list(items, Product)

        assert [product.id for product in products] == ["P3", "P1", "P2"]
        assert [rel.ref_sort_key for rel in relationships] == ["books"] * 3

    def test_empty(self):
        assert unmarshal_list([], Product) == ([], [])

    def test_reports_failing_index(self):
        items = [
            marshal_relationships(Product(id="P1"))[0].to_item(),
            {"hk": "product#P2", "sk": "product#P2", "label": "product", "data": {"name": "no id"}},
        ]

        with pytest.raises(UnmarshalError, match="failed to unmarshal item 1") as exc_info:
            unmarshal_list(items, Product)

        assert exc_info.value.source == "product#P2"
