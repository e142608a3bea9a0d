"""
Shared test entities.

Order and Product model a small e-commerce graph: an order relates to
many products; products are listed by category on the ref index.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from pydantic import BaseModel, Field

from sdk.entmap_sdk.marshal import RelationshipContext
from sdk.entmap_sdk.records import MarshalOptions, Relationship
from sdk.entmap_sdk.update import UpdateBuilder

EPOCH = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = EPOCH) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


class Product(BaseModel):
    id: str
    name: str = ""
    category: str = ""
    price: int = 0

    def marshal_self(self, opts: MarshalOptions) -> MarshalOptions:
        return opts.with_self_target("product", self.id).with_overrides(ref_sort_key=self.category)


class Order(BaseModel):
    id: str
    customer: str = ""
    status: str = "new"
    products: List[Product] = Field(default_factory=list, exclude=True)
    created_at: Optional[datetime] = Field(default=None, exclude=True)
    updated_at: Optional[datetime] = Field(default=None, exclude=True)

    def marshal_self(self, opts: MarshalOptions) -> MarshalOptions:
        return opts.with_self_target("order", self.id).with_overrides(ref_sort_key=self.customer)

    def marshal_refs(self, ctx: RelationshipContext) -> None:
        ctx.add_many("products", self.products)

    def unmarshal_self(self, rel: Relationship) -> None:
        self.created_at = rel.created_at
        self.updated_at = rel.updated_at

    def unmarshal_ref(self, name: str, id: str, rel: Relationship) -> None:
        if name == "products":
            self.products.append(Product(id=id, category=rel.ref_sort_key))


@dataclass
class Note:
    """Dataclass entity without relationships."""

    id: str
    text: str = ""

    def marshal_self(self, opts: MarshalOptions) -> MarshalOptions:
        return opts.with_self_target("note", self.id)


class Session(BaseModel):
    """Entity that expires."""

    id: str
    user: str = ""

    def marshal_self(self, opts: MarshalOptions) -> MarshalOptions:
        return opts.with_self_target("session", self.id).with_overrides(
            time_to_live=timedelta(hours=1),
        )


class BrokenEntity(BaseModel):
    id: str

    def marshal_self(self, opts: MarshalOptions) -> MarshalOptions:
        raise RuntimeError("identity unavailable")


class Shipment(BaseModel):
    """Relates to an entity that cannot describe itself."""

    id: str

    def marshal_self(self, opts: MarshalOptions) -> MarshalOptions:
        return opts.with_self_target("shipment", self.id)

    def marshal_refs(self, ctx: RelationshipContext) -> None:
        ctx.add_one("carrier", BrokenEntity(id="C1"))
        ctx.add_one("order", Order(id="O9"))


class StatusUpdate:
    """Updater that sets an order's status."""

    def __init__(self, status: str) -> None:
        self.status = status

    def update_relationship(self, update: UpdateBuilder) -> UpdateBuilder:
        return update.set("data.status", self.status)


def sample_order(product_count: int = 2, order_id: str = "O1") -> Order:
    return Order(
        id=order_id,
        customer="alice",
        products=[
            Product(id=f"P{i}", name=f"Product {i}", category="electronics", price=100 * i)
            for i in range(1, product_count + 1)
        ],
    )
