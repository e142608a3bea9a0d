"""
Entity capability protocols.

An entity opts into storage by implementing one or more of these:

- Marshaler: describes its own record (required)
- RefMarshaler: also enumerates named relationships
- SelfUnmarshaler: recovers record metadata (timestamps) on decode
- RefUnmarshaler: absorbs related references on decode

Capabilities are checked once at the call site with isinstance().

Example:
    >>> class Product(BaseModel):
    ...     id: str
    ...     category: str
    ...
    ...     def marshal_self(self, opts):
    ...         return opts.with_self_target("product", self.id).with_overrides(
    ...             ref_sort_key=self.category,
    ...         )
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .marshal import RelationshipContext
    from .records import MarshalOptions, Relationship


@runtime_checkable
class Marshaler(Protocol):
    """Can describe its own record."""

    def marshal_self(self, opts: MarshalOptions) -> MarshalOptions:
        """Return opts with source/target identity, label and optional
        ref sort key, timestamps and time-to-live filled in.

        Raise to abort the marshal.
        """
        ...


@runtime_checkable
class RefMarshaler(Marshaler, Protocol):
    """A Marshaler that can also marshal its relationships."""

    def marshal_refs(self, ctx: RelationshipContext) -> None:
        """Add relationships via ctx.add_one / ctx.add_many."""
        ...


@runtime_checkable
class SelfUnmarshaler(Protocol):
    """Can extract metadata from its own decoded record."""

    def unmarshal_self(self, rel: Relationship) -> None: ...


@runtime_checkable
class RefUnmarshaler(Protocol):
    """Can absorb related references decoded from an entity partition."""

    def unmarshal_ref(self, name: str, id: str, rel: Relationship) -> None:
        """Absorb one reference.

        Args:
            name: Relationship name (e.g. "products")
            id: Identifier of the related (target) entity
            rel: The decoded relationship record
        """
        ...
