"""
Relationship records and marshal options.

A Relationship is the only persisted shape. It links a source entity to a
target entity under a label:

    | hk       | sk         | label             |
    | ======== | ========== | ================= |
    | order#O1 | order#O1   | order             |
    | order#O1 | product#P1 | order/O1/products |
    | order#O1 | product#P2 | order/O1/products |

- Query the partition "order#O1" to fetch an order and everything it relates to
- Query the label "order" on the ref index to list all orders
- Query the label "order/O1/products" on the ref index to list an order's products

A self record has equal source and target keys and carries the entity
payload in ``data``; other records carry a RefData descriptor.

Invariants:
    - MarshalOptions is immutable; overrides produce new values
    - Timestamps are stored as fixed-width RFC 3339 UTC strings so they sort
    - ``expires`` is stored as integer unix seconds (DynamoDB TTL format)
    - Records are rebuilt on every marshal and every read; nothing is cached
"""

from __future__ import annotations

import dataclasses
import functools
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .errors import MarshalError, UnmarshalError
from .labels import (
    DEFAULT_KEY_DELIMITER,
    DEFAULT_LABEL_DELIMITER,
    composite_key,
    relationship_label,
    split_label,
)

T = TypeVar("T")

Clock = Callable[[], datetime]

ATTRIBUTE_SOURCE = "hk"
ATTRIBUTE_TARGET = "sk"
ATTRIBUTE_LABEL = "label"
ATTRIBUTE_CREATED = "created_at"
ATTRIBUTE_UPDATED = "updated_at"
ATTRIBUTE_EXPIRES = "expires"
ATTRIBUTE_DATA = "data"
ATTRIBUTE_REF_SORT_KEY = "gsi1_sk"


def default_clock() -> datetime:
    """Return the current UTC time."""
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """Format a datetime as a sortable RFC 3339 UTC string.

    Naive datetimes are taken to be UTC.

    Example:
        >>> format_timestamp(datetime(2025, 1, 1, tzinfo=timezone.utc))
        '2025-01-01T00:00:00.000000Z'
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 string into an aware UTC datetime."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    moment = datetime.fromisoformat(value)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


@dataclass(frozen=True)
class MarshalOptions:
    """Options an entity fills in to describe its own record.

    Entities receive a MarshalOptions in ``marshal_self`` and return a new
    one (``dataclasses.replace`` or the ``with_*`` helpers) with their
    identity filled in.

    Attributes:
        source_id: The entity source identifier
        source_prefix: The entity source prefix, usually the entity type
        target_id: The entity target identifier
        target_prefix: The entity target prefix, usually the entity type
        label: The record label
        time_to_live: Lifetime of the record; unset or non-positive means no expiry
        created: Creation timestamp; defaults to ``tick()`` when unset
        updated: Modification timestamp; defaults to ``tick()`` when unset
        ref_sort_key: Sort key for the record on the ref index
        tick: Clock used for default timestamps
        key_delimiter: Delimiter joining prefix and id into keys
        label_delimiter: Delimiter joining label segments
        skip_refs: If True, relationships are not marshaled
    """

    source_id: str = ""
    source_prefix: str = ""
    target_id: str = ""
    target_prefix: str = ""
    label: str = ""
    time_to_live: Optional[timedelta] = None
    created: Optional[datetime] = None
    updated: Optional[datetime] = None
    ref_sort_key: str = ""
    tick: Clock = default_clock
    key_delimiter: str = DEFAULT_KEY_DELIMITER
    label_delimiter: str = DEFAULT_LABEL_DELIMITER
    skip_refs: bool = False

    def with_self_target(self, label: str, id: str) -> MarshalOptions:
        """Describe a self record: source and target are the same entity.

        Args:
            label: The prefix/type of the entity (e.g. "user", "order")
            id: The unique identifier of the entity
        """
        return dataclasses.replace(
            self,
            source_id=id,
            target_id=id,
            source_prefix=label,
            target_prefix=label,
            label=label,
        )

    def with_overrides(self, **overrides: Any) -> MarshalOptions:
        """Return a copy with the given fields replaced."""
        return dataclasses.replace(self, **overrides)

    def source_key(self) -> str:
        return composite_key(self.source_prefix, self.source_id, self.key_delimiter)

    def target_key(self) -> str:
        return composite_key(self.target_prefix, self.target_id, self.key_delimiter)

    def ref_label(self, name: str) -> str:
        """Label of the named relationship from this source."""
        return relationship_label(self.source_prefix, self.source_id, name, self.label_delimiter)

    def split_label(self, label: str) -> tuple[str, str, str]:
        return split_label(label, self.label_delimiter)

    def item_key(self) -> Dict[str, str]:
        """Primary key of the record these options describe."""
        return {ATTRIBUTE_SOURCE: self.source_key(), ATTRIBUTE_TARGET: self.target_key()}


def new_marshal_options(**overrides: Any) -> MarshalOptions:
    """Default options with caller overrides applied."""
    return MarshalOptions(**overrides)


class RefData(BaseModel):
    """Reference descriptor stored in the data of a relationship record.

    Attributes:
        name: Relationship name (e.g. "products")
        source_id: Identifier of the source entity
        target_id: Identifier of the target entity
    """

    model_config = ConfigDict(frozen=True)

    name: str
    source_id: str
    target_id: str


@dataclass
class Relationship:
    """An association between two entities.

    A self relationship has equal source and target keys and stores the
    entity payload in ``data``.

    Attributes:
        source: Composite key of the owning entity
        target: Composite key of the related entity (== source for self records)
        label: Entity type, or "source_prefix/source_id/name"
        created_at: Creation timestamp
        updated_at: Modification timestamp
        expires: Absolute expiry; None means the record does not expire
        data: Serialized payload
        ref_sort_key: Sort key on the ref index
    """

    source: str
    target: str
    label: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    expires: Optional[datetime] = None
    data: Any = None
    ref_sort_key: str = ""

    @property
    def is_self(self) -> bool:
        return self.source == self.target

    def key(self) -> Dict[str, str]:
        return {ATTRIBUTE_SOURCE: self.source, ATTRIBUTE_TARGET: self.target}

    def to_item(self) -> Dict[str, Any]:
        """Convert to the flat item shape stored in the table.

        Empty optional attributes are omitted so the ref index stays sparse.
        """
        item: Dict[str, Any] = {
            ATTRIBUTE_SOURCE: self.source,
            ATTRIBUTE_TARGET: self.target,
            ATTRIBUTE_LABEL: self.label,
        }
        if self.created_at is not None:
            item[ATTRIBUTE_CREATED] = format_timestamp(self.created_at)
        if self.updated_at is not None:
            item[ATTRIBUTE_UPDATED] = format_timestamp(self.updated_at)
        if self.expires is not None:
            item[ATTRIBUTE_EXPIRES] = int(self.expires.timestamp())
        if self.data is not None:
            item[ATTRIBUTE_DATA] = self.data
        if self.ref_sort_key:
            item[ATTRIBUTE_REF_SORT_KEY] = self.ref_sort_key
        return item

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> Relationship:
        """Create from a stored item.

        Raises:
            UnmarshalError: If the key attributes are missing or malformed
        """
        source = item.get(ATTRIBUTE_SOURCE)
        target = item.get(ATTRIBUTE_TARGET)
        label = item.get(ATTRIBUTE_LABEL, "")
        if not isinstance(source, str) or not isinstance(target, str):
            raise UnmarshalError(
                "source and target keys not found",
                source=source if isinstance(source, str) else None,
                target=target if isinstance(target, str) else None,
            )

        try:
            created = item.get(ATTRIBUTE_CREATED)
            updated = item.get(ATTRIBUTE_UPDATED)
            expires = item.get(ATTRIBUTE_EXPIRES)
            return cls(
                source=source,
                target=target,
                label=str(label),
                created_at=parse_timestamp(created) if created else None,
                updated_at=parse_timestamp(updated) if updated else None,
                expires=(
                    datetime.fromtimestamp(int(expires), tz=timezone.utc)
                    if isinstance(expires, (int, Decimal))
                    else None
                ),
                data=item.get(ATTRIBUTE_DATA),
                ref_sort_key=str(item.get(ATTRIBUTE_REF_SORT_KEY, "")),
            )
        except (TypeError, ValueError) as e:
            raise UnmarshalError(
                f"failed to unmarshal relationship: {e}",
                source=source,
                target=target,
                label=str(label),
            ) from e


def new_relationship(data: Any, opts: MarshalOptions) -> Relationship:
    """Build a record from marshal options.

    Unset timestamps default to ``opts.tick()``. A positive time_to_live
    sets ``expires = created + time_to_live``.
    """
    created = opts.created if opts.created is not None else opts.tick()
    updated = opts.updated if opts.updated is not None else opts.tick()

    rel = Relationship(
        source=opts.source_key(),
        target=opts.target_key(),
        label=opts.label,
        created_at=created,
        updated_at=updated,
        data=data,
        ref_sort_key=opts.ref_sort_key,
    )

    if opts.time_to_live is not None and opts.time_to_live > timedelta(0):
        rel.expires = created + opts.time_to_live

    return rel


@functools.lru_cache(maxsize=None)
def _adapter(tp: Any) -> TypeAdapter:
    return TypeAdapter(tp)


def dump_payload(value: Any) -> Any:
    """Serialize an entity into a JSON-compatible payload.

    Entities are pydantic models, dataclasses or any other type pydantic
    can build a schema for. Fields marked ``exclude=True`` are not stored.

    Raises:
        MarshalError: If the value cannot be serialized
    """
    try:
        return _adapter(type(value)).dump_python(value, mode="json")
    except Exception as e:
        raise MarshalError(
            f"failed to serialize {type(value).__name__}: {e}",
            entity_type=type(value).__name__,
        ) from e


def load_payload(data: Any, out_type: Type[T]) -> T:
    """Validate a stored payload into an instance of out_type.

    Raises:
        UnmarshalError: If the payload has the wrong shape
    """
    try:
        return _adapter(out_type).validate_python(data)
    except PydanticValidationError as e:
        raise UnmarshalError(f"failed to unmarshal data into {out_type.__name__}: {e}") from e
