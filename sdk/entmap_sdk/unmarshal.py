"""
Unmarshaling engine: relationship records -> entity.

- unmarshal_self decodes one self record into a new entity
- unmarshal_entity decodes an entity partition (self record plus reference
  records) into an existing entity instance
- unmarshal_list decodes a label-index page where every record is a self
  record of the same type

Invariants:
    - Records are processed in input order; nothing is re-sorted
    - A decode either fully succeeds or raises one UnmarshalError
    - Zero records for an entity partition raises ItemNotFoundError
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Dict, List, Sequence, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .entity import RefUnmarshaler, SelfUnmarshaler
from .errors import EntMapError, ItemNotFoundError, UnmarshalError
from .labels import DEFAULT_LABEL_DELIMITER, split_label
from .records import (
    ATTRIBUTE_DATA,
    ATTRIBUTE_SOURCE,
    ATTRIBUTE_TARGET,
    RefData,
    Relationship,
    load_payload,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

Item = Dict[str, Any]


def unmarshal_table_key(item: Item) -> Tuple[str, str]:
    """Extract ``(source, target)`` from an item's primary key.

    Raises:
        UnmarshalError: If either key attribute is missing or not a string
    """
    source = item.get(ATTRIBUTE_SOURCE)
    target = item.get(ATTRIBUTE_TARGET)
    if not isinstance(source, str) or not isinstance(target, str):
        raise UnmarshalError(
            "source and target keys not found",
            source=source if isinstance(source, str) else None,
            target=target if isinstance(target, str) else None,
        )
    return source, target


def _decode(item: Item, out_type: Type[T]) -> Tuple[T, Relationship]:
    rel = Relationship.from_item(item)
    if ATTRIBUTE_DATA not in item or item[ATTRIBUTE_DATA] is None:
        raise UnmarshalError(
            "data attribute not found",
            source=rel.source,
            target=rel.target,
            label=rel.label,
        )

    try:
        value = load_payload(rel.data, out_type)
    except UnmarshalError as e:
        raise UnmarshalError(e.message, source=rel.source, target=rel.target, label=rel.label) from e

    return value, rel


def _absorb_self(entity: Any, rel: Relationship) -> None:
    if not isinstance(entity, SelfUnmarshaler):
        return
    try:
        entity.unmarshal_self(rel)
    except Exception as e:
        raise UnmarshalError(
            f"failed to unmarshal self: {e}",
            source=rel.source,
            target=rel.target,
            label=rel.label,
        ) from e


def unmarshal_self(item: Item, out_type: Type[T]) -> Tuple[T, Relationship]:
    """Decode a self record into a new instance of out_type.

    If the instance is a SelfUnmarshaler it is then handed the full record
    so it can recover metadata that is not part of its payload.

    Returns:
        The decoded entity and its relationship record

    Raises:
        UnmarshalError: If keys or payload are missing or malformed
    """
    entity, rel = _decode(item, out_type)
    _absorb_self(entity, rel)
    return entity, rel


def _assign(out: Any, decoded: Any, rel: Relationship) -> None:
    """Copy the payload fields of decoded onto out."""
    if isinstance(decoded, BaseModel):
        names = list(decoded.model_fields_set)
    elif dataclasses.is_dataclass(decoded) and isinstance(rel.data, dict):
        names = [f.name for f in dataclasses.fields(decoded) if f.name in rel.data]
    else:
        raise UnmarshalError(
            f"cannot unmarshal into {type(out).__name__}",
            source=rel.source,
            target=rel.target,
            label=rel.label,
        )

    try:
        for name in names:
            setattr(out, name, getattr(decoded, name))
    except (ValidationError, AttributeError, TypeError) as e:
        raise UnmarshalError(
            f"cannot assign payload to {type(out).__name__}: {e}",
            source=rel.source,
            target=rel.target,
            label=rel.label,
        ) from e


def unmarshal_entity(
    items: Sequence[Item],
    out: Any,
    label_delimiter: str = DEFAULT_LABEL_DELIMITER,
) -> List[Relationship]:
    """Decode an entity partition into out.

    Self records are decoded into out; other records are decoded as
    RefData and passed to ``out.unmarshal_ref(name, target_id, rel)`` when
    out is a RefUnmarshaler.

    Args:
        items: Records from an entity query, in query order
        out: The entity instance to populate
        label_delimiter: Delimiter the labels were written with

    Returns:
        The decoded relationship records, in input order

    Raises:
        ItemNotFoundError: If items is empty
        UnmarshalError: If any record is malformed
    """
    if not items:
        raise ItemNotFoundError()

    relationships: List[Relationship] = []
    absorbs_refs = isinstance(out, RefUnmarshaler)

    for item in items:
        source, target = unmarshal_table_key(item)

        if source == target:
            decoded, rel = _decode(item, type(out))
            _assign(out, decoded, rel)
            _absorb_self(out, rel)
            relationships.append(rel)
            continue

        ref, rel = _decode(item, RefData)

        try:
            _, _, name = split_label(rel.label, label_delimiter)
        except UnmarshalError as e:
            raise UnmarshalError(
                f"invalid label format: {rel.label!r}",
                source=rel.source,
                target=rel.target,
                label=rel.label,
            ) from e

        # A single-segment label yields an empty relationship name.
        if absorbs_refs:
            try:
                out.unmarshal_ref(name, ref.target_id, rel)
            except EntMapError:
                raise
            except Exception as e:
                raise UnmarshalError(
                    f"failed to unmarshal ref {name}: {e}",
                    source=rel.source,
                    target=rel.target,
                    label=rel.label,
                ) from e

        relationships.append(rel)

    logger.debug(
        "Entity unmarshaled",
        extra={"entity_type": type(out).__name__, "records": len(relationships)},
    )

    return relationships


def unmarshal_list(items: Sequence[Item], out_type: Type[T]) -> Tuple[List[T], List[Relationship]]:
    """Decode every item as a self record of out_type.

    Used for label-index queries.

    Returns:
        The decoded entities and their records, both in input order

    Raises:
        UnmarshalError: Naming the index of the first bad item
    """
    entities: List[T] = []
    relationships: List[Relationship] = []

    for index, item in enumerate(items):
        try:
            entity, rel = unmarshal_self(item, out_type)
        except UnmarshalError as e:
            raise UnmarshalError(
                f"failed to unmarshal item {index}: {e.message}",
                source=e.source,
                target=e.target,
                label=e.label,
            ) from e
        entities.append(entity)
        relationships.append(rel)

    return entities, relationships
