"""
Marshaling engine: entity -> relationship records.

MarshalRelationships walks an entity's self description and, if it is a
RefMarshaler, its named relationships:

    [self_record, *ref_records]

Invariants:
    - A successful marshal returns at least the self record, first
    - Exactly one record has source == target (the self record)
    - Relationship accumulation is fail-fast: the first failure aborts the
      whole marshal and no relationship is dropped silently
    - Options are immutable; each related entity sees the parent options
      unchanged, never a sibling's edits
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional

from .entity import Marshaler, RefMarshaler
from .errors import MarshalError, RelationshipError
from .labels import check_segment
from .records import MarshalOptions, RefData, Relationship, dump_payload, new_relationship

logger = logging.getLogger(__name__)


class RelationshipContext:
    """Collects named relationships for one source entity.

    Entities receive a context in ``marshal_refs`` and call add_one for
    to-one relationships and add_many for to-many relationships.

    Once an error is recorded, further calls are no-ops and the engine
    raises that first error.
    """

    def __init__(self, source: str, opts: MarshalOptions) -> None:
        self._source = source
        self._opts = opts
        self._refs: List[Relationship] = []
        self._error: Optional[RelationshipError] = None

    @property
    def source(self) -> str:
        return self._source

    @property
    def refs(self) -> List[Relationship]:
        return list(self._refs)

    @property
    def error(self) -> Optional[RelationshipError]:
        return self._error

    def add_one(self, name: str, ref: Marshaler) -> None:
        """Add a to-one relationship."""
        if self._error is not None:
            return

        try:
            check_segment(name, self._opts.label_delimiter)
            ref_opts = ref.marshal_self(self._opts)
            check_segment(ref_opts.target_prefix, self._opts.key_delimiter)
            check_segment(ref_opts.target_id, self._opts.key_delimiter)
        except Exception as e:
            error = RelationshipError(f"failed to marshal reference {name}: {e}", name=name)
            error.__cause__ = e
            self._error = error
            return

        # The record belongs to the parent's partition and label.
        ref_opts = ref_opts.with_overrides(
            source_id=self._opts.source_id,
            source_prefix=self._opts.source_prefix,
        )

        rel = new_relationship(
            RefData(
                name=name,
                source_id=self._opts.source_id,
                target_id=ref_opts.target_id,
            ).model_dump(),
            ref_opts,
        )
        rel.source = self._source
        rel.label = ref_opts.ref_label(name)
        self._refs.append(rel)

    def add_many(self, name: str, refs: Iterable[Marshaler]) -> None:
        """Add to-many relationships, in order."""
        for ref in refs:
            self.add_one(name, ref)
            if self._error is not None:
                return


def _check_identity(opts: MarshalOptions) -> None:
    delimiters = (opts.key_delimiter, opts.label_delimiter)
    for value in (opts.source_prefix, opts.source_id, opts.target_prefix, opts.target_id):
        check_segment(value, *delimiters)
    check_segment(opts.label, opts.label_delimiter)


def marshal_relationships(entity: Marshaler, **overrides: Any) -> List[Relationship]:
    """Marshal an entity into its relationship records.

    Args:
        entity: The entity to marshal
        **overrides: MarshalOptions fields applied over the defaults

    Returns:
        The self record followed by any relationship records

    Raises:
        MarshalError: If the entity cannot describe itself
        RelationshipError: If a related entity cannot describe itself
    """
    entity_type = type(entity).__name__
    if not isinstance(entity, Marshaler):
        raise MarshalError(f"{entity_type} does not implement marshal_self", entity_type=entity_type)

    opts = MarshalOptions(**overrides)

    try:
        opts = entity.marshal_self(opts)
        _check_identity(opts)
    except Exception as e:
        raise MarshalError(f"failed to marshal self: {e}", entity_type=entity_type) from e

    relationships = [new_relationship(dump_payload(entity), opts)]

    if isinstance(entity, RefMarshaler) and not opts.skip_refs:
        ctx = RelationshipContext(opts.source_key(), opts)

        try:
            entity.marshal_refs(ctx)
        except Exception as e:
            raise MarshalError(f"failed to marshal refs: {e}", entity_type=entity_type) from e

        if ctx.error is not None:
            raise ctx.error

        relationships.extend(ctx.refs)

    logger.debug(
        "Entity marshaled",
        extra={
            "entity_type": entity_type,
            "source": relationships[0].source,
            "records": len(relationships),
        },
    )

    return relationships
