"""
Error types for EntMap.

This module defines all exception types raised by the library:
- EntMapError: Base exception
- MarshalError: An entity could not describe itself or its relationships
- RelationshipError: First failure while accumulating named relationships
- UnmarshalError: A record could not be decoded
- InvalidLabelError / InvalidKeyError: Malformed label or composite key
- ItemNotFoundError: Nothing to decode
- ConfigurationError: A required collaborator was not supplied
- QueryError: A query could not be planned
- PaginationError: A cursor could not be issued or resolved

Store errors (StoreError and friends) live in store/base.py and also
inherit from EntMapError.

Invariants:
    - All errors inherit from EntMapError
    - Decode errors carry the identity of the offending record
    - Causes are chained with ``raise ... from err``
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class EntMapError(Exception):
    """Base exception for all EntMap errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "ENTMAP_ERROR"
        self.details = details or {}


class MarshalError(EntMapError):
    """An entity failed to describe itself for storage.

    Raised when:
    - marshal_self or marshal_refs raises
    - An identifier contains a reserved delimiter
    - A put-style marshal yields more than the self record
    """

    def __init__(self, message: str, entity_type: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="MARSHAL_ERROR",
            details={"entity_type": entity_type},
        )
        self.entity_type = entity_type


class RelationshipError(MarshalError):
    """A related entity failed to describe itself.

    Only the first failure in a RelationshipContext is kept; later
    add_one/add_many calls on the same context are skipped.

    Attributes:
        name: Relationship name being added when the failure happened
    """

    def __init__(self, message: str, name: str) -> None:
        super().__init__(message)
        self.code = "RELATIONSHIP_ERROR"
        self.details["name"] = name
        self.name = name


class UnmarshalError(EntMapError):
    """A record could not be decoded.

    Attributes:
        source: Source key of the offending record, if known
        target: Target key of the offending record, if known
        label: Label of the offending record, if known
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        target: Optional[str] = None,
        label: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="UNMARSHAL_ERROR",
            details={"source": source, "target": target, "label": label},
        )
        self.source = source
        self.target = target
        self.label = label


class InvalidLabelError(UnmarshalError):
    """A label does not split into 1 or 3 segments."""

    def __init__(self, label: str, segments: int) -> None:
        super().__init__(
            f"invalid label format {label!r}: expected 1 or 3 segments, got {segments}",
            label=label,
        )
        self.code = "INVALID_LABEL"
        self.segments = segments


class InvalidKeyError(UnmarshalError):
    """A composite key does not split into a prefix and an id."""

    def __init__(self, key: str) -> None:
        super().__init__(f"invalid composite key {key!r}", source=key)
        self.code = "INVALID_KEY"


class ItemNotFoundError(EntMapError):
    """No records were available to decode an entity.

    Distinguishes "doesn't exist" from "malformed".
    """

    def __init__(self, message: str = "item not found", key: Optional[str] = None) -> None:
        super().__init__(message, code="NOT_FOUND", details={"key": key})
        self.key = key


class ConfigurationError(EntMapError):
    """A required collaborator or option was not supplied.

    Raised when:
    - An update is requested without an updater
    - An entity does not implement the marshal protocol
    """

    def __init__(self, message: str, option: Optional[str] = None) -> None:
        super().__init__(message, code="CONFIGURATION_ERROR", details={"option": option})
        self.option = option


class QueryError(EntMapError):
    """A query could not be planned."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="QUERY_ERROR")


class PaginationError(EntMapError):
    """A pagination cursor could not be issued or resolved.

    Attributes:
        cursor: The cursor involved, if one was issued
    """

    def __init__(self, message: str, cursor: Optional[str] = None) -> None:
        super().__init__(message, code="PAGINATION_ERROR", details={"cursor": cursor})
        self.cursor = cursor
