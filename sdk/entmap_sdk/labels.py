"""
Composite key and label encoding.

Entities are identified by a composite key ``prefix + key_delimiter + id``
(``order#O1``). Relationship records are grouped under a three-segment
label ``source_prefix / source_id / name`` (``order/O1/products``); self
records carry a single-segment label, usually the entity type (``order``).

Invariants:
    - split_label(relationship_label(p, i, n)) == (p, i, n)
    - A label splits into exactly 1 or 3 segments; anything else is invalid
    - Prefixes, ids and names never contain either delimiter (no escaping)

How to change safely:
    - Delimiters are part of the stored data; a table must be read with the
      same delimiter pair it was written with
    - Never introduce escaping here without a migration for existing rows
"""

from __future__ import annotations

from .errors import InvalidKeyError, InvalidLabelError

DEFAULT_KEY_DELIMITER = "#"
DEFAULT_LABEL_DELIMITER = "/"


def composite_key(prefix: str, id: str, delimiter: str = DEFAULT_KEY_DELIMITER) -> str:
    """Join a prefix and an id into a composite key.

    Used for both source and target keys.

    Example:
        >>> composite_key("order", "O1")
        'order#O1'
    """
    return f"{prefix}{delimiter}{id}"


def split_key(key: str, delimiter: str = DEFAULT_KEY_DELIMITER) -> tuple[str, str]:
    """Split a composite key back into ``(prefix, id)``.

    Raises:
        InvalidKeyError: If the key does not contain exactly one delimiter
    """
    parts = key.split(delimiter)
    if len(parts) != 2:
        raise InvalidKeyError(key)
    return parts[0], parts[1]


def relationship_label(
    source_prefix: str,
    source_id: str,
    name: str,
    delimiter: str = DEFAULT_LABEL_DELIMITER,
) -> str:
    """Build the label for a named relationship of a source entity.

    Example:
        >>> relationship_label("order", "O1", "products")
        'order/O1/products'
    """
    return f"{source_prefix}{delimiter}{source_id}{delimiter}{name}"


def split_label(label: str, delimiter: str = DEFAULT_LABEL_DELIMITER) -> tuple[str, str, str]:
    """Split a label into ``(prefix, id, name)``.

    A single-segment label (a self record) yields ``(prefix, "", "")``.

    Raises:
        InvalidLabelError: If the label is empty or has 2 or 4+ segments
    """
    if not label:
        raise InvalidLabelError(label, 0)

    parts = label.split(delimiter)
    if len(parts) == 1:
        return parts[0], "", ""
    if len(parts) != 3:
        raise InvalidLabelError(label, len(parts))
    return parts[0], parts[1], parts[2]


def check_segment(value: str, *delimiters: str) -> None:
    """Reject an identifier that contains a reserved delimiter.

    Raises:
        ValueError: If value contains any of the delimiters
    """
    for delimiter in delimiters:
        if delimiter and delimiter in value:
            raise ValueError(f"{value!r} must not contain the delimiter {delimiter!r}")
