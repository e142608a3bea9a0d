"""
Pagination cursors stored in the table.

A store continuation key (DynamoDB LastEvaluatedKey) is not handed to
clients directly. TablePaginator persists it as an ordinary self record of
type "page" with a time-to-live and returns the record's id as an opaque
cursor; the cursor is later resolved back into the continuation key.

    | hk          | sk          | label | data                     | expires |
    | =========== | =========== | ===== | ======================== | ======= |
    | page#MTc... | page#MTc... | page  | {"cursor": .., "key": ..} | now+24h |

Invariants:
    - An empty continuation key issues an empty cursor and writes nothing
    - An empty cursor resolves to None without a lookup
    - An unknown or expired cursor resolves to None, not an error
    - Cursor ids are timestamp + 8 random bytes, base64url encoded;
      collisions are improbable, not impossible

How to change safely:
    - The key encoding is stored data; keep decode_start_key able to read
      every format that encode_start_key has ever produced
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import secrets
import time
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, Optional, Protocol, runtime_checkable

from pydantic import BaseModel

from .errors import EntMapError, PaginationError
from .records import MarshalOptions
from .unmarshal import unmarshal_self

if TYPE_CHECKING:
    from .store.base import StoreClient
    from .table import Table

logger = logging.getLogger(__name__)

PAGE_PREFIX = "page"

_CURSOR_RANDOM_BYTES = 8


@runtime_checkable
class Paginator(Protocol):
    """Converts continuation keys into client cursors and back."""

    async def page_cursor(self, last_key: Optional[Dict[str, Any]]) -> str:
        """Cursor for last_key; "" if last_key is empty."""
        ...

    async def start_key(self, cursor: str) -> Optional[Dict[str, Any]]:
        """Continuation key for cursor; None if cursor is "" or unknown."""
        ...


class PageCursor(BaseModel):
    """Self record that stores an encoded continuation key.

    Attributes:
        cursor: The cursor id handed to clients
        key: Encoded continuation key (see encode_start_key)
    """

    cursor: str
    key: str = ""

    def marshal_self(self, opts: MarshalOptions) -> MarshalOptions:
        return opts.with_self_target(PAGE_PREFIX, self.cursor).with_overrides(ref_sort_key=self.cursor)


def generate_cursor() -> str:
    """Create a cursor id from the current time and random bytes."""
    salt = base64.urlsafe_b64encode(secrets.token_bytes(_CURSOR_RANDOM_BYTES)).decode("ascii")
    combined = f"{time.time_ns()}_{salt}"
    return base64.urlsafe_b64encode(combined.encode("ascii")).decode("ascii")


def _encode_value(name: str, value: Any) -> Dict[str, str]:
    # bool is an int subclass; DynamoDB keys are never booleans.
    if isinstance(value, bool):
        raise PaginationError(f"unsupported key attribute type for {name!r}: bool")
    if isinstance(value, str):
        return {"S": value}
    if isinstance(value, (int, Decimal)):
        return {"N": str(value)}
    if isinstance(value, (bytes, bytearray)):
        return {"B": base64.b64encode(bytes(value)).decode("ascii")}
    raise PaginationError(f"unsupported key attribute type for {name!r}: {type(value).__name__}")


def _decode_value(name: str, value: Any) -> Any:
    if not isinstance(value, dict) or len(value) != 1:
        raise PaginationError(f"malformed key attribute {name!r}")

    (kind, raw), = value.items()
    if kind == "S":
        return str(raw)
    if kind == "N":
        number = Decimal(str(raw))
        return int(number) if number == number.to_integral_value() else number
    if kind == "B":
        return base64.b64decode(raw)
    raise PaginationError(f"unsupported key attribute kind for {name!r}: {kind}")


def encode_start_key(key: Dict[str, Any]) -> str:
    """Serialize a continuation key.

    Keys are flat maps of attribute name to string, number or binary
    values; they are written as typed JSON (``{"hk": {"S": "order#O1"}}``).

    Raises:
        PaginationError: If an attribute has an unsupported type
    """
    typed = {name: _encode_value(name, value) for name, value in sorted(key.items())}
    return json.dumps(typed, separators=(",", ":"))


def decode_start_key(encoded: str) -> Dict[str, Any]:
    """Inverse of encode_start_key.

    Raises:
        PaginationError: If encoded is not a typed key map
    """
    try:
        typed = json.loads(encoded)
    except json.JSONDecodeError as e:
        raise PaginationError(f"failed to decode last key: {e}") from e

    if not isinstance(typed, dict):
        raise PaginationError("failed to decode last key: not a map")

    try:
        return {name: _decode_value(name, value) for name, value in typed.items()}
    except (ValueError, ArithmeticError, binascii.Error) as e:
        raise PaginationError(f"failed to decode last key: {e}") from e


class TablePaginator:
    """Paginator that stores continuation keys in the same table.

    Example:
        >>> paginator = table.paginator(client)
        >>> cursor = await paginator.page_cursor(page.last_key)
        >>> start_key = await paginator.start_key(cursor)
    """

    def __init__(self, table: Table, client: StoreClient) -> None:
        self.table = table
        self.client = client

    async def page_cursor(self, last_key: Optional[Dict[str, Any]]) -> str:
        """Store last_key and return a cursor for it.

        Raises:
            PaginationError: If the key cannot be encoded or stored
        """
        if not last_key:
            return ""

        cursor = generate_cursor()
        page = PageCursor(cursor=cursor, key=encode_start_key(last_key))

        request = self.table.marshal_put(page, time_to_live=self.table.pagination_ttl)
        try:
            await self.client.put_item(request.item)
        except EntMapError as e:
            raise PaginationError(f"failed to store page cursor: {e}", cursor=cursor) from e

        logger.debug("Page cursor issued", extra={"cursor": cursor, "table": self.table.table_name})
        return cursor

    async def start_key(self, cursor: str) -> Optional[Dict[str, Any]]:
        """Resolve a cursor into the continuation key it stands for.

        Returns:
            The continuation key, or None if cursor is empty, unknown,
            expired, or holds no key

        Raises:
            PaginationError: If the lookup fails or the stored key is corrupt
        """
        if not cursor:
            return None

        request = self.table.marshal_get(PageCursor(cursor=cursor))
        try:
            item = await self.client.get_item(request.key)
        except EntMapError as e:
            raise PaginationError(f"failed to get page cursor: {e}", cursor=cursor) from e

        if item is None:
            logger.debug("Page cursor not found", extra={"cursor": cursor})
            return None

        try:
            page, _ = unmarshal_self(item, PageCursor)
        except EntMapError as e:
            raise PaginationError(f"failed to unmarshal page cursor: {e}", cursor=cursor) from e

        if not page.key:
            return None

        return decode_start_key(page.key)
