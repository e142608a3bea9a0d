"""
Update expressions.

UpdateBuilder collects SET / REMOVE / ADD actions on attribute paths. It can
be rendered into a DynamoDB UpdateExpression with ``#n``/``:v``
placeholders, or applied directly to a plain item by in-process stores.

Attribute paths use dots for nesting: ``data.name`` addresses the ``name``
field of a record payload (see query.data_attribute).

Example:
    >>> update = UpdateBuilder().set("data.status", "shipped").remove("data.note")
    >>> expr = update.build()
    >>> expr.expression
    'SET #n0.#n1 = :v0 REMOVE #n0.#n2'
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Protocol, Tuple, runtime_checkable

SET = "SET"
REMOVE = "REMOVE"
ADD = "ADD"

_CLAUSE_ORDER = (SET, REMOVE, ADD)


@dataclass(frozen=True)
class UpdateAction:
    """One action on one attribute path."""

    op: str
    path: str
    value: Any = None


@dataclass(frozen=True)
class UpdateExpression:
    """Rendered update expression.

    Attributes:
        expression: The UpdateExpression string
        names: ExpressionAttributeNames placeholders
        values: ExpressionAttributeValues placeholders (plain Python values)
    """

    expression: str
    names: Dict[str, str] = field(default_factory=dict)
    values: Dict[str, Any] = field(default_factory=dict)


class UpdateBuilder:
    """Immutable builder of update actions.

    Each method returns a new builder; the receiver is left unchanged.
    """

    def __init__(self, actions: Tuple[UpdateAction, ...] = ()) -> None:
        self._actions = tuple(actions)

    @property
    def actions(self) -> Tuple[UpdateAction, ...]:
        return self._actions

    def _with(self, action: UpdateAction) -> UpdateBuilder:
        if not action.path:
            raise ValueError("update path cannot be empty")
        return UpdateBuilder(self._actions + (action,))

    def set(self, path: str, value: Any) -> UpdateBuilder:
        return self._with(UpdateAction(SET, path, value))

    def remove(self, path: str) -> UpdateBuilder:
        return self._with(UpdateAction(REMOVE, path))

    def add(self, path: str, value: Any) -> UpdateBuilder:
        """Add to a number, or union into a set."""
        return self._with(UpdateAction(ADD, path, value))

    def build(self) -> UpdateExpression:
        """Render into a DynamoDB update expression.

        Raises:
            ValueError: If the builder has no actions
        """
        if not self._actions:
            raise ValueError("update has no actions")

        names: Dict[str, str] = {}
        placeholders: Dict[str, str] = {}
        values: Dict[str, Any] = {}

        def name_of(path: str) -> str:
            segments = []
            for segment in path.split("."):
                if segment not in placeholders:
                    placeholder = f"#n{len(placeholders)}"
                    placeholders[segment] = placeholder
                    names[placeholder] = segment
                segments.append(placeholders[segment])
            return ".".join(segments)

        def value_of(value: Any) -> str:
            placeholder = f":v{len(values)}"
            values[placeholder] = value
            return placeholder

        clauses: List[str] = []
        for op in _CLAUSE_ORDER:
            parts = []
            for action in self._actions:
                if action.op != op:
                    continue
                if op == SET:
                    parts.append(f"{name_of(action.path)} = {value_of(action.value)}")
                elif op == REMOVE:
                    parts.append(name_of(action.path))
                else:
                    parts.append(f"{name_of(action.path)} {value_of(action.value)}")
            if parts:
                clauses.append(f"{op} {', '.join(parts)}")

        return UpdateExpression(expression=" ".join(clauses), names=names, values=values)

    def apply(self, item: Dict[str, Any]) -> Dict[str, Any]:
        """Apply the actions to a copy of item and return it."""
        result = copy.deepcopy(item)
        for action in self._actions:
            *parents, leaf = action.path.split(".")
            node = result
            for segment in parents:
                child = node.get(segment)
                if not isinstance(child, dict):
                    if action.op == REMOVE:
                        node = None
                        break
                    child = {}
                    node[segment] = child
                node = child
            if node is None:
                continue

            if action.op == SET:
                node[leaf] = copy.deepcopy(action.value)
            elif action.op == REMOVE:
                node.pop(leaf, None)
            else:
                current = node.get(leaf)
                if current is None:
                    node[leaf] = copy.deepcopy(action.value)
                elif isinstance(current, set):
                    node[leaf] = current | set(action.value)
                else:
                    node[leaf] = current + action.value
        return result

    def __len__(self) -> int:
        return len(self._actions)

    def __repr__(self) -> str:
        return f"UpdateBuilder({list(self._actions)!r})"


@runtime_checkable
class Updater(Protocol):
    """Builds the update applied by Table.marshal_update."""

    def update_relationship(self, update: UpdateBuilder) -> UpdateBuilder:
        """Return update with this updater's actions added."""
        ...
