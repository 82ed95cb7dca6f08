"""
Arbitrary nested data is reported as a tree of key/value variable nodes.

Python values are first converted into a closed set of shapes (`Scalar`, `Sequence`,
`Mapping`) and only that set is walked when the node tree is built:

    nodes: list[VariableNode] = []
    serialize_variable(nodes, "user", {"id": 7, "roles": ["admin"]})
    # VariableNode(key="user", children=[
    #     VariableNode(key="id", value="7"),
    #     VariableNode(key="roles", children=[VariableNode(key="0", value="admin")]),
    # ])
"""

import dataclasses
import logging
from collections.abc import Mapping as AbcMapping
from collections.abc import Set as AbcSet
from enum import Enum
from types import ModuleType
from typing import Any, Iterable, Optional, Union

from pydantic import BaseModel, model_validator

from airbrake_notifier.utils import escape

logger = logging.getLogger(__name__)

RECURSION_MARKER = "<recursion>"

# Objects that carry a __dict__ but read better as their display string.
_OPAQUE_TYPES = (type, Enum, BaseException, ModuleType)


@dataclasses.dataclass(frozen=True)
class Scalar:
    text: str


@dataclasses.dataclass(frozen=True)
class Sequence:
    items: tuple["Variant", ...]


@dataclasses.dataclass(frozen=True)
class Mapping:
    entries: tuple[tuple[str, "Variant"], ...]


Variant = Union[Scalar, Sequence, Mapping]


class VariableNode(BaseModel):
    key: str
    value: Optional[str] = None
    children: Optional[list["VariableNode"]] = None

    @model_validator(mode="after")
    def value_or_children(self) -> "VariableNode":
        if (self.value is None) == (self.children is None):
            raise ValueError("VariableNode needs exactly one of value or children")
        return self


def _object_fields(value: Any) -> dict[str, Any] | None:
    if isinstance(value, _OPAQUE_TYPES) or callable(value):
        return None
    if isinstance(value, BaseModel):
        return dict(value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
    if hasattr(value, "__dict__"):
        return dict(vars(value))
    return None


def to_variant(value: Any, _active: frozenset[int] = frozenset()) -> Variant:
    """
    Converts any Python value into a `Variant`. Objects are taken as the mapping of their
    fields, containers recurse and everything else becomes its display string.
    A container that contains itself is cut short with a `RECURSION_MARKER` leaf.
    """
    if isinstance(value, (str, bytes, bytearray)) or value is None:
        return Scalar(escape(value))

    if id(value) in _active:
        return Scalar(RECURSION_MARKER)
    active = _active | {id(value)}

    if not isinstance(value, (AbcMapping, list, tuple, AbcSet)):
        fields = _object_fields(value)
        if fields is None:
            return Scalar(escape(value))
        value = fields

    if isinstance(value, AbcMapping):
        return Mapping(tuple((escape(k), to_variant(v, active)) for k, v in value.items()))
    return Sequence(tuple(to_variant(item, active) for item in value))


def _build_node(key: str, variant: Variant) -> VariableNode:
    if isinstance(variant, Scalar):
        return VariableNode(key=key, value=variant.text)
    if isinstance(variant, Sequence):
        return VariableNode(
            key=key,
            children=[_build_node(str(i), item) for i, item in enumerate(variant.items)],
        )
    return VariableNode(key=key, children=[_build_node(k, v) for k, v in variant.entries])


def serialize_variable(container: list[VariableNode], key: Any, value: Any) -> VariableNode:
    """
    Appends the node for `value` under `key` to `container` and returns it.
    """
    node = _build_node(escape(key), to_variant(value))
    container.append(node)
    return node


def serialize_variables(
    data: AbcMapping[Any, Any] | Iterable[tuple[Any, Any]],
) -> list[VariableNode]:
    items = data.items() if isinstance(data, AbcMapping) else data
    nodes: list[VariableNode] = []
    for key, value in items:
        serialize_variable(nodes, key, value)
    return nodes
