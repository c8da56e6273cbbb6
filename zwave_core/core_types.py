"""Small stable types shared across zwave_core.

Addresses, the tagged scalar ``Value`` and the event/message records that
flow through the dispatch queue. Kept free of local imports to avoid cycles.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, NamedTuple

# ---------------------------
# Simple aliases (stable)
# ---------------------------
# Scalar: what the mesh transport accepts and reports (bool|int|float|str)
Scalar = bool | int | float | str

ON = "ON"
OFF = "OFF"

_INT_LITERAL = re.compile(r"^[+-]?\d+$")


class DeviceAddress(NamedTuple):
    """One scalar value on the mesh: (node, command class, instance, index)."""

    node_id: int
    command_class: int
    instance: int
    index: int | str

    def __str__(self) -> str:
        return f"{self.node_id}-{self.command_class}-{self.instance}-{self.index}"


class ValueKind(str, Enum):
    BOOL = "bool"
    NUMBER = "number"
    TEXT = "text"


def _comparable(kind: ValueKind, raw: Scalar) -> Any:
    if kind is ValueKind.BOOL:
        return int(bool(raw))
    if kind is ValueKind.NUMBER:
        return raw
    text = str(raw).strip()
    try:
        return float(text)
    except ValueError:
        return str(raw)


@dataclass(frozen=True)
class Value:
    """Tagged scalar crossing the bridge: ``Bool | Number | Text``."""

    kind: ValueKind
    raw: Scalar

    @classmethod
    def from_mesh(cls, type_name: str | None, raw: Any) -> Value:
        """Classify a reported mesh value using its declared type first."""
        if (type_name or "").lower() in ("bool", "boolean") or isinstance(raw, bool):
            return cls(ValueKind.BOOL, bool(raw))
        if isinstance(raw, (int, float)):
            return cls(ValueKind.NUMBER, raw)
        return cls(ValueKind.TEXT, "" if raw is None else str(raw))

    @classmethod
    def from_payload(cls, payload: str) -> Value:
        """Parse a ``/set`` payload: ON, OFF, an integer literal, else text."""
        if payload == ON:
            return cls(ValueKind.BOOL, True)
        if payload == OFF:
            return cls(ValueKind.BOOL, False)
        if _INT_LITERAL.match(payload.strip()):
            return cls(ValueKind.NUMBER, int(payload.strip()))
        return cls(ValueKind.TEXT, payload)

    @property
    def command_value(self) -> Scalar:
        """Value handed to the mesh ``set_value`` command (booleans as 1/0)."""
        if self.kind is ValueKind.BOOL:
            return 1 if self.raw else 0
        return self.raw

    def to_payload(self) -> str:
        """Render as the plain-text ``/state`` payload."""
        if self.kind is ValueKind.BOOL:
            return ON if self.raw else OFF
        if isinstance(self.raw, float) and self.raw.is_integer():
            return str(int(self.raw))
        return str(self.raw)

    def matches(self, other: Value) -> bool:
        """Loose scalar equality: bools as 0/1, numeric text as numbers."""
        return _comparable(self.kind, self.raw) == _comparable(other.kind, other.raw)


# ---------------------------
# Queue items
# ---------------------------
@dataclass(frozen=True)
class MeshValue:
    """Value payload of a mesh event."""

    instance: int
    index: int | str
    type: str | None
    value: Any


@dataclass(frozen=True)
class MeshValueEvent:
    """``value added`` / ``value updated`` from the mesh transport."""

    node_id: int
    command_class: int
    value: MeshValue
    kind: str = "value updated"

    @property
    def address(self) -> DeviceAddress:
        return DeviceAddress(
            self.node_id, self.command_class, self.value.instance, self.value.index
        )


@dataclass(frozen=True)
class BrokerMessage:
    """Inbound MQTT message handed over from the network thread."""

    topic: str
    payload: bytes = field(repr=False)
    retain: bool = False


__all__ = [
    "OFF",
    "ON",
    "BrokerMessage",
    "DeviceAddress",
    "MeshValue",
    "MeshValueEvent",
    "Scalar",
    "Value",
    "ValueKind",
]
