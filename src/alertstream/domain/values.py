"""Immutable value objects carried by commands, events and state."""

from __future__ import annotations

import copy
import uuid
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


def _freeze(value: Any) -> Any:
    """Hashable view of nested containers; equal values freeze equally."""
    if isinstance(value, Mapping):
        return frozenset((k, _freeze(v)) for k, v in value.items())
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    if isinstance(value, (set, frozenset)):
        return frozenset(_freeze(v) for v in value)
    return value


@dataclass(frozen=True, eq=False)
class AlertDetails(Mapping[str, Any]):
    """Free-form key/value bag attached to an alert.

    The mapping is deep-copied on construction so later mutation of the
    caller's dict cannot leak into events or state.  ``None`` becomes an
    empty bag.
    """

    properties: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "properties", copy.deepcopy(dict(self.properties or {})),
        )

    def __getitem__(self, key: str) -> Any:
        return self.properties[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.properties)

    def __len__(self) -> int:
        return len(self.properties)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, AlertDetails):
            return self.properties == other.properties
        if isinstance(other, Mapping):
            return self.properties == dict(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(_freeze(self.properties))

    def to_dict(self) -> dict[str, Any]:
        """Return a mutable deep copy."""
        return copy.deepcopy(dict(self.properties))


@dataclass(frozen=True)
class AlertNote:
    """One entry of an alert's append-only note log."""

    note_id: uuid.UUID
    text: str
    author: str
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "noteId": str(self.note_id),
            "text": self.text,
            "author": self.author,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> AlertNote:
        ts = d["timestamp"]
        return cls(
            note_id=uuid.UUID(str(d["noteId"])),
            text=d["text"],
            author=d["author"],
            timestamp=datetime.fromisoformat(ts) if isinstance(ts, str) else ts,
        )
