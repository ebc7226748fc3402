"""Segment model."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from datafile_flags.exceptions import DatafileError
from datafile_flags.models.conditions import ConditionTree, parse_conditions

__all__ = ["Segment"]


@dataclass(frozen=True, slots=True)
class Segment:
    """A named, reusable predicate over the evaluation context.

    Attributes:
        key: Unique segment key.
        conditions: Parsed condition tree.
        description: Optional human readable description.
        archived: Whether the segment is archived in its source project.
    """

    key: str
    conditions: ConditionTree
    description: str | None = None
    archived: bool = False

    @classmethod
    def from_dict(cls, key: str, data: Mapping[str, Any]) -> Segment:
        """Build a segment from its datafile representation.

        ``conditions`` may be a JSON-encoded string.

        Raises:
            DatafileError: If the segment is not an object.
        """
        if not isinstance(data, Mapping):
            msg = f"segment '{key}' must be an object"
            raise DatafileError(msg)

        return cls(
            key=data.get("key", key),
            conditions=parse_conditions(data.get("conditions")),
            description=data.get("description"),
            archived=bool(data.get("archived", False)),
        )
