"""Datafile model."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from datafile_flags.exceptions import DatafileError
from datafile_flags.models.feature import Feature
from datafile_flags.models.segment import Segment

__all__ = ["EMPTY_DATAFILE", "Datafile"]

EMPTY_DATAFILE: dict[str, Any] = {
    "schemaVersion": "2",
    "revision": "unknown",
    "segments": {},
    "features": {},
}


@dataclass(frozen=True, slots=True)
class Datafile:
    """An immutable, parsed datafile snapshot.

    Attributes:
        schema_version: Datafile schema version.
        revision: Revision identifier of this datafile.
        segments: Segments keyed by segment key.
        features: Features keyed by feature key.
    """

    schema_version: str
    revision: str
    segments: dict[str, Segment] = field(default_factory=dict)
    features: dict[str, Feature] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Datafile:
        """Parse a datafile from its JSON representation.

        Args:
            data: The decoded JSON document.

        Returns:
            The parsed datafile.

        Raises:
            DatafileError: If the document does not have the datafile shape.
        """
        if not isinstance(data, Mapping):
            msg = "Datafile must be a JSON object"
            raise DatafileError(msg)

        raw_segments = data.get("segments") or {}
        raw_features = data.get("features") or {}
        if not isinstance(raw_segments, Mapping):
            msg = "'segments' must be an object"
            raise DatafileError(msg)
        if not isinstance(raw_features, Mapping):
            msg = "'features' must be an object"
            raise DatafileError(msg)

        try:
            segments = {key: Segment.from_dict(key, raw) for key, raw in raw_segments.items()}
            features = {key: Feature.from_dict(key, raw) for key, raw in raw_features.items()}
        except DatafileError:
            raise
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            msg = f"Malformed datafile: {e!r}"
            raise DatafileError(msg) from e

        return cls(
            schema_version=str(data.get("schemaVersion", "2")),
            revision=str(data.get("revision", "unknown")),
            segments=segments,
            features=features,
        )
