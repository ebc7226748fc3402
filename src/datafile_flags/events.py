"""Change detection for datafile and sticky updates."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from datafile_flags.datafile_reader import DatafileReader

__all__ = [
    "DatafileSetDetails",
    "StickySetDetails",
    "get_params_for_datafile_set_event",
    "get_params_for_sticky_set_event",
]


@dataclass(frozen=True, slots=True)
class DatafileSetDetails:
    """Payload of the ``datafile_set`` event.

    Attributes:
        revision: Revision of the new datafile.
        previous_revision: Revision of the replaced datafile.
        revision_changed: Whether the two revisions differ.
        features: Keys of removed, changed and added features, in that order.
    """

    revision: str
    previous_revision: str
    revision_changed: bool
    features: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class StickySetDetails:
    """Payload of the ``sticky_set`` event.

    Attributes:
        features: Keys present in the previous or the new sticky overrides.
        replaced: Whether the new overrides replaced the old ones instead of being merged.
    """

    features: list[str] = field(default_factory=list)
    replaced: bool = False


def get_params_for_sticky_set_event(
    previous_sticky: Mapping[str, Any] | None,
    new_sticky: Mapping[str, Any] | None,
    replace: bool = False,
) -> StickySetDetails:
    keys = dict.fromkeys([*(previous_sticky or {}), *(new_sticky or {})])
    return StickySetDetails(features=list(keys), replaced=replace)


def get_params_for_datafile_set_event(
    previous_reader: DatafileReader,
    new_reader: DatafileReader,
) -> DatafileSetDetails:
    """Diff two datafile snapshots.

    A feature counts as changed when it exists in both snapshots with a
    different ``hash``.

    Args:
        previous_reader: The datafile being replaced.
        new_reader: The datafile replacing it.

    Returns:
        The event payload.
    """
    previous_revision = previous_reader.get_revision()
    new_revision = new_reader.get_revision()

    previous_keys = previous_reader.get_feature_keys()
    new_keys = new_reader.get_feature_keys()
    new_key_set = set(new_keys)
    previous_key_set = set(previous_keys)

    removed: list[str] = []
    changed: list[str] = []
    for key in previous_keys:
        if key not in new_key_set:
            removed.append(key)
            continue

        previous_feature = previous_reader.get_feature(key)
        new_feature = new_reader.get_feature(key)
        if previous_feature is not None and new_feature is not None and previous_feature.hash != new_feature.hash:
            changed.append(key)

    added = [key for key in new_keys if key not in previous_key_set]

    return DatafileSetDetails(
        revision=new_revision,
        previous_revision=previous_revision,
        revision_changed=previous_revision != new_revision,
        features=list(dict.fromkeys([*removed, *changed, *added])),
    )
