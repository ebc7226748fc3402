"""Configuration for the feature flags plugin."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from datafile_flags.exceptions import ConfigurationError
from datafile_flags.hooks import Hook
from datafile_flags.models import Datafile

if TYPE_CHECKING:
    from datafile_flags.loader import DatafileSource

__all__ = ["FeatureFlagsConfig"]


@dataclass
class FeatureFlagsConfig:
    """Configuration for :class:`~datafile_flags.plugin.FeatureFlagsPlugin`.

    Attributes:
        datafile: Datafile to load on startup: a mapping, a JSON string, a
            path, or a parsed datafile. ``None`` starts with an empty datafile.
        context: Default context applied to every evaluation.
        sticky: Sticky overrides applied to every evaluation.
        hooks: Hooks registered on the client.
        client_dependency_key: Name under which the client is injected into
            route handlers.
        state_key: Key under which the client is stored in ``app.state``.
        fallback_on_error: Start with an empty datafile when the configured
            one cannot be loaded, instead of failing startup.

    Example::

        config = FeatureFlagsConfig(
            datafile=Path("datafile.json"),
            context={"platform": "web"},
        )
    """

    datafile: DatafileSource | None = None
    context: dict[str, Any] = field(default_factory=dict)
    sticky: dict[str, Any] = field(default_factory=dict)
    hooks: list[Hook] = field(default_factory=list)
    client_dependency_key: str = "feature_flags"
    state_key: str = "feature_flags"
    fallback_on_error: bool = False

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not self.client_dependency_key.isidentifier():
            msg = f"client_dependency_key must be a valid identifier, got {self.client_dependency_key!r}"
            raise ConfigurationError(msg)

        if not self.state_key:
            msg = "state_key must not be empty"
            raise ConfigurationError(msg)

        if self.datafile is not None and not isinstance(self.datafile, Mapping | str | Path | Datafile):
            msg = f"datafile must be a mapping, JSON string, path or Datafile, got {type(self.datafile).__name__}"
            raise ConfigurationError(msg)

        if not isinstance(self.context, Mapping):
            msg = "context must be a mapping"
            raise ConfigurationError(msg)

        if not isinstance(self.sticky, Mapping):
            msg = "sticky must be a mapping"
            raise ConfigurationError(msg)

        for hook in self.hooks:
            if not isinstance(hook, Hook):
                msg = f"hooks must be Hook instances, got {type(hook).__name__}"
                raise ConfigurationError(msg)
