"""Litestar plugin for datafile-flags."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from litestar.datastructures import State
from litestar.di import Provide
from litestar.plugins import InitPluginProtocol

from datafile_flags.client import FeatureFlagClient
from datafile_flags.config import FeatureFlagsConfig
from datafile_flags.loader import DatafileLoader

if TYPE_CHECKING:
    from litestar import Litestar
    from litestar.config.app import AppConfig

__all__ = ["FeatureFlagsPlugin"]

logger = logging.getLogger(__name__)


class FeatureFlagsPlugin(InitPluginProtocol):
    """Litestar plugin that provides a :class:`FeatureFlagClient`.

    On startup the configured datafile is loaded into a client, which is
    stored in ``app.state`` and injected into route handlers under
    ``config.client_dependency_key``. On shutdown the client is closed.

    Example::

        app = Litestar(
            route_handlers=[...],
            plugins=[FeatureFlagsPlugin(FeatureFlagsConfig(datafile=Path("datafile.json")))],
        )

        @get("/")
        async def index(feature_flags: FeatureFlagClient) -> dict:
            return {"checkout": feature_flags.is_enabled("checkout", {"userId": "123"})}
    """

    __slots__ = ("_client", "_config")

    def __init__(self, config: FeatureFlagsConfig | None = None) -> None:
        self._config = config or FeatureFlagsConfig()
        self._client: FeatureFlagClient | None = None

    @property
    def config(self) -> FeatureFlagsConfig:
        return self._config

    @property
    def client(self) -> FeatureFlagClient | None:
        """The client, available between startup and shutdown."""
        return self._client

    def on_app_init(self, app_config: AppConfig) -> AppConfig:
        """Register lifecycle hooks and the client dependency.

        Args:
            app_config: The application configuration.

        Returns:
            The modified application configuration.
        """
        state_key = self._config.state_key

        def provide_client(state: State) -> FeatureFlagClient:
            return state[state_key]

        app_config.dependencies[self._config.client_dependency_key] = Provide(provide_client, sync_to_thread=False)
        app_config.signature_namespace.update({"FeatureFlagClient": FeatureFlagClient})
        app_config.on_startup.append(self._on_startup)
        app_config.on_shutdown.append(self._on_shutdown)
        return app_config

    def _create_client(self) -> FeatureFlagClient:
        datafile = DatafileLoader().load(self._config.datafile, fallback_on_error=self._config.fallback_on_error)
        return FeatureFlagClient(
            datafile=datafile,
            context=self._config.context,
            sticky=self._config.sticky,
            hooks=self._config.hooks,
        )

    async def _on_startup(self, app: Litestar) -> None:
        self._client = self._create_client()
        app.state[self._config.state_key] = self._client
        logger.info(
            "feature flags plugin started",
            extra={"revision": self._client.get_revision(), "state_key": self._config.state_key},
        )

    async def _on_shutdown(self, app: Litestar) -> None:
        if self._client is not None:
            self._client.close()
        app.state.pop(self._config.state_key, None)
        self._client = None
