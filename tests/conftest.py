"""Test fixtures for datafile-flags."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import pytest

from datafile_flags import DatafileReader, FeatureFlagClient, HooksManager

# -----------------------------------------------------------------------------
# pytest-asyncio Configuration
# -----------------------------------------------------------------------------
pytest_plugins = ["pytest_asyncio"]


def _make_datafile(
    features: dict[str, Any] | None = None,
    segments: dict[str, Any] | None = None,
    revision: str = "1.0",
) -> dict[str, Any]:
    return {
        "schemaVersion": "2",
        "revision": revision,
        "features": features or {},
        "segments": segments or {},
    }


# -----------------------------------------------------------------------------
# Segment Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def country_segments() -> dict[str, Any]:
    """Country segments, with conditions stored as JSON strings."""
    return {
        "netherlands": {
            "key": "netherlands",
            "conditions": json.dumps([{"attribute": "country", "operator": "equals", "value": "nl"}]),
        },
        "belgium": {
            "key": "belgium",
            "conditions": json.dumps([{"attribute": "country", "operator": "equals", "value": "be"}]),
        },
        "germany": {
            "key": "germany",
            "conditions": [{"attribute": "country", "operator": "equals", "value": "de"}],
        },
        "mobile": {
            "key": "mobile",
            "conditions": [{"attribute": "deviceType", "operator": "equals", "value": "mobile"}],
        },
    }


# -----------------------------------------------------------------------------
# Datafile Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def experiment_datafile(country_segments: dict[str, Any]) -> dict[str, Any]:
    """A datafile with an experiment exercising force rules, overrides and variables."""
    return _make_datafile(
        segments=country_segments,
        features={
            "test": {
                "key": "test",
                "bucketBy": "userId",
                "hash": "h1",
                "variablesSchema": {
                    "color": {"key": "color", "type": "string", "defaultValue": "red"},
                    "showSidebar": {"key": "showSidebar", "type": "boolean", "defaultValue": False},
                    "sidebarTitle": {"key": "sidebarTitle", "type": "string", "defaultValue": "sidebar title"},
                    "count": {"key": "count", "type": "integer", "defaultValue": 0},
                    "price": {"key": "price", "type": "double", "defaultValue": 9.99},
                    "paymentMethods": {
                        "key": "paymentMethods",
                        "type": "array",
                        "defaultValue": ["paypal", "creditcard"],
                    },
                    "flatConfig": {"key": "flatConfig", "type": "object", "defaultValue": {"key": "value"}},
                    "nestedConfig": {
                        "key": "nestedConfig",
                        "type": "json",
                        "defaultValue": json.dumps({"key": {"nested": "value"}}),
                    },
                },
                "variations": [
                    {"value": "control"},
                    {
                        "value": "treatment",
                        "variables": {"showSidebar": True, "sidebarTitle": "sidebar title from variation"},
                        "variableOverrides": {
                            "showSidebar": [
                                {"segments": ["netherlands"], "value": False},
                                {
                                    "conditions": [{"attribute": "country", "operator": "equals", "value": "de"}],
                                    "value": False,
                                },
                            ],
                            "sidebarTitle": [
                                {"segments": ["netherlands"], "value": "Dutch title"},
                                {
                                    "conditions": [{"attribute": "country", "operator": "equals", "value": "de"}],
                                    "value": "German title",
                                },
                            ],
                        },
                    },
                ],
                "force": [
                    {
                        "conditions": [{"attribute": "userId", "operator": "equals", "value": "user-ch"}],
                        "enabled": True,
                        "variation": "control",
                        "variables": {"color": "red and white"},
                    },
                    {
                        "conditions": [{"attribute": "userId", "operator": "equals", "value": "user-gb"}],
                        "enabled": False,
                    },
                    {
                        "conditions": [
                            {"attribute": "userId", "operator": "equals", "value": "user-forced-variation"}
                        ],
                        "enabled": True,
                        "variation": "treatment",
                    },
                ],
                "traffic": [
                    {
                        "key": "2",
                        "segments": ["belgium"],
                        "percentage": 100_000,
                        "allocation": [
                            {"variation": "control", "range": [0, 0]},
                            {"variation": "treatment", "range": [0, 100_000]},
                        ],
                        "variation": "control",
                        "variables": {"color": "black"},
                    },
                    {
                        "key": "1",
                        "segments": "*",
                        "percentage": 100_000,
                        "allocation": [
                            {"variation": "control", "range": [0, 0]},
                            {"variation": "treatment", "range": [0, 100_000]},
                        ],
                    },
                ],
            },
            "anotherTest": {
                "key": "anotherTest",
                "bucketBy": "userId",
                "hash": "h2",
                "traffic": [{"key": "1", "segments": "*", "percentage": 100_000}],
            },
        },
    )


@pytest.fixture
def reader(experiment_datafile: dict[str, Any]) -> DatafileReader:
    """Create a datafile reader over the experiment datafile."""
    return DatafileReader(experiment_datafile)


@pytest.fixture
def hooks_manager() -> HooksManager:
    """Create an empty hooks manager."""
    return HooksManager()


# -----------------------------------------------------------------------------
# Client Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def client(experiment_datafile: dict[str, Any]) -> FeatureFlagClient:
    """Create a feature flag client over the experiment datafile."""
    return FeatureFlagClient(datafile=experiment_datafile)


# -----------------------------------------------------------------------------
# Factory Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def make_datafile() -> Callable[..., dict[str, Any]]:
    """Return a factory for raw datafiles with sensible defaults."""
    return _make_datafile


@pytest.fixture
def everyone_rule() -> Callable[..., dict[str, Any]]:
    """Return a factory for traffic rules matching every context at 100%."""

    def factory(key: str = "1", **overrides: Any) -> dict[str, Any]:
        return {"key": key, "segments": "*", "percentage": 100_000, "allocation": [], **overrides}

    return factory
