"""Exception hierarchy for datafile-flags."""

from __future__ import annotations

from typing import Any

__all__ = [
    "ConfigurationError",
    "DatafileError",
    "FeatureFlagError",
    "InvalidBucketByError",
    "RequiredFeatureCycleError",
]


class FeatureFlagError(Exception):
    """Base class for all datafile-flags errors."""


class ConfigurationError(FeatureFlagError):
    """Raised when configuration is invalid."""


class DatafileError(ConfigurationError):
    """Raised when a datafile cannot be parsed or loaded."""


class InvalidBucketByError(ConfigurationError):
    """Raised when a feature's ``bucketBy`` has an unsupported shape.

    Args:
        feature_key: The feature whose configuration is invalid.
        bucket_by: The offending ``bucketBy`` value.
    """

    def __init__(self, feature_key: str, bucket_by: Any) -> None:
        self.feature_key = feature_key
        self.bucket_by = bucket_by
        super().__init__(f"invalid bucketBy for feature '{feature_key}': {bucket_by!r}")


class RequiredFeatureCycleError(FeatureFlagError):
    """Raised when required features reference each other in a cycle.

    Also raised when required features nest deeper than the evaluator allows.

    Args:
        chain: The feature keys being resolved, in order, ending with the offending key.
        message: Overrides the default message.
    """

    def __init__(self, chain: tuple[str, ...], message: str | None = None) -> None:
        self.chain = chain
        super().__init__(message or f"circular required features: {' -> '.join(chain)}")
