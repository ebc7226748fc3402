"""Deterministic bucketing of contexts into rollout percentiles."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from datafile_flags.conditions import get_value_from_context, stringify_value
from datafile_flags.exceptions import InvalidBucketByError
from datafile_flags.murmurhash import murmur3_32

__all__ = [
    "DEFAULT_BUCKET_KEY_SEPARATOR",
    "HASH_SEED",
    "MAX_BUCKETED_NUMBER",
    "MAX_HASH_VALUE",
    "get_bucket_key",
    "get_bucketed_number",
]

logger = logging.getLogger(__name__)

# 100% with three decimal places of precision
MAX_BUCKETED_NUMBER = 100_000

HASH_SEED = 1

MAX_HASH_VALUE = 2**32

DEFAULT_BUCKET_KEY_SEPARATOR = "."


def get_bucketed_number(bucket_key: str) -> int:
    """Hash a bucket key into the range ``[0, MAX_BUCKETED_NUMBER)``.

    Args:
        bucket_key: The key to hash.

    Returns:
        The bucket value.
    """
    hash_value = murmur3_32(bucket_key.encode("utf-8"), seed=HASH_SEED)
    ratio = hash_value / MAX_HASH_VALUE
    return int(ratio * MAX_BUCKETED_NUMBER)


def _parse_bucket_by(feature_key: str, bucket_by: Any) -> tuple[str, list[str]]:
    if isinstance(bucket_by, str):
        return "plain", [bucket_by]
    if isinstance(bucket_by, list | tuple):
        return "and", list(bucket_by)
    if isinstance(bucket_by, Mapping) and isinstance(bucket_by.get("or"), list | tuple):
        return "or", list(bucket_by["or"])

    logger.error("invalid bucketBy", extra={"feature_key": feature_key, "bucket_by": bucket_by})
    raise InvalidBucketByError(feature_key, bucket_by)


def get_bucket_key(feature_key: str, bucket_by: Any, context: Mapping[str, Any]) -> str:
    """Build the string that is hashed to bucket a context for a feature.

    ``bucket_by`` can be:

    - a string: that attribute's value (if present) followed by the feature key
    - a list: every present attribute's value, in order, followed by the feature key
    - ``{"or": [...]}``: the first present attribute's value followed by the feature key

    Args:
        feature_key: Key of the feature being evaluated.
        bucket_by: The feature's ``bucketBy`` value.
        context: The evaluation context.

    Returns:
        The values joined with ``"."``.

    Raises:
        InvalidBucketByError: If ``bucket_by`` has none of the shapes above.
    """
    kind, attribute_keys = _parse_bucket_by(feature_key, bucket_by)

    parts: list[str] = []
    for attribute_key in attribute_keys:
        attribute_value = get_value_from_context(context, attribute_key)
        if attribute_value is None:
            continue

        if kind == "or" and parts:
            break
        parts.append(stringify_value(attribute_value))

    parts.append(feature_key)
    return DEFAULT_BUCKET_KEY_SEPARATOR.join(parts)
