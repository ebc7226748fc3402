"""datafile-flags: deterministic feature flag evaluation against datafiles.

Example::

    from litestar import Litestar, get

    from datafile_flags import FeatureFlagClient, FeatureFlagsConfig, FeatureFlagsPlugin

    @get("/")
    async def index(feature_flags: FeatureFlagClient) -> dict:
        return {"checkout": feature_flags.is_enabled("checkout", {"userId": "123"})}

    app = Litestar(
        route_handlers=[index],
        plugins=[FeatureFlagsPlugin(FeatureFlagsConfig(datafile="datafile.json"))],
    )
"""

from __future__ import annotations

from datafile_flags.bucketer import MAX_BUCKETED_NUMBER, get_bucket_key, get_bucketed_number
from datafile_flags.client import ChildClient, EvaluationOverrides, FeatureFlagClient
from datafile_flags.config import FeatureFlagsConfig
from datafile_flags.datafile_reader import DatafileReader, MatchedForce
from datafile_flags.emitter import Emitter, EventName
from datafile_flags.evaluate import EvaluateOptions, evaluate, evaluate_with_hooks
from datafile_flags.events import DatafileSetDetails, StickySetDetails
from datafile_flags.exceptions import (
    ConfigurationError,
    DatafileError,
    FeatureFlagError,
    InvalidBucketByError,
    RequiredFeatureCycleError,
)
from datafile_flags.hooks import BucketKeyHookOptions, BucketValueHookOptions, Hook, HooksManager
from datafile_flags.loader import DatafileLoader
from datafile_flags.models import Datafile, Feature, Segment
from datafile_flags.plugin import FeatureFlagsPlugin
from datafile_flags.results import Evaluation
from datafile_flags.types import ConditionOperator, EvaluationReason, EvaluationType, VariableType
from datafile_flags.variables import convert_variable_value

__version__ = "0.1.0"

__all__ = [
    "MAX_BUCKETED_NUMBER",
    "BucketKeyHookOptions",
    "BucketValueHookOptions",
    "ChildClient",
    "ConditionOperator",
    "ConfigurationError",
    "Datafile",
    "DatafileError",
    "DatafileLoader",
    "DatafileReader",
    "DatafileSetDetails",
    "Emitter",
    "EvaluateOptions",
    "Evaluation",
    "EvaluationOverrides",
    "EvaluationReason",
    "EvaluationType",
    "EventName",
    "Feature",
    "FeatureFlagClient",
    "FeatureFlagError",
    "FeatureFlagsConfig",
    "FeatureFlagsPlugin",
    "Hook",
    "HooksManager",
    "InvalidBucketByError",
    "MatchedForce",
    "RequiredFeatureCycleError",
    "Segment",
    "StickySetDetails",
    "VariableType",
    "__version__",
    "convert_variable_value",
    "evaluate",
    "evaluate_with_hooks",
    "get_bucket_key",
    "get_bucketed_number",
]
