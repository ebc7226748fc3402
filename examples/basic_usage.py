"""Basic Feature Flag Usage Example.

This example demonstrates the fundamental usage of datafile-flags:
- Setting up a Litestar application with the FeatureFlagsPlugin
- Serving features from an in-memory datafile
- Evaluating flags, variations and variables in route handlers
- Using the request's user as evaluation context

To run this example:
    uvicorn examples.basic_usage:app --reload

Then visit:
    - http://localhost:8000/
    - http://localhost:8000/feature?user_id=user-123
    - http://localhost:8000/all-features?user_id=user-123
    - http://localhost:8000/feature/welcome?user_id=user-123
"""

from __future__ import annotations

from litestar import Litestar, get

from datafile_flags import FeatureFlagClient, FeatureFlagsConfig, FeatureFlagsPlugin

# A datafile is normally built by a separate tool and loaded from disk or a CDN.
DATAFILE = {
    "schemaVersion": "2",
    "revision": "1",
    "segments": {},
    "features": {
        # Enabled for everyone
        "dark_mode": {
            "key": "dark_mode",
            "bucketBy": "userId",
            "traffic": [{"key": "everyone", "segments": "*", "percentage": 100_000}],
        },
        # Matched by everyone, rolled out to nobody yet
        "beta_feature": {
            "key": "beta_feature",
            "bucketBy": "userId",
            "traffic": [{"key": "everyone", "segments": "*", "percentage": 0}],
        },
        # A variable with a default value
        "welcome": {
            "key": "welcome",
            "bucketBy": "userId",
            "variablesSchema": {
                "message": {"key": "message", "type": "string", "defaultValue": "Welcome to our application!"},
            },
            "traffic": [{"key": "everyone", "segments": "*", "percentage": 100_000}],
        },
    },
}

config = FeatureFlagsConfig(datafile=DATAFILE)


# Route Handlers


@get("/")
async def index() -> dict:
    """Root endpoint with basic information."""
    return {
        "message": "Litestar Feature Flags Example",
        "endpoints": {
            "/feature": "Check feature status for a user",
            "/all-features": "Evaluate every feature in the datafile",
            "/feature/{feature_key}": "Get evaluation details for one feature",
        },
    }


@get("/feature")
async def check_feature(
    feature_flags: FeatureFlagClient,
    user_id: str | None = None,
) -> dict:
    """Check the status of feature flags.

    Args:
        feature_flags: Injected feature flag client
        user_id: Optional user ID used for bucketing

    Returns:
        Dictionary with flag evaluation results

    """
    context = {"userId": user_id} if user_id else {}

    return {
        "user_id": user_id,
        "flags": {
            "dark_mode": feature_flags.is_enabled("dark_mode", context),
            "beta_feature": feature_flags.is_enabled("beta_feature", context),
        },
        "welcome_message": feature_flags.get_variable_string("welcome", "message", context),
    }


@get("/all-features")
async def get_all_features(
    feature_flags: FeatureFlagClient,
    user_id: str | None = None,
) -> dict:
    """Evaluate all features at once.

    Useful for initial page loads or client-side flag synchronization.
    """
    context = {"userId": user_id} if user_id else {}

    return {
        "user_id": user_id,
        "revision": feature_flags.get_revision(),
        "features": feature_flags.get_all_evaluations(context),
    }


@get("/feature/{feature_key:str}")
async def get_feature_details(
    feature_key: str,
    feature_flags: FeatureFlagClient,
    user_id: str | None = None,
) -> dict:
    """Get the evaluation details of a single feature.

    The evaluation reports why a feature is enabled or disabled, which rule
    matched and which bucket the user fell into.
    """
    context = {"userId": user_id} if user_id else {}
    evaluation = feature_flags.evaluate_flag(feature_key, context)

    return {
        "feature_key": feature_key,
        "enabled": evaluation.enabled,
        "reason": str(evaluation.reason),
        "rule_key": evaluation.rule_key,
        "bucket_value": evaluation.bucket_value,
    }


# Create the Litestar application with the plugin
app = Litestar(
    route_handlers=[
        index,
        check_feature,
        get_all_features,
        get_feature_details,
    ],
    plugins=[FeatureFlagsPlugin(config=config)],
    debug=True,
)


# Standalone demonstration (runs without Litestar server)
def standalone_demo() -> None:
    """Demonstrate using the FeatureFlagClient directly without Litestar.

    This is useful for:
    - Background jobs
    - CLI applications
    - Scripts
    """
    print("\n--- Standalone Feature Flags Demo ---\n")

    client = FeatureFlagClient(datafile=DATAFILE, context={"userId": "user-123"})

    print(f"Feature 'dark_mode' is enabled: {client.is_enabled('dark_mode')}")
    print(f"Evaluation reason: {client.evaluate_flag('dark_mode').reason}")
    print(f"Welcome message: {client.get_variable('welcome', 'message')}")

    # Unknown features are disabled
    print(f"Non-existent feature is enabled: {client.is_enabled('non_existent_feature')}")

    # A child client carries its own context
    child = client.spawn({"userId": "user-456"})
    print(f"Child context: {child.get_context()}")

    client.close()


if __name__ == "__main__":
    standalone_demo()
