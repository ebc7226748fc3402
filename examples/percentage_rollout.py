"""Percentage Rollout Example.

This example demonstrates gradual feature rollouts using datafile-flags:
- Traffic rules with percentage-based rollout
- Different percentages per segment (plan, country, app version)
- Experiments splitting users between variations
- Deterministic bucketing: the same user always gets the same answer

Percentages are expressed out of 100,000 so rollouts can be as fine as 0.001%.

To run this example:
    uvicorn examples.percentage_rollout:app --reload

Then visit:
    - http://localhost:8000/
    - http://localhost:8000/feature?user_id=user-123
    - http://localhost:8000/check-access?user_id=user-123&plan=premium
    - http://localhost:8000/rollout-status
    - http://localhost:8000/simulate?feature=new_search_algorithm
"""

from __future__ import annotations

from litestar import Litestar, get

from datafile_flags import FeatureFlagClient, FeatureFlagsConfig, FeatureFlagsPlugin


def _percent(value: float) -> int:
    return int(value * 1_000)


DATAFILE = {
    "schemaVersion": "2",
    "revision": "rollout-1",
    "segments": {
        "premium": {"key": "premium", "conditions": [{"attribute": "plan", "operator": "equals", "value": "premium"}]},
        "free": {"key": "free", "conditions": [{"attribute": "plan", "operator": "equals", "value": "free"}]},
        "canada": {"key": "canada", "conditions": [{"attribute": "country", "operator": "equals", "value": "CA"}]},
        "us": {"key": "us", "conditions": [{"attribute": "country", "operator": "equals", "value": "US"}]},
        "eu": {
            "key": "eu",
            "conditions": [{"attribute": "country", "operator": "in", "value": ["DE", "FR", "GB", "ES", "IT"]}],
        },
        "app_v2": {
            "key": "app_v2",
            "conditions": [{"attribute": "appVersion", "operator": "semverGreaterThanOrEquals", "value": "2.0.0"}],
        },
        "app_v1": {
            "key": "app_v1",
            "conditions": {
                "and": [
                    {"attribute": "appVersion", "operator": "semverGreaterThanOrEquals", "value": "1.0.0"},
                    {"attribute": "appVersion", "operator": "semverLessThan", "value": "2.0.0"},
                ]
            },
        },
        "employees": {
            "key": "employees",
            "conditions": [{"attribute": "email", "operator": "endsWith", "value": "@example.com"}],
        },
    },
    "features": {
        # 25% of all users
        "new_search_algorithm": {
            "key": "new_search_algorithm",
            "bucketBy": "userId",
            "traffic": [{"key": "everyone", "segments": "*", "percentage": _percent(25)}],
        },
        # All premium users, 10% of free users
        "advanced_analytics": {
            "key": "advanced_analytics",
            "bucketBy": "userId",
            "traffic": [
                {"key": "premium", "segments": ["premium"], "percentage": _percent(100)},
                {"key": "free", "segments": ["free"], "percentage": _percent(10)},
            ],
        },
        # Geographic rollout
        "new_payment_processor": {
            "key": "new_payment_processor",
            "bucketBy": "userId",
            "traffic": [
                {"key": "canada", "segments": ["canada"], "percentage": _percent(100)},
                {"key": "us", "segments": ["us"], "percentage": _percent(50)},
                {"key": "eu", "segments": ["eu"], "percentage": _percent(10)},
            ],
        },
        # Version-based rollout
        "new_ui_components": {
            "key": "new_ui_components",
            "bucketBy": "userId",
            "traffic": [
                {"key": "v2", "segments": ["app_v2"], "percentage": _percent(100)},
                {"key": "v1", "segments": ["app_v1"], "percentage": _percent(25)},
            ],
        },
        # Employees first, then a 1% public canary
        "experimental_feature": {
            "key": "experimental_feature",
            "bucketBy": "userId",
            "traffic": [
                {"key": "employees", "segments": ["employees"], "percentage": _percent(100)},
                {"key": "canary", "segments": "*", "percentage": _percent(1)},
            ],
        },
        # 50/50 experiment for users in the rollout
        "checkout_redesign": {
            "key": "checkout_redesign",
            "bucketBy": "userId",
            "variations": [{"value": "control"}, {"value": "treatment"}],
            "traffic": [
                {
                    "key": "everyone",
                    "segments": "*",
                    "percentage": _percent(100),
                    "allocation": [
                        {"variation": "control", "range": [0, _percent(50)]},
                        {"variation": "treatment", "range": [_percent(50), _percent(100)]},
                    ],
                }
            ],
        },
    },
}

config = FeatureFlagsConfig(datafile=DATAFILE)

ROLLOUT_FEATURES = [
    "new_search_algorithm",
    "advanced_analytics",
    "new_payment_processor",
    "new_ui_components",
    "experimental_feature",
]


# Route Handlers


@get("/")
async def index() -> dict:
    """List available endpoints and explain rollout concepts."""
    return {
        "message": "Percentage Rollout Example",
        "description": "Demonstrates gradual feature rollouts",
        "endpoints": {
            "/feature": "Check a feature with user_id",
            "/check-access": "Check feature access with full context",
            "/rollout-status": "See rollout configuration for all features",
            "/simulate": "Simulate rollout distribution",
        },
        "rollout_strategies": [
            "Simple percentage: X% of all users",
            "Segment-based: Different percentages per user segment",
            "Geographic: Rollout by country/region",
            "Version-based: Rollout by app version",
            "Internal first: Employees -> Public canary",
        ],
    }


@get("/feature")
async def check_feature(
    feature_flags: FeatureFlagClient,
    user_id: str = "anonymous",
) -> dict:
    """Check the simple percentage rollout feature.

    The same user will consistently be included or excluded
    from the rollout based on their user_id.

    Args:
        feature_flags: Injected feature flag client
        user_id: User identifier for consistent assignment

    Returns:
        Feature access status

    """
    evaluation = feature_flags.evaluate_flag("new_search_algorithm", {"userId": user_id})

    return {
        "user_id": user_id,
        "feature": "new_search_algorithm",
        "enabled": evaluation.enabled,
        "reason": str(evaluation.reason),
        "bucket_value": evaluation.bucket_value,
        "checkout_variation": feature_flags.get_variation("checkout_redesign", {"userId": user_id}),
        "note": "Try different user_ids - about 25% will have access",
    }


@get("/check-access")
async def check_access_with_context(
    feature_flags: FeatureFlagClient,
    user_id: str = "anonymous",
    plan: str = "free",
    country: str = "US",
    app_version: str = "1.0.0",
    email: str = "",
) -> dict:
    """Check feature access with full context attributes.

    Demonstrates how different context attributes select different
    traffic rules, and therefore different rollout percentages.

    Args:
        feature_flags: Injected feature flag client
        user_id: User identifier
        plan: User's subscription plan (free/premium)
        country: User's country code
        app_version: User's app version
        email: User's email address

    Returns:
        Access status for all rollout features

    """
    context = {
        "userId": user_id,
        "plan": plan,
        "country": country,
        "appVersion": app_version,
        "email": email,
    }

    results = {}
    for feature in ROLLOUT_FEATURES:
        evaluation = feature_flags.evaluate_flag(feature, context)
        results[feature] = {
            "enabled": evaluation.enabled,
            "reason": str(evaluation.reason),
            "matched_rule": evaluation.rule_key,
        }

    return {
        "user_context": context,
        "feature_access": results,
    }


@get("/rollout-status")
async def get_rollout_status(
    feature_flags: FeatureFlagClient,
) -> dict:
    """Get the rollout configuration of every feature in the datafile."""
    reader = feature_flags.datafile_reader

    rollout_info = {}
    for feature_key in reader.get_feature_keys():
        feature = reader.get_feature(feature_key)
        if feature is None:
            continue
        rollout_info[feature_key] = {
            "bucket_by": feature.bucket_by,
            "variations": [variation.value for variation in feature.variations],
            "rules": [
                {
                    "key": rule.key,
                    "rollout_percentage": rule.percentage / 1_000,
                    "allocation": {a.variation: list(a.range) for a in rule.allocation},
                }
                for rule in feature.traffic
            ],
        }

    return {
        "revision": feature_flags.get_revision(),
        "rollout_configurations": rollout_info,
    }


@get("/simulate")
async def simulate_rollout(
    feature_flags: FeatureFlagClient,
    feature: str = "new_search_algorithm",
    sample_size: int = 1000,
) -> dict:
    """Simulate rollout distribution across many users.

    Args:
        feature_flags: Injected feature flag client
        feature: Feature key to simulate
        sample_size: Number of simulated users

    Returns:
        Distribution statistics

    """
    enabled_count = sum(
        feature_flags.is_enabled(feature, {"userId": f"simulated-user-{i}"}) for i in range(sample_size)
    )
    enabled_percentage = round((enabled_count / sample_size) * 100, 2)

    return {
        "feature": feature,
        "sample_size": sample_size,
        "distribution": {
            "enabled": {"count": enabled_count, "percentage": enabled_percentage},
            "disabled": {"count": sample_size - enabled_count, "percentage": round(100 - enabled_percentage, 2)},
        },
    }


# Create the Litestar application
app = Litestar(
    route_handlers=[
        index,
        check_feature,
        check_access_with_context,
        get_rollout_status,
        simulate_rollout,
    ],
    plugins=[FeatureFlagsPlugin(config=config)],
    debug=True,
)


# Standalone rollout demo
def standalone_rollout_demo() -> None:
    """Demonstrate percentage rollout functionality directly."""
    print("\n--- Standalone Percentage Rollout Demo ---\n")

    client = FeatureFlagClient(datafile=DATAFILE)

    print("Testing 25% rollout across 1000 users:")
    print("-" * 50)

    enabled_count = 0
    sample_users = []

    for i in range(1000):
        user_id = f"user-{i:04d}"
        if client.is_enabled("new_search_algorithm", {"userId": user_id}):
            enabled_count += 1
            if len(sample_users) < 5:
                sample_users.append(user_id)

    percentage = (enabled_count / 1000) * 100
    print(f"Enabled: {enabled_count}/1000 ({percentage:.1f}%)")
    print("Expected: ~250/1000 (25%)")
    print(f"\nSample enabled users: {', '.join(sample_users)}")

    print("\n" + "-" * 50)
    print("Verifying consistency (same user, 5 evaluations):")

    for user_id in sample_users[:2]:
        results = [client.is_enabled("new_search_algorithm", {"userId": user_id}) for _ in range(5)]
        print(f"{user_id}: {results} (all same: {len(set(results)) == 1})")

    print("\nExperiment split across 1000 users:")
    variations = [client.get_variation("checkout_redesign", {"userId": f"user-{i:04d}"}) for i in range(1000)]
    for variation in ("control", "treatment"):
        print(f"  {variation}: {variations.count(variation)}")

    client.close()


if __name__ == "__main__":
    standalone_rollout_demo()
