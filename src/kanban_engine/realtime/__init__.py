from .manager import (
    ChangeSource,
    SubscriptionManager,
    get_subscription_manager,
    init_subscription_manager,
    matches_filter,
    teardown_subscription_manager,
)

__all__ = [
    "ChangeSource",
    "SubscriptionManager",
    "get_subscription_manager",
    "init_subscription_manager",
    "matches_filter",
    "teardown_subscription_manager",
]
