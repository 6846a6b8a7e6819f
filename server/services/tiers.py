"""Subscription tier limits.

Per-module record limits live in an explicit table keyed by ``Module``;
nothing is looked up through string-built attribute names.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, Mapping, Optional


class Tier(str, Enum):
    BETA = "beta"
    PROFESSIONAL = "professional"
    ENTERPRISE = "enterprise"


class Module(str, Enum):
    ANIMALS = "animals"
    HEALTH_RECORDS = "healthRecords"
    FINANCIAL_RECORDS = "financialRecords"
    FEEDING_RECORDS = "feedingRecords"
    BREEDING_RECORDS = "breedingRecords"
    RFID_RECORDS = "rfidRecords"
    TASKS = "tasks"
    NOTIFICATIONS = "notifications"


_RECORD_MODULES = ("animals", "health", "financial", "feed", "breeding", "rfid", "tasks")


def _features(*actions: str, extra: tuple = ()) -> FrozenSet[str]:
    granted = {f"{module}:{action}" for module in _RECORD_MODULES for action in actions}
    return frozenset(granted) | frozenset(extra)


@dataclass(frozen=True)
class TierLimits:
    tier: Tier
    records: Mapping[Module, int]
    max_users: int
    features: FrozenSet[str] = field(default_factory=frozenset)
    trial_days: int = 0

    def limit_for(self, module: Module) -> int:
        return self.records[module]


def _uniform(limit: int) -> Dict[Module, int]:
    return {module: limit for module in Module}


TIER_LIMITS: Dict[Tier, TierLimits] = {
    Tier.BETA: TierLimits(
        tier=Tier.BETA,
        records=_uniform(50),
        max_users=1,
        features=_features("read", extra=("notifications:read",)),
        trial_days=30,
    ),
    Tier.PROFESSIONAL: TierLimits(
        tier=Tier.PROFESSIONAL,
        records=_uniform(500),
        max_users=5,
        features=_features("read", "write", extra=(
            "notifications:read", "analytics:read", "reports:export",
        )),
    ),
    Tier.ENTERPRISE: TierLimits(
        tier=Tier.ENTERPRISE,
        records=_uniform(10000),
        max_users=100,
        features=_features("read", "write", "delete", extra=(
            "notifications:read", "notifications:write",
            "analytics:read", "analytics:write", "reports:export",
            "api:access", "webhooks:access", "custom:integrations",
        )),
    ),
}


@dataclass(frozen=True)
class LimitCheck:
    allowed: bool
    limit: int
    current: int
    message: Optional[str] = None


@dataclass(frozen=True)
class ModuleUsage:
    current: int
    limit: int
    percentage: int


def get_tier_limits(tier: Tier) -> TierLimits:
    return TIER_LIMITS[tier]


def check_record_limit(tier: Tier, module: Module, current_count: int) -> LimitCheck:
    limit = TIER_LIMITS[tier].limit_for(module)
    if current_count >= limit:
        return LimitCheck(
            allowed=False,
            limit=limit,
            current=current_count,
            message=(
                f"You have reached the {module.value} limit for your {tier.value} tier "
                f"({limit} records). Please upgrade to add more records."
            ),
        )
    return LimitCheck(allowed=True, limit=limit, current=current_count)


def record_usage(tier: Tier, counts: Mapping[Module, int]) -> Dict[Module, ModuleUsage]:
    """Usage per module; modules missing from ``counts`` report zero."""
    limits = TIER_LIMITS[tier]
    usage = {}
    for module in Module:
        current = counts.get(module, 0)
        limit = limits.limit_for(module)
        usage[module] = ModuleUsage(current=current, limit=limit,
                                    percentage=round(current / limit * 100))
    return usage


def has_feature_access(tier: Tier, feature: str) -> bool:
    return feature in TIER_LIMITS[tier].features


def trial_days_remaining(trial_end: datetime, now: Optional[datetime] = None) -> int:
    now = now or datetime.now(timezone.utc)
    days = math.ceil((trial_end - now).total_seconds() / 86400)
    return max(0, days)


def is_trial_expired(trial_end: datetime, now: Optional[datetime] = None) -> bool:
    now = now or datetime.now(timezone.utc)
    return now > trial_end
