"""
Subscription Plans

Plans are managed in the `subscription_plans` table. The defaults below are
used for any plan (or limit key) the table does not define. A limit of -1
means unlimited.
"""

import logging
import threading
import time
from copy import deepcopy
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sevencore.settings import get_settings
from seven_commerce.persistence.models import SubscriptionPlan

logger = logging.getLogger(__name__)

UNLIMITED = -1
DEFAULT_PLAN = "free"

_ALL_MODELS = ["gemini-1.5-flash", "gemini-1.5-pro", "gpt-4o-mini", "gpt-4o"]

DEFAULT_PLANS: dict[str, dict[str, Any]] = {
    "free": {
        "display_name": "Gratuit",
        "description": "Découvrir la plateforme (sans WhatsApp)",
        "price": 0,
        "limits": {
            "agents": 1,
            "whatsapp_accounts": 0,
            "messages_per_month": 100,
            "credits_per_month": 100,
        },
        "features": {"models": ["gemini-1.5-flash"], "auto_reply": True, "analytics": False},
    },
    "starter": {
        "display_name": "Starter",
        "description": "Pour démarrer avec un numéro WhatsApp",
        "price": 15000,
        "limits": {
            "agents": 1,
            "whatsapp_accounts": 1,
            "messages_per_month": 1500,
            "credits_per_month": 1500,
        },
        "features": {
            "models": ["gemini-1.5-flash", "gpt-4o-mini"],
            "auto_reply": True,
            "analytics": True,
        },
    },
    "pro": {
        "display_name": "Pro",
        "description": "Pour les entreprises en croissance",
        "price": 35000,
        "limits": {
            "agents": 2,
            "whatsapp_accounts": 2,
            "messages_per_month": 5000,
            "credits_per_month": 5000,
        },
        "features": {
            "models": list(_ALL_MODELS),
            "auto_reply": True,
            "analytics": True,
            "human_transfer": True,
        },
    },
    "business": {
        "display_name": "Business",
        "description": "Pour les grandes équipes",
        "price": 99000,
        "limits": {
            "agents": 4,
            "whatsapp_accounts": 4,
            "messages_per_month": 20000,
            "credits_per_month": 20000,
        },
        "features": {
            "models": list(_ALL_MODELS),
            "auto_reply": True,
            "analytics": True,
            "human_transfer": True,
            "api_access": True,
        },
    },
    "enterprise": {
        "display_name": "Enterprise",
        "description": "Solution sur mesure",
        "price": UNLIMITED,
        "limits": {
            "agents": UNLIMITED,
            "whatsapp_accounts": UNLIMITED,
            "messages_per_month": UNLIMITED,
            "credits_per_month": UNLIMITED,
        },
        "features": {
            "models": list(_ALL_MODELS),
            "auto_reply": True,
            "analytics": True,
            "human_transfer": True,
            "api_access": True,
        },
    },
}


@dataclass
class Plan:
    name: str
    display_name: str
    description: str | None = None
    price: Decimal = Decimal("0")
    price_currency: str = "XOF"
    limits: dict[str, Any] = field(default_factory=dict)
    features: dict[str, Any] = field(default_factory=dict)

    @property
    def credits_per_month(self) -> int:
        return int(self.limits.get("credits_per_month", 0))

    @property
    def is_unlimited(self) -> bool:
        return self.credits_per_month == UNLIMITED

    @property
    def models(self) -> list[str]:
        return list(self.features.get("models", []))


def _default_plan(name: str) -> Plan:
    data = DEFAULT_PLANS[name]
    return Plan(
        name=name,
        display_name=data["display_name"],
        description=data["description"],
        price=Decimal(str(data["price"])),
        limits=deepcopy(data["limits"]),
        features=deepcopy(data["features"]),
    )


class PlanCatalog:
    """
    Plan lookup backed by `subscription_plans` with a process-wide cache.

    Database limits and features are layered over the defaults of the plan
    with the same name.
    """

    _cache: dict[str, Plan] | None = None
    _cache_time: float = 0.0
    _lock = threading.Lock()

    def __init__(self, db: Session, ttl: int | None = None):
        self.db = db
        self.ttl = ttl if ttl is not None else get_settings().PLAN_CACHE_TTL

    @classmethod
    def clear_cache(cls) -> None:
        with cls._lock:
            cls._cache = None
            cls._cache_time = 0.0

    def _load(self) -> dict[str, Plan] | None:
        now = time.monotonic()
        with self._lock:
            cached = PlanCatalog._cache
            if cached is not None and now - PlanCatalog._cache_time < self.ttl:
                return cached

        try:
            rows = (
                self.db.query(SubscriptionPlan)
                .filter(SubscriptionPlan.is_active == True)  # noqa: E712
                .order_by(SubscriptionPlan.sort_order)
                .all()
            )
        except SQLAlchemyError as e:
            logger.error(f"Error loading plans from database: {e}")
            return None

        if not rows:
            return None

        plans = {}
        for row in rows:
            defaults = DEFAULT_PLANS.get(row.name, {})
            plans[row.name] = Plan(
                name=row.name,
                display_name=row.display_name,
                description=row.description,
                price=Decimal(str(row.price)),
                price_currency=row.price_currency or "XOF",
                limits={**defaults.get("limits", {}), **(row.limits or {})},
                features={**defaults.get("features", {}), **(row.features or {})},
            )

        with self._lock:
            PlanCatalog._cache = plans
            PlanCatalog._cache_time = now
        return plans

    def get_plan(self, name: str | None) -> Plan:
        """Plan by name. Unknown names resolve to the free plan."""
        name = name or DEFAULT_PLAN
        db_plans = self._load()
        if db_plans and name in db_plans:
            return db_plans[name]
        if name in DEFAULT_PLANS:
            return _default_plan(name)
        if db_plans and DEFAULT_PLAN in db_plans:
            return db_plans[DEFAULT_PLAN]
        return _default_plan(DEFAULT_PLAN)

    def get_all_plans(self) -> dict[str, Plan]:
        db_plans = self._load()
        if db_plans:
            return dict(db_plans)
        return {name: _default_plan(name) for name in DEFAULT_PLANS}

    def is_limit_reached(self, plan_name: str, limit_type: str, current_count: int) -> bool:
        limit = self.get_plan(plan_name).limits.get(limit_type, 0)
        if limit == UNLIMITED:
            return False
        return current_count >= limit

    def get_remaining_quota(self, plan_name: str, limit_type: str, current_count: int) -> int:
        limit = self.get_plan(plan_name).limits.get(limit_type, 0)
        if limit == UNLIMITED:
            return UNLIMITED
        return max(0, limit - current_count)

    def has_feature(self, plan_name: str, feature: str) -> bool:
        return self.get_plan(plan_name).features.get(feature) is True

    def is_model_available(self, plan_name: str, model: str) -> bool:
        return model in self.get_plan(plan_name).models
