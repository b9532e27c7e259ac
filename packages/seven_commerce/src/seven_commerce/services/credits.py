"""
Credit Service

Every AI reply costs credits according to the model used. Balances live on
`users.credits`; every movement is written to `credit_usage` (positive for
consumption, negative for additions).

Deduction and logging join the caller's transaction. `add_credits` and
`reset_monthly_credits` are standalone operations and commit.
"""

import logging
import math
from collections import defaultdict
from datetime import timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from sevencore.clock import utcnow
from sevencore.errors import NotFoundError
from seven_commerce.persistence.models import CreditUsage, User
from seven_commerce.services.anomalies import AdminAnomalyService
from seven_commerce.services.notifications import NotificationService
from seven_commerce.services.plans import UNLIMITED, PlanCatalog

logger = logging.getLogger(__name__)

CREDIT_COSTS: dict[str, float] = {
    # Gemini
    "gemini-1.5-flash": 1,
    "gemini-1.5-flash-latest": 1,
    "gemini-2.0-flash": 1,
    "gemini-1.5-pro": 2,
    "gemini-1.5-pro-latest": 2,
    # OpenAI
    "gpt-4o-mini": 2,
    "gpt-4o": 5,
    "gpt-4-turbo": 8,
    # OpenRouter free models
    "meta-llama/llama-3.1-8b-instruct:free": 0,
    "mistralai/mistral-7b-instruct:free": 0,
    "google/gemma-2-9b-it:free": 0,
    # OpenRouter paid models
    "meta-llama/llama-3.1-70b-instruct": 1,
    "meta-llama/llama-3.1-405b-instruct": 3,
    "mistralai/mistral-7b-instruct": 1,
    "mistralai/mixtral-8x7b-instruct": 1,
    "mistralai/mistral-large": 2,
    "anthropic/claude-3.5-sonnet": 3,
    "anthropic/claude-3-opus": 8,
    "anthropic/claude-3-haiku": 1,
    "openai/gpt-4o": 5,
    "openai/gpt-4o-mini": 2,
    "google/gemini-pro-1.5": 2,
    "google/gemini-flash-1.5": 1,
    # Actions
    "fallback": 0,
    "ai_message": 1,
    "whatsapp_message_sent": 0.1,
    "knowledge_item_add": 0,
    "template_use": 0,
}

LOW_CREDIT_THRESHOLDS = [50, 20, 10, 5]


def get_credit_cost(action: str | None) -> float:
    """Cost of one unit of `action` (a model id or an action name)."""
    if action in CREDIT_COSTS:
        return CREDIT_COSTS[action]
    if action and ":free" in action:
        return 0
    return 1


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class CreditService:
    def __init__(
        self,
        db: Session,
        plans: PlanCatalog | None = None,
        notifications: NotificationService | None = None,
        anomalies: AdminAnomalyService | None = None,
    ):
        self.db = db
        self.plans = plans or PlanCatalog(db)
        self.notifications = notifications or NotificationService(db)
        self.anomalies = anomalies or AdminAnomalyService(db)

    def _get_user(self, user_id: UUID) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError("Utilisateur non trouvé")
        return user

    def get_user_credits(self, user_id: UUID) -> dict[str, Any]:
        user = self._get_user(user_id)
        return {"credits": user.credits, "plan": user.plan}

    def _log_usage(self, user_id: UUID, action: str, amount: int, metadata: dict[str, Any] | None) -> None:
        self.db.add(
            CreditUsage(user_id=user_id, action=action, amount=amount, metadata_json=metadata or {})
        )

    def has_enough_credits(self, user_id: UUID, action: str, quantity: int = 1) -> bool:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            return False
        if self.plans.get_plan(user.plan).is_unlimited:
            return True
        return user.credits >= get_credit_cost(action) * quantity

    def deduct_credits(
        self,
        user_id: UUID,
        action: str,
        quantity: int = 1,
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Deduct the cost of `action` from the user's balance.

        The balance check and decrement are a single conditional UPDATE, so
        concurrent deductions never overdraw.
        """
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            return {"success": False, "error": "Utilisateur non trouvé"}

        if self.plans.get_plan(user.plan).is_unlimited:
            self._log_usage(user_id, action, 0, metadata)
            self.db.flush()
            return {"success": True, "credits_remaining": UNLIMITED, "cost": 0}

        before = user.credits
        cost = math.ceil(get_credit_cost(action) * quantity)

        result = self.db.execute(
            update(User)
            .where(User.id == user_id, User.credits >= cost)
            .values(credits=User.credits - cost)
            .execution_options(synchronize_session=False)
        )
        self.db.refresh(user)

        if result.rowcount == 0:
            logger.info(
                f"Insufficient credits for {action}",
                extra={"user_id": str(user_id), "cost": cost, "credits": user.credits},
            )
            return {
                "success": False,
                "error": "Crédits insuffisants",
                "credits_remaining": user.credits or 0,
                "cost_required": cost,
            }

        self._log_usage(user_id, action, cost, metadata)
        after = user.credits

        for threshold in LOW_CREDIT_THRESHOLDS:
            if before > threshold and after <= threshold:
                self.notifications.notify_low_credits(user_id, after)
                break

        if before > 0 and after <= 0:
            self.anomalies.log_credits_zero(user_id, user.name)

        self.db.flush()
        return {"success": True, "credits_remaining": after, "cost": cost}

    def add_credits(self, user_id: UUID, amount: int, reason: str = "purchase") -> dict[str, Any]:
        user = self._get_user(user_id)
        self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(credits=User.credits + amount)
            .execution_options(synchronize_session=False)
        )
        self._log_usage(user_id, f"credit_add_{reason}", -amount, {"reason": reason})
        self.db.commit()
        self.db.refresh(user)

        logger.info(f"Added {amount} credits ({reason})", extra={"user_id": str(user_id)})
        return {"success": True, "credits_added": amount, "credits_remaining": user.credits}

    def get_credit_usage_history(self, user_id: UUID, days: int = 30) -> list[dict[str, Any]]:
        """Usage grouped by action and day, most recent day first."""
        since = utcnow() - timedelta(days=days)
        rows = (
            self.db.query(CreditUsage)
            .filter(CreditUsage.user_id == user_id, CreditUsage.created_at >= since)
            .all()
        )

        grouped: dict[tuple[str, str], dict[str, Any]] = defaultdict(
            lambda: {"total": 0, "count": 0}
        )
        for row in rows:
            key = (row.action, row.created_at.date().isoformat())
            grouped[key]["total"] += row.amount
            grouped[key]["count"] += 1

        history = [
            {"action": action, "date": day, **values}
            for (action, day), values in grouped.items()
        ]
        history.sort(key=lambda h: (h["date"], h["action"]), reverse=True)
        return history

    def get_monthly_usage(self, user_id: UUID) -> dict[str, int]:
        month_start = utcnow().replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        rows = (
            self.db.query(CreditUsage)
            .filter(CreditUsage.user_id == user_id, CreditUsage.created_at >= month_start)
            .all()
        )
        return {
            "credits_used": sum(r.amount for r in rows if r.amount > 0),
            "ai_messages": sum(1 for r in rows if r.action == "ai_message"),
            "whatsapp_messages": sum(1 for r in rows if r.action == "whatsapp_message_sent"),
        }

    def reset_monthly_credits(self) -> int:
        """Give every active user on a limited plan their monthly allowance."""
        users = self.db.query(User).filter(User.is_active == True).all()  # noqa: E712
        reset_count = 0
        for user in users:
            plan = self.plans.get_plan(user.plan)
            if plan.is_unlimited:
                continue
            user.credits = plan.credits_per_month
            reset_count += 1

        self.db.commit()
        logger.info(f"Reset monthly credits for {reset_count} users")
        return reset_count

    def check_credit_warnings(self, user_id: UUID) -> dict[str, Any]:
        user = self._get_user(user_id)
        plan = self.plans.get_plan(user.plan)
        if plan.is_unlimited:
            return {"warning": None, "level": "ok"}

        allowance = plan.credits_per_month
        if user.credits <= 0:
            return {
                "warning": "Vos crédits sont épuisés. Passez à un plan supérieur pour continuer.",
                "level": "critical",
            }
        if allowance <= 0:
            return {"warning": None, "level": "ok"}

        percent_used = (allowance - user.credits) / allowance * 100
        if percent_used >= 90:
            return {
                "warning": (
                    f"Il vous reste {user.credits} crédits "
                    f"({_round_half_up(100 - percent_used)}% restant)"
                ),
                "level": "warning",
            }
        if percent_used >= 75:
            return {
                "warning": f"Vous avez utilisé {_round_half_up(percent_used)}% de vos crédits",
                "level": "info",
            }
        return {"warning": None, "level": "ok"}
