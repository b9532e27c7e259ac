"""
Tests for the subscription plan catalog.
"""

from seven_commerce.persistence.models import SubscriptionPlan
from seven_commerce.services.plans import UNLIMITED, PlanCatalog


class TestPlanCatalog:
    def test_defaults_without_table_rows(self, db):
        catalog = PlanCatalog(db)

        assert catalog.get_plan("pro").credits_per_month == 5000
        assert catalog.get_plan("enterprise").is_unlimited is True
        assert set(catalog.get_all_plans()) == {"free", "starter", "pro", "business", "enterprise"}

    def test_unknown_plan_is_free(self, db):
        plan = PlanCatalog(db).get_plan("platinum")
        assert plan.name == "free"
        assert plan.credits_per_month == 100

    def test_database_row_overrides_defaults(self, db):
        db.add(
            SubscriptionPlan(
                name="starter",
                display_name="Starter+",
                price=20000,
                limits={"credits_per_month": 2000},
                features={"analytics": False},
            )
        )
        db.commit()

        plan = PlanCatalog(db).get_plan("starter")

        assert plan.display_name == "Starter+"
        assert plan.credits_per_month == 2000
        assert plan.limits["agents"] == 1
        assert plan.features["analytics"] is False
        assert plan.models == ["gemini-1.5-flash", "gpt-4o-mini"]

    def test_catalog_is_cached(self, db):
        catalog = PlanCatalog(db, ttl=60)
        db.add(SubscriptionPlan(name="pro", display_name="Pro", limits={"credits_per_month": 1}))
        db.commit()
        assert catalog.get_plan("pro").credits_per_month == 1

        db.query(SubscriptionPlan).delete()
        db.commit()
        assert catalog.get_plan("pro").credits_per_month == 1

        PlanCatalog.clear_cache()
        assert catalog.get_plan("pro").credits_per_month == 5000

    def test_limits_and_features(self, db):
        catalog = PlanCatalog(db)

        assert catalog.is_limit_reached("free", "whatsapp_accounts", 0) is True
        assert catalog.is_limit_reached("pro", "agents", 1) is False
        assert catalog.is_limit_reached("enterprise", "agents", 1000) is False
        assert catalog.get_remaining_quota("starter", "messages_per_month", 1000) == 500
        assert catalog.get_remaining_quota("enterprise", "agents", 3) == UNLIMITED
        assert catalog.has_feature("free", "analytics") is False
        assert catalog.has_feature("pro", "human_transfer") is True
        assert catalog.is_model_available("starter", "gpt-4o-mini") is True
        assert catalog.is_model_available("free", "gpt-4o") is False
