"""Tests for the cost ledger"""

import asyncio
import pytest
from datetime import timedelta

from fiscal_ai.cost_control.ledger import AlertLevel, CostLedger
from fiscal_ai.database.models import utcnow
from fiscal_ai.database.repositories import UsageRepository
from fiscal_ai.exceptions import BudgetExceededError
from fiscal_ai.routing.tiers import Tier


async def spend(ledger, amount, tier=Tier.SIMPLE, user_id="user_1", success=True):
    return await ledger.record_spend(user_id, "fiscal-advice", tier, amount, amount, 120.0, success)


class TestAffordability:
    """Test budget checks"""

    @pytest.mark.asyncio
    async def test_new_user_gets_default_budget(self, ledger, test_settings):
        """Test a user without a budget row uses the configured defaults"""
        status = await ledger.budget_status("new_user")

        assert status.daily_limit == test_settings.default_daily_budget
        assert status.monthly_limit == test_settings.default_monthly_budget
        assert status.remaining_budget == pytest.approx(test_settings.default_daily_budget)
        assert status.over_budget is False

    @pytest.mark.asyncio
    async def test_cost_above_remaining_is_refused(self, ledger):
        """Test can_afford is false when the estimate exceeds what is left"""
        await ledger.set_budget("user_1", daily_limit=0.02)

        check = await ledger.can_afford("user_1", 0.025)

        assert check.allowed is False
        assert check.remaining_budget == pytest.approx(0.02)
        assert check.reason.startswith("Daily budget exceeded")

    @pytest.mark.asyncio
    async def test_cost_within_remaining_is_allowed(self, ledger):
        """Test an affordable estimate"""
        check = await ledger.can_afford("user_1", 0.025)

        assert check.allowed is True
        assert check.reason == "within_budget"

    @pytest.mark.asyncio
    async def test_monthly_limit_reported(self, ledger):
        """Test the monthly limit is named when it is the binding one"""
        await ledger.set_budget("user_1", daily_limit=1.0, monthly_limit=0.01)

        check = await ledger.can_afford("user_1", 0.025)

        assert check.allowed is False
        assert check.reason.startswith("Monthly budget exceeded")

    @pytest.mark.asyncio
    async def test_remaining_decreases_by_actual_cost(self, ledger):
        """Test recorded spend is reflected immediately"""
        await spend(ledger, 0.005)
        await spend(ledger, 0.025, Tier.COMPLEX)

        assert await ledger.remaining("user_1") == pytest.approx(0.47)

    @pytest.mark.asyncio
    async def test_spend_is_per_user(self, ledger):
        """Test one user's spend does not affect another's budget"""
        await spend(ledger, 0.3, user_id="user_a")

        assert await ledger.remaining("user_b") == pytest.approx(0.5)


class TestReservations:
    """Test in-flight reservations"""

    @pytest.mark.asyncio
    async def test_reservation_holds_budget(self, ledger):
        """Test a held estimate reduces what other requests may spend"""
        reservation = await ledger.reserve("user_1", 0.3)

        assert ledger.in_flight("user_1") == pytest.approx(0.3)
        assert (await ledger.can_afford("user_1", 0.3)).allowed is False

        ledger.release(reservation)

        assert ledger.in_flight("user_1") == 0.0
        assert (await ledger.can_afford("user_1", 0.3)).allowed is True

    @pytest.mark.asyncio
    async def test_reserve_raises_when_unaffordable(self, ledger):
        """Test reserve refuses with the remaining budget attached"""
        await ledger.set_budget("user_1", daily_limit=0.01)

        with pytest.raises(BudgetExceededError) as exc_info:
            await ledger.reserve("user_1", 0.025)

        assert exc_info.value.remaining_budget == pytest.approx(0.01)
        assert ledger.in_flight("user_1") == 0.0

    @pytest.mark.asyncio
    async def test_concurrent_reservations_never_overcommit(self, ledger):
        """Test parallel reservations are serialized per user"""
        results = await asyncio.gather(
            *(ledger.reserve("user_1", 0.15) for _ in range(5)),
            return_exceptions=True,
        )

        granted = [r for r in results if not isinstance(r, Exception)]
        refused = [r for r in results if isinstance(r, BudgetExceededError)]
        assert len(granted) == 3
        assert len(refused) == 2
        assert ledger.in_flight("user_1") == pytest.approx(0.45)
        assert ledger.tracked_users == 0

    @pytest.mark.asyncio
    async def test_user_locks_are_dropped_when_idle(self, ledger):
        """Test the lock table does not grow with every user seen"""
        for i in range(20):
            await ledger.can_afford(f"user_{i}", 0.001)
            await spend(ledger, 0.001, user_id=f"user_{i}")

        assert ledger.tracked_users == 0

    @pytest.mark.asyncio
    async def test_waiting_callers_share_one_lock(self, ledger):
        """Test the entry survives while another caller is waiting on it"""
        async with ledger._user_lock("user_1"):
            waiter = asyncio.create_task(ledger.reserve("user_1", 0.01))
            await asyncio.sleep(0)
            assert ledger.tracked_users == 1
            assert ledger._locks["user_1"].holders == 2

        reservation = await waiter
        assert ledger.tracked_users == 0
        ledger.release(reservation)

    @pytest.mark.asyncio
    async def test_record_spend_releases_reservation(self, ledger):
        """Test the reservation is converted into a usage record"""
        reservation = await ledger.reserve("user_1", 0.025)

        await ledger.record_spend(
            "user_1", "fiscal-advice", Tier.COMPLEX, 0.025, 0.025, 900.0, True, reservation=reservation
        )

        assert ledger.in_flight("user_1") == 0.0
        assert await ledger.remaining("user_1") == pytest.approx(0.475)

    @pytest.mark.asyncio
    async def test_release_unknown_reservation_is_noop(self, ledger):
        """Test releasing twice or releasing None"""
        reservation = await ledger.reserve("user_1", 0.01)
        ledger.release(reservation)
        ledger.release(reservation)
        ledger.release(None)

        assert ledger.in_flight("user_1") == 0.0


class TestAlerts:
    """Test budget threshold alerts"""

    @pytest.mark.asyncio
    async def test_threshold_crossings(self, ledger):
        """Test alerts are raised once per crossed daily threshold"""
        first = await spend(ledger, 0.3)
        assert [(a.budget_type, a.threshold, a.level) for a in first] == [("daily", 0.5, AlertLevel.INFO)]

        second = await spend(ledger, 0.15)
        assert [(a.budget_type, a.threshold, a.level) for a in second] == [("daily", 0.8, AlertLevel.WARNING)]

        third = await spend(ledger, 0.04)
        assert [(a.budget_type, a.level) for a in third] == [("daily", AlertLevel.CRITICAL)]

        status = await ledger.budget_status("user_1")
        assert len(status.alerts) == 3

    @pytest.mark.asyncio
    async def test_no_alert_below_thresholds(self, ledger):
        """Test small spends raise nothing"""
        assert await spend(ledger, 0.001) == []
        assert list(ledger.recent_alerts) == []

    @pytest.mark.asyncio
    async def test_zero_cost_records_raise_no_alert(self, ledger):
        """Test rejection records never alert"""
        await ledger.record_rejection("user_1", "fiscal-advice", 0.025, "Daily budget exceeded")

        assert list(ledger.recent_alerts) == []
        assert await ledger.remaining("user_1") == pytest.approx(0.5)


class TestBudgetsAndAnalytics:
    """Test budget updates and spend analytics"""

    @pytest.mark.asyncio
    async def test_set_budget_updates_limits(self, ledger):
        """Test limits are upserted and partial updates keep the other limit"""
        status = await ledger.set_budget("user_1", daily_limit=1.0, monthly_limit=10.0)
        assert status.daily_limit == 1.0
        assert status.monthly_limit == 10.0

        status = await ledger.set_budget("user_1", daily_limit=2.0)
        assert status.daily_limit == 2.0
        assert status.monthly_limit == 10.0

    @pytest.mark.asyncio
    async def test_set_budget_rejects_negative_limits(self, ledger):
        """Test validation of limits"""
        with pytest.raises(ValueError):
            await ledger.set_budget("user_1", daily_limit=-1.0)

    @pytest.mark.asyncio
    async def test_budgets_survive_a_new_ledger(self, db_manager, test_settings, ledger):
        """Test limits and spend are read from storage, not from ledger state"""
        await ledger.set_budget("user_1", daily_limit=1.0)
        await spend(ledger, 0.2)

        fresh = CostLedger(db_manager, test_settings)

        assert await fresh.remaining("user_1") == pytest.approx(0.8)

    @pytest.mark.asyncio
    async def test_analytics(self, ledger):
        """Test totals, per-tier breakdown and savings against the top tier"""
        await spend(ledger, 0.001, Tier.SIMPLE)
        await spend(ledger, 0.025, Tier.COMPLEX)
        await ledger.record_rejection("user_1", "fiscal-advice", 0.035, "Daily budget exceeded")

        analytics = await ledger.analytics("user_1")

        assert analytics["query_count"] == 3
        assert analytics["total_cost"] == pytest.approx(0.026)
        assert analytics["cost_by_tier"] == {"SIMPLE": 0.001, "COMPLEX": 0.025, "FALLBACK": 0.0}
        assert analytics["queries_by_tier"] == {"SIMPLE": 1, "COMPLEX": 1, "FALLBACK": 1}
        assert analytics["success_rate"] == pytest.approx(2 / 3)
        assert analytics["savings_vs_baseline"]["amount"] == pytest.approx(0.044)
        assert analytics["savings_vs_baseline"]["percentage"] == pytest.approx(62.86)
        assert analytics["savings_vs_baseline"]["baseline_tier"] == "WEB_RESEARCH"

    @pytest.mark.asyncio
    async def test_analytics_window_excludes_older_spend(self, ledger, db_manager):
        """Test per-tier totals only cover the requested window"""
        async with db_manager.get_session() as session:
            await UsageRepository(session).append({
                "user_id": "user_1",
                "feature": "fiscal-advice",
                "tier": "COMPLEX",
                "estimated_cost": 0.025,
                "actual_cost": 0.025,
                "processing_time_ms": 900.0,
                "success": True,
                "created_at": utcnow() - timedelta(days=10),
            })
        await spend(ledger, 0.005, Tier.MODERATE)

        analytics = await ledger.analytics("user_1", window_days=7)

        assert analytics["cost_by_tier"] == {"MODERATE": 0.005}
        assert analytics["query_count"] == 1

    @pytest.mark.asyncio
    async def test_analytics_for_unknown_user(self, ledger):
        """Test empty analytics"""
        analytics = await ledger.analytics("nobody")

        assert analytics["query_count"] == 0
        assert analytics["total_cost"] == 0.0
        assert analytics["average_cost_per_query"] == 0.0
        assert analytics["savings_vs_baseline"]["percentage"] == 0.0

    @pytest.mark.asyncio
    async def test_status_to_dict(self, ledger):
        """Test the serializable budget view"""
        await spend(ledger, 0.1)

        data = (await ledger.budget_status("user_1")).to_dict()

        assert data["daily_spent"] == pytest.approx(0.1)
        assert data["remaining_budget"] == pytest.approx(0.4)
        assert data["over_budget"] is False
        assert data["alerts"] == []
