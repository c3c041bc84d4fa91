"""Tests for scenario lifecycle hooks."""

import pytest
from unittest.mock import AsyncMock, Mock

from locator_healing.core.models.healing_models import ErrorKind, RecoveryAction, RecoveryPlan
from locator_healing.services.healing_hooks import HealingHooks


@pytest.fixture
def orchestrator():
    orchestrator = Mock()
    orchestrator.heal = AsyncMock(return_value=RecoveryPlan(
        can_recover=True,
        action=RecoveryAction.RESCAN_PAGE,
        rationale="Regenerated selector registry for login"
    ))
    return orchestrator


class TestHealingHooks:
    """Test before/after scenario and after-step hooks."""

    def test_before_scenario_creates_fresh_context(self, orchestrator):
        hooks = HealingHooks(orchestrator)

        first = hooks.before_scenario("scenario-1")
        first.healing_attempted = True
        first.regenerated_pages.add("login")
        second = hooks.before_scenario()

        assert second is hooks.scenario
        assert second.healing_attempted is False
        assert second.regenerated_pages == set()
        assert second.scenario_id != "scenario-1"

    def test_after_scenario_discards_context(self, orchestrator):
        hooks = HealingHooks(orchestrator)
        started = hooks.before_scenario("scenario-1")

        assert hooks.after_scenario() is started
        assert hooks.scenario is None
        assert hooks.after_scenario() is None

    @pytest.mark.asyncio
    async def test_heals_once_per_scenario(self, orchestrator):
        hooks = HealingHooks(orchestrator)
        hooks.before_scenario("scenario-1")

        plan = await hooks.after_step_failure("Click login", "login", Exception("Element not found: #login"))
        repeat = await hooks.after_step_failure("Click login", "login", Exception("Element not found: #login"))

        assert plan.can_recover is True
        assert repeat is None
        assert orchestrator.heal.await_count == 1
        assert hooks.scenario.healing_attempted is True

        context = orchestrator.heal.await_args.args[0]
        assert context.error_kind == ErrorKind.SELECTOR_NOT_FOUND
        assert context.attempt_count == 1

        hooks.before_scenario("scenario-2")
        await hooks.after_step_failure("Click login", "login", "not found")
        assert orchestrator.heal.await_count == 2

    @pytest.mark.asyncio
    async def test_failed_heal_keeps_flag_clear(self, orchestrator):
        orchestrator.heal.return_value = RecoveryPlan.not_recoverable("nothing matched")
        hooks = HealingHooks(orchestrator)
        hooks.before_scenario()

        plan = await hooks.after_step_failure("Click login", "login", "not found")

        assert plan.can_recover is False
        assert hooks.scenario.healing_attempted is False

    @pytest.mark.asyncio
    async def test_missing_step_text_skips_healing(self, orchestrator):
        hooks = HealingHooks(orchestrator)

        assert await hooks.after_step_failure("", "login", "not found") is None
        orchestrator.heal.assert_not_awaited()
