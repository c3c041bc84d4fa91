"""Scenario lifecycle hooks for self-healing."""

import logging
import uuid
from typing import Optional, Union

from ..core.healing_utils import create_healing_context
from ..core.models.healing_models import RecoveryPlan, ScenarioContext
from .failure_classifier import FailureClassifier

logger = logging.getLogger(__name__)


class HealingHooks:
    """Before-scenario reset and one-shot healing after a failed step."""

    def __init__(self, orchestrator, classifier: Optional[FailureClassifier] = None):
        self.orchestrator = orchestrator
        self.classifier = classifier or FailureClassifier()
        self.scenario: Optional[ScenarioContext] = None

    def before_scenario(self, scenario_id: Optional[str] = None) -> ScenarioContext:
        """Start a fresh scenario context, clearing every per-scenario guard."""
        self.scenario = ScenarioContext(scenario_id=scenario_id or uuid.uuid4().hex[:12])
        logger.debug(f"Scenario {self.scenario.scenario_id} started")
        return self.scenario

    def after_scenario(self) -> Optional[ScenarioContext]:
        """Discard the scenario context and return it for reporting."""
        finished, self.scenario = self.scenario, None
        if finished is not None:
            logger.info(
                f"Scenario {finished.scenario_id} finished: {finished.heal_count} heals, "
                f"{len(finished.regenerated_pages)} pages regenerated"
            )
        return finished

    async def after_step_failure(
        self,
        step_text: str,
        page_name: str,
        error: Union[BaseException, str],
        failed_element_ref: Optional[str] = None
    ) -> Optional[RecoveryPlan]:
        """Heal once per scenario after a step failed.

        Returns:
            The recovery plan, or None when healing already ran in this
            scenario or the step text is unknown
        """
        scenario = self.scenario or self.before_scenario()

        if scenario.healing_attempted:
            logger.debug(f"Healing already attempted in scenario {scenario.scenario_id}, skipping")
            return None
        if not step_text:
            logger.warning("Could not determine step text for healing")
            return None

        context = create_healing_context(
            step_text=step_text,
            page_name=page_name,
            error_message=self.classifier.error_message(error),
            error_kind=self.classifier.classify(error),
            attempt_count=1,
            failed_element_ref=failed_element_ref
        )

        plan = await self.orchestrator.heal(context, scenario)
        if plan.can_recover:
            scenario.healing_attempted = True
            logger.info(f"Healed after failure of {step_text!r}: {plan.rationale}; re-run the scenario to apply")
        else:
            logger.warning(f"Healing failed for {step_text!r}: {plan.rationale}")
        return plan
