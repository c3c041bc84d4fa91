"""
Bounded retry with healing between attempts.

One guarded operation moves through ATTEMPTING, HEALING and SETTLING until
it reaches DONE or FAILED. The final attempt never heals, and the error
re-raised on failure is always the operation's own error with the healing
rationale attached as a note.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Union

from ..core.healing_utils import create_healing_context
from ..core.models.healing_models import RecoveryPlan, ScenarioContext
from .failure_classifier import FailureClassifier

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 2


class ExecutionState(Enum):
    """States of one guarded operation."""
    ATTEMPTING = "attempting"
    HEALING = "healing"
    SETTLING = "settling"
    DONE = "done"
    FAILED = "failed"


@dataclass
class ExecutionOptions:
    """Options for one guarded step."""
    step_text: str = ""
    page_name: str = "unknown"
    max_retries: Optional[int] = None
    healing_enabled: bool = True
    failed_element_ref: Optional[str] = None


Work = Callable[[], Union[Any, Awaitable[Any]]]


class RetryExecutor:
    """Runs an operation up to ``max_retries + 1`` times, healing in between."""

    def __init__(
        self,
        healer,
        classifier: Optional[FailureClassifier] = None,
        settle_delay_ms: int = 500,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        """Initialize the executor.

        Args:
            healer: Object with ``async heal(context, scenario) -> RecoveryPlan``
            classifier: Failure classifier, created if omitted
            settle_delay_ms: Pause before a retry after a successful heal
            sleep: Coroutine used for the settle pause
        """
        self.healer = healer
        self.classifier = classifier or FailureClassifier()
        self.settle_delay_ms = settle_delay_ms
        self._sleep = sleep
        self.transitions: List[ExecutionState] = []

    async def execute_with_healing(
        self,
        work: Work,
        options: Optional[ExecutionOptions] = None,
        scenario: Optional[ScenarioContext] = None
    ) -> Any:
        """Run ``work`` with bounded retries and healing.

        Args:
            work: Zero-argument callable, sync or async
            options: Step options; defaults apply when omitted
            scenario: Scenario-scoped context shared with the orchestrator

        Returns:
            Whatever ``work`` returned on its first successful attempt

        Raises:
            Exception: The last error raised by ``work``
        """
        options = options or ExecutionOptions()
        scenario = scenario or ScenarioContext(scenario_id="adhoc")
        max_retries = max(0, DEFAULT_MAX_RETRIES if options.max_retries is None else options.max_retries)
        self.transitions = [ExecutionState.ATTEMPTING]

        for attempt in range(max_retries + 1):
            try:
                logger.debug(f"Executing step (attempt {attempt + 1}/{max_retries + 1}): {options.step_text!r}")
                result = work()
                if inspect.isawaitable(result):
                    result = await result
                self.transitions.append(ExecutionState.DONE)
                return result
            except Exception as error:
                logger.info(f"Step failed on attempt {attempt + 1}: {error}")

                if attempt == max_retries or not options.healing_enabled:
                    self.transitions.append(ExecutionState.FAILED)
                    raise

                self.transitions.append(ExecutionState.HEALING)
                plan = await self._heal(error, attempt, options, scenario)

                if not plan.can_recover:
                    logger.warning(f"Healing failed: {plan.rationale}")
                    error.add_note(f"Self-healing gave up: {plan.rationale}")
                    self.transitions.append(ExecutionState.FAILED)
                    raise

                scenario.healing_attempted = True
                logger.info(f"Step healed ({plan.action.value}): {plan.rationale}")
                self.transitions.append(ExecutionState.SETTLING)
                await self._sleep(self._settle_seconds(plan))
                self.transitions.append(ExecutionState.ATTEMPTING)

    async def _heal(
        self,
        error: Exception,
        attempt: int,
        options: ExecutionOptions,
        scenario: ScenarioContext
    ) -> RecoveryPlan:
        context = create_healing_context(
            step_text=options.step_text,
            page_name=options.page_name,
            error_message=self.classifier.error_message(error),
            error_kind=self.classifier.classify(error),
            attempt_count=attempt + 1,
            failed_element_ref=options.failed_element_ref
        )

        try:
            return await self.healer.heal(context, scenario)
        except Exception as e:
            # Healing errors never replace the step's own failure
            logger.error(f"Healer raised {type(e).__name__}: {e}")
            return RecoveryPlan.not_recoverable(f"Healing service error: {e}")

    def _settle_seconds(self, plan: RecoveryPlan) -> float:
        delay_ms = self.settle_delay_ms
        if plan.wait_ms is not None:
            delay_ms = max(delay_ms, plan.wait_ms)
        return delay_ms / 1000
