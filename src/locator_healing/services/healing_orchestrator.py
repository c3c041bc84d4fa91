"""
Healing Orchestrator for element resolution failures.

Given a HealingContext, decides on a recovery action and applies it: a full
page re-scan that regenerates the page's selector registry, or a single
selector patch proposed by the AI backend or by keyword heuristics. The
orchestrator never retries the failed operation itself and never raises;
every internal failure becomes a non-recoverable RecoveryPlan.
"""

import logging
import re
import time
from typing import List, Optional, Tuple

from ..core.errors import AIGenerationError, HealingExhaustedError, RegistryPatchError
from ..core.logging_config import get_healing_logger
from ..core.models.healing_models import (
    ElementCategory,
    HealingConfiguration,
    HealingContext,
    RecoveryAction,
    RecoveryPlan,
    ScenarioContext
)
from .dom_analyzer import DOMAnalyzer, DiscoveredElement, PageAnalysis
from .documents import DocumentAccessor
from .selector_registry import SelectorRegistryStore

logger = logging.getLogger(__name__)

_SELECTOR_LINE = re.compile(r"SELECTOR:\s*(.+?)(?:\n|$)", re.IGNORECASE)
_REASON_LINE = re.compile(r"REASON:\s*(.+?)(?:\n|$)", re.IGNORECASE)
_TYPE_LINE = re.compile(r"ELEMENT_TYPE:\s*(\w+)", re.IGNORECASE)

SYSTEM_PROMPT = "You are a test automation expert specializing in CSS selectors and XPath."

HEALING_PROMPT_TEMPLATE = """A UI test step failed because its element could not be used.

**Original Step:**
"{step_text}"

**Error Type:** {error_kind}
**Error Message:** {error_message}
{failed_element}
**Current Page Analysis:**
- Title: {title}
- Buttons: {buttons}
- Links: {links}
- Input Fields: {inputs}
- Headings: {headings}

**Available Elements on Current Page:**
{inventory}

**Task:**
1. Identify which element on the current page matches the step intent
2. Provide a selector that will find it
3. If the element doesn't exist, suggest the closest alternative

**Response format (no markdown, no code blocks):**
SELECTOR: your-selector-here
REASON: one line explanation
ELEMENT_TYPE: input|button|text|heading|link|other"""

_ELEMENT_TYPE_CATEGORY = {
    "input": ElementCategory.INPUT,
    "button": ElementCategory.BUTTON,
    "text": ElementCategory.TEXT,
    "heading": ElementCategory.HEADING,
    "link": ElementCategory.LINK,
}


class HealingOrchestrator:
    """Decides and applies one recovery action per failure."""

    def __init__(
        self,
        config: HealingConfiguration,
        registry_store: SelectorRegistryStore,
        document: Optional[DocumentAccessor] = None,
        ai_client=None,
        dom_analyzer: Optional[DOMAnalyzer] = None
    ):
        """Initialize the healing orchestrator.

        Args:
            config: Healing configuration settings
            registry_store: Store for per-page selector registries
            document: Current document; rescans need a live one
            ai_client: Object with ``async prompt(text, system_prompt) -> str``
            dom_analyzer: Page analyzer, created if omitted
        """
        self.config = config
        self.registry_store = registry_store
        self.document = document
        self.ai_client = ai_client
        self.dom_analyzer = dom_analyzer or DOMAnalyzer()

    async def heal(self, context: HealingContext, scenario: ScenarioContext) -> RecoveryPlan:
        """Produce a recovery verdict for one failure.

        Decision order: attempts exceeded, live page re-scan, AI selector,
        keyword heuristics, not recoverable.
        """
        healing_logger = get_healing_logger("orchestrator", scenario.scenario_id, context.step_text)
        start_time = time.time()
        healing_logger.log_operation_start(
            "heal", page=context.page_name, error_kind=context.error_kind.value,
            attempt=context.attempt_count
        )

        try:
            plan = await self._decide(context, scenario)
        except HealingExhaustedError as e:
            plan = RecoveryPlan.not_recoverable(f"Attempts exceeded: {e}")
        except Exception as e:
            logger.error(f"Healing failed for step '{context.step_text}': {e}", exc_info=True)
            plan = RecoveryPlan.not_recoverable(f"Healing service error: {e}")

        duration = time.time() - start_time
        if plan.can_recover:
            scenario.heal_count += 1
            healing_logger.log_operation_success("heal", duration, **plan.to_dict())
        else:
            healing_logger.log_operation_failure("heal", duration, plan.rationale, error_code="not_recoverable")

        return plan

    async def _decide(self, context: HealingContext, scenario: ScenarioContext) -> RecoveryPlan:
        if context.attempt_count > self.config.max_healing_attempts:
            raise HealingExhaustedError(context.attempt_count, self.config.max_healing_attempts)

        if self.document is not None and await self.document.is_live():
            try:
                if await self.rescan_page(context.page_name, scenario):
                    return RecoveryPlan(
                        can_recover=True,
                        action=RecoveryAction.RESCAN_PAGE,
                        rationale=f"Regenerated selector registry for {context.page_name} from the current page"
                    )
            except Exception as e:
                logger.warning(f"Page rescan for {context.page_name} failed, trying selector healing: {e}")

        return await self.heal_element(context)

    async def rescan_page(self, page_name: str, scenario: ScenarioContext) -> bool:
        """Regenerate a page's registry from the current document.

        Runs at most once per page per scenario.

        Returns:
            True if the registry was regenerated, False for a repeat request
        """
        if page_name in scenario.regenerated_pages:
            logger.info(f"Already regenerated {page_name} in this scenario")
            return False

        markup = await self.document.get_markup()
        if not markup:
            raise ValueError("could not capture page markup")

        analysis = self.dom_analyzer.analyze(markup)
        logger.info(f"Rescanning {page_name}: {self.dom_analyzer.catalog(analysis)}")

        self.registry_store.regenerate(page_name, analysis)
        scenario.regenerated_pages.add(page_name)
        return True

    async def heal_element(self, context: HealingContext) -> RecoveryPlan:
        """Find a replacement selector through the AI backend or heuristics."""
        markup = await self.document.get_markup() if self.document is not None else ""
        analysis = self.dom_analyzer.analyze(markup)
        discovered = self.dom_analyzer.discover_elements(markup)
        logger.debug(f"Found {len(discovered)} elements on current page")

        candidates: List[Tuple[str, str, Optional[ElementCategory]]] = []

        ai_answer = await self._ask_ai(context, analysis, discovered)
        if ai_answer:
            candidates.append(ai_answer)

        fallback = self.fallback_selector(context, discovered, analysis)
        if fallback:
            candidates.append(fallback)

        for selector, reason, category in candidates:
            plan = self._apply_selector(context, selector, reason, category)
            if plan is not None:
                return plan

        return RecoveryPlan.not_recoverable("No matching element found on the current page")

    async def _ask_ai(
        self,
        context: HealingContext,
        analysis: PageAnalysis,
        discovered: List[DiscoveredElement]
    ) -> Optional[Tuple[str, str, Optional[ElementCategory]]]:
        if self.ai_client is None:
            return None

        prompt = self.build_prompt(context, analysis, discovered)
        try:
            response = await self.ai_client.prompt(prompt, system_prompt=SYSTEM_PROMPT)
        except AIGenerationError as e:
            logger.warning(f"AI healing failed, using heuristics: {e}")
            return None
        except Exception as e:
            logger.warning(f"AI healing raised {type(e).__name__}, using heuristics: {e}")
            return None

        parsed = self.parse_ai_response(response)
        if parsed is None:
            logger.info("AI response had no usable SELECTOR line, using heuristics")
        return parsed

    def build_prompt(
        self,
        context: HealingContext,
        analysis: PageAnalysis,
        discovered: List[DiscoveredElement]
    ) -> str:
        inventory = "\n".join(el.summary() for el in discovered[:self.config.inventory_limit])
        failed_element = f"**Failed Element:** {context.failed_element_ref}\n" if context.failed_element_ref else ""
        return HEALING_PROMPT_TEMPLATE.format(
            step_text=context.step_text,
            error_kind=context.error_kind.value,
            error_message=context.error_message,
            failed_element=failed_element,
            title=analysis.title,
            buttons=len(analysis.buttons),
            links=len(analysis.links),
            inputs=len(analysis.inputs),
            headings=len(analysis.headings),
            inventory=inventory or "(none)"
        )

    @staticmethod
    def parse_ai_response(response: Optional[str]) -> Optional[Tuple[str, str, Optional[ElementCategory]]]:
        """Extract ``(selector, reason, category)`` from a ``SELECTOR:`` answer."""
        if not response:
            return None

        selector_match = _SELECTOR_LINE.search(response)
        if not selector_match:
            return None
        selector = selector_match.group(1).strip().strip("`").strip()
        if not selector:
            return None

        reason_match = _REASON_LINE.search(response)
        reason = reason_match.group(1).strip() if reason_match else "Selector regenerated from DOM analysis"

        type_match = _TYPE_LINE.search(response)
        category = _ELEMENT_TYPE_CATEGORY.get(type_match.group(1).lower()) if type_match else None

        return selector, reason, category

    @staticmethod
    def fallback_selector(
        context: HealingContext,
        discovered: List[DiscoveredElement],
        analysis: PageAnalysis
    ) -> Optional[Tuple[str, str, Optional[ElementCategory]]]:
        """Match the step's intent to a page element by keywords."""
        step = context.step_text.lower()

        if "username" in step or "email" in step:
            for el in discovered:
                placeholder = (el.placeholder or "").lower()
                if el.tag == "input" and (el.type or "text") in ("text", "email") and (
                    "user" in placeholder or "email" in placeholder
                    or el.type == "email" or "user" in (el.name or "").lower()
                ):
                    return el.selector, "Matched username input field", ElementCategory.INPUT

        if "password" in step:
            for el in discovered:
                if el.tag == "input" and el.type == "password":
                    return el.selector, "Matched password input field", ElementCategory.INPUT

        if "button" in step or "click" in step:
            for el in discovered:
                if el.tag == "button" or (el.tag == "input" and el.type == "submit"):
                    return el.selector, "Matched button element", ElementCategory.BUTTON

        if "heading" in step or "title" in step or "header" in step:
            if analysis.headings:
                return analysis.headings[0].selector, "Matched page heading", ElementCategory.HEADING

        if "message" in step or "text" in step or "error" in step:
            if analysis.success_elements:
                return analysis.success_elements[0].selector, "Matched success message element", ElementCategory.SUCCESS
            if analysis.error_elements:
                return analysis.error_elements[0].selector, "Matched error message element", ElementCategory.ERROR

        return None

    def _apply_selector(
        self,
        context: HealingContext,
        selector: str,
        reason: str,
        category: Optional[ElementCategory]
    ) -> Optional[RecoveryPlan]:
        """Patch the failed entry; None if the selector is unusable."""
        if context.failed_element_ref:
            try:
                self.registry_store.patch_entry(context.page_name, context.failed_element_ref, selector, category)
            except RegistryPatchError as e:
                logger.warning(f"Discarding healed selector {selector!r}: {e.reason}")
                return None
        else:
            is_valid, error = self.registry_store.validate_selector(selector)
            if not is_valid:
                logger.warning(f"Discarding healed selector {selector!r}: {error}")
                return None

        return RecoveryPlan(
            can_recover=True,
            action=RecoveryAction.UPDATE_SELECTOR,
            proposed_selector=selector,
            rationale=reason
        )
