"""
Locator strategy generation.

Turns an ElementDescription into a ranked list of candidate selectors. The
deterministic tiers are built synchronously; the optional AI-suggested tier
asks the Ollama backend and is dropped silently when the answer does not
look like a selector.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Union

from ..core.healing_utils import css_string, guess_query_language, sanitize, xpath_literal
from ..core.models.healing_models import ElementDescription, LocatorKind, LocatorStrategy

logger = logging.getLogger(__name__)


# Fixed priority per kind
PRIORITIES = {
    LocatorKind.ID: 100,
    LocatorKind.TESTID: 95,
    LocatorKind.ARIA: 90,
    LocatorKind.PLACEHOLDER: 85,
    LocatorKind.ROLE: 80,
    LocatorKind.TEXT_XPATH: 75,
    LocatorKind.TYPE_CSS: 70,
    LocatorKind.COMPOSITE: 65,
    LocatorKind.FUZZY_XPATH: 60,
    LocatorKind.AI_SUGGESTED: 50,
}

UNIVERSAL_SELECTOR = "//*"

# First characters accepted from an AI answer
AI_SELECTOR_PREFIXES = ("/", ".", "[")

AI_PROMPT_TEMPLATE = """Given the following page element description, provide the most reliable CSS or XPath selector to find this element:

Element Description:
{element_info}

Context: {context}

Respond with ONLY a valid CSS or XPath selector, no explanation. Choose between:
1. CSS selector (e.g., '.class', '[attr="value"]')
2. XPath selector (e.g., '//button[@class="primary"]')

Best selector:"""

DescriptionInput = Union[ElementDescription, str, Dict[str, Any], None]


class StrategyGenerator:
    """Builds priority-ranked locator strategies for an element description."""

    def __init__(self, ai_client=None, ai_enabled: bool = True, max_text_length: int = 50):
        """Initialize the generator.

        Args:
            ai_client: Object with ``async generate(prompt, options) -> str``;
                the AI tier is skipped when None
            ai_enabled: Toggle for the AI tier
            max_text_length: Text at or above this length gets no text XPath
        """
        self.ai_client = ai_client
        self.ai_enabled = ai_enabled
        self.max_text_length = max_text_length

    async def generate(self, description: DescriptionInput, context: str = "main") -> List[LocatorStrategy]:
        """Generate ranked strategies, including the AI tier when enabled.

        Never raises. The result is non-empty and sorted by descending priority.
        """
        desc = ElementDescription.coerce(description)
        strategies = self.build_strategies(desc)

        if self.ai_enabled and self.ai_client is not None:
            ai_strategy = await self._generate_ai_strategy(desc, context)
            if ai_strategy and all(s.selector != ai_strategy.selector for s in strategies):
                strategies.append(ai_strategy)

        return strategies

    def build_strategies(self, description: DescriptionInput) -> List[LocatorStrategy]:
        """Build the deterministic tiers only."""
        desc = ElementDescription.coerce(description)
        candidates: List[LocatorStrategy] = []

        def add(kind: LocatorKind, selector: str, rationale: str):
            candidates.append(LocatorStrategy(
                kind=kind,
                selector=selector,
                priority=PRIORITIES[kind],
                rationale=rationale
            ))

        text = desc.text.strip() if desc.text and desc.text.strip() else None
        slug = sanitize(text) if text else ""

        if slug:
            add(LocatorKind.ID, f"#{slug}", "ID derived from element text")
            add(LocatorKind.TESTID, f"[data-testid={css_string(slug)}]", "data-testid derived from element text")

        if desc.aria_label:
            add(LocatorKind.ARIA, f"[aria-label={css_string(desc.aria_label)}]", "aria-label attribute")

        if desc.placeholder:
            add(LocatorKind.PLACEHOLDER, f"[placeholder={css_string(desc.placeholder)}]", "placeholder attribute")

        if desc.role:
            add(LocatorKind.ROLE, f"[role={css_string(desc.role)}]", "role attribute")

        if text and len(text) < self.max_text_length:
            add(LocatorKind.TEXT_XPATH, f"//*[contains(text(), {xpath_literal(text)})]", "XPath on text content")

        if desc.type:
            add(LocatorKind.TYPE_CSS, f"[type={css_string(desc.type)}]", "type attribute")

        add(LocatorKind.COMPOSITE, self._composite_selector(desc), "all present attributes combined")
        add(LocatorKind.FUZZY_XPATH, self._fuzzy_selector(desc), "normalized text with prefix tolerance")

        # Empty descriptions yield the same universal selector twice
        unique: List[LocatorStrategy] = []
        seen = set()
        for strategy in candidates:
            if strategy.selector in seen:
                continue
            seen.add(strategy.selector)
            unique.append(strategy)

        return unique

    def _composite_selector(self, desc: ElementDescription) -> str:
        parts = []
        if desc.text:
            parts.append(f"contains(text(), {xpath_literal(desc.text)})")
        if desc.placeholder:
            parts.append(f"@placeholder={xpath_literal(desc.placeholder)}")
        if desc.aria_label:
            parts.append(f"@aria-label={xpath_literal(desc.aria_label)}")
        if desc.role:
            parts.append(f"@role={xpath_literal(desc.role)}")
        if desc.type:
            parts.append(f"@type={xpath_literal(desc.type)}")
        if desc.class_name:
            parts.append(f"contains(@class, {xpath_literal(desc.class_name)})")

        if not parts:
            return UNIVERSAL_SELECTOR
        return f"//*[{' and '.join(parts)}]"

    def _fuzzy_selector(self, desc: ElementDescription) -> str:
        if desc.text and desc.text.strip():
            text = desc.text.strip()
            prefix = xpath_literal(text[:10])
            # Innermost match only; ancestors contain the same string value
            return (
                f"//*[(normalize-space(.) = {xpath_literal(text)} or contains(normalize-space(.), {prefix}))"
                f" and not(*[contains(normalize-space(.), {prefix})])]"
            )
        if desc.type:
            return f"//input[@type={xpath_literal(desc.type)}]"
        if desc.role:
            return f"//*[@role={xpath_literal(desc.role)}]"
        if desc.aria_label:
            return f"//*[@aria-label={xpath_literal(desc.aria_label)}]"
        return UNIVERSAL_SELECTOR

    async def _generate_ai_strategy(self, desc: ElementDescription, context: str) -> Optional[LocatorStrategy]:
        prompt = AI_PROMPT_TEMPLATE.format(
            element_info=json.dumps(desc.to_dict(), indent=2),
            context=context
        )

        try:
            response = await self.ai_client.generate(prompt, {"temperature": 0.3, "max_tokens": 100})
        except Exception as e:
            logger.debug(f"AI locator strategy generation failed: {e}")
            return None

        lines = (response or "").strip().splitlines()
        selector = lines[0].strip().strip("`") if lines else ""
        if not selector.startswith(AI_SELECTOR_PREFIXES):
            logger.debug(f"Discarding AI answer that is not a selector: {selector[:80]!r}")
            return None

        return LocatorStrategy(
            kind=LocatorKind.AI_SUGGESTED,
            selector=selector,
            priority=PRIORITIES[LocatorKind.AI_SUGGESTED],
            rationale="AI-suggested selector",
            language=guess_query_language(selector)
        )
