"""Unit tests for locator strategy generation."""

import pytest
from unittest.mock import AsyncMock

from locator_healing.core.models.healing_models import (
    ElementDescription,
    LocatorKind,
    LocatorStrategy,
    QueryLanguage
)
from locator_healing.services.strategy_generator import (
    PRIORITIES,
    UNIVERSAL_SELECTOR,
    StrategyGenerator
)


class TestDeterministicStrategies:
    """Test the deterministic strategy tiers."""

    def setup_method(self):
        """Set up test fixtures."""
        self.generator = StrategyGenerator(ai_client=None)

    def test_text_description_starts_with_id_and_testid(self):
        """Test that a text description yields the id and data-testid tiers first."""
        strategies = self.generator.build_strategies({"text": "Submit"})

        assert strategies[0].kind == LocatorKind.ID
        assert strategies[0].selector == "#submit"
        assert strategies[0].priority == 100
        assert strategies[1].kind == LocatorKind.TESTID
        assert strategies[1].selector == '[data-testid="submit"]'
        assert strategies[1].priority == 95

    def test_strategies_sorted_by_descending_priority(self):
        """Test that every generated list is ordered by priority."""
        description = ElementDescription(
            text="Sign in",
            placeholder="Email",
            aria_label="Sign in button",
            type="submit",
            role="button",
            class_name="primary"
        )
        strategies = self.generator.build_strategies(description)
        priorities = [s.priority for s in strategies]

        assert priorities == sorted(priorities, reverse=True)
        assert [s.kind for s in strategies] == [
            LocatorKind.ID,
            LocatorKind.TESTID,
            LocatorKind.ARIA,
            LocatorKind.PLACEHOLDER,
            LocatorKind.ROLE,
            LocatorKind.TEXT_XPATH,
            LocatorKind.TYPE_CSS,
            LocatorKind.COMPOSITE,
            LocatorKind.FUZZY_XPATH,
        ]

    def test_attribute_selectors(self):
        """Test the attribute tiers and their query languages."""
        strategies = self.generator.build_strategies(
            {"placeholder": "Enter email", "ariaLabel": "Email", "type": "email"}
        )
        by_kind = {s.kind: s for s in strategies}

        assert by_kind[LocatorKind.ARIA].selector == '[aria-label="Email"]'
        assert by_kind[LocatorKind.PLACEHOLDER].selector == '[placeholder="Enter email"]'
        assert by_kind[LocatorKind.TYPE_CSS].selector == '[type="email"]'
        assert by_kind[LocatorKind.TYPE_CSS].language == QueryLanguage.CSS
        assert by_kind[LocatorKind.COMPOSITE].language == QueryLanguage.XPATH
        assert "@placeholder=\"Enter email\"" in by_kind[LocatorKind.COMPOSITE].selector
        assert by_kind[LocatorKind.FUZZY_XPATH].selector == '//input[@type="email"]'

    def test_long_text_skips_text_xpath(self):
        """Test that text at the length limit gets no text XPath tier."""
        strategies = self.generator.build_strategies({"text": "x" * 50})

        assert LocatorKind.TEXT_XPATH not in [s.kind for s in strategies]

    def test_text_with_both_quote_kinds(self):
        """Test that quotes in text produce a valid XPath literal."""
        strategies = self.generator.build_strategies({"text": "Say \"hi\" it's me"})
        text_xpath = next(s for s in strategies if s.kind == LocatorKind.TEXT_XPATH)

        assert text_xpath.selector.startswith("//*[contains(text(), concat(")

    def test_empty_description_yields_universal_selector(self):
        """Test that an empty description still yields one strategy."""
        strategies = self.generator.build_strategies({})

        assert len(strategies) == 1
        assert strategies[0].selector == UNIVERSAL_SELECTOR
        assert strategies[0].kind == LocatorKind.COMPOSITE

    def test_selectors_are_unique(self):
        """Test that duplicate selectors are dropped."""
        strategies = self.generator.build_strategies("Submit")
        selectors = [s.selector for s in strategies]

        assert len(selectors) == len(set(selectors))


class TestAIStrategy:
    """Test the AI-suggested tier."""

    @pytest.mark.asyncio
    async def test_ai_selector_appended_last(self):
        """Test that a selector-looking AI answer becomes the last strategy."""
        ai_client = AsyncMock()
        ai_client.generate.return_value = "`//button[@id='go']`\nThis selects the button."
        generator = StrategyGenerator(ai_client=ai_client)

        strategies = await generator.generate({"text": "Go"})

        assert strategies[-1].kind == LocatorKind.AI_SUGGESTED
        assert strategies[-1].selector == "//button[@id='go']"
        assert strategies[-1].priority == PRIORITIES[LocatorKind.AI_SUGGESTED]
        assert strategies[-1].language == QueryLanguage.XPATH
        ai_client.generate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_prose_answer_discarded(self):
        """Test that an AI answer that is not a selector is dropped."""
        ai_client = AsyncMock()
        ai_client.generate.return_value = "Sure! The best selector is #go"
        generator = StrategyGenerator(ai_client=ai_client)

        strategies = await generator.generate({"text": "Go"})

        assert LocatorKind.AI_SUGGESTED not in [s.kind for s in strategies]

    @pytest.mark.asyncio
    async def test_ai_failure_is_silent(self):
        """Test that an AI error never escapes generation."""
        ai_client = AsyncMock()
        ai_client.generate.side_effect = RuntimeError("backend down")
        generator = StrategyGenerator(ai_client=ai_client)

        strategies = await generator.generate({"text": "Go"})

        assert strategies
        assert strategies[0].selector == "#go"

    @pytest.mark.asyncio
    async def test_ai_disabled(self):
        """Test that the AI tier is skipped when disabled."""
        ai_client = AsyncMock()
        generator = StrategyGenerator(ai_client=ai_client, ai_enabled=False)

        await generator.generate({"text": "Go"})

        ai_client.generate.assert_not_awaited()


class TestLocatorStrategyModel:
    """Test LocatorStrategy construction rules."""

    def test_language_derived_from_kind(self):
        strategy = LocatorStrategy(kind=LocatorKind.TEXT_XPATH, selector="//a", priority=75)
        assert strategy.language == QueryLanguage.XPATH

    def test_ai_strategy_requires_language(self):
        with pytest.raises(ValueError):
            LocatorStrategy(kind=LocatorKind.AI_SUGGESTED, selector="//a", priority=50)
