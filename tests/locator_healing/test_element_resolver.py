"""Tests for element resolution against captured HTML documents."""

import pytest
from unittest.mock import AsyncMock, Mock

from selenium.common.exceptions import StaleElementReferenceException, WebDriverException
from selenium.webdriver.common.by import By

from locator_healing.core.errors import ElementNotFoundError
from locator_healing.core.models.healing_models import LocatorKind, LocatorStrategy, QueryLanguage
from locator_healing.services.documents import HtmlDocument, SeleniumDocument
from locator_healing.services.element_resolver import ElementResolver
from locator_healing.services.strategy_cache import StrategyCache
from locator_healing.services.strategy_generator import StrategyGenerator


@pytest.fixture
def cache(tmp_path):
    return StrategyCache(cache_path=tmp_path / "cache.json")


@pytest.fixture
def generator():
    return StrategyGenerator(ai_client=None)


def resolver_for(markup, cache, generator):
    return ElementResolver(HtmlDocument(markup), cache, generator)


class TestHtmlDocument:
    """Test the lxml-backed document accessor."""

    @pytest.mark.asyncio
    async def test_css_and_xpath_queries(self, login_html):
        document = HtmlDocument(login_html)

        by_css = await document.find_all("#username", QueryLanguage.CSS)
        by_xpath = await document.find_all("//input[@type='password']", QueryLanguage.XPATH)

        assert [el.get("id") for el in by_css] == ["username"]
        assert [el.get("id") for el in by_xpath] == ["password"]

    @pytest.mark.asyncio
    async def test_non_element_xpath_results_are_dropped(self, login_html):
        document = HtmlDocument(login_html)

        assert await document.find_all("count(//input)", QueryLanguage.XPATH) == []
        assert await document.find_all("//input/@id", QueryLanguage.XPATH) == []

    @pytest.mark.asyncio
    async def test_visibility_rules(self):
        document = HtmlDocument(
            '<html><body>'
            '<input id="a" type="hidden">'
            '<div style="display: none"><span id="b">x</span></div>'
            '<p id="c" hidden>y</p>'
            '<p id="d" aria-hidden="true">z</p>'
            '<p id="e">shown</p>'
            '</body></html>'
        )

        visibility = {}
        for element_id in "abcde":
            element = (await document.find_all(f"#{element_id}", QueryLanguage.CSS))[0]
            visibility[element_id] = await document.is_visible(element)

        assert visibility == {"a": False, "b": False, "c": False, "d": False, "e": True}

    @pytest.mark.asyncio
    async def test_captured_document_is_not_live(self, login_html):
        document = HtmlDocument(login_html)

        assert await document.is_live() is False
        assert await document.get_markup() == login_html


class TestElementResolver:
    """Test cache-first resolution and strategy exhaustion."""

    @pytest.mark.asyncio
    async def test_resolves_by_id_and_caches(self, cache, generator):
        resolver = resolver_for('<html><body><button id="submit">Submit</button></body></html>', cache, generator)

        element = await resolver.resolve({"text": "Submit"})

        assert element.tag == "button"
        assert cache.get("submit")[0].selector == "#submit"

    @pytest.mark.asyncio
    async def test_cache_hit_skips_generation(self, cache, generator):
        resolver = resolver_for('<html><body><button id="submit">Submit</button></body></html>', cache, generator)
        await resolver.resolve("Submit")

        generator.generate = AsyncMock()
        element = await resolver.resolve("Submit")

        assert element.get("id") == "submit"
        generator.generate.assert_not_awaited()
        assert cache.get_entry("submit").success_count == 2

    @pytest.mark.asyncio
    async def test_falls_back_to_text_xpath(self, cache, generator):
        resolver = resolver_for('<html><body><a href="/x">Sign up</a></body></html>', cache, generator)

        element = await resolver.resolve("Sign up")

        assert element.tag == "a"
        assert cache.get("sign_up")[0].kind == LocatorKind.TEXT_XPATH

    @pytest.mark.asyncio
    async def test_fuzzy_tier_resolves_text_split_by_inline_child(self, cache, generator):
        resolver = resolver_for(
            "<html><body><div><button><span>Sub</span>mit</button></div></body></html>", cache, generator
        )

        element = await resolver.resolve({"text": "Submit"})

        assert element.tag == "button"
        assert cache.get("submit")[0].kind == LocatorKind.FUZZY_XPATH

    @pytest.mark.asyncio
    async def test_hidden_match_is_a_miss(self, cache, generator):
        resolver = resolver_for(
            '<html><body><button id="submit" style="display:none">Submit</button></body></html>',
            cache, generator
        )

        with pytest.raises(ElementNotFoundError):
            await resolver.resolve("Submit")
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_ambiguous_match_is_a_miss(self, cache, generator):
        resolver = resolver_for(
            '<html><body><button>Save</button><button>Save</button></body></html>',
            cache, generator
        )

        with pytest.raises(ElementNotFoundError):
            await resolver.resolve("Save")

    @pytest.mark.asyncio
    async def test_exhaustion_tries_cache_then_every_generated_strategy(self, cache, generator):
        cached = LocatorStrategy(kind=LocatorKind.ID, selector="#old-submit", priority=100)
        cache.put("submit", [cached])
        resolver = resolver_for("<html><body><p>Nothing here</p></body></html>", cache, generator)

        with pytest.raises(ElementNotFoundError) as exc_info:
            await resolver.resolve("Submit")

        expected = ["#old-submit"] + [s.selector for s in generator.build_strategies("Submit")]
        assert exc_info.value.attempted == expected
        assert cache.get_entry("submit").failure_count == 1

    @pytest.mark.asyncio
    async def test_malformed_cached_selector_only_misses(self, cache, generator):
        broken = LocatorStrategy(kind=LocatorKind.ID, selector="#[[", priority=100)
        cache.put("submit", [broken])
        resolver = resolver_for('<html><body><button id="submit">Submit</button></body></html>', cache, generator)

        element = await resolver.resolve("Submit")

        assert element.get("id") == "submit"
        entry = cache.get_entry("submit")
        assert entry.strategies[0].selector == "#submit"
        assert entry.failure_count == 1
        assert entry.success_count == 2

    @pytest.mark.asyncio
    async def test_symbol_labels_do_not_share_cache_entries(self, cache, generator):
        resolver = resolver_for(
            "<html><body><span>!!!</span><p>???</p></body></html>", cache, generator
        )

        first = await resolver.resolve("!!!")
        second = await resolver.resolve("???")

        assert first.text == "!!!"
        assert second.text == "???"
        assert len(cache) == 2

    @pytest.mark.asyncio
    async def test_attribute_description(self, cache, generator, login_html):
        resolver = resolver_for(login_html, cache, generator)

        element = await resolver.resolve({"placeholder": "Username"})

        assert element.get("id") == "username"


class TestSeleniumDocument:
    """Test the WebDriver-backed document accessor with a mocked driver."""

    @pytest.mark.asyncio
    async def test_find_all_maps_query_language(self):
        driver = Mock()
        driver.find_elements.return_value = ["element"]
        document = SeleniumDocument(driver)

        assert await document.find_all("//button", QueryLanguage.XPATH) == ["element"]
        driver.find_elements.assert_called_with(By.XPATH, "//button")

        await document.find_all("#submit", QueryLanguage.CSS)
        driver.find_elements.assert_called_with(By.CSS_SELECTOR, "#submit")

    @pytest.mark.asyncio
    async def test_stale_element_is_not_visible(self):
        element = Mock()
        element.is_displayed.side_effect = StaleElementReferenceException("gone")

        assert await SeleniumDocument(Mock()).is_visible(element) is False

    @pytest.mark.asyncio
    async def test_markup_and_liveness(self):
        driver = Mock()
        driver.session_id = "abc"
        driver.page_source = "<html></html>"
        driver.current_url = "http://app.test/login"
        document = SeleniumDocument(driver)

        assert await document.get_markup() == "<html></html>"
        assert await document.is_live() is True

        driver.session_id = None
        assert await document.is_live() is False

    @pytest.mark.asyncio
    async def test_unreachable_session_is_not_live(self):
        class DeadDriver:
            session_id = "abc"

            @property
            def current_url(self):
                raise WebDriverException("session deleted")

        assert await SeleniumDocument(DeadDriver()).is_live() is False
