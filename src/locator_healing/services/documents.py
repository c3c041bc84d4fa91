"""
Document accessors used by the resolver and the healing orchestrator.

``HtmlDocument`` queries captured markup with lxml; ``SeleniumDocument``
queries a live WebDriver session, running blocking driver calls in the
event loop's executor.
"""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Any, List, Optional

import lxml.html
from lxml import etree
from selenium.common.exceptions import StaleElementReferenceException, WebDriverException
from selenium.webdriver.common.by import By

from ..core.models.healing_models import QueryLanguage

logger = logging.getLogger(__name__)


class DocumentAccessor(ABC):
    """Query interface over a live or captured document."""

    @abstractmethod
    async def find_all(self, selector: str, language: QueryLanguage) -> List[Any]:
        """Return all elements matching a selector.

        Malformed selectors raise; callers treat that as a miss.
        """

    @abstractmethod
    async def is_visible(self, element: Any) -> bool:
        """Return True if the element is currently displayed."""

    @abstractmethod
    async def get_markup(self) -> str:
        """Return the serialized markup of the current document."""

    @abstractmethod
    async def is_live(self) -> bool:
        """Return True if the document is backed by a reachable live session."""


_HIDDEN_STYLE = re.compile(r"(display\s*:\s*none|visibility\s*:\s*hidden)", re.IGNORECASE)
_NON_RENDERED_TAGS = {"head", "script", "style", "title", "meta", "link", "noscript", "template"}


class HtmlDocument(DocumentAccessor):
    """Captured HTML queried with lxml (XPath) and cssselect (CSS)."""

    def __init__(self, markup: str):
        self.set_markup(markup)

    def set_markup(self, markup: str):
        """Replace the captured document, e.g. after the page changed."""
        self.markup = markup or ""
        self.tree = lxml.html.document_fromstring(self.markup or "<html><body></body></html>")

    async def find_all(self, selector: str, language: QueryLanguage) -> List[Any]:
        if language == QueryLanguage.XPATH:
            results = self.tree.xpath(selector)
            if not isinstance(results, list):
                return []
            return [node for node in results if isinstance(node, etree._Element)]
        return self.tree.cssselect(selector)

    async def is_visible(self, element: Any) -> bool:
        if element.get("type", "").lower() == "hidden":
            return False

        node = element
        while node is not None:
            if not isinstance(node.tag, str) or node.tag.lower() in _NON_RENDERED_TAGS:
                return False
            if node.get("hidden") is not None:
                return False
            if node.get("aria-hidden", "").lower() == "true":
                return False
            if _HIDDEN_STYLE.search(node.get("style", "")):
                return False
            node = node.getparent()

        return True

    async def get_markup(self) -> str:
        return self.markup

    async def is_live(self) -> bool:
        return False


class SeleniumDocument(DocumentAccessor):
    """Live document behind a Selenium WebDriver session."""

    BY_LANGUAGE = {
        QueryLanguage.CSS: By.CSS_SELECTOR,
        QueryLanguage.XPATH: By.XPATH,
    }

    def __init__(self, driver, executor: Optional[ThreadPoolExecutor] = None):
        self.driver = driver
        self.executor = executor

    async def _run(self, func, *args):
        return await asyncio.get_event_loop().run_in_executor(self.executor, func, *args)

    async def find_all(self, selector: str, language: QueryLanguage) -> List[Any]:
        return await self._run(self.driver.find_elements, self.BY_LANGUAGE[language], selector)

    async def is_visible(self, element: Any) -> bool:
        try:
            return bool(await self._run(element.is_displayed))
        except StaleElementReferenceException:
            return False

    async def get_markup(self) -> str:
        return await self._run(lambda: self.driver.page_source)

    async def is_live(self) -> bool:
        if self.driver is None or getattr(self.driver, "session_id", None) is None:
            return False
        try:
            await self._run(lambda: self.driver.current_url)
            return True
        except WebDriverException as e:
            logger.debug(f"WebDriver session is not reachable: {e}")
            return False
