"""
Element resolution by description.

Tries cached strategies first (highest priority first), then freshly
generated ones in fixed priority order. A strategy matches when its query
returns exactly one element and that element is visible. Only total
exhaustion raises ElementNotFoundError.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from ..core.errors import ElementNotFoundError
from ..core.models.healing_models import ElementDescription, LocatorStrategy
from .documents import DocumentAccessor
from .strategy_cache import StrategyCache, fingerprint
from .strategy_generator import StrategyGenerator

logger = logging.getLogger(__name__)

DescriptionInput = Union[ElementDescription, str, Dict[str, Any]]


class ElementResolver:
    """Finds one visible element for a description against a document."""

    def __init__(self, document: DocumentAccessor, cache: StrategyCache, generator: StrategyGenerator):
        self.document = document
        self.cache = cache
        self.generator = generator

    async def resolve(self, description: DescriptionInput, context: str = "main") -> Any:
        """Resolve a description to a single visible element.

        Args:
            description: ElementDescription, attribute dict or bare text
            context: Free-text label passed to strategy generation

        Returns:
            The matched element (lxml element or Selenium WebElement)

        Raises:
            ElementNotFoundError: If every cached and generated strategy failed
        """
        key = fingerprint(description)
        attempted: List[str] = []

        cached = self.cache.get(key)
        if cached:
            failed_ahead: List[LocatorStrategy] = []
            for strategy in cached:
                attempted.append(strategy.selector)
                element = await self._try_strategy(strategy)
                if element is not None:
                    self.cache.record_success(key, strategy, failed_ahead)
                    logger.debug(f"Resolved {key} from cache with {strategy.kind.value}: {strategy.selector}")
                    return element
                failed_ahead.append(strategy)

            self.cache.record_failure(key)
            logger.info(f"All {len(cached)} cached strategies failed for {key}, generating new ones")

        strategies = await self.generator.generate(description, context)
        for strategy in strategies:
            attempted.append(strategy.selector)
            element = await self._try_strategy(strategy)
            if element is not None:
                self.cache.put(key, strategies, winner=strategy)
                logger.info(f"Resolved {key} with {strategy.kind.value}: {strategy.selector}")
                return element

        logger.warning(f"Could not find element for {key} after {len(attempted)} strategies")
        raise ElementNotFoundError(self._describe(description), attempted)

    async def _try_strategy(self, strategy: LocatorStrategy) -> Optional[Any]:
        """Apply one strategy; any error counts as a miss."""
        try:
            elements = await self.document.find_all(strategy.selector, strategy.language)
            if len(elements) != 1:
                logger.debug(
                    f"Strategy {strategy.kind.value} matched {len(elements)} elements: {strategy.selector}"
                )
                return None
            if not await self.document.is_visible(elements[0]):
                logger.debug(f"Strategy {strategy.kind.value} matched a hidden element: {strategy.selector}")
                return None
            return elements[0]
        except Exception as e:
            logger.debug(f"Strategy {strategy.kind.value} with selector {strategy.selector} failed: {e}")
            return None

    @staticmethod
    def _describe(description: DescriptionInput) -> str:
        if isinstance(description, str):
            return repr(description)
        desc = ElementDescription.coerce(description)
        return str(desc.to_dict() or "{}")
