"""
Entry point that wires resolution and healing together from configuration.
"""

import logging
from dataclasses import replace
from typing import Any, Dict, Optional

from ..clients.ollama_client import OllamaClient
from ..core.config_loader import get_healing_config
from ..core.models.healing_models import HealingConfiguration, RecoveryPlan, ScenarioContext
from .documents import DocumentAccessor
from .dom_analyzer import DOMAnalyzer
from .element_resolver import DescriptionInput, ElementResolver
from .failure_classifier import FailureClassifier
from .healing_hooks import HealingHooks
from .healing_orchestrator import HealingOrchestrator
from .retry_executor import ExecutionOptions, RetryExecutor, Work
from .selector_registry import RegistryHealthReport, SelectorRegistryStore
from .strategy_cache import StrategyCache
from .strategy_generator import StrategyGenerator

logger = logging.getLogger(__name__)


class LocatorHealingService:
    """Resolve elements and guard steps with self-healing."""

    def __init__(
        self,
        document: Optional[DocumentAccessor] = None,
        config: Optional[HealingConfiguration] = None,
        ai_client=None,
        use_ai: bool = True
    ):
        """Build every component from one configuration.

        Args:
            document: Current document accessor; can be replaced later
            config: Healing configuration, loaded from YAML if omitted
            ai_client: AI backend client; an OllamaClient is created if
                omitted and ``use_ai`` is set
            use_ai: Disable every AI-assisted path when False
        """
        self.config = config or get_healing_config()
        if ai_client is None and use_ai:
            ai_client = OllamaClient()
        self.ai_client = ai_client if use_ai else None

        self.classifier = FailureClassifier()
        self.cache = StrategyCache(
            cache_path=self.config.cache_path,
            reinforcement_increment=self.config.reinforcement_increment,
            max_priority=self.config.max_priority,
            decay_step=self.config.decay_step
        )
        self.generator = StrategyGenerator(
            ai_client=self.ai_client,
            ai_enabled=self.config.ai_strategies_enabled,
            max_text_length=self.config.max_text_length
        )
        self.registry_store = SelectorRegistryStore(self.config.registry_dir)
        self.orchestrator = HealingOrchestrator(
            config=self.config,
            registry_store=self.registry_store,
            document=document,
            ai_client=self.ai_client,
            dom_analyzer=DOMAnalyzer()
        )
        self.executor = RetryExecutor(
            healer=self.orchestrator,
            classifier=self.classifier,
            settle_delay_ms=self.config.settle_delay_ms
        )
        self.hooks = HealingHooks(self.orchestrator, self.classifier)
        self.resolver: Optional[ElementResolver] = None
        self.set_document(document)

        logger.info(
            f"Locator healing initialized (healing={'on' if self.config.enabled else 'off'}, "
            f"ai={'on' if self.ai_client else 'off'}, cache={self.config.cache_path})"
        )

    def set_document(self, document: Optional[DocumentAccessor]):
        """Point resolution and healing at a new document."""
        self.document = document
        self.orchestrator.document = document
        self.resolver = ElementResolver(document, self.cache, self.generator) if document is not None else None

    @property
    def scenario(self) -> Optional[ScenarioContext]:
        return self.hooks.scenario

    def before_scenario(self, scenario_id: Optional[str] = None) -> ScenarioContext:
        return self.hooks.before_scenario(scenario_id)

    def after_scenario(self) -> Optional[ScenarioContext]:
        return self.hooks.after_scenario()

    async def after_step_failure(self, step_text: str, page_name: str, error, failed_element_ref: Optional[str] = None) -> Optional[RecoveryPlan]:
        if not self.config.enabled:
            return None
        return await self.hooks.after_step_failure(step_text, page_name, error, failed_element_ref)

    async def resolve(self, description: DescriptionInput, context: str = "main") -> Any:
        """Resolve a description against the current document."""
        if self.resolver is None:
            raise RuntimeError("No document attached; call set_document() first")
        return await self.resolver.resolve(description, context)

    async def execute_with_healing(self, work: Work, options: Optional[ExecutionOptions] = None) -> Any:
        """Run a step with bounded retries and healing between attempts."""
        options = options or ExecutionOptions()
        if options.max_retries is None:
            options = replace(options, max_retries=self.config.max_retries)
        if not self.config.enabled:
            options = replace(options, healing_enabled=False)
        scenario = self.hooks.scenario or self.before_scenario()
        return await self.executor.execute_with_healing(work, options, scenario)

    async def validate_registry(self, page_name: str) -> RegistryHealthReport:
        """Check a page's registry selectors against the current document."""
        if self.document is None:
            raise RuntimeError("No document attached; call set_document() first")
        return await self.registry_store.validate_against(page_name, self.document)

    def get_stats(self) -> Dict[str, Any]:
        return self.cache.get_stats()

    def clear_cache(self) -> None:
        self.cache.clear()
