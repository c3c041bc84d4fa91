"""
Resilient element resolution and self-healing for UI test automation.

Elements are located by semantic description through ranked locator
strategies backed by a learning cache; failing steps are classified and
healed by patching or regenerating per-page selector registries.
"""

from .core.logging_config import setup_healing_logging
from .core.errors import (
    AIGenerationError,
    ConfigurationError,
    ElementNotFoundError,
    HealingExhaustedError,
    LocatorHealingError,
    RegistryPatchError
)
from .core.models.healing_models import ElementDescription, RecoveryPlan, ScenarioContext
from .services.documents import HtmlDocument, SeleniumDocument
from .services.locator_healing_service import LocatorHealingService
from .services.retry_executor import ExecutionOptions

__version__ = "0.1.0"

__all__ = [
    "AIGenerationError",
    "ConfigurationError",
    "ElementDescription",
    "ElementNotFoundError",
    "ExecutionOptions",
    "HealingExhaustedError",
    "HtmlDocument",
    "LocatorHealingError",
    "LocatorHealingService",
    "RecoveryPlan",
    "RegistryPatchError",
    "ScenarioContext",
    "SeleniumDocument",
    "setup_healing_logging",
]
