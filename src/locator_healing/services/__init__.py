"""
Services for element resolution and self-healing.
"""

from .element_resolver import ElementResolver
from .healing_orchestrator import HealingOrchestrator
from .retry_executor import RetryExecutor, ExecutionOptions

__all__ = [
    "ElementResolver",
    "HealingOrchestrator",
    "RetryExecutor",
    "ExecutionOptions"
]
