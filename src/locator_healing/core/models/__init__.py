"""Core data models for element resolution and self-healing."""

from .healing_models import (
    ElementDescription,
    LocatorKind,
    QueryLanguage,
    LocatorStrategy,
    StrategyCacheEntry,
    ErrorKind,
    HealingContext,
    RecoveryAction,
    RecoveryPlan,
    ElementCategory,
    RegistryEntry,
    SelectorRegistry,
    ScenarioContext,
    HealingConfiguration
)

__all__ = [
    "ElementDescription",
    "LocatorKind",
    "QueryLanguage",
    "LocatorStrategy",
    "StrategyCacheEntry",
    "ErrorKind",
    "HealingContext",
    "RecoveryAction",
    "RecoveryPlan",
    "ElementCategory",
    "RegistryEntry",
    "SelectorRegistry",
    "ScenarioContext",
    "HealingConfiguration"
]
