"""Data models for element resolution and self-healing."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Any, Union
from enum import Enum


class LocatorKind(Enum):
    """Locator strategy kinds in generation order."""
    ID = "id"
    TESTID = "testid"
    ARIA = "aria"
    PLACEHOLDER = "placeholder"
    ROLE = "role"
    TEXT_XPATH = "text-xpath"
    TYPE_CSS = "type-css"
    COMPOSITE = "composite"
    FUZZY_XPATH = "fuzzy-xpath"
    AI_SUGGESTED = "ai-suggested"


class QueryLanguage(Enum):
    """Query language used to apply a selector against a document."""
    CSS = "css"
    XPATH = "xpath"


# Query language for every kind whose language is fixed by the kind itself.
KIND_LANGUAGE: Dict[LocatorKind, QueryLanguage] = {
    LocatorKind.ID: QueryLanguage.CSS,
    LocatorKind.TESTID: QueryLanguage.CSS,
    LocatorKind.ARIA: QueryLanguage.CSS,
    LocatorKind.PLACEHOLDER: QueryLanguage.CSS,
    LocatorKind.ROLE: QueryLanguage.CSS,
    LocatorKind.TEXT_XPATH: QueryLanguage.XPATH,
    LocatorKind.TYPE_CSS: QueryLanguage.CSS,
    LocatorKind.COMPOSITE: QueryLanguage.XPATH,
    LocatorKind.FUZZY_XPATH: QueryLanguage.XPATH,
}


class ErrorKind(Enum):
    """Classification of a step failure."""
    SELECTOR_NOT_FOUND = "selector_not_found"
    ASSERTION_FAILED = "assertion_failed"
    ACTION_FAILED = "action_failed"
    UNKNOWN = "unknown"


class RecoveryAction(Enum):
    """Recovery actions a healing verdict can carry."""
    UPDATE_SELECTOR = "updateSelector"
    RESCAN_PAGE = "rescanPage"
    RETRY_WITH_WAIT = "retryWithWait"
    NONE = "none"


class ElementCategory(Enum):
    """Category tags for selector registry entries."""
    INPUT = "input"
    BUTTON = "button"
    LINK = "link"
    HEADING = "heading"
    ERROR = "error"
    SUCCESS = "success"
    TEXT = "text"
    OTHER = "other"


@dataclass(frozen=True)
class ElementDescription:
    """Attribute-based, fuzzy description of a target element."""
    text: Optional[str] = None
    placeholder: Optional[str] = None
    aria_label: Optional[str] = None
    type: Optional[str] = None
    role: Optional[str] = None
    class_name: Optional[str] = None

    # Field order used for fingerprints and composite selectors
    FIELDS = ("text", "aria_label", "placeholder", "type", "role", "class_name")

    @classmethod
    def coerce(cls, description: Union["ElementDescription", str, Dict[str, Any], None]) -> "ElementDescription":
        """Accept a description object, a bare string or a plain dictionary."""
        if description is None:
            return cls()
        if isinstance(description, cls):
            return description
        if isinstance(description, str):
            return cls(text=description)
        aliases = {"ariaLabel": "aria_label", "className": "class_name"}
        data = {aliases.get(k, k): v for k, v in description.items()}
        return cls(**{k: data.get(k) for k in cls.FIELDS})

    def present_fields(self) -> Dict[str, str]:
        """Return the non-empty attributes in fingerprint order."""
        present = {}
        for name in self.FIELDS:
            value = getattr(self, name)
            if value is not None and str(value).strip():
                present[name] = str(value)
        return present

    def is_empty(self) -> bool:
        return not self.present_fields()

    def to_dict(self) -> Dict[str, str]:
        return self.present_fields()


@dataclass
class LocatorStrategy:
    """One concrete candidate selector.

    Only ``priority`` changes after creation; it is adjusted by cache
    reinforcement.
    """
    kind: LocatorKind
    selector: str
    priority: int
    rationale: str = ""
    language: Optional[QueryLanguage] = None

    def __post_init__(self):
        if self.language is None:
            language = KIND_LANGUAGE.get(self.kind)
            if language is None:
                raise ValueError(f"Strategy kind {self.kind.value} requires an explicit query language")
            self.language = language

    def to_dict(self) -> Dict[str, Any]:
        """Convert strategy to dictionary for storage."""
        return {
            "kind": self.kind.value,
            "selector": self.selector,
            "priority": self.priority,
            "rationale": self.rationale,
            "language": self.language.value
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LocatorStrategy':
        """Create strategy from dictionary."""
        return cls(
            kind=LocatorKind(data["kind"]),
            selector=data["selector"],
            priority=int(data["priority"]),
            rationale=data.get("rationale", ""),
            language=QueryLanguage(data["language"]) if data.get("language") else None
        )


@dataclass
class StrategyCacheEntry:
    """Previously successful strategies for one fingerprint."""
    strategies: List[LocatorStrategy] = field(default_factory=list)
    success_count: int = 0
    failure_count: int = 0
    last_used: datetime = field(default_factory=datetime.now)

    def sort_strategies(self):
        """Keep strategies unique by selector and sorted by priority (desc)."""
        unique: Dict[str, LocatorStrategy] = {}
        for strategy in self.strategies:
            unique.setdefault(strategy.selector, strategy)
        # sorted() is stable, so equal priorities keep their stored order
        self.strategies = sorted(unique.values(), key=lambda s: s.priority, reverse=True)

    def find(self, selector: str) -> Optional[LocatorStrategy]:
        for strategy in self.strategies:
            if strategy.selector == selector:
                return strategy
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategies": [s.to_dict() for s in self.strategies],
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "last_used": self.last_used.isoformat()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StrategyCacheEntry':
        entry = cls(
            strategies=[LocatorStrategy.from_dict(s) for s in data.get("strategies", [])],
            success_count=int(data.get("success_count", 0)),
            failure_count=int(data.get("failure_count", 0)),
            last_used=datetime.fromisoformat(data["last_used"]) if data.get("last_used") else datetime.now()
        )
        entry.sort_strategies()
        return entry


@dataclass
class HealingContext:
    """Context information about one step failure."""
    step_text: str
    page_name: str
    error_message: str
    error_kind: ErrorKind = ErrorKind.UNKNOWN
    attempt_count: int = 1
    failed_element_ref: Optional[str] = None


@dataclass
class RecoveryPlan:
    """Verdict produced by the healing orchestrator."""
    can_recover: bool
    action: RecoveryAction = RecoveryAction.NONE
    rationale: str = ""
    proposed_selector: Optional[str] = None
    wait_ms: Optional[int] = None

    @classmethod
    def not_recoverable(cls, rationale: str) -> 'RecoveryPlan':
        return cls(can_recover=False, action=RecoveryAction.NONE, rationale=rationale)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "can_recover": self.can_recover,
            "action": self.action.value,
            "rationale": self.rationale,
            "proposed_selector": self.proposed_selector,
            "wait_ms": self.wait_ms
        }


@dataclass
class RegistryEntry:
    """One named selector in a page's selector registry."""
    selector: str
    category: ElementCategory = ElementCategory.OTHER
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "selector": self.selector,
            "category": self.category.value,
            "description": self.description
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RegistryEntry':
        return cls(
            selector=data["selector"],
            category=ElementCategory(data.get("category", "other")),
            description=data.get("description", "")
        )


@dataclass
class SelectorRegistry:
    """Per-page mapping from logical element names to selectors."""
    page_name: str
    entries: Dict[str, RegistryEntry] = field(default_factory=dict)
    regenerated_at: Optional[datetime] = None

    def selector_for(self, name: str) -> Optional[str]:
        entry = self.entries.get(name)
        return entry.selector if entry else None

    def by_category(self, category: ElementCategory) -> Dict[str, RegistryEntry]:
        """Return entries tagged with the given category, in insertion order."""
        return {name: entry for name, entry in self.entries.items() if entry.category == category}

    def as_selector_map(self) -> Dict[str, str]:
        return {name: entry.selector for name, entry in self.entries.items()}


@dataclass
class ScenarioContext:
    """State scoped to a single scenario run.

    Created at scenario start and discarded at scenario end. Holds the
    healing-attempted flag and the set of pages already regenerated.
    """
    scenario_id: str
    healing_attempted: bool = False
    regenerated_pages: set = field(default_factory=set)
    heal_count: int = 0
    started_at: datetime = field(default_factory=datetime.now)

    def reset(self):
        """Reset the per-scenario guards."""
        self.healing_attempted = False
        self.regenerated_pages.clear()
        self.heal_count = 0
        self.started_at = datetime.now()


@dataclass
class HealingConfiguration:
    """Configuration settings for resolution and self-healing."""
    enabled: bool = True
    max_retries: int = 2
    max_healing_attempts: int = 2
    settle_delay_ms: int = 500

    # Strategy cache settings
    cache_path: str = "build/locator-cache.json"
    reinforcement_increment: int = 5
    max_priority: int = 100
    decay_step: int = 5

    # Strategy generation settings
    ai_strategies_enabled: bool = True
    max_text_length: int = 50

    # Healing settings
    registry_dir: str = "build/selector-registries"
    inventory_limit: int = 20

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "enabled": self.enabled,
            "max_retries": self.max_retries,
            "max_healing_attempts": self.max_healing_attempts,
            "settle_delay_ms": self.settle_delay_ms,
            "cache_path": self.cache_path,
            "reinforcement_increment": self.reinforcement_increment,
            "max_priority": self.max_priority,
            "decay_step": self.decay_step,
            "ai_strategies_enabled": self.ai_strategies_enabled,
            "max_text_length": self.max_text_length,
            "registry_dir": self.registry_dir,
            "inventory_limit": self.inventory_limit
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HealingConfiguration':
        """Create configuration from dictionary."""
        return cls(**data)
