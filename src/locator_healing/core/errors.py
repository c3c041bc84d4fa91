"""Exception hierarchy for element resolution and self-healing."""

from typing import List, Optional


class LocatorHealingError(Exception):
    """Base class for all errors raised by this package."""
    pass


class ConfigurationError(LocatorHealingError):
    """Raised when configuration is invalid or cannot be loaded."""
    pass


class ElementNotFoundError(LocatorHealingError):
    """Raised when every locator strategy failed to find a visible element."""

    def __init__(self, description: str, attempted: Optional[List[str]] = None):
        self.description = description
        self.attempted = attempted or []
        super().__init__(
            f"Element not found: {description} "
            f"(tried {len(self.attempted)} strategies)"
        )


class AIGenerationError(LocatorHealingError):
    """Raised when the AI backend call fails or returns unusable output."""

    def __init__(self, message: str, status_code: Optional[int] = None, retryable: bool = False):
        self.status_code = status_code
        self.retryable = retryable
        super().__init__(message)


class HealingExhaustedError(LocatorHealingError):
    """Raised when a failure has used up its healing attempts."""

    def __init__(self, attempt_count: int, max_attempts: int):
        self.attempt_count = attempt_count
        self.max_attempts = max_attempts
        super().__init__(
            f"Healing attempts exceeded ({attempt_count} > {max_attempts})"
        )


class RegistryPatchError(LocatorHealingError):
    """Raised when a selector patch is rejected; the registry is left untouched."""

    def __init__(self, page_name: str, element_name: str, reason: str):
        self.page_name = page_name
        self.element_name = element_name
        self.reason = reason
        super().__init__(f"Cannot patch {page_name}.{element_name}: {reason}")
