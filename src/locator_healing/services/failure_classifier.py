"""
Failure classification for step errors.

Maps a raw error (exception or message) to an ErrorKind by lowercase
substring matching. Pure and synchronous.
"""

import logging
from typing import Dict, List, Union

from ..core.models.healing_models import ErrorKind

logger = logging.getLogger(__name__)


class FailureClassifier:
    """Classifies step failures so healing knows what went wrong."""

    # Checked in insertion order; the first kind with a matching marker wins
    ERROR_PATTERNS: Dict[ErrorKind, List[str]] = {
        ErrorKind.SELECTOR_NOT_FOUND: [
            "not found",
            "no such element",
            "stale element",
            "detached from dom",
        ],
        ErrorKind.ASSERTION_FAILED: [
            "assertion",
            "expected",
            "to contain",
            "tobedisplayed",
        ],
        ErrorKind.ACTION_FAILED: [
            "click",
            "setvalue",
            "cannot perform",
            "not clickable",
        ],
    }

    def classify(self, error: Union[BaseException, str, None]) -> ErrorKind:
        """Classify an error.

        Args:
            error: Exception raised by the step, or its message

        Returns:
            The matching ErrorKind, ``ErrorKind.UNKNOWN`` if nothing matches
        """
        message = self.error_message(error).lower()

        for kind, markers in self.ERROR_PATTERNS.items():
            if any(marker in message for marker in markers):
                logger.debug(f"Classified failure as {kind.value}: {message[:120]}")
                return kind

        return ErrorKind.UNKNOWN

    @staticmethod
    def error_message(error: Union[BaseException, str, None]) -> str:
        """Extract a message from an exception or string."""
        if error is None:
            return ""
        if isinstance(error, BaseException):
            text = str(error)
            # Exceptions raised without arguments still carry a useful class name
            return text or type(error).__name__
        return str(error)


_default_classifier = FailureClassifier()


def classify_error(error: Union[BaseException, str, None]) -> ErrorKind:
    """Classify an error with the shared classifier."""
    return _default_classifier.classify(error)
