"""Reporter interface.

Report rendering is outside the execution engine. Run instances only
notify the reporter each time the tree state changes, after every step.
"""

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class Reporter(Protocol):
    """Receiver of state change notifications."""

    def generate_report(self) -> None:
        """Handle a tree state change."""
        ...  # pragma: no cover


class NullReporter:
    """Reporter that only counts notifications."""

    def __init__(self) -> None:
        """Initialize the notification counter."""
        self.notifications = 0

    def generate_report(self) -> None:
        """Count a state change notification."""
        self.notifications += 1
        logger.debug('State change notification #%d', self.notifications)
