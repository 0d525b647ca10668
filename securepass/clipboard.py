"""
Copy credential fields to the system clipboard.

Copied secrets are wiped from the clipboard after a timeout.
"""

import logging
from typing import Callable, Optional

from PyQt5.QtCore import QTimer
from PyQt5.QtWidgets import QApplication

from . import config
from .models import CredentialRecord

logger = logging.getLogger(__name__)


def _qt_clipboard():
    app = QApplication.instance()
    if app is None:
        # The clipboard needs a running QApplication.
        app = QApplication([])
    return app.clipboard()


class ClipboardHelper:
    """Clipboard access with auto-clear of copied secrets."""

    def __init__(self, clipboard=None,
                 schedule: Optional[Callable[[int, Callable[[], None]], None]] = None,
                 clear_timeout_ms: int = config.CLIPBOARD_CLEAR_TIMEOUT_DEFAULT):
        """
        Args:
            clipboard: Object with setText/text/clear; defaults to the Qt clipboard
            schedule: Called as schedule(milliseconds, callback); defaults to QTimer.singleShot
            clear_timeout_ms: Delay before a copied secret is cleared
        """
        self._clipboard = clipboard
        self._schedule = schedule or QTimer.singleShot
        self.clear_timeout_ms = clear_timeout_ms
        self._pending_secret: Optional[str] = None

    @property
    def pending(self) -> bool:
        """True while a copied secret is waiting to be cleared."""
        return self._pending_secret is not None

    @property
    def clipboard(self):
        if self._clipboard is None:
            self._clipboard = _qt_clipboard()
        return self._clipboard

    def copy_text(self, text: str, label: str) -> None:
        self.clipboard.setText(text)
        logger.info(f"{label} copied to clipboard")

    def copy_secret(self, record: CredentialRecord) -> None:
        """Copy the record's secret and schedule the clipboard to be cleared."""
        self.clipboard.setText(record.secret_value)
        self._pending_secret = record.secret_value
        self._schedule(self.clear_timeout_ms, self._clear_if_unchanged)
        logger.info(f"Secret of {record.id} copied to clipboard (auto-clear in {self.clear_timeout_ms // 1000}s)")

    def _clear_if_unchanged(self) -> None:
        # Leave the clipboard alone if the user copied something else since.
        if self._pending_secret is not None and self.clipboard.text() == self._pending_secret:
            self.clear()
        self._pending_secret = None

    def clear(self) -> None:
        """Clear the clipboard."""
        self.clipboard.clear()
        self._pending_secret = None
        logger.info("Clipboard cleared")
