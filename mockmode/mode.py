"""Global mock mode flag."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class GlobalModeController:
    """Holds the process-wide "mock everything" flag.

    Setting the flag is advisory: it does not enable or disable services.
    The environment binder reads it to decide whether to call enable_all.
    """

    def __init__(self, enabled: bool = False) -> None:
        self._enabled = enabled

    def set_global_mock_mode(self, enabled: bool) -> None:
        self._enabled = bool(enabled)
        logger.info("Global mock mode %s", "enabled" if self._enabled else "disabled")

    def is_global_mock_mode(self) -> bool:
        return self._enabled
