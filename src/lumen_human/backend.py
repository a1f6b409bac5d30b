"""
Backend state management for Lumen Human.

``BackendManager`` keeps the engine's active compute backend aligned with the
effective configuration before any inference runs. It is a small state
machine: UNSET -> SWITCHING -> READY, back to UNSET when a switch fails.

Sessions are bound to the provider chain that was active when they were
created, so replacing an active backend notifies ``on_switch`` (the model
registry's ``reset`` in a ``RuntimeContext``) and models load again on the
new chain.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum

from .config import HumanConfig
from .engine import TensorEngine
from .exceptions import BackendNotFoundError

logger = logging.getLogger(__name__)


class BackendState(str, Enum):
    """Lifecycle states of the managed backend."""

    UNSET = "unset"
    SWITCHING = "switching"
    READY = "ready"


class BackendManager:
    """Switch and tune the engine backend on demand.

    Switching is serialized, and a backend switch affects every call sharing
    the engine. Callers must not assume per-call backend isolation.
    """

    def __init__(self, engine: TensorEngine, on_switch: Callable[[], None] | None = None):
        self.engine = engine
        self.state = BackendState.UNSET
        self._on_switch = on_switch
        self._lock = asyncio.Lock()

    def is_current(self, config: HumanConfig) -> bool:
        active = self.engine.backend
        return (
            self.state is BackendState.READY
            and active is not None
            and active.name == config.backend.lower()
        )

    async def ensure(self, config: HumanConfig) -> bool:
        """Make the configured backend active, tuned and ready.

        Returns:
            bool: True when a previously active backend was replaced.

        Raises:
            BackendNotFoundError: If the backend is unknown or its execution
                provider is unavailable. Not retried.
        """
        if self.is_current(config):
            return False

        async with self._lock:
            if self.is_current(config):
                return False

            previous = self.engine.backend
            self.state = BackendState.SWITCHING
            log = logger.info if config.console else logger.debug
            log("Setting backend: %s", config.backend)
            try:
                await self.engine.set_backend(config.backend)
                self.engine.enable_prod_mode()

                spec = self.engine.backend
                if spec is not None and spec.gpu:
                    threshold = 0 if config.deallocate else -1
                    log("Changing %s deallocation threshold: %d", spec.name, threshold)
                    self.engine.flags["DELETE_THRESHOLD"] = threshold
                else:
                    self.engine.flags["DELETE_THRESHOLD"] = -1
                self.engine.flags["CPU_FORWARD"] = True

                if not await self.engine.ready():
                    raise BackendNotFoundError(f"Backend '{config.backend}' did not become ready")
            except Exception:
                self.state = BackendState.UNSET
                raise

            self.state = BackendState.READY
            current = self.engine.backend
            switched = previous is not None and current is not None and previous.name != current.name
            if switched:
                log("Backend changed from %s to %s", previous.name, current.name)
                if self._on_switch is not None:
                    self._on_switch()
            return switched


__all__ = ["BackendManager", "BackendState"]
