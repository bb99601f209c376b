"""Thread-safe registry of environment_id -> live provisioning handle for cooperative cancel."""
import threading
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from app.core.tasks import CancellationToken

logger = logging.getLogger(__name__)


@dataclass
class ProvisionHandle:
    environment_id: str
    token: CancellationToken = field(default_factory=CancellationToken)
    done: bool = False


class ProvisionRegistry:
    def __init__(self):
        self._lock = threading.Lock()
        self._registry: Dict[str, ProvisionHandle] = {}

    def register(self, environment_id: str) -> ProvisionHandle:
        handle = ProvisionHandle(environment_id=environment_id)
        with self._lock:
            self._registry[environment_id] = handle
        logger.debug(f"Registered provisioning for environment {environment_id}")
        return handle

    def unregister(self, environment_id: str, handle: Optional[ProvisionHandle] = None) -> None:
        """Remove the entry; with `handle`, only if it is still the registered one."""
        with self._lock:
            current = self._registry.get(environment_id)
            if current is None:
                return
            if handle is not None and current is not handle:
                return
            current.done = True
            del self._registry[environment_id]
        logger.debug(f"Unregistered provisioning for environment {environment_id}")

    def get(self, environment_id: str) -> Optional[ProvisionHandle]:
        with self._lock:
            return self._registry.get(environment_id)

    def cancel(self, environment_id: str) -> bool:
        """Request cancellation. Returns False (no-op) when nothing is provisioning."""
        with self._lock:
            handle = self._registry.get(environment_id)
            if handle is None or handle.done:
                return False
            handle.token.cancel()
        logger.info(f"Cancellation requested for environment {environment_id}")
        return True

    def cancel_all(self) -> int:
        """Cancel every live provisioning. Returns how many tokens were signalled."""
        with self._lock:
            handles = [h for h in self._registry.values() if not h.done]
            for handle in handles:
                handle.token.cancel()
        if handles:
            logger.info(f"Cancellation requested for {len(handles)} provisioning task(s)")
        return len(handles)

    def __contains__(self, environment_id: str) -> bool:
        with self._lock:
            return environment_id in self._registry

    def __len__(self) -> int:
        with self._lock:
            return len(self._registry)
