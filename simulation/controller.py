"""
Simulation enable flags.

One global switch plus per-robot overrides. A robot is simulated when
either is on. The flags are in-memory only and reset on restart.
"""

import logging
import threading
from typing import Dict, Optional

from errors.exceptions import invalid_argument

logger = logging.getLogger(__name__)


class SimulationController:
    """
    Thread-safe holder of the global and per-robot simulation flags.

    Read every tick by the simulation clock and written by the control
    surface; the two never share a stored value, so flipping the global
    flag leaves every override exactly as it was and vice versa.
    """

    def __init__(self, global_enabled: bool = True):
        self._lock = threading.Lock()
        self._global = global_enabled
        self._overrides: Dict[str, bool] = {}

    def set_global(self, enabled: bool) -> None:
        with self._lock:
            self._global = bool(enabled)
        logger.info(
            f"Global simulation {'started' if enabled else 'stopped'}",
            extra={"extra_data": {"global_enabled": bool(enabled)}}
        )

    def get_global(self) -> bool:
        with self._lock:
            return self._global

    def set_entity(self, entity_id: Optional[str], enabled: bool) -> None:
        """
        Set the override for one robot.

        Raises:
            AppException: INVALID_ARGUMENT if ``entity_id`` is empty or missing.
        """
        entity_id = self._require_id(entity_id)
        with self._lock:
            self._overrides[entity_id] = bool(enabled)
        logger.info(
            f"Simulation {'started' if enabled else 'stopped'} for robot {entity_id}",
            extra={"extra_data": {"entity_id": entity_id, "enabled": bool(enabled)}}
        )

    def get_entity(self, entity_id: Optional[str]) -> bool:
        """Return the override for one robot; unset reads as False."""
        entity_id = self._require_id(entity_id)
        with self._lock:
            return self._overrides.get(entity_id, False)

    def clear_entity(self, entity_id: Optional[str]) -> None:
        entity_id = self._require_id(entity_id)
        with self._lock:
            self._overrides.pop(entity_id, None)

    def overrides(self) -> Dict[str, bool]:
        with self._lock:
            return dict(self._overrides)

    def should_simulate(self, entity_id: str) -> bool:
        with self._lock:
            return self._global or self._overrides.get(entity_id, False)

    @staticmethod
    def _require_id(entity_id: Optional[str]) -> str:
        if entity_id is None or not str(entity_id).strip():
            raise invalid_argument(
                "Robot ID is required",
                details={"field": "entity_id"},
            )
        return str(entity_id).strip()
