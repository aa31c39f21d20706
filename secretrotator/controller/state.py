"""Durable rotation state, one record per policy."""

import json
import os
import tempfile
import threading
from datetime import datetime, timezone
from typing import Any, Dict

from ..secrets.rotation import RotationState
from ..utils.errors import StatePersistenceError


class StateStore:
    """Persists rotation state to a JSON file."""

    def __init__(self, path: str):
        """
        Initialize state store.

        Args:
            path: Path to the state file
        """
        self.path = path
        self._lock = threading.Lock()

    def load(self, name: str) -> RotationState:
        """Return the state for a policy, or a fresh state if none exists."""
        with self._lock:
            data = self._read().get(name)
        return RotationState.from_dict(data) if data else RotationState()

    def all(self) -> Dict[str, RotationState]:
        """Return every persisted state keyed by policy name."""
        with self._lock:
            states = self._read()
        return {name: RotationState.from_dict(data) for name, data in states.items()}

    def save(self, name: str, state: RotationState) -> None:
        """
        Persist the state for a policy.

        Raises:
            StatePersistenceError: If the state file cannot be written
        """
        with self._lock:
            states = self._read()
            states[name] = state.to_dict()
            self._write(states)

    def delete(self, name: str) -> None:
        """Remove the state for a policy."""
        with self._lock:
            states = self._read()
            if states.pop(name, None) is not None:
                self._write(states)

    def _read(self) -> Dict[str, Any]:
        """Read the states mapping from disk."""
        if not os.path.exists(self.path):
            return {}

        try:
            with open(self.path, encoding="utf-8") as f:
                document = json.load(f)
        except (OSError, ValueError) as e:
            raise StatePersistenceError(f"Failed to read state file {self.path}", details=str(e)) from e

        states = document.get("states") if isinstance(document, dict) else None
        if not isinstance(states, dict):
            raise StatePersistenceError(f"Malformed state file {self.path}")
        return states

    def _write(self, states: Dict[str, Any]) -> None:
        """Atomically replace the state file."""
        document = {
            "states": states,
            "last_updated": datetime.now(timezone.utc).isoformat(),
        }

        try:
            state_dir = os.path.dirname(os.path.abspath(self.path))
            os.makedirs(state_dir, exist_ok=True)

            fd, tmp_path = tempfile.mkstemp(dir=state_dir, prefix=".state-")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(document, f, indent=2)
                os.chmod(tmp_path, 0o600)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise

        except OSError as e:
            raise StatePersistenceError(f"Failed to write state file {self.path}", details=str(e)) from e
