"""Rotation reconciliation for managed secrets.

One call to :meth:`ReconciliationEngine.reconcile` is one cycle: decide
whether the secret is due, generate a credential, write it to the secret
store, persist the resulting state and tell the caller when to call again.
Nothing here sleeps; every wait is returned as a requeue directive.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, Optional

from ..utils.durations import parse_duration
from ..utils.errors import ConfigurationError, GenerationError, StatePersistenceError, create_error_suggestions
from .generator import CredentialGenerator
from .scheduler import RotationScheduler, WaitFor
from .store import SecretStoreClient, WriteResult

logger = logging.getLogger(__name__)

DEFAULT_PASSWORD_LENGTH = 16
STORE_FAILURE_BACKOFF = timedelta(seconds=30)

StateWriter = Callable[[str, "RotationState"], None]


class RotationStatus(Enum):
    """Outcome of the most recent rotation cycle."""

    READY = "Ready"
    GENERATION_ERROR = "GenerationError"
    STORE_ERROR = "StoreError"
    CONFIG_ERROR = "ConfigError"


@dataclass(frozen=True)
class RotationPolicy:
    """How often a secret is rotated, what it looks like and where it goes."""

    name: str
    rotation_interval: str
    store_path: str
    password_length: int = 0
    include_symbols: bool = False

    def interval(self) -> timedelta:
        """
        Parse the rotation interval.

        Raises:
            ConfigurationError: If the interval is unparseable or not positive
        """
        try:
            interval = parse_duration(self.rotation_interval)
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid rotation interval for '{self.name}': {self.rotation_interval!r}",
                details=str(e),
                suggestions=create_error_suggestions("interval_invalid"),
            ) from e

        if interval <= timedelta(0):
            raise ConfigurationError(
                f"Rotation interval for '{self.name}' must be positive: {self.rotation_interval!r}",
                suggestions=create_error_suggestions("interval_invalid"),
            )

        return interval

    def resolved_length(self) -> int:
        """Return the password length, falling back to the default for zero."""
        return self.password_length or DEFAULT_PASSWORD_LENGTH

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RotationPolicy":
        """Build a policy from a config mapping (snake_case or camelCase keys)."""

        def pick(snake: str, camel: str, default: Any = None) -> Any:
            if snake in data:
                return data[snake]
            return data.get(camel, default)

        return cls(
            name=data["name"],
            rotation_interval=str(pick("rotation_interval", "rotationInterval", "")),
            store_path=pick("store_path", "storePath", ""),
            password_length=int(pick("password_length", "passwordLength", 0) or 0),
            include_symbols=bool(pick("include_symbols", "includeSymbols", False)),
        )


@dataclass(frozen=True)
class RotationState:
    """Last known rotation outcome for one policy."""

    last_rotated_time: Optional[datetime] = None
    status: Optional[RotationStatus] = None
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "last_rotated_time": self.last_rotated_time.isoformat() if self.last_rotated_time else None,
            "status": self.status.value if self.status else None,
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RotationState":
        last_rotated = data.get("last_rotated_time")
        status = data.get("status")
        return cls(
            last_rotated_time=datetime.fromisoformat(last_rotated) if last_rotated else None,
            status=RotationStatus(status) if status else None,
            message=data.get("message", ""),
        )


@dataclass(frozen=True)
class RequeueDirective:
    """When the caller should run the next cycle for a policy."""

    requeue: bool
    requeue_after: timedelta = field(default_factory=timedelta)

    @classmethod
    def no_requeue(cls) -> "RequeueDirective":
        return cls(requeue=False)

    @classmethod
    def immediately(cls) -> "RequeueDirective":
        return cls(requeue=True)

    @classmethod
    def after(cls, delay: timedelta) -> "RequeueDirective":
        return cls(requeue=True, requeue_after=delay)


@dataclass(frozen=True)
class ReconcileResult:
    """State after a cycle together with the next-action directive."""

    state: RotationState
    directive: RequeueDirective


class ReconciliationEngine:
    """Runs rotation cycles for individual policies."""

    def __init__(
        self,
        scheduler: Optional[RotationScheduler] = None,
        generator: Optional[CredentialGenerator] = None,
        store_failure_backoff: timedelta = STORE_FAILURE_BACKOFF,
    ):
        """
        Initialize reconciliation engine.

        Args:
            scheduler: Due-time decision maker
            generator: Credential generator
            store_failure_backoff: Delay before retrying a failed store write
        """
        self.scheduler = scheduler or RotationScheduler()
        self.generator = generator or CredentialGenerator()
        self.store_failure_backoff = store_failure_backoff

    def reconcile(
        self,
        policy: RotationPolicy,
        state: RotationState,
        now: datetime,
        store: SecretStoreClient,
        state_writer: StateWriter,
    ) -> ReconcileResult:
        """
        Run one rotation cycle.

        Args:
            policy: Rotation policy
            state: Rotation state as last persisted
            now: Current time (timezone-aware)
            store: Secret store to write the new credential to
            state_writer: Persists the updated state for the policy

        Returns:
            ReconcileResult: New state and requeue directive

        Raises:
            StatePersistenceError: If the updated state could not be persisted
        """
        try:
            interval = policy.interval()
        except ConfigurationError as e:
            logger.error("Invalid rotation interval for %s, not requeueing: %s", policy.name, e.message)
            new_state = replace(state, status=RotationStatus.CONFIG_ERROR, message=e.message)
            self._persist(policy, new_state, state_writer)
            return ReconcileResult(new_state, RequeueDirective.no_requeue())

        decision = self.scheduler.decide(policy, state, now)
        if isinstance(decision, WaitFor):
            logger.debug(
                "Rotation of %s not due, next rotation at %s",
                policy.name,
                (now + decision.delay).isoformat(),
            )
            return ReconcileResult(state, RequeueDirective.after(decision.delay))

        logger.info("Starting rotation of %s", policy.name)

        try:
            secret = self.generator.generate(policy.resolved_length(), policy.include_symbols)
        except GenerationError as e:
            logger.error("Failed to generate credential for %s: %s", policy.name, e.message)
            new_state = replace(state, status=RotationStatus.GENERATION_ERROR, message=e.message)
            self._persist(policy, new_state, state_writer)
            return ReconcileResult(new_state, RequeueDirective.immediately())

        result = self._write(store, policy.store_path, secret)
        del secret

        if not result.ok:
            logger.error("Failed to write secret for %s to %s: %s", policy.name, policy.store_path, result.error)
            new_state = replace(
                state,
                status=RotationStatus.STORE_ERROR,
                message=f"Secret store write failed: {result.error or 'unknown error'}",
            )
            self._persist(policy, new_state, state_writer)
            return ReconcileResult(new_state, RequeueDirective.after(self.store_failure_backoff))

        logger.info("Secret for %s written to %s", policy.name, policy.store_path)

        new_state = RotationState(last_rotated_time=now, status=RotationStatus.READY)
        self._persist(policy, new_state, state_writer)
        return ReconcileResult(new_state, RequeueDirective.after(interval))

    def _write(self, store: SecretStoreClient, path: str, secret: str) -> WriteResult:
        """Call the store once, folding raised errors into a failed result."""
        try:
            result = store.write(path, secret)
        except Exception as e:
            return WriteResult.failure(f"{type(e).__name__}: {e}")

        if result is None:
            return WriteResult.failure("store returned no result")
        return result

    def _persist(self, policy: RotationPolicy, state: RotationState, state_writer: StateWriter) -> None:
        """Hand the new state to the caller's persistence."""
        try:
            state_writer(policy.name, state)
        except StatePersistenceError:
            raise
        except Exception as e:
            raise StatePersistenceError(
                f"Failed to update rotation state for '{policy.name}'",
                details=str(e),
            ) from e
