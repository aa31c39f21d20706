"""Rotation controller: watches policies and drives reconciliation cycles."""

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from ..config.manager import ConfigManager
from ..secrets.rotation import ReconcileResult, ReconciliationEngine, RotationPolicy
from ..secrets.store import SecretStoreClient
from ..utils.errors import ConfigurationError, RotatorError, StatePersistenceError, create_error_suggestions
from .queue import RateLimiter, RequeueQueue
from .state import StateStore

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PolicyFileWatcher(FileSystemEventHandler):
    """Flags changes to the policy file."""

    def __init__(self, config_path: str, changed: threading.Event):
        """
        Initialize policy file watcher.

        Args:
            config_path: Policy file to watch
            changed: Event set whenever the file changes
        """
        self.config_path = os.path.abspath(config_path)
        self.changed = changed

    def on_any_event(self, event):
        """Handle any file system event."""
        if event.is_directory:
            return

        paths = [event.src_path, getattr(event, "dest_path", "")]
        if any(path and os.path.abspath(path) == self.config_path for path in paths):
            logger.debug("Policy file %s changed (%s)", self.config_path, event.event_type)
            self.changed.set()


class RotationController:
    """Keeps every configured secret rotated on schedule.

    Policies are reconciled one name at a time: the queue holds each name at
    most once and a dispatch batch contains distinct names, so a policy is
    never reconciled by two workers concurrently.
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        state_store: StateStore,
        secret_store: SecretStoreClient,
        engine: Optional[ReconciliationEngine] = None,
        clock: Callable[[], datetime] = utc_now,
        workers: int = 1,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        """
        Initialize rotation controller.

        Args:
            config_manager: Source of rotation policies
            state_store: Persistence for rotation state
            secret_store: Secret store the credentials are written to
            engine: Reconciliation engine
            clock: Returns the current timezone-aware time
            workers: Number of policies reconciled in parallel
            rate_limiter: Backoff for immediate requeues and errors
        """
        if workers < 1:
            raise ConfigurationError(f"Worker count must be at least 1: {workers}")

        self.config_manager = config_manager
        self.state_store = state_store
        self.secret_store = secret_store
        self.engine = engine or ReconciliationEngine()
        self.clock = clock
        self.workers = workers
        self.rate_limiter = rate_limiter or RateLimiter()

        self.queue = RequeueQueue()
        self.policies: Dict[str, RotationPolicy] = {}

        self._changed = threading.Event()
        self._stop = threading.Event()
        self._config_mtime: Optional[float] = None

    def sync_policies(self) -> List[str]:
        """
        Reload policies from the configuration file.

        New and modified policies are queued immediately. Removed policies are
        dropped from the queue and their state is deleted.

        Returns:
            List[str]: Names of policies queued by this sync
        """
        self.config_manager.clear_cache()
        self._config_mtime = self._read_mtime()
        policies = self.config_manager.load_policies()
        now = self.clock()

        queued = []
        for name, policy in policies.items():
            if self.policies.get(name) != policy:
                self.rate_limiter.forget(name)
                self.queue.add_after(name, timedelta(0), now)
                queued.append(name)

        for name in set(self.policies) - set(policies):
            logger.info("Policy %s removed, forgetting its state", name)
            self.queue.remove(name)
            self.rate_limiter.forget(name)
            try:
                self.state_store.delete(name)
            except StatePersistenceError as e:
                logger.error("Failed to delete state for %s: %s", name, e.message)

        self.policies = policies

        if queued:
            logger.info("Queued %d policies for reconciliation: %s", len(queued), ", ".join(queued))

        return queued

    def reconcile_policy(self, name: str) -> ReconcileResult:
        """
        Run one cycle for a policy now.

        Args:
            name: Policy name

        Returns:
            ReconcileResult: Result of the cycle

        Raises:
            ConfigurationError: If no policy has this name
            StatePersistenceError: If state could not be loaded or saved
        """
        policy = self.policies.get(name)
        if policy is None:
            raise ConfigurationError(
                f"Unknown rotation policy: {name}",
                suggestions=create_error_suggestions("policy_not_found"),
            )

        state = self.state_store.load(name)
        return self.engine.reconcile(policy, state, self.clock(), self.secret_store, self.state_store.save)

    def process(self, name: str) -> Optional[ReconcileResult]:
        """
        Reconcile a policy and schedule its next cycle.

        Errors raised by the cycle are logged and retried with backoff.
        """
        if name not in self.policies:
            return None

        try:
            result = self.reconcile_policy(name)
        except RotatorError as e:
            self._requeue_with_backoff(name)
            logger.error("Reconciliation of %s failed, retrying: %s", name, e.message)
            return None
        except Exception:
            self._requeue_with_backoff(name)
            logger.exception("Unexpected error reconciling %s, retrying", name)
            return None

        directive = result.directive
        if not directive.requeue:
            self.rate_limiter.forget(name)
        elif directive.requeue_after <= timedelta(0):
            self._requeue_with_backoff(name)
        else:
            self.rate_limiter.forget(name)
            self.queue.add_after(name, directive.requeue_after, self.clock())

        return result

    def _requeue_with_backoff(self, name: str) -> None:
        delay = self.rate_limiter.when(name)
        self.queue.add_after(name, delay, self.clock())

    def run_once(self) -> int:
        """
        Reconcile every policy that is due.

        Returns:
            int: Number of policies processed
        """
        names = self.queue.pop_due(self.clock())
        if not names:
            return 0

        if self.workers == 1 or len(names) == 1:
            for name in names:
                self.process(name)
        else:
            with ThreadPoolExecutor(max_workers=min(self.workers, len(names))) as executor:
                list(executor.map(self.process, names))

        return len(names)

    def run(self, poll_interval: float = 1.0) -> None:
        """
        Run the controller loop until :meth:`stop` is called.

        Args:
            poll_interval: Maximum seconds between checks for due work
        """
        self._stop.clear()
        self._changed.set()

        observer = Observer()
        config_dir = os.path.dirname(os.path.abspath(self.config_manager.config_path))
        observer.schedule(PolicyFileWatcher(self.config_manager.config_path, self._changed), config_dir, recursive=False)
        observer.start()

        logger.info("Rotation controller started, watching %s", self.config_manager.config_path)

        try:
            while not self._stop.is_set():
                if self._changed.is_set() or self._read_mtime() != self._config_mtime:
                    self._changed.clear()
                    self._safe_sync()

                self.run_once()

                self._changed.wait(self._wait_timeout(poll_interval))
        finally:
            observer.stop()
            observer.join(timeout=5)
            logger.info("Rotation controller stopped")

    def stop(self) -> None:
        """Ask a running loop to exit."""
        self._stop.set()
        self._changed.set()

    def _safe_sync(self) -> None:
        """Sync policies, keeping the previous set if the file is unusable."""
        try:
            self.sync_policies()
        except Exception as e:
            logger.error("Failed to load policies from %s, keeping previous set: %s", self.config_manager.config_path, e)

    def _wait_timeout(self, poll_interval: float) -> float:
        """Seconds until the next due policy, capped at the poll interval."""
        next_due = self.queue.next_due()
        if next_due is None:
            return poll_interval
        remaining = (next_due - self.clock()).total_seconds()
        return max(0.0, min(remaining, poll_interval))

    def _read_mtime(self) -> Optional[float]:
        try:
            return os.path.getmtime(self.config_manager.config_path)
        except OSError:
            return None

    def status_report(self) -> List[Dict[str, Any]]:
        """
        Get the rotation status of every policy.

        Returns:
            List[Dict[str, Any]]: One entry per policy
        """
        states = self.state_store.all()
        report = []

        for name, policy in self.policies.items():
            state = states.get(name)
            next_rotation = None
            if state is not None:
                try:
                    next_rotation = self.engine.scheduler.next_rotation_time(policy, state)
                except ConfigurationError:
                    next_rotation = None

            report.append(
                {
                    "name": name,
                    "status": state.status.value if state and state.status else None,
                    "message": state.message if state else "",
                    "last_rotated_time": state.last_rotated_time if state else None,
                    "next_rotation_time": next_rotation,
                    "store_path": policy.store_path,
                    "rotation_interval": policy.rotation_interval,
                }
            )

        return report
