"""Tests for the rotation controller."""

import threading
import time
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
import yaml
from watchdog.events import FileModifiedEvent, FileMovedEvent

from secretrotator.config.manager import ConfigManager
from secretrotator.controller.manager import PolicyFileWatcher, RotationController
from secretrotator.controller.queue import RateLimiter
from secretrotator.controller.state import StateStore
from secretrotator.secrets.generator import CredentialGenerator
from secretrotator.secrets.rotation import ReconciliationEngine, RotationState, RotationStatus
from secretrotator.utils.errors import ConfigurationError, EntropySourceError


def rewrite_config(path, config):
    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False)


class TestRotationController:
    """Test controller dispatch and requeueing."""

    @pytest.fixture(autouse=True)
    def setup_controller(self, config_file, sample_config, clock, memory_store):
        """Setup test environment."""
        self.config_file = config_file
        self.config = sample_config
        self.clock = clock
        self.store = memory_store
        self.state_store = StateStore(sample_config["rotator"]["state_file"])
        self.controller = RotationController(
            config_manager=ConfigManager(config_file),
            state_store=self.state_store,
            secret_store=memory_store,
            clock=clock,
            rate_limiter=RateLimiter(base_delay=timedelta(seconds=1)),
        )

    def test_sync_queues_all_policies(self):
        """A first sync queues every policy immediately."""
        queued = self.controller.sync_policies()

        assert queued == ["database-password", "cache-password"]
        assert self.controller.queue.next_due() == self.clock.now

    def test_run_once_rotates_due_policies(self):
        """Due policies are rotated and requeued after their interval."""
        self.controller.sync_policies()

        processed = self.controller.run_once()

        assert processed == 2
        assert {path for path, _ in self.store.writes} == {"apps/database", "apps/cache"}
        state = self.state_store.load("database-password")
        assert state.status == RotationStatus.READY
        assert state.last_rotated_time == self.clock.now
        assert self.controller.queue.due_time("database-password") == self.clock.now + timedelta(hours=1)
        assert self.controller.queue.due_time("cache-password") == self.clock.now + timedelta(hours=24)

    def test_password_length_from_policy(self):
        """Policy password length reaches the secret store."""
        self.controller.sync_policies()
        self.controller.run_once()

        secrets_by_path = dict(self.store.writes)
        assert len(secrets_by_path["apps/database"]) == 24
        assert len(secrets_by_path["apps/cache"]) == 16

    def test_nothing_due_before_interval(self):
        """Policies are not processed again until their requeue time."""
        self.controller.sync_policies()
        self.controller.run_once()

        self.clock.advance(timedelta(minutes=59))
        assert self.controller.run_once() == 0

        self.clock.advance(timedelta(minutes=1))
        assert self.controller.run_once() == 1
        assert len(self.store.writes) == 3

    def test_restart_respects_persisted_state(self):
        """A new controller waits for the remaining interval instead of rotating."""
        self.controller.sync_policies()
        self.controller.run_once()
        self.clock.advance(timedelta(minutes=30))

        restarted = RotationController(
            config_manager=ConfigManager(self.config_file),
            state_store=self.state_store,
            secret_store=self.store,
            clock=self.clock,
        )
        restarted.sync_policies()
        restarted.run_once()

        assert len(self.store.writes) == 2
        assert restarted.queue.due_time("database-password") == self.clock.now + timedelta(minutes=30)

    def test_store_failure_requeues_after_backoff(self):
        """Store failures are retried after 30 seconds."""
        self.store.fail = True
        self.controller.sync_policies()

        self.controller.run_once()

        assert self.state_store.load("database-password").status == RotationStatus.STORE_ERROR
        assert self.controller.queue.due_time("database-password") == self.clock.now + timedelta(seconds=30)

        self.store.fail = False
        self.clock.advance(timedelta(seconds=30))
        self.controller.run_once()

        assert self.state_store.load("database-password").status == RotationStatus.READY

    def test_config_error_is_not_requeued(self):
        """A policy with a bogus interval waits for a configuration change."""
        self.config["rotations"][0]["rotation_interval"] = "bogus"
        rewrite_config(self.config_file, self.config)
        self.controller.sync_policies()

        self.controller.run_once()

        assert self.state_store.load("database-password").status == RotationStatus.CONFIG_ERROR
        assert "database-password" not in self.controller.queue

        self.clock.advance(timedelta(days=7))
        self.controller.run_once()
        assert "database-password" not in self.controller.queue

        self.config["rotations"][0]["rotation_interval"] = "2h"
        rewrite_config(self.config_file, self.config)
        assert self.controller.sync_policies() == ["database-password"]

        self.controller.run_once()
        assert self.state_store.load("database-password").status == RotationStatus.READY

    @pytest.mark.parametrize("interval", ["9999999999999h", "80000000h"])
    def test_out_of_range_interval_is_config_error(self, interval):
        """Huge intervals park the policy without rotating or stopping the batch."""
        self.config["rotations"][0]["rotation_interval"] = interval
        rewrite_config(self.config_file, self.config)
        self.controller.sync_policies()

        assert self.controller.run_once() == 2

        assert self.state_store.load("database-password").status == RotationStatus.CONFIG_ERROR
        assert "database-password" not in self.controller.queue
        assert [path for path, _ in self.store.writes] == ["apps/cache"]
        assert self.state_store.load("cache-password").status == RotationStatus.READY

    def test_unchanged_policies_not_requeued_on_sync(self):
        """Syncing an unchanged file does not disturb scheduled policies."""
        self.controller.sync_policies()
        self.controller.run_once()

        assert self.controller.sync_policies() == []
        assert self.controller.queue.due_time("database-password") == self.clock.now + timedelta(hours=1)

    def test_removed_policy_is_dropped(self):
        """Removing a policy drops it from the queue and deletes its state."""
        self.controller.sync_policies()
        self.controller.run_once()

        del self.config["rotations"][1]
        rewrite_config(self.config_file, self.config)
        self.controller.sync_policies()

        assert "cache-password" not in self.controller.queue
        assert "cache-password" not in self.state_store.all()
        assert self.controller.process("cache-password") is None

    def test_generation_error_requeues_with_backoff(self):
        """Immediate requeues are rate limited per policy."""
        generator = MagicMock(spec=CredentialGenerator)
        generator.generate.side_effect = EntropySourceError("no entropy")
        self.controller.engine = ReconciliationEngine(generator=generator)
        self.controller.sync_policies()

        self.controller.run_once()

        assert self.state_store.load("database-password").status == RotationStatus.GENERATION_ERROR
        assert self.controller.queue.due_time("database-password") == self.clock.now + timedelta(seconds=1)

        self.clock.advance(timedelta(seconds=1))
        self.controller.run_once()
        assert self.controller.queue.due_time("database-password") == self.clock.now + timedelta(seconds=2)

    def test_persistence_failure_requeues_with_backoff(self):
        """A state write failure triggers the default retry."""
        state_store = MagicMock(spec=StateStore)
        state_store.load.return_value = RotationState()
        state_store.save.side_effect = OSError("read-only file system")
        self.controller.state_store = state_store
        self.controller.sync_policies()

        self.controller.run_once()

        assert self.controller.rate_limiter.failures("database-password") == 1
        assert self.controller.queue.due_time("database-password") == self.clock.now + timedelta(seconds=1)

    def test_unexpected_error_requeues_with_backoff(self):
        """Unexpected errors are logged and retried."""
        engine = MagicMock(spec=ReconciliationEngine)
        engine.reconcile.side_effect = RuntimeError("boom")
        self.controller.engine = engine
        self.controller.sync_policies()

        assert self.controller.process("database-password") is None
        assert self.controller.queue.due_time("database-password") == self.clock.now + timedelta(seconds=1)

    def test_success_resets_backoff(self):
        """A successful cycle forgets earlier failures."""
        self.controller.rate_limiter.when("database-password")
        self.controller.sync_policies()

        self.controller.run_once()

        assert self.controller.rate_limiter.failures("database-password") == 0

    def test_reconcile_unknown_policy(self):
        """Reconciling an unknown policy is a configuration error."""
        self.controller.sync_policies()

        with pytest.raises(ConfigurationError):
            self.controller.reconcile_policy("missing")

    def test_parallel_workers(self):
        """Several workers process distinct policies in one batch."""
        self.controller.workers = 2
        self.controller.sync_policies()

        assert self.controller.run_once() == 2
        assert len(self.store.writes) == 2

    def test_invalid_worker_count(self):
        """At least one worker is required."""
        with pytest.raises(ConfigurationError):
            RotationController(ConfigManager(self.config_file), self.state_store, self.store, workers=0)

    def test_status_report(self):
        """Status lists every policy with its next rotation."""
        self.controller.sync_policies()
        self.controller.run_once()

        report = {entry["name"]: entry for entry in self.controller.status_report()}

        assert report["database-password"]["status"] == "Ready"
        assert report["database-password"]["next_rotation_time"] == self.clock.now + timedelta(hours=1)
        assert report["cache-password"]["last_rotated_time"] == self.clock.now

    def test_status_report_before_first_cycle(self):
        """Policies without state report no status."""
        self.controller.sync_policies()

        report = self.controller.status_report()

        assert [entry["status"] for entry in report] == [None, None]
        assert [entry["next_rotation_time"] for entry in report] == [None, None]

    def test_run_loop_rotates_and_stops(self):
        """The loop rotates due policies and exits when stopped."""
        thread = threading.Thread(target=self.controller.run, kwargs={"poll_interval": 0.05})
        thread.start()
        try:
            deadline = time.monotonic() + 5
            while len(self.store.writes) < 2 and time.monotonic() < deadline:
                time.sleep(0.02)
        finally:
            self.controller.stop()
            thread.join(timeout=5)

        assert not thread.is_alive()
        assert len(self.store.writes) == 2

    def test_run_loop_survives_broken_config(self):
        """An unusable policy file keeps the previous policy set."""
        self.controller.sync_policies()
        with open(self.config_file, "w") as f:
            f.write("rotations: [")

        self.controller._safe_sync()

        assert set(self.controller.policies) == {"database-password", "cache-password"}


class TestPolicyFileWatcher:
    """Test policy file change detection."""

    def test_modification_sets_event(self, temp_directory):
        """Modifying the policy file sets the change event."""
        changed = threading.Event()
        watcher = PolicyFileWatcher(f"{temp_directory}/secret-rotator.yml", changed)

        watcher.on_any_event(FileModifiedEvent(f"{temp_directory}/secret-rotator.yml"))

        assert changed.is_set()

    def test_other_files_ignored(self, temp_directory):
        """Changes to unrelated files are ignored."""
        changed = threading.Event()
        watcher = PolicyFileWatcher(f"{temp_directory}/secret-rotator.yml", changed)

        watcher.on_any_event(FileModifiedEvent(f"{temp_directory}/state.json"))

        assert not changed.is_set()

    def test_atomic_replace_sets_event(self, temp_directory):
        """Editors that move a temp file over the policy file are detected."""
        changed = threading.Event()
        watcher = PolicyFileWatcher(f"{temp_directory}/secret-rotator.yml", changed)

        watcher.on_any_event(
            FileMovedEvent(f"{temp_directory}/.secret-rotator.yml.swp", f"{temp_directory}/secret-rotator.yml")
        )

        assert changed.is_set()
