"""
SLA External Service Integrations
==================================

External services for SLA monitoring:
- YAML policy file watcher
- APScheduler for the background breach monitor
"""

import threading
from pathlib import Path
from typing import Awaitable, Callable, Optional

import yaml
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from grievance.core import ConfigurationException
from grievance.shared.infrastructure.logging import get_logger
from grievance.sla.application.services import ISLAPolicyProvider
from grievance.sla.domain import SLAPolicy

logger = get_logger(__name__)


class PolicyFileHandler(FileSystemEventHandler):
    """Watchdog event handler for SLA policy file changes."""

    def __init__(self, policy_manager: "SLAPolicyManager", policy_path: Path):
        self.policy_manager = policy_manager
        self.policy_path = policy_path
        super().__init__()

    def _matches(self, path) -> bool:
        return Path(path).resolve() == self.policy_path.resolve()

    def on_modified(self, event):
        if event.is_directory:
            return
        if self._matches(event.src_path):
            logger.info("SLA policy file changed", extra={"path": str(event.src_path)})
            self.policy_manager.reload()

    def on_created(self, event):
        self.on_modified(event)

    def on_moved(self, event):
        # Editors that save atomically rename a temp file over the target.
        if not event.is_directory and self._matches(event.dest_path):
            logger.info("SLA policy file replaced", extra={"path": str(event.dest_path)})
            self.policy_manager.reload()


class SLAPolicyManager(ISLAPolicyProvider):
    """
    Thread-safe SLA policy holder with hot-reload support.

    Uses watchdog to monitor the policy file and swap in the new policy
    without restarting the service. A file that fails to parse or validate
    leaves the previous policy in place.
    """

    def __init__(self):
        self._policy: Optional[SLAPolicy] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> SLAPolicy:
        """
        Initial policy load.

        A missing file means default thresholds. A malformed file at startup
        is a configuration error.
        """
        self._path = Path(path)
        try:
            policy = self._load_from_file(self._path)
        except (yaml.YAMLError, ValidationError, TypeError) as e:
            raise ConfigurationException(
                f"Invalid SLA policy file: {self._path}",
                {"error": str(e)}
            ) from e
        with self._lock:
            self._policy = policy
        logger.info("SLA policy loaded", extra={"path": str(self._path)})
        return policy

    def _load_from_file(self, path: Path) -> SLAPolicy:
        if not path.exists():
            logger.warning("SLA policy file not found, using defaults", extra={"path": str(path)})
            return SLAPolicy()

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise TypeError("SLA policy must be a mapping")
        return SLAPolicy(**data)

    def reload(self) -> bool:
        """Reload the policy from file. Returns False and keeps the old policy on error."""
        if self._path is None:
            return False

        try:
            new_policy = self._load_from_file(self._path)
        except (OSError, yaml.YAMLError, ValidationError, TypeError) as e:
            logger.error(
                "Failed to reload SLA policy, keeping previous policy",
                extra={"path": str(self._path), "error": str(e)}
            )
            return False

        with self._lock:
            self._policy = new_policy
        logger.info("SLA policy reloaded successfully", extra={"path": str(self._path)})
        return True

    def start_watching(self) -> None:
        """
        Start watching the policy file for changes.

        Watches the parent directory so a file created after startup is
        picked up too. Skips watching where the platform has no file events.
        """
        if self._path is None:
            raise RuntimeError("Policy not loaded. Call load() first.")

        directory = self._path.parent if str(self._path.parent) else Path(".")
        if not directory.exists():
            logger.info(
                "Policy directory doesn't exist, skipping file watch",
                extra={"path": str(self._path)}
            )
            return

        try:
            self._observer = Observer()
            self._observer.schedule(PolicyFileHandler(self, self._path), str(directory), recursive=False)
            self._observer.start()
            logger.info("Started watching SLA policy file", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning("File watching not available, using static policy", extra={"error": str(e)})
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching the policy file (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def is_watching(self) -> bool:
        return self._observer is not None

    @property
    def is_loaded(self) -> bool:
        return self._policy is not None

    def get_policy(self) -> SLAPolicy:
        with self._lock:
            if self._policy is None:
                raise RuntimeError("SLA policy not loaded")
            return self._policy


class SLAScheduler:
    """
    Wrapper for APScheduler for the background SLA monitor.

    Manages the lifecycle of the scheduler and its single job.
    """

    def __init__(self, interval_seconds: int = 300):
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self, job_func: Callable[[], Awaitable[object]]) -> None:
        """Start the scheduler with the given coroutine function."""
        if self._running:
            logger.warning("SLA scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            job_func,
            "interval",
            seconds=self.interval_seconds,
            id="sla_monitor",
            name="SLA Breach Monitor",
            misfire_grace_time=60,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        self._scheduler.start()
        self._running = True

        logger.info("SLA scheduler started", extra={"interval_seconds": self.interval_seconds})

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)

        self._running = False
        logger.info("SLA scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running
