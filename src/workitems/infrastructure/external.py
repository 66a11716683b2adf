"""
SLA Policy File Integration
===========================

Loads the priority-to-resolution-target policy from YAML and optionally
hot-reloads it when the file changes on disk.

Example ``sla_policy.yaml``::

    resolution_minutes:
      critical: 240
      high: 480
      medium: 1440
      low: 4320
"""

import threading
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from src.core import ConfigurationException
from src.shared.infrastructure.logging import get_logger
from src.workitems.application.services import ISLAPolicyProvider
from src.workitems.domain import SLAPolicy

logger = get_logger(__name__)


class PolicyFileHandler(FileSystemEventHandler):
    """Watchdog event handler for SLA policy file changes."""

    def __init__(self, manager: "SLAPolicyManager", policy_path: Path):
        self.manager = manager
        self.policy_path = policy_path
        super().__init__()

    def on_modified(self, event):
        """Handle file modification event."""
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.policy_path.resolve():
            logger.info("SLA policy file changed", extra={"path": str(event.src_path)})
            self.manager.reload()


class SLAPolicyManager(ISLAPolicyProvider):
    """
    Thread-safe SLA policy holder with hot-reload support.

    The watchdog thread swaps the policy under a lock; readers get
    whichever complete policy was current when they asked.
    """

    def __init__(self):
        self._policy: Optional[SLAPolicy] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> SLAPolicy:
        """
        Initial policy load.

        A missing file yields the default policy.

        Raises:
            ConfigurationException: If the file exists but is not a valid policy
        """
        self._path = Path(path)
        policy = self._load_from_file(self._path)
        with self._lock:
            self._policy = policy
        return policy

    def _load_from_file(self, path: Path) -> SLAPolicy:
        """Load and parse the YAML policy file."""
        if not path.exists():
            logger.warning("SLA policy file not found, using defaults", extra={"path": str(path)})
            return SLAPolicy()

        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ConfigurationException(
                    "SLA policy must be a mapping",
                    {"path": str(path)}
                )
            return SLAPolicy(**data)
        except (OSError, yaml.YAMLError, ValidationError) as e:
            raise ConfigurationException(
                f"Invalid SLA policy file: {e}",
                {"path": str(path)}
            ) from e

    def reload(self) -> bool:
        """
        Reload the policy from the file.

        A broken file keeps the previous policy in place.

        Returns:
            True if the new policy was installed
        """
        if self._path is None:
            return False

        try:
            new_policy = self._load_from_file(self._path)
        except ConfigurationException as e:
            logger.error(
                "Failed to reload SLA policy",
                extra={"path": str(self._path), "error": e.message}
            )
            return False

        with self._lock:
            self._policy = new_policy
        logger.info("SLA policy reloaded", extra={"path": str(self._path)})
        return True

    def start_watching(self) -> None:
        """
        Start watching the policy file for changes.

        Skips watching if the file doesn't exist or the platform offers no
        file notifications.
        """
        if self._path is None:
            raise ConfigurationException("SLA policy not loaded; call load() first")

        if not self._path.exists():
            logger.info(
                "SLA policy file doesn't exist, skipping file watch",
                extra={"path": str(self._path)}
            )
            return

        try:
            self._observer = Observer()
            handler = PolicyFileHandler(self, self._path)
            self._observer.schedule(handler, str(self._path.parent), recursive=False)
            self._observer.start()
            logger.info("Started watching SLA policy file", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning(
                "File watching not available, using static SLA policy",
                extra={"error": str(e)}
            )
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def is_watching(self) -> bool:
        return self._observer is not None

    def get_policy(self) -> SLAPolicy:
        """Get current SLA policy."""
        with self._lock:
            policy = self._policy
        if policy is None:
            raise ConfigurationException("SLA policy not loaded")
        return policy
