"""
Periodic maintenance: refresh from an external rule source and auto-backup.

Tasks run on daemon threads at a fixed interval. A failing tick is logged and
retried on the next tick; it never stops the task or the process.
"""

import json
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from regionfit.rules.schemas import utc_now

BACKUP_PREFIX = "regionfit-backup-"

_log = logger.bind(component="maintenance")


class PeriodicTask:
    """
    Runs an action every `interval_seconds` on a background thread.

    Example:
        >>> task = PeriodicTask("backup", 3600, manager.write_backup)
        >>> task.start()
        >>> task.stop()
    """

    def __init__(self, name: str, interval_seconds: float, action: Callable[[], Any]):
        self.name = name
        self.interval_seconds = interval_seconds
        self.action = action
        self.runs = 0
        self.failures = 0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> bool:
        """Run the action now. Returns False if it raised."""
        self.runs += 1
        try:
            self.action()
        except Exception as e:
            self.failures += 1
            _log.error(f"Maintenance task {self.name} failed, retrying next tick: {e}")
            return False
        return True

    def _loop(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            self.run_once()

    def start(self) -> None:
        if self.interval_seconds <= 0:
            _log.info(f"Maintenance task {self.name} disabled")
            return
        if self.is_running:
            _log.warning(f"Maintenance task {self.name} already running")
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, name=f"regionfit-{self.name}", daemon=True
        )
        self._thread.start()
        _log.info(f"Maintenance task {self.name} started (every {self.interval_seconds}s)")

    def stop(self, timeout: float = 2.0) -> None:
        if self._thread is None:
            return
        self._stop.set()
        self._thread.join(timeout=timeout)
        self._thread = None
        _log.info(f"Maintenance task {self.name} stopped")


class BackupManager:
    """
    Writes export bundles as JSON files and prunes old ones.

    Args:
        export: Returns the bundle to back up
        backup_dir: Directory for backup files
        max_backups: Newest backups kept
        clock: Source of the current time (names the files)
    """

    def __init__(
        self,
        export: Callable[[], Dict[str, Any]],
        backup_dir: Path,
        max_backups: int = 24,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.export = export
        self.backup_dir = Path(backup_dir)
        self.max_backups = max_backups
        self.clock = clock or utc_now

    def list_backups(self) -> List[Path]:
        """Backup files, oldest first."""
        if not self.backup_dir.exists():
            return []
        return sorted(self.backup_dir.glob(f"{BACKUP_PREFIX}*.json"))

    def write_backup(self) -> Path:
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        stamp = self.clock().strftime("%Y%m%dT%H%M%S%fZ")
        path = self.backup_dir / f"{BACKUP_PREFIX}{stamp}.json"
        bundle = self.export()
        with open(path, "w", encoding="utf-8") as f:
            json.dump(bundle, f, indent=2, ensure_ascii=False)
        _log.info(f"Backup written: {path} ({bundle.get('count', 0)} rules)")
        self.prune()
        return path

    def prune(self) -> int:
        """Delete the oldest backups beyond max_backups. Returns the number removed."""
        backups = self.list_backups()
        excess = backups[: max(0, len(backups) - self.max_backups)]
        for path in excess:
            path.unlink()
        if excess:
            _log.debug(f"Pruned {len(excess)} old backups")
        return len(excess)

    @staticmethod
    def load_backup(path: Path) -> Dict[str, Any]:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
