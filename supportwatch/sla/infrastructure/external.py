"""
SLA External Service Integrations
==================================

External services for SLA monitoring:
- YAML policy file loader with watchdog hot reload
- APScheduler job driving the periodic monitoring cycle
"""

import threading
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import yaml
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from supportwatch.core.exceptions import ConfigurationException
from supportwatch.shared.infrastructure.logging import get_logger
from supportwatch.sla.application.interfaces import ISLAConfigProvider
from supportwatch.sla.domain import SLAConfig

logger = get_logger(__name__)


class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for SLA config file changes."""

    def __init__(self, config_manager: "SLAConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def on_modified(self, event):
        """Handle file modification event."""
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.config_path.resolve():
            logger.info("SLA config file changed", extra={"path": str(event.src_path)})
            self.config_manager.reload()

    on_created = on_modified


class SLAConfigManager(ISLAConfigProvider):
    """
    Thread-safe SLA configuration manager with hot-reload support.

    Uses watchdog to monitor file changes and swap in the new policy
    without restarting the service. A file that fails validation on
    reload leaves the previous policy in place.
    """

    def __init__(self, config: Optional[SLAConfig] = None):
        self._config: Optional[SLAConfig] = config
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> SLAConfig:
        """
        Initial configuration load.

        Raises:
            ConfigurationException: If the file exists but is invalid
        """
        self._path = Path(path)
        config = self._load_from_file(self._path)
        with self._lock:
            self._config = config
        return config

    def _load_from_file(self, path: Path) -> SLAConfig:
        """Load and validate the YAML policy file."""
        if not path.exists():
            logger.warning("SLA config file not found, using defaults", extra={"path": str(path)})
            return SLAConfig()

        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
            return SLAConfig(**data)
        except (yaml.YAMLError, ValidationError, TypeError) as e:
            raise ConfigurationException(f"Invalid SLA config {path}: {e}", {"path": str(path)})

    def reload(self) -> bool:
        """Reload configuration from file."""
        if self._path is None:
            return False

        try:
            new_config = self._load_from_file(self._path)
        except ConfigurationException as e:
            logger.error("Failed to reload SLA config", extra={"error": e.message})
            return False

        with self._lock:
            self._config = new_config
        logger.info("SLA configuration reloaded successfully")
        return True

    def start_watching(self) -> None:
        """
        Start watching configuration file for changes.

        Skips watching if the file doesn't exist or the platform has no
        usable file notification (some container runtimes).
        """
        if self._path is None:
            raise RuntimeError("Config not loaded. Call load() first.")

        if not self._path.exists():
            logger.info(
                "Config file doesn't exist, skipping file watch",
                extra={"path": str(self._path)}
            )
            return

        try:
            self._observer = Observer()
            handler = ConfigFileHandler(self, self._path)
            self._observer.schedule(handler, str(self._path.resolve().parent), recursive=False)
            self._observer.start()
            logger.info("Started watching config file", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning("File watching not available, using static config", extra={"error": str(e)})
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching configuration file (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def is_watching(self) -> bool:
        return self._observer is not None

    @property
    def config(self) -> SLAConfig:
        """Get current configuration."""
        with self._lock:
            if self._config is None:
                raise RuntimeError("SLA configuration not loaded")
            return self._config


class SLAScheduler:
    """
    Wrapper for APScheduler for the periodic monitoring cycle.

    Manages the lifecycle of the scheduler and jobs.
    """

    def __init__(self, interval_seconds: int = 60):
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self, job_func: Callable[[], Awaitable[Any]]) -> None:
        """Start the scheduler with the given job function."""
        if self._running:
            logger.warning("SLA scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()

        self._scheduler.add_job(
            job_func,
            "interval",
            seconds=self.interval_seconds,
            id="sla_monitoring",
            name="SLA Monitoring Cycle",
            misfire_grace_time=self.interval_seconds,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        self._scheduler.start()
        self._running = True

        logger.info(
            "SLA scheduler started",
            extra={"interval_seconds": self.interval_seconds}
        )

    async def stop(self) -> None:
        """Stop the scheduler."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)

        self._running = False
        logger.info("SLA scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running
