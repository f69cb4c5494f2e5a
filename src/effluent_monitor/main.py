"""
Effluent Monitor - Main Entry Point

Runs automated monitoring for one owner's devices: live telemetry in,
diagnosis per snapshot, audit log out, critical alerts fanned out to the
owner's enabled channels.

Usage:
    python -m effluent_monitor.main --owner OWNER_ID
    python -m effluent_monitor.main --owner OWNER_ID --device WW-001 --device WW-002
    python -m effluent_monitor.main --owner OWNER_ID --check-now

Configuration:
    The monitor reads configuration from:
    1. Environment variables (optionally from a .env file)
    2. Command line arguments

Environment Variables:
    DATABASE_URL                PostgreSQL connection string (required)
    TELEMETRY_WS_URL            WebSocket endpoint of the telemetry feed (required)
    TELEMETRY_API_URL           REST base URL for latest-data reads
    NOTIFICATION_GATEWAY_URL    Base URL of the push/email/SMS/WhatsApp gateways
    GATEWAY_TIMEOUT_SECONDS     Per-channel request timeout (default: 10)
    OFFLINE_THRESHOLD_MINUTES   Minutes without data before a device is offline (default: 10)
    POLL_INTERVAL_SECONDS       Polling fallback interval (default: 600)
    POLLING_ENABLED             Set to "false" to disable polling (default: true)
    AUDIT_LOG_TIMEOUT_SECONDS   Upper bound for one audit write (default: 10)
    MAX_NOTIFICATIONS           In-app feed capacity (default: 100)
    ALERT_DEDUP_SECONDS         External fan-out cooldown per device+title (default: 0, off)
    LOG_LEVEL                   Logging level (DEBUG/INFO/WARNING/ERROR)
"""

from __future__ import annotations

import argparse
import asyncio
import atexit
import fcntl
import logging
import os
import signal
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Generator, List, Optional

# Configure logging before imports
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

DEFAULT_PID_FILE = "/tmp/effluent-monitor.pid"


class SingletonMonitorError(Exception):
    """Raised when another monitor instance is already running."""
    pass


@contextmanager
def singleton_lock(pid_file: str = DEFAULT_PID_FILE) -> Generator[None, None, None]:
    """
    Context manager that ensures only one monitor instance runs at a time.

    Uses an exclusive non-blocking flock on the PID file; the lock is
    released when the process exits.

    Raises:
        SingletonMonitorError: If another instance is already running
    """
    pid_path = Path(pid_file)

    # Read existing PID before opening (which would truncate)
    existing_pid = None
    try:
        existing_pid = pid_path.read_text().strip()
    except FileNotFoundError:
        pass

    fp = open(pid_path, "a+")

    try:
        fcntl.flock(fp.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError:
        fp.close()
        if existing_pid:
            raise SingletonMonitorError(
                f"Another monitor instance is already running (PID: {existing_pid}). "
                f"Kill it with: kill {existing_pid}"
            )
        raise SingletonMonitorError(
            "Another monitor instance is already running. "
            "Check for existing processes: ps aux | grep effluent_monitor"
        )

    fp.seek(0)
    fp.truncate()
    fp.write(str(os.getpid()))
    fp.flush()

    def cleanup():
        try:
            fcntl.flock(fp.fileno(), fcntl.LOCK_UN)
            fp.close()
            pid_path.unlink(missing_ok=True)
        except OSError as e:
            logger.debug(f"PID file cleanup failed: {e}")

    atexit.register(cleanup)

    try:
        logger.info(f"Acquired singleton lock (PID: {os.getpid()}, file: {pid_file})")
        yield
    finally:
        cleanup()
        atexit.unregister(cleanup)


@dataclass
class MonitorConfig:
    """Complete monitor configuration."""

    # Database
    database_url: str = ""

    # Telemetry
    telemetry_ws_url: str = ""
    telemetry_api_url: Optional[str] = None

    # Notifications
    notification_gateway_url: Optional[str] = None
    gateway_timeout_seconds: float = 10.0
    max_notifications: int = 100
    alert_dedup_seconds: float = 0.0

    # Monitoring
    offline_threshold_minutes: float = 10.0
    audit_log_timeout_seconds: float = 10.0

    # Polling fallback
    poll_interval_seconds: float = 600.0
    polling_enabled: bool = True

    # Main loop
    health_check_interval_seconds: float = 30.0

    @classmethod
    def from_env(cls) -> "MonitorConfig":
        """Load configuration from environment variables."""
        return cls(
            database_url=os.environ.get("DATABASE_URL", ""),
            telemetry_ws_url=os.environ.get("TELEMETRY_WS_URL", ""),
            telemetry_api_url=os.environ.get("TELEMETRY_API_URL") or None,
            notification_gateway_url=os.environ.get("NOTIFICATION_GATEWAY_URL") or None,
            gateway_timeout_seconds=float(os.environ.get("GATEWAY_TIMEOUT_SECONDS", "10")),
            max_notifications=int(os.environ.get("MAX_NOTIFICATIONS", "100")),
            alert_dedup_seconds=float(os.environ.get("ALERT_DEDUP_SECONDS", "0")),
            offline_threshold_minutes=float(os.environ.get("OFFLINE_THRESHOLD_MINUTES", "10")),
            audit_log_timeout_seconds=float(os.environ.get("AUDIT_LOG_TIMEOUT_SECONDS", "10")),
            poll_interval_seconds=float(os.environ.get("POLL_INTERVAL_SECONDS", "600")),
            polling_enabled=os.environ.get("POLLING_ENABLED", "true").lower() == "true",
        )


class MonitorApp:
    """
    Main monitoring service.

    Manages the lifecycle of all components:
    - Database connection and schema
    - Telemetry feed (WebSocket) and latest-data client (REST)
    - Alert dispatcher with notification gateways
    - Monitoring orchestrator, polling fallback and health checks
    """

    def __init__(self, config: MonitorConfig):
        self.config = config
        self._running = False
        self._shutdown_event = asyncio.Event()

        # Components (initialized on start)
        self._db = None
        self._telemetry = None
        self._latest_client = None
        self._gateway = None
        self._dispatcher = None
        self._orchestrator = None
        self._polling = None
        self._health_checker = None

    @property
    def orchestrator(self):
        return self._orchestrator

    async def start(
        self,
        owner_id: str,
        device_ids: Optional[List[str]] = None,
        check_now: bool = False,
    ) -> None:
        """
        Start monitoring and run until shutdown.

        Args:
            owner_id: Owner whose devices are monitored
            device_ids: Restrict monitoring to these devices (default: all owned)
            check_now: Force one evaluation per device right after start
        """
        logger.info("=" * 60)
        logger.info("EFFLUENT MONITOR")
        logger.info("=" * 60)
        logger.info(f"Owner: {owner_id}")
        logger.info(f"Devices: {', '.join(device_ids) if device_ids else 'ALL'}")
        logger.info("=" * 60)

        self._running = True
        self._shutdown_event.clear()

        # Setup signal handlers FIRST to catch early signals
        self._setup_signal_handlers()

        try:
            await self._init_database()

            if self._shutdown_event.is_set():
                logger.info("Shutdown requested during startup")
                return

            await self._init_telemetry()
            self._init_alerting()
            self._init_orchestrator()

            if self._shutdown_event.is_set():
                logger.info("Shutdown requested during startup")
                return

            await self._start_sessions(owner_id, device_ids)

            if check_now:
                for device_id in self._orchestrator.active_devices():
                    await self._orchestrator.check_now(device_id)

            await self._init_polling()
            self._init_health()

            logger.info("=" * 60)
            logger.info("Monitor started successfully")
            logger.info("Press Ctrl+C to stop")
            logger.info("=" * 60)

            await self._run_loop()

        except Exception as e:
            logger.exception(f"Fatal error: {e}")
            raise
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Stop the monitor gracefully."""
        if not self._running:
            return

        logger.info("Shutting down...")
        self._running = False
        self._shutdown_event.set()

        # Stop components in reverse order
        if self._polling:
            try:
                await self._polling.stop()
            except Exception as e:
                logger.warning(f"Error stopping polling fallback: {e}")

        if self._orchestrator:
            try:
                await self._orchestrator.stop_all_monitoring()
            except Exception as e:
                logger.warning(f"Error stopping monitoring sessions: {e}")

        if self._dispatcher:
            try:
                await self._dispatcher.drain()
            except Exception as e:
                logger.warning(f"Error draining notification fan-out: {e}")

        if self._telemetry:
            try:
                await self._telemetry.stop()
            except Exception as e:
                logger.warning(f"Error stopping telemetry feed: {e}")

        for client in (self._gateway, self._latest_client):
            if client:
                try:
                    await client.close()
                except Exception as e:
                    logger.warning(f"Error closing HTTP client: {e}")

        if self._db:
            try:
                await self._db.close()
            except Exception as e:
                logger.warning(f"Error closing database: {e}")

        logger.info("Shutdown complete")

    async def _init_database(self) -> None:
        from effluent_monitor.storage import Database, DatabaseConfig

        if not self.config.database_url:
            raise ValueError("DATABASE_URL environment variable is required")

        self._db = Database(DatabaseConfig(url=self.config.database_url))
        await self._db.initialize()

        if not await self._db.health_check():
            raise RuntimeError("Database health check failed")

        await self._db.apply_schema()
        logger.info("Database: Connected")

    async def _init_telemetry(self) -> None:
        from effluent_monitor.ingestion import LatestDataClient, TelemetryWebSocket

        if not self.config.telemetry_ws_url:
            raise ValueError("TELEMETRY_WS_URL environment variable is required")

        self._telemetry = TelemetryWebSocket(self.config.telemetry_ws_url)
        await self._telemetry.start()
        logger.info("Telemetry: Started")

        if self.config.telemetry_api_url:
            self._latest_client = LatestDataClient(self.config.telemetry_api_url)
            logger.info("Latest-data client: Configured")
        else:
            logger.info("Latest-data client: Disabled (no TELEMETRY_API_URL)")

    def _init_alerting(self) -> None:
        from effluent_monitor.alerting import (
            AlertDispatcher,
            NotificationFeed,
            NotificationGateway,
        )
        from effluent_monitor.storage import UserRepository

        if self.config.notification_gateway_url:
            self._gateway = NotificationGateway(
                self.config.notification_gateway_url,
                timeout=self.config.gateway_timeout_seconds,
            )
            logger.info("Alerts: External gateways configured")
        else:
            logger.info("Alerts: In-app feed only (no NOTIFICATION_GATEWAY_URL)")

        self._dispatcher = AlertDispatcher(
            feed=NotificationFeed(max_notifications=self.config.max_notifications),
            gateway=self._gateway,
            preferences=UserRepository(self._db),
            channel_timeout=self.config.gateway_timeout_seconds + 5,
            dedup_cooldown_seconds=self.config.alert_dedup_seconds,
        )

    def _init_orchestrator(self) -> None:
        from effluent_monitor.monitoring import MonitoringOrchestrator, OrchestratorConfig
        from effluent_monitor.storage import DeviceRepository, MonitoringLogRepository

        self._orchestrator = MonitoringOrchestrator(
            telemetry=self._telemetry,
            dispatcher=self._dispatcher,
            audit_log=MonitoringLogRepository(self._db),
            devices=DeviceRepository(self._db),
            config=OrchestratorConfig(
                offline_threshold_minutes=self.config.offline_threshold_minutes,
                audit_log_timeout_seconds=self.config.audit_log_timeout_seconds,
            ),
            latest_source=self._latest_client,
        )

    async def _start_sessions(self, owner_id: str, device_ids: Optional[List[str]]) -> None:
        if not device_ids:
            started = await self._orchestrator.start_monitoring_all_devices(owner_id)
            logger.info(f"Monitoring: {started} device(s) started")
            return

        for device_id in device_ids:
            await self._orchestrator.start_automated_monitoring(device_id, owner_id)
        logger.info(f"Monitoring: {len(self._orchestrator.active_devices())} device(s) active")

    async def _init_polling(self) -> None:
        from effluent_monitor.monitoring import PollingConfig, PollingFallback

        self._polling = PollingFallback(
            self._orchestrator,
            PollingConfig(
                poll_interval_seconds=self.config.poll_interval_seconds,
                enabled=self.config.polling_enabled,
            ),
        )
        await self._polling.start()

    def _init_health(self) -> None:
        from effluent_monitor.monitoring import HealthChecker

        self._health_checker = HealthChecker(
            db=self._db,
            telemetry=self._telemetry,
            orchestrator=self._orchestrator,
        )

    async def _run_loop(self) -> None:
        """Main run loop."""
        interval = self.config.health_check_interval_seconds

        while self._running:
            try:
                try:
                    await asyncio.wait_for(
                        self._shutdown_event.wait(),
                        timeout=interval,
                    )
                    break  # Shutdown requested
                except asyncio.TimeoutError:
                    pass

                if self._health_checker:
                    from effluent_monitor.monitoring import HealthStatus

                    health = await self._health_checker.check_all()
                    problems = [
                        c for c in health.components
                        if c.status in (HealthStatus.UNHEALTHY, HealthStatus.DEGRADED)
                    ]
                    for component in problems:
                        logger.warning(
                            f"Health: {component.component} {component.status.value}: "
                            f"{component.message}"
                        )

                stats = self._orchestrator.get_stats()
                logger.info(
                    f"Stats: sessions={stats['active_sessions']}, "
                    f"cycles={stats['cycles']}, "
                    f"telemetry_errors={stats['telemetry_errors']}, "
                    f"unread={self._dispatcher.get_unread_count()}"
                )

            except Exception as e:
                logger.error(f"Error in main loop: {e}")
                await asyncio.sleep(5)

    def _setup_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()

        def handle_signal(sig):
            logger.info(f"Received signal {sig}")
            self._running = False
            self._shutdown_event.set()

        try:
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass


def load_env_file(path: str = ".env") -> None:
    """Load environment variables from .env file if it exists."""
    env_path = Path(path)
    if env_path.exists():
        logger.info(f"Loading environment from {env_path}")
        with open(env_path) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#") and "=" in line:
                    key, _, value = line.partition("=")
                    value = value.strip().strip('"').strip("'")
                    os.environ.setdefault(key.strip(), value)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Effluent Monitor",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--owner",
        required=True,
        help="Owner (user id) whose devices are monitored",
    )
    parser.add_argument(
        "--device",
        action="append",
        dest="devices",
        help="Monitor only this device (repeatable, default: all owned devices)",
    )
    parser.add_argument(
        "--check-now",
        action="store_true",
        help="Evaluate every device once immediately after start",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override log level",
    )
    return parser.parse_args(argv)


async def main_async(args: argparse.Namespace) -> int:
    """Async main function."""
    config = MonitorConfig.from_env()

    if not config.database_url:
        logger.error("DATABASE_URL environment variable is required")
        return 1

    if not config.telemetry_ws_url:
        logger.error("TELEMETRY_WS_URL environment variable is required")
        return 1

    app = MonitorApp(config)

    try:
        await app.start(
            owner_id=args.owner,
            device_ids=args.devices,
            check_now=args.check_now,
        )
        return 0
    except KeyboardInterrupt:
        logger.info("Shutdown requested")
        return 0
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        return 1


def main() -> int:
    """Main entry point."""
    load_env_file()

    args = parse_args()

    if args.log_level:
        logging.getLogger().setLevel(getattr(logging, args.log_level))

    try:
        with singleton_lock():
            try:
                return asyncio.run(main_async(args))
            except KeyboardInterrupt:
                return 0
    except SingletonMonitorError as e:
        logger.error(str(e))
        print(f"\n{e}\n", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
