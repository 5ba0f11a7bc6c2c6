"""Process entry point: initial scan plus scheduled maintenance until interrupted."""

from __future__ import annotations

import signal
import sys
import threading

import structlog

from .config import load_config
from .exceptions import ConfigError
from .logging import configure_logging
from .services.engine import LifecycleEngine
from .services.scheduler import SchedulerService

logger = structlog.get_logger(__name__)


def run(shutdown_event: threading.Event | None = None) -> int:
    try:
        config = load_config()
    except ConfigError as exc:
        configure_logging()
        logger.error("startup.config_error", error=str(exc))
        return 2

    configure_logging(config.settings.log_level)
    engine = LifecycleEngine.from_config(config)
    scheduler = SchedulerService.from_settings(engine, config.settings)
    shutdown = shutdown_event or threading.Event()

    def _request_shutdown(signum, frame) -> None:
        logger.info("shutdown.requested", signal=signum)
        shutdown.set()

    if threading.current_thread() is threading.main_thread():
        signal.signal(signal.SIGINT, _request_shutdown)
        signal.signal(signal.SIGTERM, _request_shutdown)

    logger.info(
        "startup.ready",
        media_dirs=[str(path) for path in config.settings.media_dirs],
        grace_period_days=config.settings.grace_period_days,
        eligible_users=config.settings.eligible_users.value,
    )
    scheduler.start(run_scan_now=True)
    try:
        shutdown.wait()
    finally:
        scheduler.stop(wait=True)
        config.engine.dispose()
    return 0


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
