"""
SmarterMeter - Main Application
Keeps the local usage archive in sync with the utility portal and forwards new days to telemetry
"""
import sys
import logging
import argparse
import signal
from typing import List, Optional

from .config import ConfigStore, Settings
from .daemon import ReconciliationLoop, SchedulePolicy
from .exceptions import CorruptConfigError
from .gaps import missing_days
from .logging_setup import setup_logging
from .setup_prompt import ConsoleSetup

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Archive daily electricity usage and upload it to telemetry')
    parser.add_argument('--config', metavar='PATH',
                        help='Configuration file (default: ~/.smartermeter or $SMARTERMETER_CONFIG)')
    parser.add_argument('--once', action='store_true',
                        help='Run a single reconciliation cycle and exit')
    parser.add_argument('--configure', action='store_true',
                        help='Prompt for credentials, save them and exit')
    parser.add_argument('--list-missing', action='store_true',
                        help='Print the days missing from the archive and exit')
    parser.add_argument('--log-level', help='Logging level (default: INFO)')
    parser.add_argument('--log-format', choices=['json', 'text'], help='Log output format')
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point"""
    args = parse_args(argv)
    settings = Settings.from_env()

    setup_logging(args.log_level or settings.log_level, args.log_format or settings.log_format)

    store = ConfigStore(args.config or settings.config_path)
    try:
        store.load()
    except CorruptConfigError as e:
        logger.error(str(e))
        logger.error(f"Fix or remove {store.path} and restart")
        return 1

    loop = ReconciliationLoop(
        store,
        policy=SchedulePolicy(wait_interval=settings.wait_interval, poll_interval=settings.poll_interval),
    )

    if args.list_missing:
        config = store.current
        for day in missing_days(config.data_dir, config.start_date, loop.today()):
            print(day.isoformat())
        return 0

    setup = ConsoleSetup()
    if args.configure:
        loop.configure(lambda config: setup.collect(config, force=True), force=True)
        return 0

    if not store.is_complete(store.current) and sys.stdin.isatty():
        loop.configure(setup)

    if store.is_complete(store.current):
        try:
            store.password()
        except CorruptConfigError as e:
            logger.error(str(e))
            logger.error(f"Run smartermeter --configure or remove {store.path} and restart")
            return 1

    if args.once:
        loop.run_cycle()
        return 0

    def signal_handler(signum, frame):
        """Handle shutdown signals"""
        logger.info("Shutdown signal received. Stopping...")
        loop.stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    loop.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
