"""
Reconciliation loop
Continually checks for new data for any missing days since the configured start date
"""
import logging
import threading
from dataclasses import dataclass
from datetime import date
from typing import Callable, List, Mapping, Optional

from .config import ConfigStore, Configuration
from .data_source import DataSource, HttpDataSource
from .exceptions import CorruptConfigError, DataSourceError, SmarterMeterError
from .gaps import missing_days
from .pipeline import FetchPipeline
from .samples import EspiParser
from .transports import UploadAdapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SchedulePolicy:
    """Sleep intervals in seconds"""
    wait_interval: float = 5.0
    poll_interval: float = 3600.0


def default_data_source(config: Configuration) -> DataSource:
    return HttpDataSource.from_options(config.extras.get("data_source") or {})


class ReconciliationLoop:
    """
    Drives gap detection and the fetch pipeline forever, sleeping between cycles.

    Args:
        store: Owner of the configuration
        data_source_factory: Builds a DataSource for the current configuration
        policy: Short and long sleep intervals
        today: Returns the current day
    """

    def __init__(self, store: ConfigStore,
                 data_source_factory: Callable[[Configuration], DataSource] = default_data_source,
                 policy: SchedulePolicy = SchedulePolicy(),
                 parser: Optional[EspiParser] = None,
                 today: Callable[[], date] = date.today):
        self.store = store
        self.data_source_factory = data_source_factory
        self.policy = policy
        self.parser = parser or EspiParser()
        self.today = today
        self._stop = threading.Event()

    def configure(self, setup: Callable[[Configuration], Mapping[str, object]], force: bool = False) -> Configuration:
        """
        Ask setup for missing settings and persist them.

        setup receives the current configuration and returns the supplied fields.
        """
        config = self.store.current
        if self.store.is_complete(config) and not force:
            return config

        supplied = setup(config)
        if supplied:
            config = self.store.apply_missing_fields(supplied, config)
        return config

    def stop(self):
        """Wake the loop and end run() after the current cycle"""
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def run_cycle(self) -> float:
        """
        One reconciliation pass.

        Returns:
            Seconds to sleep before the next cycle
        """
        config = self.store.current
        if not self.store.is_complete(config):
            try:
                config = self.store.reload()
            except CorruptConfigError as e:
                logger.error(str(e))
            if not self.store.is_complete(config):
                logger.info("Waiting for configuration")
                return self.policy.wait_interval

        dates = missing_days(config.data_dir, config.start_date, self.today())
        if dates:
            logger.info(f"Attempting to fetch data for: {','.join(d.isoformat() for d in dates)}")
            results = self.fetch_dates(config, dates)
            logger.info(f"Successfully fetched: {','.join(d.isoformat() for d in results)}")
        else:
            logger.info("Sleeping")
        return self.policy.poll_interval

    def fetch_dates(self, config: Configuration, dates: List[date]) -> List[date]:
        try:
            password = self.store.password(config)
        except CorruptConfigError as e:
            logger.error(str(e))
            logger.error(f"Run smartermeter --configure or remove {self.store.path} to re-enter credentials")
            return []

        try:
            data_source = self.data_source_factory(config)
        except DataSourceError as e:
            logger.error(f"Cannot create data source: {e}")
            return []

        try:
            uploader = UploadAdapter.from_config(config.transport, config.transport_config)
        except SmarterMeterError as e:
            logger.error(f"Uploads disabled: {e}")
            uploader = UploadAdapter()

        try:
            pipeline = FetchPipeline(
                data_source=data_source,
                archive_dir=config.data_dir,
                uploader=uploader,
                parser=self.parser,
                config_path=self.store.path,
            )
            return pipeline.run(dates, config.username, password)
        finally:
            uploader.close()

    def run(self):
        """Run cycles until stop() is called"""
        logger.info("Starting smartermeter")
        while not self._stop.is_set():
            try:
                delay = self.run_cycle()
            except Exception as e:
                logger.error(f"Unexpected error in reconciliation cycle: {e}", exc_info=True)
                delay = self.policy.poll_interval
            self._stop.wait(delay)
        logger.info("Shutdown complete")
