"""
Fetch pipeline: fetch, verify, persist and upload one calendar day at a time
"""
import enum
import logging
from datetime import date
from typing import Iterable, List

from .archive import write_record
from .data_source import DataSource
from .exceptions import AuthenticationError, DataSourceError, SampleParseError
from .samples import EspiParser
from .transports import UploadAdapter

logger = logging.getLogger(__name__)


class DayOutcome(enum.Enum):
    COMPLETED = "completed"
    INCOMPLETE = "incomplete"


class FetchPipeline:
    """
    Runs the missing days of one reconciliation cycle through the data source.

    A day is completed once its raw payload is archived; the upload that
    follows is best effort and does not change the outcome.
    """

    def __init__(self, data_source: DataSource, archive_dir: str, uploader: UploadAdapter,
                 parser: EspiParser = None, config_path: str = "~/.smartermeter"):
        self.data_source = data_source
        self.archive_dir = archive_dir
        self.uploader = uploader
        self.parser = parser or EspiParser()
        self.config_path = config_path

    def login(self, username: str, password: str) -> bool:
        """Authenticate once for the whole batch, logging diagnostics on failure"""
        logger.info(f"Logging in as {username}")
        try:
            self.data_source.login(username, password)
        except AuthenticationError as e:
            logger.error(f"Login failed: {e}")
            if e.last_page:
                logger.error(e.last_page)
            if e.last_exception:
                logger.error(repr(e.last_exception))
            logger.error("If this happens repeatedly your login information may be incorrect")
            logger.error(f"Remove {self.config_path} and restart to re-configure smartermeter.")
            return False

        logger.info(f"Logged in as {username}")
        return True

    def run(self, days: Iterable[date], username: str, password: str) -> List[date]:
        """
        Process days in order.

        Args:
            days: Missing days, oldest first
            username: Portal username
            password: Clear-text portal password

        Returns:
            Days whose archive record was written; empty if login failed
        """
        if not self.login(username, password):
            return []

        completed = []
        for day in days:
            if self.process_day(day) is DayOutcome.COMPLETED:
                completed.append(day)
        return completed

    def process_day(self, day: date) -> DayOutcome:
        logger.info(f"Fetching {day}")
        try:
            payload = self.data_source.fetch_raw(day)
        except DataSourceError as e:
            logger.error(f"Fetch for {day} failed: {e}")
            return DayOutcome.INCOMPLETE
        except Exception as e:
            logger.error(f"Unexpected error fetching {day}: {e}", exc_info=True)
            return DayOutcome.INCOMPLETE

        if not payload:
            logger.info(f"Incomplete {day}: no data returned")
            return DayOutcome.INCOMPLETE

        logger.info(f"Verifying {day}")
        try:
            samples = self.parser.parse(payload)
        except SampleParseError as e:
            logger.error(f"Incomplete {day}: {e}")
            return DayOutcome.INCOMPLETE
        except Exception as e:
            logger.error(f"Unexpected error verifying {day}: {e}", exc_info=True)
            return DayOutcome.INCOMPLETE

        if not samples:
            logger.info(f"Incomplete {day}")
            return DayOutcome.INCOMPLETE

        logger.info(f"Saving {day}")
        try:
            write_record(self.archive_dir, day, payload)
        except OSError as e:
            logger.error(f"Failed to save {day}: {e}", exc_info=True)
            return DayOutcome.INCOMPLETE

        self.uploader.upload(day, samples)

        logger.info(f"Completed {day}")
        return DayOutcome.COMPLETED
