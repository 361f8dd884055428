"""
Archive of raw daily payloads, one YYYY-MM-DD.csv file per calendar day
"""
import os
import glob
import logging
import tempfile
from datetime import date, datetime
from typing import Set

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d"
SUFFIX = ".csv"


def archive_path(archive_dir: str, day: date) -> str:
    """Path of the archive record for a day"""
    return os.path.abspath(os.path.join(archive_dir, day.strftime(DATE_FORMAT) + SUFFIX))


def collected_days(archive_dir: str) -> Set[date]:
    """
    Days that already have an archive record.

    A missing directory counts as empty. Files whose names are not a valid
    date are ignored.
    """
    if not os.path.isdir(archive_dir):
        return set()

    days = set()
    for path in glob.glob(os.path.join(glob.escape(archive_dir), f"*-*-*{SUFFIX}")):
        name = os.path.basename(path)[:-len(SUFFIX)]
        try:
            day = datetime.strptime(name, DATE_FORMAT).date()
        except ValueError:
            day = None
        # strptime also accepts unpadded fields such as 2023-1-2
        if day is None or day.strftime(DATE_FORMAT) != name:
            logger.debug(f"Ignoring unrecognized archive file {path}")
            continue
        days.add(day)
    return days


def _current_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


def write_record(archive_dir: str, day: date, payload: bytes) -> str:
    """
    Write the raw payload for a day, creating the directory if needed.

    Existing records are never overwritten. The file only appears once it
    has been written completely.

    Returns:
        Path of the record
    """
    path = archive_path(archive_dir, day)
    if os.path.exists(path):
        logger.info(f"Archive record {path} already exists, leaving it untouched")
        return path

    directory = os.path.dirname(path)
    os.makedirs(directory, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".partial-", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(payload)
        os.chmod(tmp_path, 0o666 & ~_current_umask())
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise
    return path
