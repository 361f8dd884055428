"""
Gap detection: which calendar days between the start date and today have no archive record
"""
from datetime import date, timedelta
from typing import List

from .archive import collected_days


def missing_days(archive_dir: str, start_date: date, today: date) -> List[date]:
    """
    Days in [start_date, today) without an archive record, oldest first.

    Today is excluded because its data is not complete yet.

    Args:
        archive_dir: Directory holding the YYYY-MM-DD.csv records
        start_date: First day to collect
        today: The current day

    Returns:
        Ordered list of missing days, empty when start_date >= today
    """
    if start_date >= today:
        return []

    collected = collected_days(archive_dir)
    count = (today - start_date).days
    all_days = (start_date + timedelta(days=i) for i in range(count))
    return [day for day in all_days if day not in collected]
