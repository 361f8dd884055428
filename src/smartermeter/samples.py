"""
Sample parsing for Green Button (ESPI) usage exports
"""
import logging
import xml.etree.ElementTree as ET
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Dict, Iterator, List

from .exceptions import SampleParseError

logger = logging.getLogger(__name__)

ESPI_NS = "{http://naesb.org/espi}"


@dataclass(frozen=True)
class Sample:
    """One interval reading"""
    start: datetime
    duration: int
    kwh: float

    @property
    def day(self) -> date:
        return self.start.date()


class SampleSet:
    """Parsed readings of one payload, grouped by calendar day"""

    def __init__(self, samples: List[Sample] = None):
        self.days: Dict[date, List[Sample]] = defaultdict(list)
        for sample in samples or []:
            self.days[sample.day].append(sample)
        for readings in self.days.values():
            readings.sort(key=lambda s: s.start)

    def __iter__(self) -> Iterator[Sample]:
        for day in sorted(self.days):
            yield from self.days[day]

    def __len__(self) -> int:
        return sum(len(readings) for readings in self.days.values())

    def __bool__(self) -> bool:
        return len(self) > 0

    def total_kwh(self) -> float:
        return sum(sample.kwh for sample in self)


class EspiParser:
    """
    Parses ESPI Atom feeds into a SampleSet.

    Reading values are scaled by the ReadingType powerOfTenMultiplier and
    treated as watt-hours.
    """

    def parse(self, payload: bytes) -> SampleSet:
        """
        Args:
            payload: Raw feed as fetched

        Returns:
            SampleSet, empty when the feed holds no interval readings

        Raises:
            SampleParseError: The payload is not well formed ESPI XML
        """
        try:
            root = ET.fromstring(payload)
        except ET.ParseError as e:
            raise SampleParseError(f"Payload is not valid XML: {e}") from e

        multiplier = 0
        reading_type = root.find(f".//{ESPI_NS}ReadingType")
        if reading_type is not None:
            text = reading_type.findtext(f"{ESPI_NS}powerOfTenMultiplier", "0")
            try:
                multiplier = int(text)
            except ValueError as e:
                raise SampleParseError(f"Malformed powerOfTenMultiplier {text!r}") from e

        samples = []
        for reading in root.iter(f"{ESPI_NS}IntervalReading"):
            start = reading.findtext(f"{ESPI_NS}timePeriod/{ESPI_NS}start")
            duration = reading.findtext(f"{ESPI_NS}timePeriod/{ESPI_NS}duration", "0")
            value = reading.findtext(f"{ESPI_NS}value")
            if start is None or value is None:
                logger.debug("Skipping interval reading without start or value")
                continue
            try:
                samples.append(Sample(
                    start=datetime.fromtimestamp(int(start), tz=timezone.utc),
                    duration=int(duration),
                    kwh=int(value) * (10 ** multiplier) / 1000.0,
                ))
            except (ValueError, OverflowError, OSError) as e:
                raise SampleParseError(f"Malformed interval reading: {e}") from e

        return SampleSet(samples)
