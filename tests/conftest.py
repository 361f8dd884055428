"""Shared fixtures for smartermeter tests"""
from datetime import date

import pytest

from smartermeter.config import ConfigStore
from smartermeter.data_source import DataSource
from smartermeter.exceptions import AuthenticationError
from smartermeter.transports import Transport

JAN_1_2023 = 1672531200


def build_espi(readings, multiplier=0):
    """ESPI feed with (epoch start, value) interval readings"""
    body = "".join(
        "<espi:IntervalReading>"
        f"<espi:timePeriod><espi:duration>3600</espi:duration><espi:start>{start}</espi:start></espi:timePeriod>"
        f"<espi:value>{value}</espi:value>"
        "</espi:IntervalReading>"
        for start, value in readings
    )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<feed xmlns="http://www.w3.org/2005/Atom" xmlns:espi="http://naesb.org/espi">'
        '<entry><content><espi:ReadingType>'
        f'<espi:powerOfTenMultiplier>{multiplier}</espi:powerOfTenMultiplier><espi:uom>72</espi:uom>'
        '</espi:ReadingType></content></entry>'
        f'<entry><content><espi:IntervalBlock>{body}</espi:IntervalBlock></content></entry>'
        '</feed>'
    ).encode("utf-8")


class FakeDataSource(DataSource):
    """Serves canned payloads per day and records every call"""

    def __init__(self, payloads=None, fail_login=False):
        self.payloads = payloads or {}
        self.fail_login = fail_login
        self.calls = []

    def login(self, username, password):
        self.calls.append(("login", username, password))
        if self.fail_login:
            raise AuthenticationError("bad credentials", last_page="<html>Invalid login</html>")

    def fetch_raw(self, day):
        self.calls.append(("fetch_raw", day))
        payload = self.payloads.get(day, b"")
        if isinstance(payload, Exception):
            raise payload
        return payload


class FakeTransport(Transport):
    name = "fake"

    def __init__(self, succeed=True):
        self.succeed = succeed
        self.uploads = []

    @classmethod
    def from_config(cls, options):
        return cls(options.get("succeed", True))

    def upload(self, samples):
        self.uploads.append(samples)
        return self.succeed


@pytest.fixture
def espi_day():
    """Two hourly readings on 2023-01-01"""
    return build_espi([(JAN_1_2023, 450), (JAN_1_2023 + 3600, 550)])


@pytest.fixture
def archive_dir(tmp_path):
    return str(tmp_path / "data")


@pytest.fixture
def config_path(tmp_path):
    return str(tmp_path / "smartermeter.yml")


@pytest.fixture
def store(config_path):
    return ConfigStore(config_path)


@pytest.fixture
def jan_days():
    return [date(2023, 1, 1), date(2023, 1, 2), date(2023, 1, 3)]
