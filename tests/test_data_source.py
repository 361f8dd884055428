"""Tests for the HTTP data source"""
from datetime import date
from unittest.mock import MagicMock, patch

import pytest
import requests

from smartermeter.data_source import HttpDataSource, retry_on_error
from smartermeter.exceptions import AuthenticationError, DataSourceError


def response(status_code=200, text="", content=b""):
    resp = MagicMock(status_code=status_code, text=text, content=content)
    if status_code >= 400:
        error = requests.exceptions.HTTPError(f"{status_code} Error", response=resp)
        resp.raise_for_status.side_effect = error
    return resp


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def source(session):
    return HttpDataSource("https://portal.example.com/login", "https://portal.example.com/usage",
                          logged_in_marker="Sign out", session=session)


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("smartermeter.data_source.time.sleep"):
        yield


class TestLogin:
    """Tests for HttpDataSource.login"""

    def test_successful_login(self, source, session):
        session.post.return_value = response(text="Welcome <a>Sign out</a>")

        source.login("alice", "pw")

        assert source.authenticated
        session.post.assert_called_once()
        assert session.post.call_args[1]["data"] == {"username": "alice", "password": "pw"}

    def test_missing_marker_is_rejection(self, source, session):
        session.post.return_value = response(text="Invalid username or password")

        with pytest.raises(AuthenticationError) as exc_info:
            source.login("alice", "wrong")

        assert exc_info.value.last_page == "Invalid username or password"
        assert source.last_page == "Invalid username or password"
        assert not source.authenticated

    def test_http_error_carries_diagnostics(self, source, session):
        session.post.return_value = response(status_code=403, text="Forbidden")

        with pytest.raises(AuthenticationError) as exc_info:
            source.login("alice", "pw")

        assert isinstance(exc_info.value.last_exception, requests.exceptions.HTTPError)
        assert exc_info.value.last_page == "Forbidden"
        assert session.post.call_count == 1

    def test_connection_error_is_retried(self, source, session):
        session.post.side_effect = [
            requests.exceptions.ConnectionError("reset"),
            response(text="Sign out"),
        ]
        source.login("alice", "pw")
        assert source.authenticated
        assert session.post.call_count == 2


class TestFetchRaw:
    """Tests for HttpDataSource.fetch_raw"""

    def login(self, source, session):
        session.post.return_value = response(text="Sign out")
        source.login("alice", "pw")

    def test_requires_login(self, source):
        with pytest.raises(DataSourceError):
            source.fetch_raw(date(2023, 1, 1))

    def test_returns_payload(self, source, session):
        self.login(source, session)
        session.get.return_value = response(content=b"<feed/>")

        assert source.fetch_raw(date(2023, 1, 1)) == b"<feed/>"
        assert session.get.call_args[1]["params"] == {"start": "2023-01-01", "end": "2023-01-02"}

    @pytest.mark.parametrize("status_code", [204, 404])
    def test_no_data_is_empty(self, source, session, status_code):
        self.login(source, session)
        session.get.return_value = response(status_code=status_code)
        assert source.fetch_raw(date(2023, 1, 1)) == b""

    def test_server_errors_exhaust_retries(self, source, session):
        self.login(source, session)
        session.get.return_value = response(status_code=503)

        with pytest.raises(DataSourceError):
            source.fetch_raw(date(2023, 1, 1))
        assert session.get.call_count == 4


class TestFromOptions:
    """Tests for HttpDataSource.from_options"""

    def test_requires_urls(self):
        with pytest.raises(DataSourceError):
            HttpDataSource.from_options({"login_url": "https://x"})

    def test_builds_from_options(self):
        source = HttpDataSource.from_options({
            "login_url": "https://x/login",
            "usage_url": "https://x/usage",
            "username_field": "email",
            "timeout": "15",
        })
        assert source.username_field == "email"
        assert source.timeout == 15.0


class TestRetryOnError:
    """Tests for retry_on_error"""

    def test_rate_limit_is_retried(self):
        calls = []

        @retry_on_error(max_retries=2)
        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise requests.exceptions.HTTPError("429", response=MagicMock(status_code=429))
            return "ok"

        assert flaky() == "ok"
        assert len(calls) == 3

    def test_other_exceptions_propagate(self):
        @retry_on_error()
        def broken():
            raise KeyError("boom")

        with pytest.raises(KeyError):
            broken()
