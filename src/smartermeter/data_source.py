"""
Usage Data Source
Authenticates against the utility portal and downloads one day of usage at a time
"""
import logging
import time
from abc import ABC, abstractmethod
from datetime import date, timedelta
from functools import wraps
from typing import Any, Dict, Mapping, Optional

import requests

from .exceptions import AuthenticationError, DataSourceError

logger = logging.getLogger(__name__)


def retry_on_error(max_retries: int = 3, base_delay: float = 1.0, max_delay: float = 30.0):
    """
    Decorator that retries a function on transient errors with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts
        base_delay: Initial delay between retries (seconds)
        max_delay: Maximum delay between retries (seconds)
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except requests.exceptions.RequestException as e:
                    status_code = getattr(e.response, 'status_code', None)

                    # Don't retry on client errors (4xx) except 429 (rate limit) and 408 (timeout)
                    if status_code and 400 <= status_code < 500 and status_code not in (429, 408):
                        logger.error(f"Non-retryable error {status_code} in {func.__name__}: {e}")
                        raise

                    if attempt >= max_retries:
                        logger.error(f"All {max_retries + 1} attempts failed for {func.__name__}")
                        raise

                    delay = min(base_delay * (2 ** attempt), max_delay)
                    logger.warning(f"Attempt {attempt + 1}/{max_retries + 1} failed for {func.__name__}: {e}")
                    logger.info(f"Retrying in {delay:.1f} seconds...")
                    time.sleep(delay)
        return wrapper
    return decorator


class DataSource(ABC):
    """Upstream source of daily usage payloads"""

    @abstractmethod
    def login(self, username: str, password: str):
        """
        Start an authenticated session.

        Raises:
            AuthenticationError: Credentials rejected or login errored
        """

    @abstractmethod
    def fetch_raw(self, day: date) -> bytes:
        """Raw payload for one day, empty bytes when nothing is available yet"""


class HttpDataSource(DataSource):
    """
    Form-login portal client backed by a requests Session.

    Options (from the "data_source" section of the configuration):
        login_url: URL the login form posts to
        usage_url: URL returning one day of usage for start/end query params
        username_field / password_field: Form field names
        logged_in_marker: Text that must appear on the page after login
        timeout: Request timeout in seconds
    """

    def __init__(self, login_url: str, usage_url: str, username_field: str = "username",
                 password_field: str = "password", logged_in_marker: Optional[str] = None,
                 timeout: float = 60.0, session: Optional[requests.Session] = None):
        self.login_url = login_url
        self.usage_url = usage_url
        self.username_field = username_field
        self.password_field = password_field
        self.logged_in_marker = logged_in_marker
        self.timeout = timeout
        self.session = session or requests.Session()
        self.last_page: Optional[str] = None
        self.last_exception: Optional[BaseException] = None
        self.authenticated = False

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> "HttpDataSource":
        """Build from a configuration mapping"""
        missing = [key for key in ("login_url", "usage_url") if not options.get(key)]
        if missing:
            raise DataSourceError(f"data_source is missing required options: {', '.join(missing)}")
        return cls(
            login_url=options["login_url"],
            usage_url=options["usage_url"],
            username_field=options.get("username_field", "username"),
            password_field=options.get("password_field", "password"),
            logged_in_marker=options.get("logged_in_marker"),
            timeout=float(options.get("timeout", 60.0)),
        )

    @retry_on_error(max_retries=2, base_delay=2.0)
    def _post_login(self, username: str, password: str) -> requests.Response:
        response = self.session.post(
            self.login_url,
            data={self.username_field: username, self.password_field: password},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response

    def login(self, username: str, password: str):
        self.authenticated = False
        self.last_page = None
        self.last_exception = None

        try:
            response = self._post_login(username, password)
        except requests.exceptions.RequestException as e:
            self.last_exception = e
            if e.response is not None:
                self.last_page = e.response.text
            raise AuthenticationError(f"Login request failed: {e}",
                                      last_page=self.last_page, last_exception=e) from e

        if self.logged_in_marker and self.logged_in_marker not in response.text:
            self.last_page = response.text
            raise AuthenticationError("Login rejected by the portal", last_page=self.last_page)

        self.authenticated = True

    @retry_on_error(max_retries=3, base_delay=2.0)
    def _get_usage(self, day: date) -> requests.Response:
        params: Dict[str, str] = {
            "start": day.isoformat(),
            "end": (day + timedelta(days=1)).isoformat(),
        }
        response = self.session.get(self.usage_url, params=params, timeout=self.timeout)
        if response.status_code in (204, 404):
            return response
        response.raise_for_status()
        return response

    def fetch_raw(self, day: date) -> bytes:
        if not self.authenticated:
            raise DataSourceError("fetch_raw called before a successful login")

        try:
            response = self._get_usage(day)
        except requests.exceptions.RequestException as e:
            raise DataSourceError(f"Failed to fetch usage for {day}: {e}") from e

        if response.status_code in (204, 404):
            logger.info(f"No usage available for {day} (HTTP {response.status_code})")
            return b""
        return response.content
