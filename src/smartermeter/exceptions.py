"""
SmarterMeter exceptions
Error taxonomy shared by the configuration store, data source, pipeline and transports
"""
from typing import Optional


class SmarterMeterError(Exception):
    """Base exception for all smartermeter errors"""


class CorruptConfigError(SmarterMeterError):
    """The persisted configuration exists but cannot be read"""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Configuration file {path} is corrupt: {reason}")


class AuthenticationError(SmarterMeterError):
    """
    Login to the upstream data source was rejected or errored

    Args:
        message: Human readable description
        last_page: Body of the last page the data source saw, if any
        last_exception: Exception raised during login, if any
    """

    def __init__(self, message: str, last_page: Optional[str] = None,
                 last_exception: Optional[BaseException] = None):
        super().__init__(message)
        self.last_page = last_page
        self.last_exception = last_exception


class DataSourceError(SmarterMeterError):
    """Fetching the raw payload for a day failed"""


class SampleParseError(SmarterMeterError):
    """A fetched payload could not be parsed into samples"""


class UnsupportedTransportError(SmarterMeterError):
    """The configured transport name has no implementation"""


class UploadError(SmarterMeterError):
    """A telemetry transport failed to deliver samples"""
