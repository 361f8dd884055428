"""Keeps a local day-by-day archive of household electricity usage in sync with a utility portal"""

__version__ = "0.1.0"
