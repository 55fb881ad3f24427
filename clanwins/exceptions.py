"""
Domain exceptions for ClanWins.

Services raise these; routes translate them to HTTP errors.
"""


class ClanWinsError(Exception):
    """Base class for application errors."""


class InvalidStatusTransition(ClanWinsError):
    """A status change that the transition table does not allow."""


class ScanJobNotFound(ClanWinsError):
    """No scan job with the requested id."""


class InvalidScanRequest(ClanWinsError):
    """Scan job parameters are inconsistent (dates, missing clan tag)."""


class StatsApiUnavailable(ClanWinsError):
    """The game-stats API returned no usable data where data is required."""
