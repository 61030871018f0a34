"""
Vivier - Error Taxonomy
=======================

Every condition below is local and recoverable by the caller: re-issue the
request with adjusted parameters. None of them should take the host down.
"""

from typing import Optional


class VivierError(Exception):
    """Base class for all engine errors"""


class InvalidRequest(VivierError):
    """Tariff pair unresolved or priority order malformed. No attempt was made."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class StatisticsUnavailable(VivierError):
    """A window resolved to zero usable draws."""

    def __init__(self, message: str, family: Optional[str] = None, window: Optional[str] = None):
        super().__init__(message)
        self.family = family
        self.window = window


class CalibrationUnresolved(VivierError):
    """No stable window inside the search bound for a signal family."""

    def __init__(self, message: str, family: Optional[str] = None):
        super().__init__(message)
        self.family = family


class GenerationExhausted(VivierError):
    """The uniqueness guard ran out of attempts without a novel combination."""

    def __init__(self, message: str, attempts: int = 0, forbidden: int = 0):
        super().__init__(message)
        self.attempts = attempts
        self.forbidden = forbidden


class IssuedKeysUnavailable(VivierError):
    """The issued-combination store could not be read for a target date."""

    def __init__(self, message: str, target_date: Optional[str] = None):
        super().__init__(message)
        self.target_date = target_date
