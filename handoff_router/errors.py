"""Exception hierarchy for the hand-off router."""

from typing import Optional


class HandoffError(Exception):
    """Base class for all hand-off router errors."""

    pass


class InitializationError(HandoffError):
    """The routing snapshot could not be fetched; terminal for the session."""

    pass


class ResolutionError(HandoffError):
    """A single launch attempt failed for one link id."""

    def __init__(self, message: str, link_id: Optional[str] = None):
        super().__init__(message)
        self.link_id = link_id


class PersistenceError(HandoffError):
    """A settings, rule or preference write (or read) failed."""

    pass


class EnumerationError(HandoffError):
    """Profile enumeration failed for one browser name."""

    def __init__(self, message: str, browser: Optional[str] = None):
        super().__init__(message)
        self.browser = browser
