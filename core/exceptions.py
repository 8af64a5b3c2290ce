"""
core/exceptions.py
------------------
Exception types raised by the signal engine.  Nothing here is fatal to the
polling loops; callers decide whether to log, surface or re-raise.
"""
from __future__ import annotations


class SignalEngineError(Exception):
    """Base class for every error raised by this package."""


class ConfigError(SignalEngineError, ValueError):
    """Configuration is missing a key or carries a value of the wrong type."""


class FeedError(SignalEngineError):
    """The feed reader could not produce a batch (transport or payload)."""


class UserResultRejected(SignalEngineError):
    """A self-reported result was submitted at a time it is not accepted."""


class DuplicateUserResult(UserResultRejected):
    """The user already reported a result for this signal."""

    def __init__(self, signal_id: str, user_id: str) -> None:
        super().__init__(f"user {user_id} already reported a result for signal {signal_id}")
        self.signal_id = signal_id
        self.user_id = user_id
