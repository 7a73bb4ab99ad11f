"""Ledgerline error hierarchy.

All ledgerline-specific errors inherit from LedgerlineError for easy catching.
"""


class LedgerlineError(Exception):
    """Base error for all ledgerline operations."""


class ConfigError(LedgerlineError):
    """Invalid or missing configuration."""


class ChannelError(LedgerlineError):
    """Error in channel lifecycle (open, close, reopen)."""


class SubscribeError(ChannelError):
    """The change source rejected or never acknowledged a subscription."""


class SourceError(LedgerlineError):
    """Error raised by a change source adapter."""
