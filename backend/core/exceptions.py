"""
StockPulse error taxonomy.

  ValidationError   - caller sent malformed settings; surfaced verbatim (HTTP 400)
  NotFoundError     - unknown merchant/alert, or alert owned by someone else (HTTP 404)
  ProviderError     - text-generation failure; always absorbed by the content generator
  PersistenceError  - data-store failure; fatal to one operation, isolated in batch runs
"""


class StockPulseError(Exception):
    """Base class for all domain errors."""


class ValidationError(StockPulseError):
    pass


class NotFoundError(StockPulseError):
    pass


class ProviderError(StockPulseError):
    pass


class PersistenceError(StockPulseError):
    pass
