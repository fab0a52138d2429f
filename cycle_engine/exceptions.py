"""
Custom exceptions for the Cycle Engine
"""


class CycleEngineError(Exception):
    """Base exception for all cycle engine errors"""
    pass


class ValidationError(CycleEngineError):
    """Raised when a caller breaks an input contract (e.g. passes no ledger at all)"""
    pass


class ConfigurationError(CycleEngineError):
    """Raised when engine configuration cannot be saved or validated on request"""
    pass
