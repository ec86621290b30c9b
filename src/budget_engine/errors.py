"""Exceptions raised when a caller breaks a mutation contract."""


class BudgetEngineError(Exception):
    """Base class for engine errors surfaced to callers."""


class StructureError(BudgetEngineError):
    """Raised when a mutation would produce an invalid line hierarchy."""


class CycleError(StructureError):
    """Raised when a line would become its own ancestor."""


class LockedFieldError(BudgetEngineError):
    """Raised when editing the derived unit cost of a line that has children."""


class FieldNotEditableError(BudgetEngineError):
    """Raised for unknown fields or fields that are always derived."""
