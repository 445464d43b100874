"""
csrlab errors.

Every error derives from CSRError and from the closest builtin exception,
so callers can catch either ``CSRError`` or e.g. ``IndexError``.

Author: Carmen Esteban
"""


class CSRError(Exception):
    """Base class for csrlab errors."""


class InvalidSize(CSRError, ValueError):
    """Vector length is zero or negative."""


class InvalidDimension(CSRError, ValueError):
    """Matrix row count is zero or negative."""


class InvalidState(CSRError, RuntimeError):
    """Operation not allowed in the current construction state."""


class IndexOutOfRange(CSRError, IndexError):
    """Row, column or vector index outside the valid range."""


class LengthMismatch(CSRError, ValueError):
    """Operands have incompatible lengths."""


class UnpatternedCellWrite(CSRError, LookupError):
    """Write access to a cell outside the frozen sparsity pattern."""


class MissingDiagonal(CSRError, ValueError):
    """A row does not store its diagonal entry first (or is empty)."""


class InvalidPattern(CSRError, ValueError):
    """A caller-supplied CSR triple breaks the storage invariants."""


class InvalidDtype(CSRError, TypeError):
    """Operand dtype cannot be used without an unsafe cast."""
