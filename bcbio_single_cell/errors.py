"""
Exceptions raised while importing a bcbio single-cell run.

Missing paths subclass FileNotFoundError and structural problems subclass
ValueError, so callers that already catch the builtins keep working.
"""


class BcbioSingleCellError(Exception):
    """Base class for all import errors."""


class NotFoundError(BcbioSingleCellError, FileNotFoundError):
    """A required file or directory does not exist."""


class ValidationError(BcbioSingleCellError, ValueError):
    """Input has the wrong structure, shape, or type."""


class SchemaMismatchError(ValidationError):
    """Per-sample count matrices disagree on their feature identifiers."""


class DuplicateKeyError(ValidationError):
    """Identifiers that must be unique are not."""


class NameCollisionError(DuplicateKeyError):
    """A column about to be added already exists."""


class ConventionError(ValidationError):
    """
    Input follows the wrong convention.

    Raised when the sample metadata ``sequence`` column contains the reverse
    complement of the index barcodes instead of the forward sequence.
    """
