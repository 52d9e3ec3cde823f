"""
Exception taxonomy for the listing audit core.

Only rule-catalogue problems and collaborator failures are exceptions. Problems
that occur while computing an audit (a broken KPI, a listing with no text) are
recorded as diagnostics on the AuditResult instead.
"""


class AuditError(Exception):
    """Base class for all listing audit errors."""


class RuleValidationError(AuditError):
    """
    A rule layer or static catalogue failed validation at load time.

    Raised only for the base layer and the built-in KPI/formula catalogues.
    Problems in vertical, market or client layers are downgraded to warnings.
    """

    def __init__(self, message: str, key: str = ""):
        super().__init__(message)
        self.key = key


class RuleStoreError(AuditError):
    """The rule store could not be read."""


class SnapshotStoreError(AuditError):
    """The snapshot store could not be read or written."""


class SubjectMismatchError(AuditError, ValueError):
    """Two snapshots for different subjects were passed to diff."""
