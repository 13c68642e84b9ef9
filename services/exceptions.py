"""
Error taxonomy for the results engine.
Services raise these; routers translate them into HTTP responses.
"""


class ResultsEngineError(Exception):
    """Base class for every error raised by the results services."""


class RowValidationError(ResultsEngineError):
    """A single import row is malformed. Never escapes an import call."""

    def __init__(self, row: int, reason: str):
        super().__init__(f"Row {row}: {reason}")
        self.row = row
        self.reason = reason


class ImportFileError(ResultsEngineError):
    """The uploaded file itself cannot be read (wrong type, corrupt, no header)."""


class NotFoundError(ResultsEngineError):
    pass


class FilterValidationError(ResultsEngineError):
    pass


class StorageTransactionError(ResultsEngineError):
    """A write failed part-way; the whole operation was rolled back."""


class AnalysisTimeoutError(ResultsEngineError):
    pass
