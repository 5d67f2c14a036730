"""
Reporting Exceptions
"""


class ReportError(Exception):
    """Base class for reporting failures"""


class DataLoadError(ReportError):
    """The external store could not deliver a consistent batch"""

    def __init__(self, message: str, table: str = None):
        super().__init__(message)
        self.message = message
        self.table = table


class UnauthorizedError(ReportError):
    """Caller lacks the role required for the requested report"""
