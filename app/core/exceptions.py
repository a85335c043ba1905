class AnalyticsInputError(ValueError):
    """Client supplied analytics parameters that cannot be used (maps to 400)."""


class AnalyticsQueryError(Exception):
    """
    A storage/transport failure while running one of the aggregate queries.

    The underlying database error is chained as __cause__; operation names
    the query that failed so logs can tell them apart.
    """

    def __init__(self, operation: str, message: str):
        super().__init__(f"{operation}: {message}")
        self.operation = operation
