"""Domain errors raised by the monitoring core."""


class MonitoringError(Exception):
    """Base class for monitoring core errors."""


class InvalidReadingError(MonitoringError, ValueError):
    """A sensor value that cannot be classified (non-numeric, NaN, inf)."""


class RecordNotFoundError(MonitoringError, LookupError):
    """A breach or alert id that does not exist in the store."""

    def __init__(self, kind: str, record_id):
        super().__init__(f"{kind} {record_id} not found")
        self.kind = kind
        self.record_id = record_id
