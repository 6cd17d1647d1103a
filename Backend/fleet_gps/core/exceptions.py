from fastapi import status


class SimulationError(Exception):
    """Base error of the GPS simulation. Rendered as ``{"error": message}``."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MissingInput(SimulationError):
    """Required input absent from the request, rejected before any store access."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(SimulationError):
    status_code = status.HTTP_404_NOT_FOUND


class InvalidState(SimulationError):
    """Mission not in a status that allows the operation. Not retryable."""

    status_code = status.HTTP_409_CONFLICT


class StoreWriteFailure(SimulationError):
    """Insert rejected by the database."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class StoreReadFailure(SimulationError):
    """Read rejected by the database."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
