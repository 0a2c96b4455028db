class DoubleOrNothingError(Exception):
    """Base error rendered to API callers as {"error": message}."""

    status_code = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidRequest(DoubleOrNothingError):
    status_code = 400


class TransferRejected(DoubleOrNothingError):
    """The wager transfer is known to have failed on-chain."""

    status_code = 400


class DuplicateSettlement(DoubleOrNothingError):
    status_code = 409


class StatsWriteError(DoubleOrNothingError):
    status_code = 500
