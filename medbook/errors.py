"""Error taxonomy shared by services and routers; rendered by the handler in main.py"""


class MedBookError(Exception):
    """Base error carrying the HTTP status it maps to"""

    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class ValidationError(MedBookError):
    status_code = 400


class Unauthorized(MedBookError):
    status_code = 401


class NotFound(MedBookError):
    status_code = 404


class Conflict(MedBookError):
    status_code = 409


class AlreadyRated(Conflict):
    pass


class TooEarly(MedBookError):
    status_code = 400


class UpstreamFailure(MedBookError):
    """Meeting or payment provider error"""

    status_code = 502


class InvalidSignature(MedBookError):
    status_code = 400


class ReconciliationError(MedBookError):
    """Payment captured but the booking could not be recorded consistently"""

    status_code = 500
