"""Domain exceptions raised by the service layer

API routes never catch these individually; exception handlers registered in
main.py translate them into JSON error responses.
"""
from typing import Optional


class ReelflowError(Exception):
    """Base class for all domain errors"""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ReelflowError):
    """Malformed request, rejected before any state mutation"""
    status_code = 400


class Unauthorized(ReelflowError):
    status_code = 401


class NotFound(ReelflowError):
    """No entity with that id owned by the requester"""
    status_code = 404


class InvalidTransition(ReelflowError):
    """Requested status move is not in the table, or lost a race"""
    status_code = 409

    def __init__(self, message: str, current_status: Optional[str] = None):
        super().__init__(message)
        self.current_status = current_status


class InvalidState(InvalidTransition):
    """Operation not legal for the entity's current status (client error)"""
    status_code = 400


class AdapterError(ReelflowError):
    """Provider rejected a request synchronously or the call timed out

    Eligible for a caller-level retry (a fresh job), never an automatic one.
    """
    status_code = 502

    def __init__(self, message: str, provider: str = "", timeout: bool = False):
        super().__init__(message)
        self.provider = provider
        self.timeout = timeout


class ProviderFailure(ReelflowError):
    """Provider resolved the job with a business failure"""
    status_code = 502
