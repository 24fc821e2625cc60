"""
Error taxonomy shared by the core modules and mapped to HTTP in main.py.
"""


class CounsellorError(Exception):
    """Base class for errors raised by the counsellor core."""

    code = "COUNSELLOR_ERROR"


class InvalidRequestError(CounsellorError, ValueError):
    """Input rejected before any state was touched."""

    code = "INVALID_REQUEST"


class NotFoundError(CounsellorError, LookupError):
    code = "NOT_FOUND"


class TransientServiceError(CounsellorError):
    """Datastore or LLM failure the caller may retry."""

    code = "SERVICE_UNAVAILABLE"
