"""
Service Layer Exceptions

Custom exceptions for the SessionService and the workflow repositories.
Both subclass LookupError; the API maps them to 404.
"""


class WorkflowNotFoundError(LookupError):
    """Raised when no workflow matches a name, UID or alias."""
    pass


class SessionNotFoundError(LookupError):
    """Raised when a session ID is unknown."""
    pass
