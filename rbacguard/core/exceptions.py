"""Exception hierarchy for the admission webhook."""

from typing import List, Optional


class RBACGuardError(Exception):
    """Base exception for rbacguard errors"""


class NotFoundError(RBACGuardError):
    """Object is not present in the cache"""

    def __init__(self, kind: str, name: str, namespace: Optional[str] = None):
        self.kind = kind
        self.name = name
        self.namespace = namespace
        qualified = f"{namespace}/{name}" if namespace else name
        super().__init__(f'{kind} "{qualified}" not found')


class CacheError(RBACGuardError):
    """Error reading from or writing to the object cache"""


class EscalationError(RBACGuardError):
    """Requested rules are not covered by the rules the user holds"""

    def __init__(self, message: str, uncovered: Optional[List] = None):
        super().__init__(message)
        self.uncovered = uncovered or []


class PermissionCheckError(RBACGuardError):
    """SubjectAccessReview could not be completed"""


class AdmissionError(RBACGuardError):
    """Admission request could not be evaluated"""


class InvalidRequestError(AdmissionError):
    """Admission review body is malformed"""


class UnsupportedOperationError(AdmissionError):
    """Handler does not accept the requested operation"""

    def __init__(self, operation: str, resource: str):
        self.operation = operation
        self.resource = resource
        super().__init__(f"unsupported operation {operation} for {resource}")


def is_not_found(error: BaseException) -> bool:
    """Return True when the error, or the error it wraps, is a NotFoundError."""
    while error is not None:
        if isinstance(error, NotFoundError):
            return True
        error = error.__cause__
    return False
