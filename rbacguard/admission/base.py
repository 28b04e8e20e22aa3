"""Admission handler contracts and response helpers.

A handler is registered for one GroupVersionResource and a set of operations.
Validating handlers expose a chain of admitters; mutating handlers are a
single admitter whose changes to the object are returned as a JSON patch.

Admitters report a decision by returning an AdmissionResponse and report a
failure to decide by raising. The dispatcher never confuses the two.
"""

from abc import ABC, abstractmethod
from http import HTTPStatus
from typing import List

from rbacguard.models.admission import (AdmissionRequest, AdmissionResponse,
                                        GroupVersionResource, Operation,
                                        Status)

STATUS_FAILURE = "Failure"

REASON_BAD_REQUEST = "BadRequest"
REASON_UNAUTHORIZED = "Unauthorized"
REASON_INTERNAL_ERROR = "InternalError"


def sub_path(gvr: GroupVersionResource) -> str:
    """URL segment a handler is served under, `{resource}.{group}`."""
    if gvr.resource == "*":
        return gvr.group
    return gvr.subpath


class Admitter(ABC):
    """Makes an admission decision for one request."""

    @abstractmethod
    def admit(self, request: AdmissionRequest) -> AdmissionResponse:
        """Return the decision, or raise when no decision can be made."""


class WebhookHandler(ABC):
    """Handler bound to one resource and a set of operations."""

    gvr: GroupVersionResource
    operations: List[Operation]

    def can_handle(self, operation: Operation) -> bool:
        return operation in self.operations

    @property
    def path(self) -> str:
        return sub_path(self.gvr)


class ValidatingAdmissionHandler(WebhookHandler):
    """Handler whose admitters all have to allow a request."""

    @abstractmethod
    def admitters(self) -> List[Admitter]:
        """Admitters evaluated in order."""


class MutatingAdmissionHandler(WebhookHandler, Admitter):
    """Handler that may change the object before it is persisted."""


# ============================================================================
# RESPONSES
# ============================================================================


def response_allowed() -> AdmissionResponse:
    return AdmissionResponse(allowed=True)


def response_bad_request(message: str) -> AdmissionResponse:
    return AdmissionResponse(
        allowed=False,
        result=Status(
            status=STATUS_FAILURE,
            message=message,
            reason=REASON_BAD_REQUEST,
            code=HTTPStatus.BAD_REQUEST.value,
        ),
    )


def response_failed_escalation(message: str) -> AdmissionResponse:
    return AdmissionResponse(
        allowed=False,
        result=Status(
            status=STATUS_FAILURE,
            message=message,
            reason=REASON_UNAUTHORIZED,
            code=HTTPStatus.UNAUTHORIZED.value,
        ),
    )


def internal_error_status(error: BaseException) -> Status:
    return Status(
        status=STATUS_FAILURE,
        message=f"Internal error occurred: {error}",
        reason=REASON_INTERNAL_ERROR,
        code=HTTPStatus.INTERNAL_SERVER_ERROR.value,
    )
