"""Routing of AdmissionReviews to the registered handlers."""

import copy
import time
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from rbacguard.admission.base import (MutatingAdmissionHandler,
                                      ValidatingAdmissionHandler,
                                      WebhookHandler, internal_error_status,
                                      response_allowed)
from rbacguard.admission.patch import create_patch
from rbacguard.core.config import settings
from rbacguard.core.exceptions import (InvalidRequestError,
                                       UnsupportedOperationError)
from rbacguard.core.logging import get_logger_with_context
from rbacguard.core.metrics import admission_duration, admission_requests
from rbacguard.models.admission import (AdmissionRequest, AdmissionResponse,
                                        AdmissionReview)

VALIDATION = "validation"
MUTATION = "mutation"


def decode_review(body: Any) -> AdmissionReview:
    """Parse a request body; a review without a request is invalid."""
    try:
        review = AdmissionReview.model_validate(body)
    except ValidationError as e:
        raise InvalidRequestError(f"failed to decode AdmissionReview: {e}") from e
    if review.request is None:
        raise InvalidRequestError("request is not set: invalid request")
    return review


def resource_string(namespace: str, name: str) -> str:
    return f"{namespace}/{name}" if namespace else name


class AdmissionDispatcher:
    """Holds the validating and mutating handlers and runs them for a review."""

    def __init__(
        self,
        sudo_username: Optional[str] = None,
        sudo_group: Optional[str] = None,
        slow_trace_seconds: Optional[float] = None,
    ):
        self.sudo_username = sudo_username or settings.sudo_username
        self.sudo_group = sudo_group or settings.sudo_group
        self.slow_trace_seconds = (
            slow_trace_seconds
            if slow_trace_seconds is not None
            else settings.slow_trace_seconds
        )
        self.validators: Dict[str, ValidatingAdmissionHandler] = {}
        self.mutators: Dict[str, MutatingAdmissionHandler] = {}

    # ========================================================================
    # REGISTRATION
    # ========================================================================

    def register_validator(self, handler: ValidatingAdmissionHandler) -> None:
        self.validators[handler.path] = handler

    def register_mutator(self, handler: MutatingAdmissionHandler) -> None:
        self.mutators[handler.path] = handler

    def validating_paths(self) -> List[str]:
        return sorted(self.validators)

    def mutating_paths(self) -> List[str]:
        return sorted(self.mutators)

    # ========================================================================
    # ENTRY POINTS
    # ========================================================================

    def validate(self, path: str, review: AdmissionReview) -> AdmissionReview:
        """Run the validating handler registered under `path`."""
        handler = self.validators[path]
        return self._handle(VALIDATION, handler, review, self._validate)

    def mutate(self, path: str, review: AdmissionReview) -> AdmissionReview:
        """Run the mutating handler registered under `path`."""
        handler = self.mutators[path]
        return self._handle(MUTATION, handler, review, self._mutate)

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def is_sudo(self, request: AdmissionRequest) -> bool:
        """The sudo service account acting with cluster-admin bypasses all checks."""
        user = request.user_info
        return user.username == self.sudo_username and self.sudo_group in user.groups

    def _handle(self, kind: str, handler: WebhookHandler, review: AdmissionReview, run) -> AdmissionReview:
        request = review.request
        log = get_logger_with_context(
            __name__,
            request_uid=request.uid,
            username=request.user_info.username,
            resource=handler.path,
        )
        start = time.monotonic()

        try:
            if not handler.can_handle(request.operation):
                raise UnsupportedOperationError(request.operation.value, handler.path)
            if self.is_sudo(request):
                log.info(f"Allowing {request.operation.value} by sudo user")
                response = response_allowed()
            else:
                response = run(handler, request)
            result = "allowed" if response.allowed else "denied"
        except Exception as e:
            log.error(f"Admission {kind} failed for {handler.path}: {e}")
            response = AdmissionResponse(allowed=False, result=internal_error_status(e))
            result = "error"

        duration = time.monotonic() - start
        admission_duration.labels(kind=kind, resource=handler.path).observe(duration)
        admission_requests.labels(
            kind=kind,
            resource=handler.path,
            operation=request.operation.value,
            result=result,
        ).inc()

        if duration > self.slow_trace_seconds:
            log.warning(
                f"Slow admission {kind} for {handler.path}: {duration:.3f}s",
                extra={"duration_seconds": duration},
            )

        log.debug(
            f"admit result: {request.operation.value} {request.kind.kind} "
            f"{resource_string(request.namespace, request.name)} "
            f"user={request.user_info.username} allowed={response.allowed}"
        )

        response.uid = request.uid
        return AdmissionReview(
            api_version=review.api_version,
            kind=review.kind,
            response=response,
        )

    @staticmethod
    def _validate(handler: ValidatingAdmissionHandler, request: AdmissionRequest) -> AdmissionResponse:
        for admitter in handler.admitters():
            response = admitter.admit(request)
            if not response.allowed:
                return response
        return response_allowed()

    @staticmethod
    def _mutate(handler: MutatingAdmissionHandler, request: AdmissionRequest) -> AdmissionResponse:
        original = copy.deepcopy(request.object or {})
        response = handler.admit(request)
        if response.allowed and request.object is not None:
            create_patch(original, request.object, response)
        return response
