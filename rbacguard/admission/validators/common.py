"""Helpers shared by the management.cattle.io validators."""

import logging
from typing import List, Optional, Type, TypeVar

from rbacguard.admission.base import response_allowed, response_failed_escalation
from rbacguard.core.exceptions import (EscalationError, InvalidRequestError,
                                       PermissionCheckError)
from rbacguard.core.metrics import escalate_verb_grants, escalation_denials
from rbacguard.models.admission import (AdmissionRequest, AdmissionResponse,
                                        GroupVersionResource, Operation)
from rbacguard.models.management import MANAGEMENT_GROUP
from rbacguard.models.rbac import PolicyRule
from rbacguard.services.escalation import (ESCALATE_VERB,
                                           SubjectAccessReviewer,
                                           confirm_no_escalation,
                                           escalation_authorized,
                                           request_user_has_verb)
from rbacguard.services.resolvers import RuleResolver

logger = logging.getLogger(__name__)

T = TypeVar("T")


def management_gvr(resource: str) -> GroupVersionResource:
    return GroupVersionResource(group=MANAGEMENT_GROUP, version="v3", resource=resource)


def object_from_request(request: AdmissionRequest, model: Type[T]) -> T:
    """Decode the object under review; DELETE requests carry it as oldObject."""
    raw = request.old_object if request.operation == Operation.DELETE else request.object
    if raw is None:
        raise InvalidRequestError(f"{model.kind} missing from {request.operation.value} request")
    return model.from_dict(raw)


def old_and_new_from_request(request: AdmissionRequest, model: Type[T]):
    """Decode (old, new); the missing side of a CREATE or DELETE is None."""
    old = model.from_dict(request.old_object) if request.old_object else None
    new = model.from_dict(request.object) if request.object else None
    return old, new


def escalation_allowed(
    request: AdmissionRequest,
    gvr: GroupVersionResource,
    reviewer: SubjectAccessReviewer,
    namespace: str = "",
) -> bool:
    """Like escalation_authorized, but a failed review counts as not holding escalate."""
    try:
        allowed = escalation_authorized(request, gvr, reviewer, namespace)
    except PermissionCheckError as e:
        logger.warning(f"Failed to check for the '{ESCALATE_VERB}' verb on {gvr.resource}: {e}")
        return False
    if allowed:
        escalate_verb_grants.labels(resource=gvr.resource, verb=ESCALATE_VERB).inc()
    return allowed


def escalation_response(
    request: AdmissionRequest,
    rules: List[PolicyRule],
    namespace: str,
    resolver: RuleResolver,
) -> AdmissionResponse:
    """Allow when the requester holds `rules` in `namespace`, deny with 401 otherwise."""
    try:
        confirm_no_escalation(request.user_info.to_user_info(), rules, namespace, resolver)
    except EscalationError as e:
        escalation_denials.labels(resource=request.resource.resource).inc()
        return response_failed_escalation(str(e))
    return response_allowed()


class CachedVerbChecker:
    """Checks an override verb (bind, escalate) on one named object at most once per request.

    A failed SubjectAccessReview is not cached, so the next call retries it.
    """

    def __init__(
        self,
        request: AdmissionRequest,
        name: str,
        reviewer: SubjectAccessReviewer,
        gvr: GroupVersionResource,
        verb: str,
    ):
        self.request = request
        self.name = name
        self.reviewer = reviewer
        self.gvr = gvr
        self.verb = verb
        self._has_verb: Optional[bool] = None

    def has_verb(self) -> bool:
        if self._has_verb is not None:
            return self._has_verb
        try:
            allowed = request_user_has_verb(
                self.request, self.gvr, self.reviewer, self.verb, self.name, ""
            )
        except PermissionCheckError as e:
            logger.error(f"Failed to check for the verb {self.verb} on {self.gvr.resource}: {e}")
            return False
        if allowed:
            escalate_verb_grants.labels(resource=self.gvr.resource, verb=self.verb).inc()
        self._has_verb = allowed
        return allowed

    def is_rules_allowed(
        self, rules: Optional[List[PolicyRule]], resolver: RuleResolver, namespace: str
    ) -> Optional[EscalationError]:
        """Return None when `rules` may be granted, the escalation error otherwise."""
        try:
            confirm_no_escalation(
                self.request.user_info.to_user_info(), rules or [], namespace, resolver
            )
        except EscalationError as e:
            if self.has_verb():
                return None
            return e
        return None
