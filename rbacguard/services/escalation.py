"""Privilege escalation checks."""

import json
import logging
from typing import List, Optional

import urllib3
from kubernetes import client, config
from kubernetes.client import ApiException

from rbacguard.core.config import settings
from rbacguard.core.exceptions import EscalationError, PermissionCheckError
from rbacguard.core.metrics import subject_access_review_failures
from rbacguard.models.admission import AdmissionRequest, GroupVersionResource
from rbacguard.models.rbac import PolicyRule, UserInfo
from rbacguard.services.resolvers import RuleResolver
from rbacguard.services.rules import compact_rules, covers

logger = logging.getLogger(__name__)

ESCALATE_VERB = "escalate"
BIND_VERB = "bind"


class SubjectAccessReviewer:
    """Asks the API server whether a user may perform a verb, via SubjectAccessReview."""

    def __init__(
        self,
        api: Optional[client.AuthorizationV1Api] = None,
        timeout: Optional[float] = None,
    ):
        self.api = api or client.AuthorizationV1Api()
        self.timeout = timeout if timeout is not None else settings.sar_timeout_seconds

    @classmethod
    def from_settings(cls) -> "SubjectAccessReviewer":
        if settings.in_cluster:
            config.load_incluster_config()
            logger.info("Loaded in-cluster Kubernetes config")
        else:
            config.load_kube_config(config_file=settings.kubeconfig)
            logger.info("Loaded local Kubernetes config")
        return cls(client.AuthorizationV1Api(), settings.sar_timeout_seconds)

    def allowed(
        self,
        user: UserInfo,
        gvr: GroupVersionResource,
        verb: str,
        name: str = "",
        namespace: str = "",
    ) -> bool:
        body = client.V1SubjectAccessReview(
            spec=client.V1SubjectAccessReviewSpec(
                resource_attributes=client.V1ResourceAttributes(
                    verb=verb,
                    group=gvr.group,
                    version=gvr.version,
                    resource=gvr.resource,
                    name=name or None,
                    namespace=namespace or None,
                ),
                user=user.username,
                groups=list(user.groups),
                uid=user.uid or None,
                extra=dict(user.extra) or None,
            )
        )
        try:
            response = self.api.create_subject_access_review(
                body=body, _request_timeout=self.timeout
            )
        except (ApiException, urllib3.exceptions.HTTPError) as e:
            subject_access_review_failures.inc()
            raise PermissionCheckError(
                f"failed to create SubjectAccessReview for {user.username}: {e}"
            ) from e

        if response is None or response.status is None:
            subject_access_review_failures.inc()
            raise PermissionCheckError(
                f"no SubjectAccessReview status returned for {user.username}"
            )
        return bool(response.status.allowed)


def request_user_has_verb(
    request: AdmissionRequest,
    gvr: GroupVersionResource,
    reviewer: SubjectAccessReviewer,
    verb: str,
    name: str = "",
    namespace: str = "",
) -> bool:
    """Check whether the requesting user holds `verb` on the named object of `gvr`."""
    return reviewer.allowed(
        request.user_info.to_user_info(), gvr, verb, name=name, namespace=namespace
    )


def escalation_authorized(
    request: AdmissionRequest,
    gvr: GroupVersionResource,
    reviewer: SubjectAccessReviewer,
    namespace: str = "",
) -> bool:
    """Check whether the requesting user may escalate on `gvr` in `namespace`."""
    return request_user_has_verb(request, gvr, reviewer, ESCALATE_VERB, "", namespace)


def confirm_no_escalation(
    user: UserInfo,
    rules: List[PolicyRule],
    namespace: str,
    resolver: RuleResolver,
) -> None:
    """Raise EscalationError unless `user` already holds every rule in `rules`."""
    owner_rules = resolver.rules_for(user, namespace)
    covered, uncovered = covers(owner_rules, rules)
    if covered:
        return

    missing = "\n".join(rule.compact_string() for rule in compact_rules(uncovered))
    message = (
        f'user "{user.username}" (groups={json.dumps(list(user.groups))}) is '
        f"attempting to grant RBAC permissions not currently held:\n{missing}"
    )
    raise EscalationError(message, uncovered)
