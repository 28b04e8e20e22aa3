"""Unit tests for escalation checks and the SubjectAccessReview client."""

from unittest.mock import MagicMock

import pytest
import urllib3
from kubernetes import client
from kubernetes.client import ApiException

from rbacguard.core.exceptions import EscalationError, PermissionCheckError
from rbacguard.models.admission import GroupVersionResource
from rbacguard.models.rbac import PolicyRule, UserInfo
from rbacguard.services.escalation import (ESCALATE_VERB,
                                           SubjectAccessReviewer,
                                           confirm_no_escalation,
                                           escalation_authorized)
from rbacguard.services.resolvers import RuleResolver

ROLE_TEMPLATES = GroupVersionResource(
    group="management.cattle.io", version="v3", resource="roletemplates"
)


class StaticResolver(RuleResolver):
    """Resolver returning fixed rules per namespace."""

    def __init__(self, rules_by_namespace):
        self.rules_by_namespace = rules_by_namespace

    def rules_for(self, user, namespace):
        return list(self.rules_by_namespace.get(namespace, []))


def sar_api(allowed=True):
    api = MagicMock(spec=client.AuthorizationV1Api)
    api.create_subject_access_review.return_value = client.V1SubjectAccessReview(
        spec=client.V1SubjectAccessReviewSpec(user="x"),
        status=client.V1SubjectAccessReviewStatus(allowed=allowed),
    )
    return api


@pytest.mark.unit
@pytest.mark.rbac
class TestConfirmNoEscalation:
    """Test the coverage check against a resolver."""

    def test_missing_verb_is_named(self, dev_user):
        """Holding get on pods in ns1 does not allow granting get and list."""
        resolver = StaticResolver(
            {"ns1": [PolicyRule(verbs=["get"], api_groups=[""], resources=["pods"])]}
        )
        requested = [PolicyRule(verbs=["get", "list"], api_groups=[""], resources=["pods"])]

        with pytest.raises(EscalationError) as exc_info:
            confirm_no_escalation(dev_user, requested, "ns1", resolver)

        message = str(exc_info.value)
        assert '"list"' in message
        assert '"get"' not in message
        assert 'user "john.doe"' in message
        assert "attempting to grant RBAC permissions not currently held" in message
        assert exc_info.value.uncovered == [
            PolicyRule(verbs=["list"], api_groups=[""], resources=["pods"])
        ]

    def test_wildcard_holder_may_grant_anything(self, dev_user):
        resolver = StaticResolver(
            {"": [PolicyRule(verbs=["*"], api_groups=["*"], resources=["*"])]}
        )
        requested = [
            PolicyRule(verbs=["delete"], api_groups=["apps"], resources=["deployments"]),
            PolicyRule(verbs=["bind", "escalate"], api_groups=["rbac.authorization.k8s.io"], resources=["roles"]),
        ]

        confirm_no_escalation(dev_user, requested, "", resolver)

    def test_scope_is_respected(self, dev_user):
        resolver = StaticResolver(
            {"ns1": [PolicyRule(verbs=["get"], api_groups=[""], resources=["pods"])]}
        )
        requested = [PolicyRule(verbs=["get"], api_groups=[""], resources=["pods"])]

        confirm_no_escalation(dev_user, requested, "ns1", resolver)
        with pytest.raises(EscalationError):
            confirm_no_escalation(dev_user, requested, "ns2", resolver)

    def test_empty_request_is_allowed(self, dev_user):
        confirm_no_escalation(dev_user, [], "", StaticResolver({}))

    def test_groups_are_listed(self):
        user = UserInfo(username="bob", groups=["a", "b"])

        with pytest.raises(EscalationError) as exc_info:
            confirm_no_escalation(
                user, [PolicyRule(verbs=["get"], api_groups=[""], resources=["pods"])], "", StaticResolver({})
            )

        assert '(groups=["a", "b"])' in str(exc_info.value)


@pytest.mark.unit
class TestSubjectAccessReviewer:
    """Test the SubjectAccessReview client."""

    def test_allowed(self, dev_user):
        api = sar_api(allowed=True)
        reviewer = SubjectAccessReviewer(api, timeout=3)

        assert reviewer.allowed(dev_user, ROLE_TEMPLATES, ESCALATE_VERB, name="rt", namespace="ns")

        kwargs = api.create_subject_access_review.call_args.kwargs
        spec = kwargs["body"].spec
        assert kwargs["_request_timeout"] == 3
        assert spec.user == "john.doe"
        assert spec.groups == dev_user.groups
        assert spec.resource_attributes.verb == "escalate"
        assert spec.resource_attributes.group == "management.cattle.io"
        assert spec.resource_attributes.resource == "roletemplates"
        assert spec.resource_attributes.name == "rt"
        assert spec.resource_attributes.namespace == "ns"

    def test_denied(self, dev_user):
        reviewer = SubjectAccessReviewer(sar_api(allowed=False), timeout=3)

        assert not reviewer.allowed(dev_user, ROLE_TEMPLATES, ESCALATE_VERB)

    def test_api_error(self, dev_user):
        api = sar_api()
        api.create_subject_access_review.side_effect = ApiException(status=500, reason="boom")
        reviewer = SubjectAccessReviewer(api, timeout=3)

        with pytest.raises(PermissionCheckError):
            reviewer.allowed(dev_user, ROLE_TEMPLATES, ESCALATE_VERB)

    def test_transport_error(self, dev_user):
        api = sar_api()
        api.create_subject_access_review.side_effect = urllib3.exceptions.ReadTimeoutError(
            None, "/apis", "read timed out"
        )
        reviewer = SubjectAccessReviewer(api, timeout=3)

        with pytest.raises(PermissionCheckError):
            reviewer.allowed(dev_user, ROLE_TEMPLATES, ESCALATE_VERB)

    def test_escalation_authorized(self, admission_request, dev_user):
        api = sar_api(allowed=True)
        reviewer = SubjectAccessReviewer(api, timeout=3)
        request = admission_request(
            "roletemplates", "RoleTemplate", "CREATE", dev_user, obj={"metadata": {"name": "rt"}}
        )

        assert escalation_authorized(request, ROLE_TEMPLATES, reviewer, namespace="c-1")
        spec = api.create_subject_access_review.call_args.kwargs["body"].spec
        assert spec.resource_attributes.namespace == "c-1"
        assert spec.resource_attributes.verb == "escalate"
