"""Validation of GlobalRoleBindings against privilege escalation."""

import logging
from typing import List, Optional, Tuple

from rbacguard.admission.base import (Admitter, ValidatingAdmissionHandler,
                                      response_allowed, response_bad_request,
                                      response_failed_escalation)
from rbacguard.admission.validators.common import (CachedVerbChecker,
                                                   management_gvr,
                                                   old_and_new_from_request)
from rbacguard.admission.validators.globalrole import GLOBAL_ROLE_GVR
from rbacguard.core.exceptions import (InvalidRequestError, NotFoundError,
                                       RBACGuardError, is_not_found)
from rbacguard.core.metrics import escalation_denials
from rbacguard.models.admission import (AdmissionRequest, AdmissionResponse,
                                        Operation)
from rbacguard.models.management import GlobalRoleBinding
from rbacguard.models.rbac import PolicyRule
from rbacguard.services.escalation import BIND_VERB, SubjectAccessReviewer
from rbacguard.services.globalroles import GlobalRoleResolver
from rbacguard.services.resolvers import GRBRuleResolvers, RuleResolver

logger = logging.getLogger(__name__)

GLOBAL_ROLE_BINDING_GVR = management_gvr("globalrolebindings")


class GlobalRoleBindingAdmitter(Admitter):
    """Allows a binding when the requester holds every rule the role grants, or `bind` on it."""

    def __init__(
        self,
        resolver: RuleResolver,
        grb_resolvers: GRBRuleResolvers,
        global_role_resolver: GlobalRoleResolver,
        reviewer: SubjectAccessReviewer,
    ):
        self.resolver = resolver
        self.grb_resolvers = grb_resolvers
        self.global_role_resolver = global_role_resolver
        self.reviewer = reviewer

    def admit(self, request: AdmissionRequest) -> AdmissionResponse:
        _, binding = old_and_new_from_request(request, GlobalRoleBinding)
        if binding is None:
            raise InvalidRequestError("GlobalRoleBinding missing from request")

        if request.operation == Operation.UPDATE and binding.metadata.deletion_timestamp:
            return response_allowed()

        try:
            global_role = self.global_role_resolver.get_global_role(binding.global_role_name)
        except NotFoundError:
            return response_bad_request(
                f'globalrolebindings.globalRoleName: Not found: "{binding.global_role_name}"'
            )

        resolver = self.global_role_resolver
        try:
            cluster_rules = resolver.cluster_rules_from_role(global_role)
        except RBACGuardError as e:
            if is_not_found(e):
                return response_bad_request(f"at least one roleTemplate was not found {e}")
            raise

        checks: List[Tuple[Optional[List[PolicyRule]], RuleResolver, str]] = [
            (cluster_rules, self.grb_resolvers.icr_resolver, ""),
            (resolver.global_rules_from_role(global_role), self.resolver, ""),
            (
                resolver.fleet_workspace_permissions_resource_rules_from_role(global_role),
                self.grb_resolvers.fw_rules_resolver,
                "",
            ),
            (
                resolver.fleet_workspace_permissions_workspace_verbs_from_role(global_role),
                self.grb_resolvers.fw_verbs_resolver,
                "",
            ),
        ]
        for namespace, rules in global_role.namespaced_rules.items():
            checks.append((rules, self.resolver, namespace))

        checker = CachedVerbChecker(
            request, global_role.name, self.reviewer, GLOBAL_ROLE_GVR, BIND_VERB
        )
        errors = []
        for rules, rule_resolver, namespace in checks:
            error = checker.is_rules_allowed(rules, rule_resolver, namespace)
            if error is not None:
                errors.append(str(error))
            if checker.has_verb():
                return response_allowed()

        if errors:
            escalation_denials.labels(resource=GLOBAL_ROLE_BINDING_GVR.resource).inc()
            return response_failed_escalation(
                "errors due to escalation: " + "\n".join(errors)
            )
        return response_allowed()


class GlobalRoleBindingValidator(ValidatingAdmissionHandler):
    """Validates GlobalRoleBinding creates and updates."""

    gvr = GLOBAL_ROLE_BINDING_GVR
    operations = [Operation.CREATE, Operation.UPDATE]

    def __init__(
        self,
        resolver: RuleResolver,
        grb_resolvers: GRBRuleResolvers,
        global_role_resolver: GlobalRoleResolver,
        reviewer: SubjectAccessReviewer,
    ):
        self.admitter = GlobalRoleBindingAdmitter(
            resolver, grb_resolvers, global_role_resolver, reviewer
        )

    def admitters(self) -> List[Admitter]:
        return [self.admitter]
