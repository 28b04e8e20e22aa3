"""Validation of GlobalRoles: builtin protection, inherited templates and escalation."""

import logging
from typing import List, Optional

from rbacguard.admission.base import (Admitter, ValidatingAdmissionHandler,
                                      response_allowed, response_bad_request,
                                      response_failed_escalation)
from rbacguard.admission.validators.common import (CachedVerbChecker,
                                                   management_gvr,
                                                   old_and_new_from_request)
from rbacguard.core.exceptions import (InvalidRequestError, RBACGuardError,
                                       is_not_found)
from rbacguard.core.metrics import escalation_denials
from rbacguard.models.admission import (AdmissionRequest, AdmissionResponse,
                                        Operation)
from rbacguard.models.management import GlobalRole, TemplateContext
from rbacguard.services.escalation import ESCALATE_VERB, SubjectAccessReviewer
from rbacguard.services.globalroles import GlobalRoleResolver
from rbacguard.services.resolvers import GRBRuleResolvers, RuleResolver

logger = logging.getLogger(__name__)

GLOBAL_ROLE_GVR = management_gvr("globalroles")


class GlobalRoleAdmitter(Admitter):
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
        old_role, new_role = old_and_new_from_request(request, GlobalRole)

        if request.operation == Operation.DELETE:
            if old_role is not None and old_role.builtin:
                return response_bad_request("globalrole: Forbidden: cannot delete builtin GlobalRoles")
            return response_allowed()

        if new_role is None:
            raise InvalidRequestError("GlobalRole missing from request")

        if request.operation == Operation.UPDATE:
            if new_role.metadata.deletion_timestamp:
                return response_allowed()
            if old_role is not None and not old_role.builtin and new_role.builtin:
                return response_bad_request(
                    "globalrole: Forbidden: cannot update non-builtIn GlobalRole "
                    f"{old_role.name} to be builtIn"
                )
        elif new_role.builtin:
            return response_bad_request("globalrole: Forbidden: cannot create builtin GlobalRoles")

        reason = self._inherited_cluster_roles_error(old_role, new_role)
        if reason is not None:
            return response_bad_request(reason)

        global_rules = self.global_role_resolver.global_rules_from_role(new_role)
        for index, rule in enumerate(global_rules):
            if not rule.verbs:
                return response_bad_request(
                    f"globalrole.rules[{index}].verbs: Required value: verbs must contain at least one value"
                )

        cluster_rules = self.global_role_resolver.cluster_rules_from_role(new_role)

        checker = CachedVerbChecker(
            request, new_role.name, self.reviewer, GLOBAL_ROLE_GVR, ESCALATE_VERB
        )
        for rules, resolver in (
            (cluster_rules, self.grb_resolvers.icr_resolver),
            (global_rules, self.resolver),
        ):
            error = checker.is_rules_allowed(rules, resolver, "")
            if error is not None:
                escalation_denials.labels(resource=GLOBAL_ROLE_GVR.resource).inc()
                return response_failed_escalation(str(error))

        return response_allowed()

    def _inherited_cluster_roles_error(
        self, old_role: Optional[GlobalRole], new_role: GlobalRole
    ) -> Optional[str]:
        """Templates newly added to inheritedClusterRoles must exist, be unlocked and cluster scoped."""
        existing = set(old_role.inherited_cluster_roles) if old_role else set()
        try:
            templates = self.global_role_resolver.get_role_templates_for_global_role(new_role)
        except RBACGuardError as e:
            if is_not_found(e):
                return f"globalrole.inheritedClusterRoles: Invalid value: \"\": unable to find all roleTemplates {e}"
            raise

        for template in templates:
            if template.name in existing:
                continue
            if template.context != TemplateContext.CLUSTER.value:
                return (
                    f"globalrole.inheritedClusterRoles: Invalid value: \"{template.name}\": "
                    f"unable to bind a roleTemplate with non-cluster context: {template.context}"
                )
            if template.locked:
                return (
                    f"globalrole.inheritedClusterRoles: Invalid value: \"{template.name}\": "
                    "unable to use locked roleTemplate"
                )
        return None


class GlobalRoleValidator(ValidatingAdmissionHandler):
    """Validates GlobalRole creates, updates and deletes."""

    gvr = GLOBAL_ROLE_GVR
    operations = [Operation.CREATE, Operation.UPDATE, Operation.DELETE]

    def __init__(
        self,
        resolver: RuleResolver,
        grb_resolvers: GRBRuleResolvers,
        global_role_resolver: GlobalRoleResolver,
        reviewer: SubjectAccessReviewer,
    ):
        self.admitter = GlobalRoleAdmitter(
            resolver, grb_resolvers, global_role_resolver, reviewer
        )

    def admitters(self) -> List[Admitter]:
        return [self.admitter]
