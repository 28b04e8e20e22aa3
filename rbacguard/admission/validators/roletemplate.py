"""Validation of RoleTemplates: inheritance cycles, rule shape and escalation."""

import logging
from typing import List

from rbacguard.admission.base import (Admitter, ValidatingAdmissionHandler,
                                      response_allowed, response_bad_request)
from rbacguard.admission.validators.common import (escalation_allowed,
                                                   escalation_response,
                                                   management_gvr,
                                                   object_from_request)
from rbacguard.models.admission import (AdmissionRequest, AdmissionResponse,
                                        Operation)
from rbacguard.models.management import RoleTemplate
from rbacguard.services.escalation import SubjectAccessReviewer
from rbacguard.services.resolvers import RuleResolver
from rbacguard.services.roletemplates import RoleTemplateResolver

logger = logging.getLogger(__name__)

ROLE_TEMPLATE_GVR = management_gvr("roletemplates")


class RoleTemplateAdmitter(Admitter):
    def __init__(
        self,
        resolver: RuleResolver,
        role_template_resolver: RoleTemplateResolver,
        reviewer: SubjectAccessReviewer,
    ):
        self.resolver = resolver
        self.role_template_resolver = role_template_resolver
        self.reviewer = reviewer

    def admit(self, request: AdmissionRequest) -> AdmissionResponse:
        template = object_from_request(request, RoleTemplate)

        # Updates that only remove finalizers from a deleting object
        if template.metadata.deletion_timestamp:
            return response_allowed()

        circular = self.role_template_resolver.check_circular_ref(template)
        if circular is not None:
            return response_bad_request(
                f"Circular Reference: RoleTemplate {circular.name} already "
                f"inherits RoleTemplate {template.name}"
            )

        rules = self.role_template_resolver.rules_from_template(template)

        # RBAC controllers cannot create roles from rules without verbs
        if any(not rule.verbs for rule in rules):
            return response_bad_request(
                "RoleTemplate.Rules: PolicyRules must have at least one verb"
            )

        if escalation_allowed(request, ROLE_TEMPLATE_GVR, self.reviewer):
            return response_allowed()

        return escalation_response(request, rules, "", self.resolver)


class RoleTemplateValidator(ValidatingAdmissionHandler):
    """Validates RoleTemplate creates and updates."""

    gvr = ROLE_TEMPLATE_GVR
    operations = [Operation.UPDATE, Operation.CREATE]

    def __init__(
        self,
        resolver: RuleResolver,
        role_template_resolver: RoleTemplateResolver,
        reviewer: SubjectAccessReviewer,
    ):
        self.admitter = RoleTemplateAdmitter(resolver, role_template_resolver, reviewer)

    def admitters(self) -> List[Admitter]:
        return [self.admitter]
