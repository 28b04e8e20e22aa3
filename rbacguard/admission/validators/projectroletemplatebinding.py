"""Validation of ProjectRoleTemplateBindings against privilege escalation."""

import logging
from typing import List

from rbacguard.admission.base import (Admitter, ValidatingAdmissionHandler,
                                      response_allowed)
from rbacguard.admission.validators.common import (escalation_allowed,
                                                   escalation_response,
                                                   management_gvr,
                                                   object_from_request)
from rbacguard.core.exceptions import EscalationError, NotFoundError
from rbacguard.models.admission import (AdmissionRequest, AdmissionResponse,
                                        Operation)
from rbacguard.models.management import ProjectRoleTemplateBinding
from rbacguard.services.escalation import (SubjectAccessReviewer,
                                           confirm_no_escalation)
from rbacguard.services.resolvers import RuleResolver
from rbacguard.services.roletemplates import RoleTemplateResolver

logger = logging.getLogger(__name__)

PRTB_GVR = management_gvr("projectroletemplatebindings")


class PRTBAdmitter(Admitter):
    """Allows a PRTB when the requester holds its rules in the cluster or in the project."""

    def __init__(
        self,
        cluster_resolver: RuleResolver,
        project_resolver: RuleResolver,
        role_template_resolver: RoleTemplateResolver,
        reviewer: SubjectAccessReviewer,
    ):
        self.cluster_resolver = cluster_resolver
        self.project_resolver = project_resolver
        self.role_template_resolver = role_template_resolver
        self.reviewer = reviewer

    def admit(self, request: AdmissionRequest) -> AdmissionResponse:
        prtb = object_from_request(request, ProjectRoleTemplateBinding)
        cluster_ns, project_ns = prtb.project_scope() or ("", "")

        try:
            template = self.role_template_resolver.get_role_template(prtb.role_template_name)
        except NotFoundError:
            logger.info(
                f"Allowing {prtb.metadata.name}: RoleTemplate "
                f"{prtb.role_template_name} not found"
            )
            return response_allowed()

        rules = self.role_template_resolver.rules_from_template(template)

        if escalation_allowed(request, PRTB_GVR, self.reviewer, namespace=project_ns):
            return response_allowed()

        try:
            confirm_no_escalation(
                request.user_info.to_user_info(), rules, cluster_ns, self.cluster_resolver
            )
        except EscalationError:
            # Not held in the cluster; bindings in the project may still cover them
            return escalation_response(request, rules, project_ns, self.project_resolver)
        return response_allowed()


class PRTBValidator(ValidatingAdmissionHandler):
    """Validates ProjectRoleTemplateBinding creates and updates."""

    gvr = PRTB_GVR
    operations = [Operation.CREATE, Operation.UPDATE]

    def __init__(
        self,
        cluster_resolver: RuleResolver,
        project_resolver: RuleResolver,
        role_template_resolver: RoleTemplateResolver,
        reviewer: SubjectAccessReviewer,
    ):
        self.admitter = PRTBAdmitter(
            cluster_resolver, project_resolver, role_template_resolver, reviewer
        )

    def admitters(self) -> List[Admitter]:
        return [self.admitter]
