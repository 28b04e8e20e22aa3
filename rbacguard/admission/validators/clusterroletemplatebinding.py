"""Validation of ClusterRoleTemplateBindings against privilege escalation."""

import logging
from typing import List

from rbacguard.admission.base import (Admitter, ValidatingAdmissionHandler,
                                      response_allowed)
from rbacguard.admission.validators.common import (escalation_allowed,
                                                   escalation_response,
                                                   management_gvr,
                                                   object_from_request)
from rbacguard.core.exceptions import NotFoundError
from rbacguard.models.admission import (AdmissionRequest, AdmissionResponse,
                                        Operation)
from rbacguard.models.management import ClusterRoleTemplateBinding
from rbacguard.services.escalation import SubjectAccessReviewer
from rbacguard.services.resolvers import RuleResolver
from rbacguard.services.roletemplates import RoleTemplateResolver

logger = logging.getLogger(__name__)

CRTB_GVR = management_gvr("clusterroletemplatebindings")


class CRTBAdmitter(Admitter):
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
        crtb = object_from_request(request, ClusterRoleTemplateBinding)

        try:
            template = self.role_template_resolver.get_role_template(crtb.role_template_name)
        except NotFoundError:
            # The binding outlived its template and grants nothing
            logger.info(
                f"Allowing {crtb.metadata.name}: RoleTemplate "
                f"{crtb.role_template_name} not found"
            )
            return response_allowed()

        rules = self.role_template_resolver.rules_from_template(template)

        if escalation_allowed(request, CRTB_GVR, self.reviewer, namespace=crtb.cluster_name):
            return response_allowed()

        return escalation_response(request, rules, crtb.cluster_name, self.resolver)


class CRTBValidator(ValidatingAdmissionHandler):
    """Validates ClusterRoleTemplateBinding creates and updates."""

    gvr = CRTB_GVR
    operations = [Operation.CREATE, Operation.UPDATE]

    def __init__(
        self,
        resolver: RuleResolver,
        role_template_resolver: RoleTemplateResolver,
        reviewer: SubjectAccessReviewer,
    ):
        self.admitter = CRTBAdmitter(resolver, role_template_resolver, reviewer)

    def admitters(self) -> List[Admitter]:
        return [self.admitter]
