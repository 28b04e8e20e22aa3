"""Mutating handlers.

Mutators change `request.object` in place; the dispatcher diffs it against
the original and returns the difference as a JSON patch.
"""

import logging

from rbacguard.admission.base import (MutatingAdmissionHandler,
                                      response_allowed, response_bad_request)
from rbacguard.admission.validators.common import management_gvr
from rbacguard.core.exceptions import InvalidRequestError, NotFoundError
from rbacguard.models.admission import (AdmissionRequest, AdmissionResponse,
                                        Operation)
from rbacguard.models.management import (MANAGEMENT_API_VERSION, GlobalRole,
                                         GlobalRoleBinding)
from rbacguard.services.globalroles import GlobalRoleResolver

logger = logging.getLogger(__name__)

CREATOR_ID_ANNOTATION = "field.cattle.io/creatorId"
NO_CREATOR_RBAC_ANNOTATION = "field.cattle.io/no-creator-rbac"


def _metadata(obj: dict) -> dict:
    metadata = obj.get("metadata")
    if metadata is None:
        metadata = obj["metadata"] = {}
    return metadata


class RoleTemplateMutator(MutatingAdmissionHandler):
    """Records the creator of a RoleTemplate."""

    gvr = management_gvr("roletemplates")
    operations = [Operation.CREATE]

    def admit(self, request: AdmissionRequest) -> AdmissionResponse:
        if request.object is None:
            raise InvalidRequestError("RoleTemplate missing from request")

        metadata = _metadata(request.object)
        annotations = metadata.get("annotations") or {}
        if NO_CREATOR_RBAC_ANNOTATION not in annotations:
            annotations[CREATOR_ID_ANNOTATION] = request.user_info.username
            metadata["annotations"] = annotations
        return response_allowed()


class GlobalRoleBindingMutator(MutatingAdmissionHandler):
    """Makes a GlobalRoleBinding owned by the GlobalRole it binds."""

    gvr = management_gvr("globalrolebindings")
    operations = [Operation.CREATE]

    def __init__(self, global_role_resolver: GlobalRoleResolver):
        self.global_role_resolver = global_role_resolver

    def admit(self, request: AdmissionRequest) -> AdmissionResponse:
        if request.object is None:
            raise InvalidRequestError("GlobalRoleBinding missing from request")

        binding = GlobalRoleBinding.from_dict(request.object)
        try:
            global_role = self.global_role_resolver.get_global_role(binding.global_role_name)
        except NotFoundError:
            return response_bad_request(
                f'globalrolebindings.globalRoleName: Not found: "{binding.global_role_name}"'
            )

        metadata = _metadata(request.object)
        references = metadata.get("ownerReferences") or []
        if any(
            ref.get("kind") == GlobalRole.kind and ref.get("name") == global_role.name
            for ref in references
        ):
            return response_allowed()

        references.append(
            {
                "apiVersion": MANAGEMENT_API_VERSION,
                "kind": GlobalRole.kind,
                "name": global_role.name,
                "uid": global_role.metadata.uid,
            }
        )
        metadata["ownerReferences"] = references
        logger.debug(f"Adding owner reference to GlobalRole {global_role.name}")
        return response_allowed()
