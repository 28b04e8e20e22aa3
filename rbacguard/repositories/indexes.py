"""Subject indexes on the binding caches.

The index functions are attached to every cache of the binding kinds, so any
process writing bindings keeps the index sets current.
"""

from typing import Any, Callable, Dict, List, Optional

from rbacguard.models.management import (ClusterRoleTemplateBinding,
                                         GlobalRoleBinding,
                                         ProjectRoleTemplateBinding)
from rbacguard.models.rbac import service_account_username

IndexFunc = Callable[[Any], List[str]]

CRTB_SUBJECT_INDEX = "management.cattle.io/crtb-by-subject"
PRTB_SUBJECT_INDEX = "management.cattle.io/prtb-by-subject"
GRB_SUBJECT_INDEX = "management.cattle.io/grb-by-subject"


def get_user_key(user_name: str, namespace: str) -> str:
    """Index key for bindings naming a user in a scope."""
    return f"user:{user_name}-{namespace}"


def get_group_key(group_name: str, namespace: str) -> str:
    """Index key for bindings naming a group in a scope."""
    return f"group:{group_name}-{namespace}"


def namespace_from_project(project_name: str) -> Optional[str]:
    # projectName looks like c-m-abcde:p-fghij
    pieces = project_name.split(":")
    if len(pieces) != 2:
        return None
    return pieces[1]


def crtb_by_subject(crtb: ClusterRoleTemplateBinding) -> List[str]:
    if crtb.user_name:
        return [get_user_key(crtb.user_name, crtb.cluster_name)]
    if crtb.group_name:
        return [get_group_key(crtb.group_name, crtb.cluster_name)]
    if crtb.group_principal_name:
        return [get_group_key(crtb.group_principal_name, crtb.cluster_name)]
    return []


def prtb_by_subject(prtb: ProjectRoleTemplateBinding) -> List[str]:
    namespace = namespace_from_project(prtb.project_name)
    if namespace is None:
        return []
    if prtb.user_name:
        return [get_user_key(prtb.user_name, namespace)]
    if prtb.group_name:
        return [get_group_key(prtb.group_name, namespace)]
    if prtb.group_principal_name:
        return [get_group_key(prtb.group_principal_name, namespace)]
    if prtb.service_account:
        sa_namespace, _, sa_name = prtb.service_account.partition(":")
        if sa_name:
            return [get_user_key(service_account_username(sa_namespace, sa_name), namespace)]
    return []


def grb_by_subject(grb: GlobalRoleBinding) -> List[str]:
    if grb.user_name:
        return [get_user_key(grb.user_name, "")]
    if grb.group_principal_name:
        return [get_group_key(grb.group_principal_name, "")]
    return []


# Indexes every cache of a kind maintains on put and delete
BUILTIN_INDEXERS: Dict[str, Dict[str, IndexFunc]] = {
    ClusterRoleTemplateBinding.kind: {CRTB_SUBJECT_INDEX: crtb_by_subject},
    ProjectRoleTemplateBinding.kind: {PRTB_SUBJECT_INDEX: prtb_by_subject},
    GlobalRoleBinding.kind: {GRB_SUBJECT_INDEX: grb_by_subject},
}
