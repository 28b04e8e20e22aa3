"""Rules a GlobalRole grants in its different scopes."""

from typing import List, Optional

from rbacguard.core.exceptions import NotFoundError, RBACGuardError
from rbacguard.models.management import (MANAGEMENT_GROUP, GlobalRole,
                                         RoleTemplate)
from rbacguard.models.rbac import WILDCARD, PolicyRule
from rbacguard.repositories.cache import ObjectCache
from rbacguard.services.roletemplates import RoleTemplateResolver

OWNER_ROLE_TEMPLATE = "cluster-owner"

# Global roles treated as owners of every downstream cluster
ADMIN_ROLES = ["restricted-admin"]

FLEET_GROUP = "fleet.cattle.io"

FLEET_WORKSPACE_RESOURCES = [
    "clusterregistrationtokens",
    "gitreporestrictions",
    "clusterregistrations",
    "clusters",
    "gitrepos",
    "bundles",
    "clustergroups",
]


def fleet_workspace_verbs_rule(verbs: List[str]) -> PolicyRule:
    return PolicyRule(
        verbs=list(verbs),
        api_groups=[MANAGEMENT_GROUP],
        resources=["fleetworkspaces"],
    )


class GlobalRoleResolver:
    """Determines which rules a GlobalRole gives globally, per cluster and per fleet workspace."""

    def __init__(
        self,
        role_template_resolver: RoleTemplateResolver,
        global_roles: ObjectCache[GlobalRole],
    ):
        self.role_template_resolver = role_template_resolver
        self.global_roles = global_roles

    def get_global_role(self, name: str) -> GlobalRole:
        return self.global_roles.get(name)

    def global_rules_from_role(self, global_role: Optional[GlobalRole]) -> List[PolicyRule]:
        """Rules valid at the cluster scope of the local cluster."""
        if global_role is None:
            return []
        return list(global_role.rules)

    def cluster_rules_from_role(self, global_role: Optional[GlobalRole]) -> List[PolicyRule]:
        """Rules the role gives on every downstream cluster."""
        if global_role is None:
            return []

        if global_role.name in ADMIN_ROLES:
            try:
                return self.role_template_resolver.rules_from_template_name(
                    OWNER_ROLE_TEMPLATE
                )
            except RBACGuardError as e:
                raise RBACGuardError(f"unable to resolve cluster-owner rules: {e}") from e

        rules: List[PolicyRule] = []
        for name in global_role.inherited_cluster_roles:
            try:
                rules.extend(self.role_template_resolver.rules_from_template_name(name))
            except RBACGuardError as e:
                raise RBACGuardError(
                    f"unable to get cluster rules for roleTemplate {name}: {e}"
                ) from e
        return rules

    def fleet_workspace_permissions_resource_rules_from_role(
        self, global_role: Optional[GlobalRole]
    ) -> Optional[List[PolicyRule]]:
        """Rules on fleet resources inside every fleet workspace."""
        if global_role is None:
            return None

        if global_role.name in ADMIN_ROLES:
            return [
                PolicyRule(
                    verbs=[WILDCARD],
                    api_groups=[FLEET_GROUP],
                    resources=list(FLEET_WORKSPACE_RESOURCES),
                )
            ]

        permissions = global_role.inherited_fleet_workspace_permissions
        if permissions is None:
            return None
        return list(permissions.resource_rules)

    def fleet_workspace_permissions_workspace_verbs_from_role(
        self, global_role: Optional[GlobalRole]
    ) -> Optional[List[PolicyRule]]:
        """Rule on the cluster-wide fleetworkspaces resource."""
        if global_role is None:
            return None

        if global_role.name in ADMIN_ROLES:
            return [fleet_workspace_verbs_rule([WILDCARD])]

        permissions = global_role.inherited_fleet_workspace_permissions
        if permissions is None or not permissions.workspace_verbs:
            return None
        return [fleet_workspace_verbs_rule(permissions.workspace_verbs)]

    def get_role_templates_for_global_role(
        self, global_role: Optional[GlobalRole]
    ) -> List[RoleTemplate]:
        """The templates listed in inheritedClusterRoles, without resolving inheritance."""
        if global_role is None:
            return []

        templates = []
        for name in global_role.inherited_cluster_roles:
            try:
                templates.append(self.role_template_resolver.get_role_template(name))
            except NotFoundError as e:
                raise RBACGuardError(f"unable to get roleTemplate {name}: {e}") from e
        return templates
