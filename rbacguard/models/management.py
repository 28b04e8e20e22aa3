"""Platform management objects: role templates, global roles and their bindings."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from rbacguard.models.rbac import (ObjectMeta, PolicyRule, rules_from_list,
                                   rules_to_list)

MANAGEMENT_GROUP = "management.cattle.io"
MANAGEMENT_API_VERSION = f"{MANAGEMENT_GROUP}/v3"


class TemplateContext(str, Enum):
    """Where a role template may be bound."""

    CLUSTER = "cluster"
    PROJECT = "project"
    NONE = ""


def _optional_rules(data: Dict[str, Any], key: str) -> Optional[List[PolicyRule]]:
    # Absent and null both mean "not provided"; an empty list is a real value.
    if data.get(key) is None:
        return None
    return rules_from_list(data[key])


@dataclass
class RoleTemplate:
    """Reusable, inheritable set of rules bound at cluster or project scope."""

    metadata: ObjectMeta
    display_name: str = ""
    description: str = ""
    rules: List[PolicyRule] = field(default_factory=list)
    role_template_names: List[str] = field(default_factory=list)
    external: bool = False
    external_rules: Optional[List[PolicyRule]] = None
    context: str = ""
    builtin: bool = False
    locked: bool = False
    hidden: bool = False
    administrative: bool = False
    cluster_creator_default: bool = False
    project_creator_default: bool = False

    kind = "RoleTemplate"

    @property
    def name(self) -> str:
        return self.metadata.name

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RoleTemplate":
        return cls(
            metadata=ObjectMeta.from_dict(data.get("metadata")),
            display_name=data.get("displayName", ""),
            description=data.get("description", ""),
            rules=rules_from_list(data.get("rules")),
            role_template_names=list(data.get("roleTemplateNames") or []),
            external=bool(data.get("external", False)),
            external_rules=_optional_rules(data, "externalRules"),
            context=data.get("context", "") or "",
            builtin=bool(data.get("builtin", False)),
            locked=bool(data.get("locked", False)),
            hidden=bool(data.get("hidden", False)),
            administrative=bool(data.get("administrative", False)),
            cluster_creator_default=bool(data.get("clusterCreatorDefault", False)),
            project_creator_default=bool(data.get("projectCreatorDefault", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "apiVersion": MANAGEMENT_API_VERSION,
            "kind": self.kind,
            "metadata": self.metadata.to_dict(),
            "displayName": self.display_name,
            "rules": rules_to_list(self.rules),
            "roleTemplateNames": list(self.role_template_names),
            "external": self.external,
            "context": self.context,
            "builtin": self.builtin,
            "locked": self.locked,
            "hidden": self.hidden,
            "administrative": self.administrative,
            "clusterCreatorDefault": self.cluster_creator_default,
            "projectCreatorDefault": self.project_creator_default,
        }
        if self.description:
            data["description"] = self.description
        if self.external_rules is not None:
            data["externalRules"] = rules_to_list(self.external_rules)
        return data


@dataclass
class FleetWorkspacePermission:
    """Permissions a global role grants in every fleet workspace."""

    resource_rules: List[PolicyRule] = field(default_factory=list)
    workspace_verbs: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["FleetWorkspacePermission"]:
        if data is None:
            return None
        return cls(
            resource_rules=rules_from_list(data.get("resourceRules")),
            workspace_verbs=list(data.get("workspaceVerbs") or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resourceRules": rules_to_list(self.resource_rules),
            "workspaceVerbs": list(self.workspace_verbs),
        }


@dataclass
class GlobalRole:
    """Role granting platform-wide rules plus inherited downstream templates."""

    metadata: ObjectMeta
    display_name: str = ""
    description: str = ""
    rules: List[PolicyRule] = field(default_factory=list)
    new_user_default: bool = False
    builtin: bool = False
    inherited_cluster_roles: List[str] = field(default_factory=list)
    namespaced_rules: Dict[str, List[PolicyRule]] = field(default_factory=dict)
    inherited_fleet_workspace_permissions: Optional[FleetWorkspacePermission] = None

    kind = "GlobalRole"

    @property
    def name(self) -> str:
        return self.metadata.name

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GlobalRole":
        return cls(
            metadata=ObjectMeta.from_dict(data.get("metadata")),
            display_name=data.get("displayName", ""),
            description=data.get("description", ""),
            rules=rules_from_list(data.get("rules")),
            new_user_default=bool(data.get("newUserDefault", False)),
            builtin=bool(data.get("builtin", False)),
            inherited_cluster_roles=list(data.get("inheritedClusterRoles") or []),
            namespaced_rules={
                namespace: rules_from_list(rules)
                for namespace, rules in (data.get("namespacedRules") or {}).items()
            },
            inherited_fleet_workspace_permissions=FleetWorkspacePermission.from_dict(
                data.get("inheritedFleetWorkspacePermissions")
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "apiVersion": MANAGEMENT_API_VERSION,
            "kind": self.kind,
            "metadata": self.metadata.to_dict(),
            "displayName": self.display_name,
            "rules": rules_to_list(self.rules),
            "newUserDefault": self.new_user_default,
            "builtin": self.builtin,
            "inheritedClusterRoles": list(self.inherited_cluster_roles),
        }
        if self.description:
            data["description"] = self.description
        if self.namespaced_rules:
            data["namespacedRules"] = {
                namespace: rules_to_list(rules)
                for namespace, rules in self.namespaced_rules.items()
            }
        if self.inherited_fleet_workspace_permissions is not None:
            data["inheritedFleetWorkspacePermissions"] = (
                self.inherited_fleet_workspace_permissions.to_dict()
            )
        return data


@dataclass
class ClusterRoleTemplateBinding:
    """Binds a role template to a subject in one downstream cluster."""

    metadata: ObjectMeta
    role_template_name: str = ""
    cluster_name: str = ""
    user_name: str = ""
    user_principal_name: str = ""
    group_name: str = ""
    group_principal_name: str = ""

    kind = "ClusterRoleTemplateBinding"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClusterRoleTemplateBinding":
        return cls(
            metadata=ObjectMeta.from_dict(data.get("metadata")),
            role_template_name=data.get("roleTemplateName", ""),
            cluster_name=data.get("clusterName", ""),
            user_name=data.get("userName", ""),
            user_principal_name=data.get("userPrincipalName", ""),
            group_name=data.get("groupName", ""),
            group_principal_name=data.get("groupPrincipalName", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "apiVersion": MANAGEMENT_API_VERSION,
            "kind": self.kind,
            "metadata": self.metadata.to_dict(),
            "roleTemplateName": self.role_template_name,
            "clusterName": self.cluster_name,
            "userName": self.user_name,
            "userPrincipalName": self.user_principal_name,
            "groupName": self.group_name,
            "groupPrincipalName": self.group_principal_name,
        }


@dataclass
class ProjectRoleTemplateBinding:
    """Binds a role template to a subject in one project (`cluster:project`)."""

    metadata: ObjectMeta
    role_template_name: str = ""
    project_name: str = ""
    user_name: str = ""
    user_principal_name: str = ""
    group_name: str = ""
    group_principal_name: str = ""
    service_account: str = ""

    kind = "ProjectRoleTemplateBinding"

    def project_scope(self) -> Optional[Tuple[str, str]]:
        """Split projectName into (cluster, project); None when malformed."""
        parts = self.project_name.split(":")
        if len(parts) != 2:
            return None
        return parts[0], parts[1]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProjectRoleTemplateBinding":
        return cls(
            metadata=ObjectMeta.from_dict(data.get("metadata")),
            role_template_name=data.get("roleTemplateName", ""),
            project_name=data.get("projectName", ""),
            user_name=data.get("userName", ""),
            user_principal_name=data.get("userPrincipalName", ""),
            group_name=data.get("groupName", ""),
            group_principal_name=data.get("groupPrincipalName", ""),
            service_account=data.get("serviceAccount", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "apiVersion": MANAGEMENT_API_VERSION,
            "kind": self.kind,
            "metadata": self.metadata.to_dict(),
            "roleTemplateName": self.role_template_name,
            "projectName": self.project_name,
            "userName": self.user_name,
            "userPrincipalName": self.user_principal_name,
            "groupName": self.group_name,
            "groupPrincipalName": self.group_principal_name,
            "serviceAccount": self.service_account,
        }


@dataclass
class GlobalRoleBinding:
    """Binds a global role to a user or group."""

    metadata: ObjectMeta
    global_role_name: str = ""
    user_name: str = ""
    user_principal_name: str = ""
    group_principal_name: str = ""

    kind = "GlobalRoleBinding"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GlobalRoleBinding":
        return cls(
            metadata=ObjectMeta.from_dict(data.get("metadata")),
            global_role_name=data.get("globalRoleName", ""),
            user_name=data.get("userName", ""),
            user_principal_name=data.get("userPrincipalName", ""),
            group_principal_name=data.get("groupPrincipalName", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "apiVersion": MANAGEMENT_API_VERSION,
            "kind": self.kind,
            "metadata": self.metadata.to_dict(),
            "globalRoleName": self.global_role_name,
            "userName": self.user_name,
            "userPrincipalName": self.user_principal_name,
            "groupPrincipalName": self.group_principal_name,
        }


@dataclass
class Feature:
    """Platform feature flag."""

    metadata: ObjectMeta
    value: Optional[bool] = None
    default: bool = False

    kind = "Feature"

    @property
    def enabled(self) -> bool:
        if self.value is not None:
            return self.value
        return self.default

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Feature":
        return cls(
            metadata=ObjectMeta.from_dict(data.get("metadata")),
            value=(data.get("spec") or {}).get("value"),
            default=bool((data.get("status") or {}).get("default", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "apiVersion": MANAGEMENT_API_VERSION,
            "kind": self.kind,
            "metadata": self.metadata.to_dict(),
            "spec": {"value": self.value},
            "status": {"default": self.default},
        }
