"""Native Kubernetes RBAC objects and the PolicyRule shape shared by all roles."""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

WILDCARD = "*"

SERVICE_ACCOUNT_PREFIX = "system:serviceaccount:"


class SubjectKind(str, Enum):
    """Kinds of RBAC subjects."""

    USER = "User"
    GROUP = "Group"
    SERVICE_ACCOUNT = "ServiceAccount"


@dataclass
class PolicyRule:
    """A single RBAC rule: verbs allowed on resources or non-resource URLs."""

    verbs: List[str] = field(default_factory=list)
    api_groups: List[str] = field(default_factory=list)
    resources: List[str] = field(default_factory=list)
    resource_names: List[str] = field(default_factory=list)
    non_resource_urls: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PolicyRule":
        data = data or {}
        return cls(
            verbs=list(data.get("verbs") or []),
            api_groups=list(data.get("apiGroups") or []),
            resources=list(data.get("resources") or []),
            resource_names=list(data.get("resourceNames") or []),
            non_resource_urls=list(data.get("nonResourceURLs") or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"verbs": list(self.verbs)}
        if self.api_groups:
            data["apiGroups"] = list(self.api_groups)
        if self.resources:
            data["resources"] = list(self.resources)
        if self.resource_names:
            data["resourceNames"] = list(self.resource_names)
        if self.non_resource_urls:
            data["nonResourceURLs"] = list(self.non_resource_urls)
        return data

    def compact_string(self) -> str:
        """Render the rule the way kubectl describes rules in escalation errors."""
        parts = []
        for label, values in (
            ("APIGroups", self.api_groups),
            ("Resources", self.resources),
            ("ResourceNames", self.resource_names),
            ("NonResourceURLs", self.non_resource_urls),
            ("Verbs", self.verbs),
        ):
            if values:
                parts.append(f"{label}:{json.dumps(list(values))}")
        return "{" + ", ".join(parts) + "}"

    def __str__(self) -> str:
        return self.compact_string()


def rules_from_list(items: Optional[List[Dict[str, Any]]]) -> List[PolicyRule]:
    return [PolicyRule.from_dict(item) for item in items or []]


def rules_to_list(rules: Optional[List[PolicyRule]]) -> List[Dict[str, Any]]:
    return [rule.to_dict() for rule in rules or []]


@dataclass
class OwnerReference:
    """Reference from a dependent object to its owner."""

    api_version: str
    kind: str
    name: str
    uid: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OwnerReference":
        return cls(
            api_version=data.get("apiVersion", ""),
            kind=data.get("kind", ""),
            name=data.get("name", ""),
            uid=data.get("uid", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "name": self.name,
            "uid": self.uid,
        }


@dataclass
class ObjectMeta:
    """Subset of Kubernetes object metadata used by the webhook."""

    name: str = ""
    namespace: str = ""
    uid: str = ""
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)
    deletion_timestamp: Optional[str] = None
    owner_references: List[OwnerReference] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ObjectMeta":
        data = data or {}
        return cls(
            name=data.get("name", ""),
            namespace=data.get("namespace", "") or "",
            uid=data.get("uid", ""),
            labels=dict(data.get("labels") or {}),
            annotations=dict(data.get("annotations") or {}),
            deletion_timestamp=data.get("deletionTimestamp"),
            owner_references=[
                OwnerReference.from_dict(ref)
                for ref in data.get("ownerReferences") or []
            ],
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name}
        if self.namespace:
            data["namespace"] = self.namespace
        if self.uid:
            data["uid"] = self.uid
        if self.labels:
            data["labels"] = dict(self.labels)
        if self.annotations:
            data["annotations"] = dict(self.annotations)
        if self.deletion_timestamp:
            data["deletionTimestamp"] = self.deletion_timestamp
        if self.owner_references:
            data["ownerReferences"] = [ref.to_dict() for ref in self.owner_references]
        return data


@dataclass
class ClusterRole:
    """Cluster-wide set of rules."""

    metadata: ObjectMeta
    rules: List[PolicyRule] = field(default_factory=list)

    kind = "ClusterRole"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClusterRole":
        return cls(
            metadata=ObjectMeta.from_dict(data.get("metadata")),
            rules=rules_from_list(data.get("rules")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "apiVersion": "rbac.authorization.k8s.io/v1",
            "kind": self.kind,
            "metadata": self.metadata.to_dict(),
            "rules": rules_to_list(self.rules),
        }


@dataclass
class Role(ClusterRole):
    """Namespaced set of rules."""

    kind = "Role"


@dataclass
class Subject:
    """The user, group or service account a binding grants to."""

    kind: SubjectKind
    name: str
    namespace: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Subject":
        return cls(
            kind=SubjectKind(data.get("kind", SubjectKind.USER.value)),
            name=data.get("name", ""),
            namespace=data.get("namespace", "") or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {"kind": self.kind.value, "name": self.name}
        if self.namespace:
            data["namespace"] = self.namespace
        return data

    def applies_to(self, user: "UserInfo", binding_namespace: str = "") -> bool:
        """Check whether this subject names the given user.

        A service account subject without a namespace lives in the namespace
        of the binding that lists it.
        """
        if self.kind == SubjectKind.USER:
            return self.name == user.username
        if self.kind == SubjectKind.GROUP:
            return self.name in user.groups
        namespace = self.namespace or binding_namespace
        return user.username == service_account_username(namespace, self.name)


@dataclass
class RoleRef:
    """Reference from a binding to a Role or ClusterRole."""

    kind: str
    name: str
    api_group: str = "rbac.authorization.k8s.io"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RoleRef":
        return cls(
            kind=data.get("kind", ""),
            name=data.get("name", ""),
            api_group=data.get("apiGroup", "rbac.authorization.k8s.io"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"apiGroup": self.api_group, "kind": self.kind, "name": self.name}


@dataclass
class ClusterRoleBinding:
    """Grants a ClusterRole to subjects across all namespaces."""

    metadata: ObjectMeta
    role_ref: RoleRef
    subjects: List[Subject] = field(default_factory=list)

    kind = "ClusterRoleBinding"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClusterRoleBinding":
        return cls(
            metadata=ObjectMeta.from_dict(data.get("metadata")),
            role_ref=RoleRef.from_dict(data.get("roleRef") or {}),
            subjects=[Subject.from_dict(s) for s in data.get("subjects") or []],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "apiVersion": "rbac.authorization.k8s.io/v1",
            "kind": self.kind,
            "metadata": self.metadata.to_dict(),
            "roleRef": self.role_ref.to_dict(),
            "subjects": [s.to_dict() for s in self.subjects],
        }


@dataclass
class RoleBinding(ClusterRoleBinding):
    """Grants a Role or ClusterRole to subjects within one namespace."""

    kind = "RoleBinding"


@dataclass
class UserInfo:
    """Identity of the requester as reported by the API server."""

    username: str = ""
    uid: str = ""
    groups: List[str] = field(default_factory=list)
    extra: Dict[str, List[str]] = field(default_factory=dict)


def service_account_username(namespace: str, name: str) -> str:
    """Return the username the API server assigns to a service account."""
    return f"{SERVICE_ACCOUNT_PREFIX}{namespace}:{name}"
