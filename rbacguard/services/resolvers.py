"""Rule resolvers: which rules does a user hold at a given scope.

Each resolver answers for one source of permissions. Platform bindings are
looked up through the subject indexes every binding cache maintains; native
RBAC bindings are scanned directly. Resolvers are composed with
AggregateRuleResolver.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Iterable, List, Optional

from rbacguard.core.exceptions import (CacheError, RBACGuardError,
                                       is_not_found)
from rbacguard.models.management import (ClusterRoleTemplateBinding,
                                         GlobalRole, GlobalRoleBinding,
                                         ProjectRoleTemplateBinding)
from rbacguard.models.rbac import (ClusterRole, ClusterRoleBinding,
                                   PolicyRule, Role, RoleBinding, UserInfo)
from rbacguard.repositories.cache import ObjectCache
from rbacguard.repositories.indexes import (CRTB_SUBJECT_INDEX,
                                            GRB_SUBJECT_INDEX,
                                            PRTB_SUBJECT_INDEX,
                                            get_group_key, get_user_key)
from rbacguard.services.globalroles import GlobalRoleResolver
from rbacguard.services.roletemplates import RoleTemplateResolver

logger = logging.getLogger(__name__)

LOCAL_CLUSTER = "local"


def require_index(cache: ObjectCache, index_name: str) -> None:
    """Fail fast when a binding cache does not maintain the subject index."""
    if not cache.has_index(index_name):
        raise CacheError(f"{cache.kind} cache does not maintain index {index_name}")


def subject_keys(user: UserInfo, namespace: str) -> List[str]:
    """Index keys to query for a user: each group first, then the user name."""
    keys = [get_group_key(group, namespace) for group in user.groups]
    keys.append(get_user_key(user.username, namespace))
    return keys


# ============================================================================
# RESOLVERS
# ============================================================================


class RuleResolver(ABC):
    """Source of the rules a user holds at a scope."""

    @abstractmethod
    def rules_for(self, user: UserInfo, namespace: str) -> List[PolicyRule]:
        """Return the rules `user` holds in `namespace` ("" for cluster-wide)."""


class CRTBRuleResolver(RuleResolver):
    """Rules given through ClusterRoleTemplateBindings in one cluster."""

    def __init__(
        self,
        crtbs: ObjectCache[ClusterRoleTemplateBinding],
        role_template_resolver: RoleTemplateResolver,
    ):
        require_index(crtbs, CRTB_SUBJECT_INDEX)
        self.crtbs = crtbs
        self.role_template_resolver = role_template_resolver

    def rules_for(self, user: UserInfo, namespace: str) -> List[PolicyRule]:
        rules: List[PolicyRule] = []
        for key in subject_keys(user, namespace):
            for crtb in self.crtbs.get_by_index(CRTB_SUBJECT_INDEX, key):
                rules.extend(
                    _template_rules(self.role_template_resolver, crtb.role_template_name, crtb)
                )
        return rules


class PRTBRuleResolver(RuleResolver):
    """Rules given through ProjectRoleTemplateBindings in one project namespace."""

    def __init__(
        self,
        prtbs: ObjectCache[ProjectRoleTemplateBinding],
        role_template_resolver: RoleTemplateResolver,
    ):
        require_index(prtbs, PRTB_SUBJECT_INDEX)
        self.prtbs = prtbs
        self.role_template_resolver = role_template_resolver

    def rules_for(self, user: UserInfo, namespace: str) -> List[PolicyRule]:
        rules: List[PolicyRule] = []
        for key in subject_keys(user, namespace):
            for prtb in self.prtbs.get_by_index(PRTB_SUBJECT_INDEX, key):
                rules.extend(
                    _template_rules(self.role_template_resolver, prtb.role_template_name, prtb)
                )
        return rules


GlobalRoleRuleFunc = Callable[[str, GlobalRole, GlobalRoleResolver], Optional[List[PolicyRule]]]


class GRBRuleResolver(RuleResolver):
    """Rules given through GlobalRoleBindings, projected by `rule_func`."""

    def __init__(
        self,
        grbs: ObjectCache[GlobalRoleBinding],
        global_role_resolver: GlobalRoleResolver,
        rule_func: GlobalRoleRuleFunc,
    ):
        self.grbs = grbs
        self.global_role_resolver = global_role_resolver
        self.rule_func = rule_func

    def rules_for(self, user: UserInfo, namespace: str) -> List[PolicyRule]:
        rules: List[PolicyRule] = []
        for key in subject_keys(user, ""):
            for grb in self.grbs.get_by_index(GRB_SUBJECT_INDEX, key):
                global_role = self._global_role(grb)
                if global_role is None:
                    continue
                rules.extend(
                    self.rule_func(namespace, global_role, self.global_role_resolver) or []
                )
        return rules

    def _global_role(self, grb: GlobalRoleBinding) -> Optional[GlobalRole]:
        try:
            return self.global_role_resolver.get_global_role(grb.global_role_name)
        except RBACGuardError as e:
            if not is_not_found(e):
                raise
            logger.info(
                f"Skipping GlobalRoleBinding {grb.metadata.name}: "
                f"GlobalRole {grb.global_role_name} not found"
            )
            return None


def _inherited_cluster_rules(
    namespace: str, global_role: GlobalRole, resolver: GlobalRoleResolver
) -> List[PolicyRule]:
    # Cluster rules only apply downstream; the local cluster gets the global rules
    if namespace == LOCAL_CLUSTER:
        return resolver.global_rules_from_role(global_role)
    return resolver.cluster_rules_from_role(global_role)


def _fleet_workspace_rules(
    _namespace: str, global_role: GlobalRole, resolver: GlobalRoleResolver
) -> Optional[List[PolicyRule]]:
    return resolver.fleet_workspace_permissions_resource_rules_from_role(global_role)


def _fleet_workspace_verbs(
    _namespace: str, global_role: GlobalRole, resolver: GlobalRoleResolver
) -> Optional[List[PolicyRule]]:
    return resolver.fleet_workspace_permissions_workspace_verbs_from_role(global_role)


class GRBRuleResolvers:
    """The three GlobalRoleBinding resolvers.

    icr_resolver: inherited cluster roles (all clusters except local).
    fw_rules_resolver: fleet workspace resource rules.
    fw_verbs_resolver: verbs on the fleetworkspaces resource.
    """

    def __init__(
        self,
        grbs: ObjectCache[GlobalRoleBinding],
        global_role_resolver: GlobalRoleResolver,
    ):
        require_index(grbs, GRB_SUBJECT_INDEX)
        self.icr_resolver = GRBRuleResolver(
            grbs, global_role_resolver, _inherited_cluster_rules
        )
        self.fw_rules_resolver = GRBRuleResolver(
            grbs, global_role_resolver, _fleet_workspace_rules
        )
        self.fw_verbs_resolver = GRBRuleResolver(
            grbs, global_role_resolver, _fleet_workspace_verbs
        )


class DefaultRuleResolver(RuleResolver):
    """Rules from native RBAC: ClusterRoleBindings everywhere, RoleBindings in their namespace."""

    def __init__(
        self,
        roles: ObjectCache[Role],
        role_bindings: ObjectCache[RoleBinding],
        cluster_roles: ObjectCache[ClusterRole],
        cluster_role_bindings: ObjectCache[ClusterRoleBinding],
    ):
        self.roles = roles
        self.role_bindings = role_bindings
        self.cluster_roles = cluster_roles
        self.cluster_role_bindings = cluster_role_bindings

    def rules_for(self, user: UserInfo, namespace: str) -> List[PolicyRule]:
        rules: List[PolicyRule] = []

        for binding in self.cluster_role_bindings.list():
            if self._binds(binding, user, ""):
                rules.extend(self._role_ref_rules(binding, ""))

        if namespace:
            for binding in self.role_bindings.list(namespace=namespace):
                if self._binds(binding, user, namespace):
                    rules.extend(self._role_ref_rules(binding, namespace))

        return rules

    @staticmethod
    def _binds(binding: ClusterRoleBinding, user: UserInfo, namespace: str) -> bool:
        return any(subject.applies_to(user, namespace) for subject in binding.subjects)

    def _role_ref_rules(self, binding: ClusterRoleBinding, namespace: str) -> List[PolicyRule]:
        ref = binding.role_ref
        try:
            if ref.kind == "Role":
                role = self.roles.get(ref.name, namespace)
            else:
                role = self.cluster_roles.get(ref.name)
        except RBACGuardError as e:
            if not is_not_found(e):
                raise
            logger.info(f"Skipping {binding.kind} {binding.metadata.name}: {e}")
            return []
        return list(role.rules)


class AggregateRuleResolver(RuleResolver):
    """Concatenates the rules of several resolvers."""

    def __init__(self, *resolvers: RuleResolver):
        self.resolvers: Iterable[RuleResolver] = resolvers

    def rules_for(self, user: UserInfo, namespace: str) -> List[PolicyRule]:
        rules: List[PolicyRule] = []
        for resolver in self.resolvers:
            rules.extend(resolver.rules_for(user, namespace))
        return rules


def _template_rules(resolver: RoleTemplateResolver, template_name: str, binding) -> List[PolicyRule]:
    """Resolve a binding's template, skipping bindings left behind by a deleted template."""
    try:
        return resolver.rules_from_template_name(template_name)
    except RBACGuardError as e:
        if not is_not_found(e):
            raise
        logger.info(f"Skipping stale {binding.kind} {binding.metadata.name}: {e}")
        return []
