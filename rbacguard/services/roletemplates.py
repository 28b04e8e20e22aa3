"""Flattening of role templates into concrete rules."""

import logging
from collections import deque
from typing import List, Optional, Tuple

from rbacguard.core.exceptions import NotFoundError, RBACGuardError
from rbacguard.models.management import Feature, RoleTemplate, TemplateContext
from rbacguard.models.rbac import ClusterRole, PolicyRule
from rbacguard.repositories.cache import ObjectCache

logger = logging.getLogger(__name__)

EXTERNAL_RULES_FEATURE = "external-rules"


class RoleTemplateResolver:
    """Resolves a role template and everything it inherits into a rule list."""

    def __init__(
        self,
        role_templates: ObjectCache[RoleTemplate],
        cluster_roles: ObjectCache[ClusterRole],
        features: ObjectCache[Feature],
    ):
        self.role_templates = role_templates
        self.cluster_roles = cluster_roles
        self.features = features

    def get_role_template(self, name: str) -> RoleTemplate:
        return self.role_templates.get(name)

    def rules_from_template_name(self, name: str) -> List[PolicyRule]:
        """Look up a template by name and resolve its rules."""
        try:
            template = self.role_templates.get(name)
        except NotFoundError as e:
            raise RBACGuardError(f"failed to get RoleTemplate '{name}': {e}") from e
        return self.rules_from_template(template)

    def rules_from_template(self, template: Optional[RoleTemplate]) -> List[PolicyRule]:
        """Collect the rules of a template and of every template it inherits.

        Templates are visited depth first in declaration order, each at most
        once. Rules are returned in visitation order and duplicates are kept.
        """
        if template is None:
            return []

        rules: List[PolicyRule] = []
        seen = set()
        stack: List[Tuple[str, Optional[RoleTemplate]]] = [(template.name, template)]

        while stack:
            name, current = stack.pop()
            if name in seen:
                continue
            seen.add(name)

            if current is None:
                try:
                    current = self.role_templates.get(name)
                except NotFoundError as e:
                    raise RBACGuardError(
                        f"failed to get RoleTemplate '{name}': {e}"
                    ) from e

            rules.extend(self._external_rules(current))
            rules.extend(current.rules)

            for child in reversed(current.role_template_names):
                if child not in seen:
                    stack.append((child, None))

        return rules

    def check_circular_ref(self, template: RoleTemplate) -> Optional[RoleTemplate]:
        """Find a template that inherits `template` back, directly or not.

        Returns the first template (breadth first) listing `template` among its
        inherited names, which is `template` itself for a self-reference, or
        None when the inheritance graph below `template` is acyclic with
        respect to it. Raises if an inherited template does not exist.
        """
        seen = set()
        queue = deque([template])
        while queue:
            current = queue.popleft()
            for inherited in current.role_template_names:
                if inherited == template.name:
                    return current
                if inherited in seen:
                    continue
                try:
                    next_template = self.role_templates.get(inherited)
                except NotFoundError as e:
                    raise RBACGuardError(
                        f"unable to get roletemplate {inherited}: {e}"
                    ) from e
                seen.add(inherited)
                queue.append(next_template)
        return None

    def external_rules_enabled(self) -> bool:
        """Effective value of the external-rules feature; missing means disabled."""
        try:
            feature = self.features.get(EXTERNAL_RULES_FEATURE)
        except NotFoundError:
            return False
        return feature.enabled

    def _external_rules(self, template: RoleTemplate) -> List[PolicyRule]:
        if not template.external:
            return []

        if self.external_rules_enabled():
            if template.external_rules is not None:
                return list(template.external_rules)
            try:
                return list(self.cluster_roles.get(template.name).rules)
            except NotFoundError as e:
                raise RBACGuardError(
                    "for external RoleTemplates, externalRules must be provided or a "
                    "backing clusterRole must be installed to check for privilege "
                    f"escalations: {e}"
                ) from e

        # Without the feature only cluster-context templates are backed by a cluster role
        if template.context == TemplateContext.CLUSTER.value:
            try:
                return list(self.cluster_roles.get(template.name).rules)
            except NotFoundError as e:
                raise RBACGuardError(f"failed to get ClusterRole '{template.name}': {e}") from e

        logger.debug(
            f"External RoleTemplate {template.name} with context "
            f"'{template.context}' contributes no backing rules"
        )
        return []
