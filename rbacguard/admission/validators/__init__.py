"""Validating handlers for management.cattle.io RBAC resources."""

from .clusterroletemplatebinding import CRTBValidator
from .globalrole import GlobalRoleValidator
from .globalrolebinding import GlobalRoleBindingValidator
from .projectroletemplatebinding import PRTBValidator
from .roletemplate import RoleTemplateValidator

__all__ = [
    "RoleTemplateValidator",
    "CRTBValidator",
    "PRTBValidator",
    "GlobalRoleValidator",
    "GlobalRoleBindingValidator",
]
