"""Rule resolution and escalation checking services."""

from .escalation import (SubjectAccessReviewer, confirm_no_escalation,
                         escalation_authorized, request_user_has_verb)
from .globalroles import GlobalRoleResolver
from .resolvers import (AggregateRuleResolver, CRTBRuleResolver,
                        DefaultRuleResolver, GRBRuleResolvers,
                        PRTBRuleResolver, RuleResolver)
from .roletemplates import RoleTemplateResolver
from .rules import compact_rules, covers

__all__ = [
    # Coverage
    "covers",
    "compact_rules",
    # Resolution
    "RoleTemplateResolver",
    "GlobalRoleResolver",
    "RuleResolver",
    "DefaultRuleResolver",
    "CRTBRuleResolver",
    "PRTBRuleResolver",
    "GRBRuleResolvers",
    "AggregateRuleResolver",
    # Escalation
    "SubjectAccessReviewer",
    "confirm_no_escalation",
    "escalation_authorized",
    "request_user_has_verb",
]
