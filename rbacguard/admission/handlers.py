"""Wiring of caches, resolvers and handlers into a dispatcher."""

import logging
from typing import Optional

from rbacguard.admission.dispatch import AdmissionDispatcher
from rbacguard.admission.mutators import (GlobalRoleBindingMutator,
                                          RoleTemplateMutator)
from rbacguard.admission.validators import (CRTBValidator,
                                            GlobalRoleBindingValidator,
                                            GlobalRoleValidator,
                                            PRTBValidator,
                                            RoleTemplateValidator)
from rbacguard.core.config import settings
from rbacguard.repositories.cache import ObjectCaches
from rbacguard.services.escalation import SubjectAccessReviewer
from rbacguard.services.globalroles import GlobalRoleResolver
from rbacguard.services.resolvers import (AggregateRuleResolver,
                                          CRTBRuleResolver,
                                          DefaultRuleResolver,
                                          GRBRuleResolvers, PRTBRuleResolver)
from rbacguard.services.roletemplates import RoleTemplateResolver

logger = logging.getLogger(__name__)


def create_dispatcher(
    caches: ObjectCaches,
    reviewer: SubjectAccessReviewer,
    multi_cluster_management: Optional[bool] = None,
) -> AdmissionDispatcher:
    """Build a dispatcher with every handler registered.

    The management.cattle.io handlers are only served when multi-cluster
    management is enabled.
    """
    if multi_cluster_management is None:
        multi_cluster_management = settings.multi_cluster_management

    dispatcher = AdmissionDispatcher()
    if not multi_cluster_management:
        logger.info("Multi-cluster management disabled, no RBAC handlers registered")
        return dispatcher

    role_template_resolver = RoleTemplateResolver(
        caches.role_templates, caches.cluster_roles, caches.features
    )
    global_role_resolver = GlobalRoleResolver(role_template_resolver, caches.global_roles)

    default_resolver = DefaultRuleResolver(
        caches.roles,
        caches.role_bindings,
        caches.cluster_roles,
        caches.cluster_role_bindings,
    )
    crtb_resolver = CRTBRuleResolver(
        caches.cluster_role_template_bindings, role_template_resolver
    )
    prtb_resolver = PRTBRuleResolver(
        caches.project_role_template_bindings, role_template_resolver
    )
    grb_resolvers = GRBRuleResolvers(caches.global_role_bindings, global_role_resolver)

    cluster_resolver = AggregateRuleResolver(default_resolver, crtb_resolver)
    project_resolver = AggregateRuleResolver(default_resolver, prtb_resolver)

    for validator in (
        RoleTemplateValidator(default_resolver, role_template_resolver, reviewer),
        CRTBValidator(cluster_resolver, role_template_resolver, reviewer),
        PRTBValidator(cluster_resolver, project_resolver, role_template_resolver, reviewer),
        GlobalRoleValidator(default_resolver, grb_resolvers, global_role_resolver, reviewer),
        GlobalRoleBindingValidator(default_resolver, grb_resolvers, global_role_resolver, reviewer),
    ):
        dispatcher.register_validator(validator)

    dispatcher.register_mutator(RoleTemplateMutator())
    dispatcher.register_mutator(GlobalRoleBindingMutator(global_role_resolver))

    logger.info(
        f"Registered {len(dispatcher.validators)} validators and "
        f"{len(dispatcher.mutators)} mutators"
    )
    return dispatcher
