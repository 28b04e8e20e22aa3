"""Pytest configuration and shared fixtures for rbacguard tests."""

import base64
import copy
import json
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import jsonpatch
import pytest
from fakeredis import FakeStrictRedis
from fastapi.testclient import TestClient

from rbacguard.models.admission import (AdmissionRequest, AdmissionReview,
                                        GroupVersionKind, GroupVersionResource)
from rbacguard.models.management import (ClusterRoleTemplateBinding, Feature,
                                         GlobalRole, GlobalRoleBinding,
                                         ProjectRoleTemplateBinding,
                                         RoleTemplate)
from rbacguard.models.rbac import (ClusterRole, ClusterRoleBinding,
                                   ObjectMeta, PolicyRule, Role, RoleBinding,
                                   RoleRef, Subject, SubjectKind, UserInfo)
from rbacguard.repositories.cache import ObjectCaches
from rbacguard.services.escalation import SubjectAccessReviewer
from rbacguard.services.globalroles import GlobalRoleResolver
from rbacguard.services.resolvers import (AggregateRuleResolver,
                                          CRTBRuleResolver,
                                          DefaultRuleResolver,
                                          GRBRuleResolvers, PRTBRuleResolver)
from rbacguard.services.roletemplates import RoleTemplateResolver

# ============================================================================
# Redis Fixtures
# ============================================================================


@pytest.fixture(scope="session")
def fake_redis_session():
    """Single FakeRedis instance for entire test session."""
    return FakeStrictRedis(decode_responses=True)


@pytest.fixture(autouse=True)
def fake_redis(fake_redis_session):
    """
    Function-scoped fixture that clears session redis before each test.
    This ensures test isolation while using a single redis instance.
    """
    fake_redis_session.flushdb()
    yield fake_redis_session


@pytest.fixture
def caches(fake_redis):
    """Object caches backed by fake Redis."""
    return ObjectCaches.from_redis(fake_redis, prefix="test")


# ============================================================================
# Resolver Fixtures
# ============================================================================


@pytest.fixture
def role_template_resolver(caches):
    return RoleTemplateResolver(caches.role_templates, caches.cluster_roles, caches.features)


@pytest.fixture
def global_role_resolver(role_template_resolver, caches):
    return GlobalRoleResolver(role_template_resolver, caches.global_roles)


@pytest.fixture
def default_resolver(caches):
    return DefaultRuleResolver(
        caches.roles, caches.role_bindings, caches.cluster_roles, caches.cluster_role_bindings
    )


@pytest.fixture
def crtb_resolver(caches, role_template_resolver):
    return CRTBRuleResolver(caches.cluster_role_template_bindings, role_template_resolver)


@pytest.fixture
def prtb_resolver(caches, role_template_resolver):
    return PRTBRuleResolver(caches.project_role_template_bindings, role_template_resolver)


@pytest.fixture
def grb_resolvers(caches, global_role_resolver):
    return GRBRuleResolvers(caches.global_role_bindings, global_role_resolver)


@pytest.fixture
def cluster_resolver(default_resolver, crtb_resolver):
    return AggregateRuleResolver(default_resolver, crtb_resolver)


@pytest.fixture
def project_resolver(default_resolver, prtb_resolver):
    return AggregateRuleResolver(default_resolver, prtb_resolver)


@pytest.fixture
def reviewer():
    """SubjectAccessReviewer that denies every verb unless a test says otherwise."""
    mock = MagicMock(spec=SubjectAccessReviewer)
    mock.allowed.return_value = False
    return mock


# ============================================================================
# User Fixtures
# ============================================================================


@pytest.fixture
def dev_user():
    """Standard user."""
    return UserInfo(username="john.doe", uid="u-1", groups=["developers", "system:authenticated"])


@pytest.fixture
def admin_user():
    """Administrator user."""
    return UserInfo(username="admin", uid="u-2", groups=["system:authenticated"])


@pytest.fixture
def sudo_user():
    """The webhook's sudo service account acting as system:masters."""
    return UserInfo(
        username="system:serviceaccount:cattle-system:rancher-webhook-sudo",
        groups=["system:masters"],
    )


# ============================================================================
# Object Builders
# ============================================================================


@pytest.fixture
def add_role_template(caches):
    """Helper to store a RoleTemplate."""

    def _add(
        name: str,
        rules: Optional[List[PolicyRule]] = None,
        inherits: Optional[List[str]] = None,
        **kwargs,
    ) -> RoleTemplate:
        template = RoleTemplate(
            metadata=ObjectMeta(name=name, uid=f"uid-{name}"),
            rules=list(rules or []),
            role_template_names=list(inherits or []),
            **kwargs,
        )
        return caches.role_templates.put(template)

    return _add


@pytest.fixture
def add_cluster_role(caches):
    """Helper to store a ClusterRole."""

    def _add(name: str, rules: List[PolicyRule]) -> ClusterRole:
        return caches.cluster_roles.put(ClusterRole(metadata=ObjectMeta(name=name), rules=rules))

    return _add


@pytest.fixture
def add_role(caches):
    """Helper to store a namespaced Role."""

    def _add(name: str, namespace: str, rules: List[PolicyRule]) -> Role:
        return caches.roles.put(
            Role(metadata=ObjectMeta(name=name, namespace=namespace), rules=rules)
        )

    return _add


@pytest.fixture
def bind_cluster_role(caches):
    """Helper to grant a ClusterRole to a user or group cluster-wide."""

    def _bind(role_name: str, name: str, kind: SubjectKind = SubjectKind.USER) -> ClusterRoleBinding:
        binding = ClusterRoleBinding(
            metadata=ObjectMeta(name=f"{role_name}-{name}"),
            role_ref=RoleRef(kind="ClusterRole", name=role_name),
            subjects=[Subject(kind=kind, name=name)],
        )
        return caches.cluster_role_bindings.put(binding)

    return _bind


@pytest.fixture
def bind_role(caches):
    """Helper to grant a Role (or ClusterRole) to a subject in one namespace."""

    def _bind(
        role_name: str,
        name: str,
        namespace: str,
        kind: SubjectKind = SubjectKind.USER,
        ref_kind: str = "Role",
    ) -> RoleBinding:
        binding = RoleBinding(
            metadata=ObjectMeta(name=f"{role_name}-{name}", namespace=namespace),
            role_ref=RoleRef(kind=ref_kind, name=role_name),
            subjects=[Subject(kind=kind, name=name)],
        )
        return caches.role_bindings.put(binding)

    return _bind


@pytest.fixture
def add_global_role(caches):
    """Helper to store a GlobalRole."""

    def _add(name: str, rules: Optional[List[PolicyRule]] = None, **kwargs) -> GlobalRole:
        role = GlobalRole(
            metadata=ObjectMeta(name=name, uid=f"uid-{name}"),
            rules=list(rules or []),
            **kwargs,
        )
        return caches.global_roles.put(role)

    return _add


@pytest.fixture
def add_grb(caches):
    """Helper to store a GlobalRoleBinding for a user."""

    def _add(name: str, global_role_name: str, user_name: str) -> GlobalRoleBinding:
        grb = GlobalRoleBinding(
            metadata=ObjectMeta(name=name),
            global_role_name=global_role_name,
            user_name=user_name,
        )
        return caches.global_role_bindings.put(grb)

    return _add


@pytest.fixture
def add_crtb(caches):
    """Helper to store a ClusterRoleTemplateBinding for a user."""

    def _add(name: str, template: str, cluster: str, user_name: str) -> ClusterRoleTemplateBinding:
        crtb = ClusterRoleTemplateBinding(
            metadata=ObjectMeta(name=name, namespace=cluster),
            role_template_name=template,
            cluster_name=cluster,
            user_name=user_name,
        )
        return caches.cluster_role_template_bindings.put(crtb)

    return _add


@pytest.fixture
def add_prtb(caches):
    """Helper to store a ProjectRoleTemplateBinding for a user."""

    def _add(name: str, template: str, project: str, user_name: str) -> ProjectRoleTemplateBinding:
        prtb = ProjectRoleTemplateBinding(
            metadata=ObjectMeta(name=name, namespace=project.split(":")[-1]),
            role_template_name=template,
            project_name=project,
            user_name=user_name,
        )
        return caches.project_role_template_bindings.put(prtb)

    return _add


@pytest.fixture
def set_feature(caches):
    """Helper to set a feature flag value."""

    def _set(name: str, value: Optional[bool], default: bool = False) -> Feature:
        return caches.features.put(
            Feature(metadata=ObjectMeta(name=name), value=value, default=default)
        )

    return _set


# ============================================================================
# Admission Fixtures
# ============================================================================


@pytest.fixture
def admission_request():
    """Helper to build an AdmissionRequest for a management.cattle.io resource."""

    def _build(
        resource: str,
        kind: str,
        operation: str,
        user: UserInfo,
        obj: Optional[Dict[str, Any]] = None,
        old_obj: Optional[Dict[str, Any]] = None,
        uid: str = "req-1",
    ) -> AdmissionRequest:
        source = obj or old_obj or {}
        metadata = source.get("metadata") or {}
        return AdmissionRequest(
            uid=uid,
            kind=GroupVersionKind(group="management.cattle.io", version="v3", kind=kind),
            resource=GroupVersionResource(
                group="management.cattle.io", version="v3", resource=resource
            ),
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", ""),
            operation=operation,
            user_info={
                "username": user.username,
                "uid": user.uid,
                "groups": list(user.groups),
            },
            object=obj,
            old_object=old_obj,
        )

    return _build


@pytest.fixture
def admission_review_body():
    """Helper to wrap an AdmissionRequest in a wire-format AdmissionReview."""

    def _wrap(request: AdmissionRequest) -> Dict[str, Any]:
        return AdmissionReview(request=request).to_wire()

    return _wrap


@pytest.fixture
def decode_patch():
    """Helper returning the JSONPatch operations carried by a response."""

    def _decode(response) -> List[Dict[str, Any]]:
        if not response.patch:
            return []
        return json.loads(base64.b64decode(response.patch))

    return _decode


@pytest.fixture
def apply_patch(decode_patch):
    """Helper applying a response's patch to a copy of an object."""

    def _apply(obj: Dict[str, Any], response) -> Dict[str, Any]:
        operations = decode_patch(response)
        if not operations:
            return copy.deepcopy(obj)
        return jsonpatch.apply_patch(obj, operations)

    return _apply


# ============================================================================
# API Test Client Fixtures
# ============================================================================


@pytest.fixture
def dispatcher(caches, reviewer):
    """Dispatcher with every handler registered against the fake caches."""
    from rbacguard.admission.handlers import create_dispatcher

    return create_dispatcher(caches, reviewer, multi_cluster_management=True)


@pytest.fixture
def test_client(monkeypatch, fake_redis, dispatcher):
    """Provide a test client with mocked dependencies."""
    from rbacguard.api.dependencies.admission import (get_dispatcher,
                                                      reset_dispatcher)

    monkeypatch.setattr("rbacguard.db.redis.get_redis_client", lambda: fake_redis)
    monkeypatch.setattr(
        "rbacguard.api.v1.endpoints.health.get_redis_client", lambda: fake_redis
    )

    # Import app AFTER all patching
    from rbacguard.main import app

    reset_dispatcher()
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    yield TestClient(app)
    app.dependency_overrides.clear()


# ============================================================================
# Utility Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def reset_lru_caches():
    """Reset LRU caches between tests."""
    from rbacguard.core.config import get_settings
    from rbacguard.db.redis import get_redis_client, get_redis_pool

    get_settings.cache_clear()
    get_redis_client.cache_clear()
    get_redis_pool.cache_clear()

    yield

    get_settings.cache_clear()
    get_redis_client.cache_clear()
    get_redis_pool.cache_clear()


# ============================================================================
# Markers
# ============================================================================

pytest_plugins = []


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "rbac: RBAC-specific tests")
    config.addinivalue_line("markers", "redis: Redis-dependent tests")
