"""Unit tests for the rule resolvers."""

import json
from unittest.mock import MagicMock

import pytest

from rbacguard.core.exceptions import CacheError
from rbacguard.models.management import (ClusterRoleTemplateBinding,
                                         FleetWorkspacePermission,
                                         GlobalRoleBinding,
                                         ProjectRoleTemplateBinding)
from rbacguard.models.rbac import (ObjectMeta, PolicyRule, RoleBinding,
                                   RoleRef, Subject, SubjectKind, UserInfo)
from rbacguard.repositories.cache import ObjectCache, ObjectCaches
from rbacguard.repositories.indexes import (get_group_key, get_user_key,
                                            prtb_by_subject)
from rbacguard.services.resolvers import (AggregateRuleResolver,
                                          CRTBRuleResolver, GRBRuleResolvers,
                                          PRTBRuleResolver, subject_keys)

PODS_READ = PolicyRule(verbs=["get", "list"], api_groups=[""], resources=["pods"])
NODES_ALL = PolicyRule(verbs=["*"], api_groups=[""], resources=["nodes"])
SECRETS_READ = PolicyRule(verbs=["get"], api_groups=[""], resources=["secrets"])


@pytest.mark.unit
class TestIndexKeys:
    """Test subject index keys."""

    def test_subject_keys_groups_first(self):
        user = UserInfo(username="alice", groups=["g1", "g2"])

        assert subject_keys(user, "ns") == [
            get_group_key("g1", "ns"),
            get_group_key("g2", "ns"),
            get_user_key("alice", "ns"),
        ]

    def test_prtb_indexed_by_project_namespace(self):
        prtb = ProjectRoleTemplateBinding(
            metadata=ObjectMeta(name="b"), project_name="c-1:p-1", user_name="alice"
        )

        assert prtb_by_subject(prtb) == [get_user_key("alice", "p-1")]

    def test_prtb_with_malformed_project_is_not_indexed(self):
        prtb = ProjectRoleTemplateBinding(
            metadata=ObjectMeta(name="b"), project_name="p-1", user_name="alice"
        )

        assert prtb_by_subject(prtb) == []

    def test_prtb_service_account(self):
        prtb = ProjectRoleTemplateBinding(
            metadata=ObjectMeta(name="b"), project_name="c-1:p-1", service_account="ns:robot"
        )

        assert prtb_by_subject(prtb) == [
            get_user_key("system:serviceaccount:ns:robot", "p-1")
        ]


@pytest.mark.unit
@pytest.mark.rbac
@pytest.mark.redis
class TestDefaultRuleResolver:
    """Test native RBAC resolution."""

    def test_cluster_role_binding_applies_everywhere(
        self, default_resolver, dev_user, add_cluster_role, bind_cluster_role
    ):
        add_cluster_role("pod-reader", [PODS_READ])
        bind_cluster_role("pod-reader", dev_user.username)

        assert default_resolver.rules_for(dev_user, "") == [PODS_READ]
        assert default_resolver.rules_for(dev_user, "ns1") == [PODS_READ]

    def test_group_subject(self, default_resolver, dev_user, add_cluster_role, bind_cluster_role):
        add_cluster_role("pod-reader", [PODS_READ])
        bind_cluster_role("pod-reader", "developers", kind=SubjectKind.GROUP)

        assert default_resolver.rules_for(dev_user, "") == [PODS_READ]

    def test_role_binding_only_in_its_namespace(
        self, default_resolver, dev_user, add_role, bind_role
    ):
        add_role("secret-reader", "ns1", [SECRETS_READ])
        bind_role("secret-reader", dev_user.username, "ns1")

        assert default_resolver.rules_for(dev_user, "ns1") == [SECRETS_READ]
        assert default_resolver.rules_for(dev_user, "ns2") == []
        assert default_resolver.rules_for(dev_user, "") == []

    def test_role_binding_to_cluster_role(
        self, default_resolver, dev_user, add_cluster_role, bind_role
    ):
        add_cluster_role("node-admin", [NODES_ALL])
        bind_role("node-admin", dev_user.username, "ns1", ref_kind="ClusterRole")

        assert default_resolver.rules_for(dev_user, "ns1") == [NODES_ALL]

    def test_other_users_get_nothing(
        self, default_resolver, admin_user, add_cluster_role, bind_cluster_role
    ):
        add_cluster_role("pod-reader", [PODS_READ])
        bind_cluster_role("pod-reader", "someone-else")

        assert default_resolver.rules_for(admin_user, "") == []

    def test_missing_role_is_skipped(self, default_resolver, dev_user, bind_cluster_role):
        bind_cluster_role("deleted-role", dev_user.username)

        assert default_resolver.rules_for(dev_user, "") == []

    def test_service_account_subject_defaults_to_binding_namespace(
        self, default_resolver, caches, add_role
    ):
        robot = UserInfo(username="system:serviceaccount:ns1:robot")
        add_role("secret-reader", "ns1", [SECRETS_READ])
        caches.role_bindings.put(
            RoleBinding(
                metadata=ObjectMeta(name="robot-secrets", namespace="ns1"),
                role_ref=RoleRef(kind="Role", name="secret-reader"),
                subjects=[Subject(kind=SubjectKind.SERVICE_ACCOUNT, name="robot")],
            )
        )

        assert default_resolver.rules_for(robot, "ns1") == [SECRETS_READ]


@pytest.mark.unit
@pytest.mark.rbac
@pytest.mark.redis
class TestTemplateBindingResolvers:
    """Test CRTB and PRTB resolution."""

    def test_crtb_rules_in_cluster(
        self, crtb_resolver, dev_user, add_role_template, add_crtb
    ):
        add_role_template("member", rules=[PODS_READ])
        add_crtb("b1", "member", "c-1", dev_user.username)

        assert crtb_resolver.rules_for(dev_user, "c-1") == [PODS_READ]
        assert crtb_resolver.rules_for(dev_user, "c-2") == []

    def test_crtbs_stored_before_resolver_exists(
        self, caches, role_template_resolver, dev_user, add_role_template, add_crtb
    ):
        add_role_template("member", rules=[PODS_READ])
        add_crtb("early", "member", "c-1", dev_user.username)

        resolver = CRTBRuleResolver(caches.cluster_role_template_bindings, role_template_resolver)

        assert resolver.rules_for(dev_user, "c-1") == [PODS_READ]

    def test_stale_crtb_is_skipped(
        self, crtb_resolver, dev_user, add_role_template, add_crtb
    ):
        """A binding whose template was deleted contributes nothing."""
        add_role_template("member", rules=[PODS_READ])
        add_crtb("good", "member", "c-1", dev_user.username)
        add_crtb("stale", "deleted", "c-1", dev_user.username)

        assert crtb_resolver.rules_for(dev_user, "c-1") == [PODS_READ]

    def test_prtb_rules_in_project(self, prtb_resolver, dev_user, add_role_template, add_prtb):
        add_role_template("project-member", rules=[SECRETS_READ])
        add_prtb("b1", "project-member", "c-1:p-1", dev_user.username)

        assert prtb_resolver.rules_for(dev_user, "p-1") == [SECRETS_READ]
        assert prtb_resolver.rules_for(dev_user, "p-2") == []

    def test_aggregate(
        self,
        default_resolver,
        crtb_resolver,
        dev_user,
        add_cluster_role,
        bind_cluster_role,
        add_role_template,
        add_crtb,
    ):
        add_cluster_role("pod-reader", [PODS_READ])
        bind_cluster_role("pod-reader", dev_user.username)
        add_role_template("nodes", rules=[NODES_ALL])
        add_crtb("b1", "nodes", "c-1", dev_user.username)

        resolver = AggregateRuleResolver(default_resolver, crtb_resolver)

        assert resolver.rules_for(dev_user, "c-1") == [PODS_READ, NODES_ALL]


@pytest.mark.unit
@pytest.mark.rbac
@pytest.mark.redis
class TestGRBRuleResolvers:
    """Test GlobalRoleBinding resolution."""

    def test_inherited_cluster_rules(
        self, grb_resolvers, dev_user, add_role_template, add_global_role, add_grb
    ):
        add_role_template("nodes", rules=[NODES_ALL])
        add_global_role("ops", rules=[PODS_READ], inherited_cluster_roles=["nodes"])
        add_grb("grb-1", "ops", dev_user.username)

        assert grb_resolvers.icr_resolver.rules_for(dev_user, "c-1") == [NODES_ALL]

    def test_local_cluster_gets_global_rules(
        self, grb_resolvers, dev_user, add_role_template, add_global_role, add_grb
    ):
        add_role_template("nodes", rules=[NODES_ALL])
        add_global_role("ops", rules=[PODS_READ], inherited_cluster_roles=["nodes"])
        add_grb("grb-1", "ops", dev_user.username)

        assert grb_resolvers.icr_resolver.rules_for(dev_user, "local") == [PODS_READ]

    def test_missing_global_role_is_skipped(self, grb_resolvers, dev_user, add_grb):
        add_grb("grb-1", "deleted", dev_user.username)

        assert grb_resolvers.icr_resolver.rules_for(dev_user, "") == []

    def test_fleet_resolvers(self, grb_resolvers, dev_user, add_global_role, add_grb):
        add_global_role(
            "fleet",
            inherited_fleet_workspace_permissions=FleetWorkspacePermission(
                resource_rules=[PODS_READ], workspace_verbs=["get"]
            ),
        )
        add_grb("grb-1", "fleet", dev_user.username)

        assert grb_resolvers.fw_rules_resolver.rules_for(dev_user, "") == [PODS_READ]
        verbs_rules = grb_resolvers.fw_verbs_resolver.rules_for(dev_user, "")
        assert verbs_rules[0].resources == ["fleetworkspaces"]
        assert verbs_rules[0].verbs == ["get"]


@pytest.mark.unit
@pytest.mark.rbac
@pytest.mark.redis
class TestSubjectIndexesAcrossCacheInstances:
    """Bindings written through a separate ObjectCaches (e.g. the cache syncer)."""

    @pytest.fixture
    def writer(self, fake_redis):
        return ObjectCaches.from_redis(fake_redis, prefix="test")

    def test_crtb_written_after_resolver_exists(
        self, crtb_resolver, writer, dev_user, add_role_template
    ):
        add_role_template("member", rules=[PODS_READ])
        assert crtb_resolver.rules_for(dev_user, "c-1") == []

        writer.cluster_role_template_bindings.put(
            ClusterRoleTemplateBinding(
                metadata=ObjectMeta(name="late", namespace="c-1"),
                role_template_name="member",
                cluster_name="c-1",
                user_name=dev_user.username,
            )
        )

        assert crtb_resolver.rules_for(dev_user, "c-1") == [PODS_READ]

    def test_prtb_written_after_resolver_exists(
        self, prtb_resolver, writer, dev_user, add_role_template
    ):
        add_role_template("project-member", rules=[SECRETS_READ])

        writer.project_role_template_bindings.put(
            ProjectRoleTemplateBinding(
                metadata=ObjectMeta(name="late", namespace="p-1"),
                role_template_name="project-member",
                project_name="c-1:p-1",
                user_name=dev_user.username,
            )
        )

        assert prtb_resolver.rules_for(dev_user, "p-1") == [SECRETS_READ]

    def test_grb_deleted_by_another_instance(
        self, grb_resolvers, writer, dev_user, add_role_template, add_global_role
    ):
        add_role_template("nodes", rules=[NODES_ALL])
        add_global_role("ops", inherited_cluster_roles=["nodes"])
        writer.global_role_bindings.put(
            GlobalRoleBinding(
                metadata=ObjectMeta(name="grb-1"),
                global_role_name="ops",
                user_name=dev_user.username,
            )
        )
        assert grb_resolvers.icr_resolver.rules_for(dev_user, "c-1") == [NODES_ALL]

        writer.global_role_bindings.delete("grb-1")

        assert grb_resolvers.icr_resolver.rules_for(dev_user, "c-1") == []

    def test_rebuild_backfills_bindings_without_index_entries(
        self, caches, crtb_resolver, fake_redis, dev_user, add_role_template
    ):
        add_role_template("member", rules=[PODS_READ])
        crtb = ClusterRoleTemplateBinding(
            metadata=ObjectMeta(name="raw", namespace="c-1"),
            role_template_name="member",
            cluster_name="c-1",
            user_name=dev_user.username,
        )
        fake_redis.hset(
            caches.cluster_role_template_bindings.objects_key,
            "c-1/raw",
            json.dumps(crtb.to_dict()),
        )
        assert crtb_resolver.rules_for(dev_user, "c-1") == []

        caches.rebuild_indexes()

        assert crtb_resolver.rules_for(dev_user, "c-1") == [PODS_READ]

    def test_resolver_requires_subject_index(self, role_template_resolver):
        cache = MagicMock(spec=ObjectCache)
        cache.kind = ClusterRoleTemplateBinding.kind
        cache.has_index.return_value = False

        with pytest.raises(CacheError):
            CRTBRuleResolver(cache, role_template_resolver)

        with pytest.raises(CacheError):
            PRTBRuleResolver(cache, role_template_resolver)

    def test_grb_resolvers_require_subject_index(self, global_role_resolver):
        cache = MagicMock(spec=ObjectCache)
        cache.kind = GlobalRoleBinding.kind
        cache.has_index.return_value = False

        with pytest.raises(CacheError):
            GRBRuleResolvers(cache, global_role_resolver)
