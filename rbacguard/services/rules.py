"""PolicyRule coverage: does one rule set imply another.

Matching follows the Kubernetes RBAC authorizer. Requested rules are broken
down into atomic rules (one verb, one group, one resource, at most one
resource name; or one verb and one non-resource URL) and each atomic rule must
be covered by at least one owner rule.
"""

from typing import Iterable, List, Tuple

from rbacguard.models.rbac import WILDCARD, PolicyRule

CORE_GROUP = ""


def _api_groups(rule: PolicyRule) -> List[str]:
    # A resource rule without apiGroups addresses the core group.
    if not rule.api_groups and rule.resources:
        return [CORE_GROUP]
    return rule.api_groups


def _has_all(owned: Iterable[str], requested: Iterable[str]) -> bool:
    owned = set(owned)
    return all(item in owned for item in requested)


def breakdown_rule(rule: PolicyRule) -> List[PolicyRule]:
    """Split a rule into atomic rules."""
    atomic = []
    for group in _api_groups(rule):
        for resource in rule.resources:
            for verb in rule.verbs:
                if rule.resource_names:
                    for resource_name in rule.resource_names:
                        atomic.append(
                            PolicyRule(
                                verbs=[verb],
                                api_groups=[group],
                                resources=[resource],
                                resource_names=[resource_name],
                            )
                        )
                else:
                    atomic.append(
                        PolicyRule(verbs=[verb], api_groups=[group], resources=[resource])
                    )

    for url in rule.non_resource_urls:
        for verb in rule.verbs:
            atomic.append(PolicyRule(verbs=[verb], non_resource_urls=[url]))

    return atomic


def _resource_covers(owned: List[str], requested: str) -> bool:
    if WILDCARD in owned or requested in owned:
        return True
    if "/" not in requested:
        return False
    subresource = requested[requested.index("/"):]
    return f"{WILDCARD}{subresource}" in owned


def _non_resource_url_covers(owned: List[str], requested: str) -> bool:
    for path in owned:
        if path == requested:
            return True
        if path.endswith(WILDCARD) and requested.startswith(path.rstrip(WILDCARD)):
            return True
    return False


def rule_covers(owner: PolicyRule, requested: PolicyRule) -> bool:
    """Check whether a single owner rule implies the requested rule."""
    verbs_match = WILDCARD in owner.verbs or _has_all(owner.verbs, requested.verbs)

    owner_groups = _api_groups(owner)
    groups_match = WILDCARD in owner_groups or _has_all(
        owner_groups, _api_groups(requested)
    )

    resources_match = all(
        _resource_covers(owner.resources, resource) for resource in requested.resources
    )

    urls_match = all(
        _non_resource_url_covers(owner.non_resource_urls, url)
        for url in requested.non_resource_urls
    )

    if requested.resource_names:
        names_match = not owner.resource_names or _has_all(
            owner.resource_names, requested.resource_names
        )
    else:
        names_match = not owner.resource_names

    return verbs_match and groups_match and resources_match and urls_match and names_match


def covers(
    owner_rules: List[PolicyRule], requested_rules: List[PolicyRule]
) -> Tuple[bool, List[PolicyRule]]:
    """Check whether owner_rules imply every requested rule.

    Returns the verdict and the atomic rules that no owner rule covers, in the
    order the requested rules were given.
    """
    uncovered = []
    for requested in requested_rules:
        for atomic in breakdown_rule(requested):
            if not any(rule_covers(owner, atomic) for owner in owner_rules):
                uncovered.append(atomic)
    return not uncovered, uncovered


def compact_rules(rules: List[PolicyRule]) -> List[PolicyRule]:
    """Merge atomic resource rules differing only in verb, for display."""
    merged: List[PolicyRule] = []
    by_target = {}
    for rule in rules:
        if rule.non_resource_urls:
            target = ("url", tuple(rule.non_resource_urls))
        else:
            target = (
                "resource",
                tuple(rule.api_groups),
                tuple(rule.resources),
                tuple(rule.resource_names),
            )
        existing = by_target.get(target)
        if existing is None:
            existing = PolicyRule(
                verbs=[],
                api_groups=list(rule.api_groups),
                resources=list(rule.resources),
                resource_names=list(rule.resource_names),
                non_resource_urls=list(rule.non_resource_urls),
            )
            by_target[target] = existing
            merged.append(existing)
        for verb in rule.verbs:
            if verb not in existing.verbs:
                existing.verbs.append(verb)
    return merged
