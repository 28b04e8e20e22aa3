"""Prometheus metrics for admission decisions."""

from prometheus_client import Counter, Histogram

admission_requests = Counter(
    "rbacguard_admission_requests_total",
    "Total number of admission requests handled",
    ["kind", "resource", "operation", "result"],
)

admission_duration = Histogram(
    "rbacguard_admission_duration_seconds",
    "Time spent evaluating an admission request",
    ["kind", "resource"],
)

escalation_denials = Counter(
    "rbacguard_escalation_denials_total",
    "Total number of requests denied for privilege escalation",
    ["resource"],
)

escalate_verb_grants = Counter(
    "rbacguard_escalate_verb_grants_total",
    "Requests allowed because the user holds the escalate or bind verb",
    ["resource", "verb"],
)

subject_access_review_failures = Counter(
    "rbacguard_subject_access_review_failures_total",
    "Total number of failed SubjectAccessReview calls",
)

cache_errors = Counter(
    "rbacguard_cache_errors_total",
    "Total number of object cache errors",
    ["kind", "operation"],
)
