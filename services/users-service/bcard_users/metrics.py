"""Prometheus counters for authentication activity."""

from __future__ import annotations

from prometheus_client import Counter

LOGIN_ATTEMPTS = Counter(
    "bcard_login_attempts_total",
    "Login attempts grouped by outcome.",
    ["outcome"],
)

REGISTRATIONS = Counter(
    "bcard_registrations_total",
    "Accounts created through registration.",
)

SUSPENSIONS = Counter(
    "bcard_suspensions_total",
    "Suspensions imposed, by lockout or by an administrator.",
    ["source"],
)
