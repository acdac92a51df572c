"""Prometheus metrics."""

from prometheus_client import Counter, Histogram

# Identity
login_attempts = Counter(
    "ecosangam_login_attempts_total",
    "Login attempts",
    ["outcome"],
)

# Field records
measurements_saved = Counter(
    "ecosangam_measurements_saved_total",
    "Measurements queued offline",
    ["type"],
)

measurement_syncs = Counter(
    "ecosangam_measurement_syncs_total",
    "Measurement sync attempts",
    ["status"],
)

sync_duration = Histogram(
    "ecosangam_sync_duration_seconds",
    "Offline queue sync duration",
)

# Verification
verification_outcomes = Counter(
    "ecosangam_verification_outcomes_total",
    "Verification reviews closed",
    ["outcome", "method"],
)

# Ledger
ledger_operations = Counter(
    "ecosangam_ledger_operations_total",
    "Credit ledger operations",
    ["operation"],
)

credits_moved = Counter(
    "ecosangam_credits_total",
    "tCO2e credits minted, transferred or retired",
    ["operation"],
)
