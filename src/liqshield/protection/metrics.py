"""
Prometheus metrics for the protection service.
"""

from prometheus_client import Counter, Gauge, Histogram

checks_total = Counter(
    'liqshield_protection_checks_total',
    'Subscription checks by terminal status',
    ['status']
)

remediation_amount = Counter(
    'liqshield_protection_amount_total',
    'Protection funds used, by action',
    ['action']
)

remediation_failures = Counter(
    'liqshield_protection_failures_total',
    'Failed remediation attempts by reason',
    ['reason']
)

data_fetch_failures = Counter(
    'liqshield_protection_fetch_failures_total',
    'Position reads replaced by a conservative analysis'
)

active_subscribers = Gauge(
    'liqshield_protection_active_subscribers',
    'Number of active subscriptions'
)

cycle_duration = Histogram(
    'liqshield_protection_cycle_seconds',
    'Duration of a full batch cycle',
    buckets=[0.1, 0.5, 1, 2.5, 5, 10, 30, 60, 120]
)
