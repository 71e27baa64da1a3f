"""
Prometheus metrics for the monitor service.
"""

from prometheus_client import Counter, Gauge

commands_dispatched = Counter(
    'liqshield_monitor_commands_dispatched_total',
    'Commands sent to the protection domain',
    ['kind']
)

inputs_ignored = Counter(
    'liqshield_monitor_inputs_ignored_total',
    'Ticks and events that did not lead to a command',
    ['source', 'decision']
)

cycle_in_flight = Gauge(
    'liqshield_monitor_cycle_in_flight',
    '1 while a batch cycle awaits its completion signal'
)

force_clears = Counter(
    'liqshield_monitor_force_clears_total',
    'Operator force-clears of a stale in-flight flag'
)
