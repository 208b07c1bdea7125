"""Prometheus metrics for the gateway agent."""

from prometheus_client import Counter, Gauge

gateway_connected = Gauge(
    "gateway_connected",
    "1 while the gateway session is authenticated, else 0",
)

gateway_events_total = Counter(
    "gateway_events_total",
    "Events emitted by the gateway connection",
    ["event_type"],
)

gateway_reconnects_total = Counter(
    "gateway_reconnects_scheduled_total",
    "Reconnect attempts scheduled after a failure",
)

gateway_frames_dropped_total = Counter(
    "gateway_frames_dropped_total",
    "Inbound frames discarded because they could not be decoded",
)

gateway_session_context_percent = Gauge(
    "gateway_session_context_percent",
    "Percent of the context window used by each direct agent session",
    ["session"],
)

gateway_tokens_today = Gauge(
    "gateway_tokens_today",
    "Total tokens used today across all agents",
)
