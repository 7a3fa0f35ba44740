"""
Prometheus metrics: admin logins, gate rejections, order status updates, checkouts, datastore errors.
"""
from prometheus_client import Counter, generate_latest

admin_logins_total = Counter(
    "admin_logins_total",
    "Admin login attempts by outcome",
    ["outcome"],
)

# Gate: missing bearer (forbidden) vs present but invalid/expired (unauthenticated)
auth_rejections_total = Counter(
    "auth_rejections_total",
    "Admin requests rejected by the authorization gate",
    ["reason"],
)

order_status_updates_total = Counter(
    "order_status_updates_total",
    "Order status updates written, by stored status code",
    ["status"],
)

checkouts_total = Counter(
    "checkouts_total",
    "Public checkout submissions by outcome",
    ["outcome"],
)

datastore_errors_total = Counter(
    "datastore_errors_total",
    "Errors reported by the record store",
    ["table", "operation"],
)


def get_metrics_content_type():
    return "text/plain; charset=utf-8; version=0.0.4"


def get_metrics_bytes():
    return generate_latest()
