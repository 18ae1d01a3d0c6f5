from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

crm_audit_entries_total = Counter(
    "crm_audit_entries_total",
    "Audit log entries written by entity type and action",
    ["entity_type", "action"],
)

crm_audit_write_failures_total = Counter(
    "crm_audit_write_failures_total",
    "Audit log writes that failed and were dropped",
    ["entity_type"],
)

crm_blob_delete_failures_total = Counter(
    "crm_blob_delete_failures_total",
    "Best-effort blob deletions that failed",
    ["reason"],
)

crm_attachment_upload_rollbacks_total = Counter(
    "crm_attachment_upload_rollbacks_total",
    "Attachment batches rolled back after a partial upload failure",
    ["resource"],
)

crm_reminder_scan_duration_seconds = Histogram(
    "crm_reminder_scan_duration_seconds",
    "Reminder scan duration in seconds",
)

crm_reminder_emails_total = Counter(
    "crm_reminder_emails_total",
    "Reminder emails by outcome",
    ["outcome"],
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}\b"
)
_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _normalize_route_template(path: str) -> str:
    return _PATH_PARAM_RE.sub("{id}", path)


def _sanitize_path(path: str) -> str:
    without_uuids = _UUID_RE.sub("{id}", path)
    return _INT_RE.sub("/{id}", without_uuids)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None)
        if isinstance(path_format, str) and path_format:
            return _normalize_route_template(path_format)
        route_path = getattr(route, "path", None)
        if isinstance(route_path, str) and route_path:
            return _normalize_route_template(route_path)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_audit_entry(entity_type: str, action: str) -> None:
    crm_audit_entries_total.labels(entity_type=entity_type, action=action).inc()


def observe_audit_write_failure(entity_type: str) -> None:
    crm_audit_write_failures_total.labels(entity_type=entity_type).inc()


def observe_blob_delete_failure(reason: str) -> None:
    crm_blob_delete_failures_total.labels(reason=reason).inc()


def observe_attachment_rollback(resource: str) -> None:
    crm_attachment_upload_rollbacks_total.labels(resource=resource).inc()


def observe_reminder_scan(duration: float) -> None:
    crm_reminder_scan_duration_seconds.observe(duration)


def observe_reminder_email(outcome: str, count: int = 1) -> None:
    if count > 0:
        crm_reminder_emails_total.labels(outcome=outcome).inc(count)


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
