"""
Lightweight Prometheus-compatible metrics collector.

Tracks HTTP request counts, response times and error rates, plus storage
operation outcomes per tenant environment.
"""

import time
from collections import defaultdict
from typing import Any

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

StorageOpKey = tuple[str, str, str]


class MetricsCollector:
    """
    In-process metrics collector.

    Exposes counters as a dictionary or in Prometheus text format.
    """

    def __init__(self) -> None:
        self._request_count: dict[str, int] = defaultdict(int)
        self._error_count: dict[str, int] = defaultdict(int)
        self._response_time_sum: dict[str, float] = defaultdict(float)
        self._status_counts: dict[int, int] = defaultdict(int)
        self._storage_ops: dict[StorageOpKey, int] = defaultdict(int)
        self._storage_failures: dict[StorageOpKey, int] = defaultdict(int)
        self._start_time: float = time.time()

    def record_request(
        self,
        method: str,
        path: str,
        status_code: int,
        duration: float,
    ) -> None:
        """Record a completed request."""
        key = f"{method} {path}"
        self._request_count[key] += 1
        self._response_time_sum[key] += duration
        self._status_counts[status_code] += 1

        if status_code >= 400:
            self._error_count[key] += 1

    def record_storage_operation(
        self,
        tenant_id: str,
        environment: str,
        operation: str,
        success: bool,
    ) -> None:
        """Record the outcome of a routed storage operation."""
        key = (tenant_id, environment, operation)
        self._storage_ops[key] += 1
        if not success:
            self._storage_failures[key] += 1

    def get_metrics(self) -> dict[str, Any]:
        """Get metrics as a structured dictionary."""
        total_requests = sum(self._request_count.values())
        total_errors = sum(self._error_count.values())

        return {
            "uptime_seconds": round(time.time() - self._start_time, 2),
            "total_requests": total_requests,
            "total_errors": total_errors,
            "error_rate": round(total_errors / total_requests, 4) if total_requests > 0 else 0,
            "requests_by_endpoint": dict(self._request_count),
            "errors_by_endpoint": dict(self._error_count),
            "status_code_counts": {str(k): v for k, v in sorted(self._status_counts.items())},
            "avg_response_time_ms": {
                k: round((self._response_time_sum[k] / self._request_count[k]) * 1000, 2)
                for k in self._request_count
            },
            "storage_operations": [
                {
                    "tenantId": tenant_id,
                    "environment": environment,
                    "operation": operation,
                    "total": count,
                    "failures": self._storage_failures.get((tenant_id, environment, operation), 0),
                }
                for (tenant_id, environment, operation), count in sorted(self._storage_ops.items())
            ],
        }

    def to_prometheus(self) -> str:
        """
        Export metrics in Prometheus text exposition format.
        See: https://prometheus.io/docs/instrumenting/exposition_formats/
        """
        lines: list[str] = []

        lines.append("# HELP file_service_uptime_seconds Time since service start in seconds")
        lines.append("# TYPE file_service_uptime_seconds gauge")
        lines.append(f"file_service_uptime_seconds {time.time() - self._start_time:.2f}")
        lines.append("")

        lines.append("# HELP file_service_http_requests_total Total HTTP requests")
        lines.append("# TYPE file_service_http_requests_total counter")
        for key, count in sorted(self._request_count.items()):
            method, path = key.split(" ", 1)
            lines.append(
                f'file_service_http_requests_total{{method="{method}",path="{path}"}} {count}'
            )
        lines.append("")

        lines.append("# HELP file_service_http_errors_total Total HTTP errors (4xx/5xx)")
        lines.append("# TYPE file_service_http_errors_total counter")
        for key, count in sorted(self._error_count.items()):
            method, path = key.split(" ", 1)
            lines.append(
                f'file_service_http_errors_total{{method="{method}",path="{path}"}} {count}'
            )
        lines.append("")

        lines.append("# HELP file_service_storage_operations_total Routed storage operations")
        lines.append("# TYPE file_service_storage_operations_total counter")
        for (tenant_id, environment, operation), count in sorted(self._storage_ops.items()):
            failures = self._storage_failures.get((tenant_id, environment, operation), 0)
            labels = f'tenant="{tenant_id}",environment="{environment}",operation="{operation}"'
            lines.append(
                f'file_service_storage_operations_total{{{labels},outcome="success"}} {count - failures}'
            )
            if failures:
                lines.append(
                    f'file_service_storage_operations_total{{{labels},outcome="failure"}} {failures}'
                )
        lines.append("")

        return "\n".join(lines) + "\n"


# Global singleton
_metrics_collector: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Get or create the global metrics collector."""
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector()
    return _metrics_collector


class MetricsMiddleware(BaseHTTPMiddleware):
    """
    ASGI middleware that records request metrics.

    Measures request duration and records status codes for API requests.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        # Skip metrics endpoints to avoid recursion
        if "/metrics" in request.url.path:
            return await call_next(request)

        start = time.time()
        response = await call_next(request)
        duration = time.time() - start

        get_metrics_collector().record_request(
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration=duration,
        )

        return response
