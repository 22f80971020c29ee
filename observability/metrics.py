from __future__ import annotations

import time
from typing import Callable

from fastapi import Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

REQUESTS_TOTAL = None
REQUEST_LATENCY = None
SHELF_OPERATIONS_TOTAL = None


def setup_metrics() -> None:
    global REQUESTS_TOTAL, REQUEST_LATENCY, SHELF_OPERATIONS_TOTAL

    if REQUESTS_TOTAL is None:
        REQUESTS_TOTAL = Counter(
            "http_requests_total", "Total HTTP requests", ["method", "path", "status"]
        )

    if REQUEST_LATENCY is None:
        REQUEST_LATENCY = Histogram(
            "http_request_duration_seconds", "HTTP request latency", ["method", "path"]
        )

    if SHELF_OPERATIONS_TOTAL is None:
        SHELF_OPERATIONS_TOTAL = Counter(
            "shelf_operations_total", "Shelf edit operations by outcome", ["operation", "outcome"]
        )


def record_operation(operation: str, ok: bool) -> None:
    if SHELF_OPERATIONS_TOTAL is not None:
        SHELF_OPERATIONS_TOTAL.labels(operation, "committed" if ok else "rejected").inc()


async def metrics_middleware(request: Request, call_next: Callable) -> Response:
    t0 = time.perf_counter()
    response = await call_next(request)
    dt = max(0.0, float(time.perf_counter() - t0))

    # Route template keeps label cardinality bounded (no session ids).
    route = request.scope.get("route")
    path = getattr(route, "path", request.url.path)

    if REQUESTS_TOTAL is not None:
        REQUESTS_TOTAL.labels(request.method, path, str(response.status_code)).inc()

    if REQUEST_LATENCY is not None:
        REQUEST_LATENCY.labels(request.method, path).observe(dt)

    return response


def metrics_response() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
