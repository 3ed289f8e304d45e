import time
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# Define metrics (names follow Prometheus conventions)
REQ_COUNT = Counter("http_requests_total", "Total HTTP requests", ["path","method","code"])
REQ_LATENCY = Histogram("http_request_duration_seconds", "Request latency", ["path","method"])

# Fusion pipeline
PROVIDER_OUTCOMES = Counter(
    "property_provider_outcomes_total",
    "Provider adapter outcomes per lookup",
    ["provider", "outcome"],   # outcome: record | empty | error | unconfigured
)
CACHE_LOOKUPS = Counter(
    "property_cache_lookups_total",
    "Property cache lookups",
    ["layer", "result"],       # layer: memo | store; result: hit | miss
)
CACHE_ERRORS = Counter(
    "property_cache_errors_total",
    "Durable cache operations that failed",
    ["operation"],
)

class PromMiddleware(BaseHTTPMiddleware):
    """
    Measures latency and counts requests.
    """
    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response: Response = await call_next(request)
        elapsed = time.perf_counter() - start

        # Route template, so /v1/property?address=... stays one series
        route = request.scope.get("route")
        path = getattr(route, "path", request.url.path)
        method = request.method
        code = str(response.status_code)

        REQ_COUNT.labels(path=path, method=method, code=code).inc()
        REQ_LATENCY.labels(path=path, method=method).observe(elapsed)
        return response

async def metrics_endpoint(request: Request):
    """
    GET /v1/metrics, scraped by Prometheus.
    """
    data = generate_latest()
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
