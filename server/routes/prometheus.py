from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Request, Response
import time

router = APIRouter()

REQUEST_COUNT = Counter(
    "reminder_api_requests_total",
    "Requests handled by the reminder API",
    ["method", "endpoint", "http_status"]
)

REQUEST_LATENCY = Histogram(
    "reminder_api_request_duration_seconds",
    "Reminder API request latency",
    ["endpoint"]
)

EXCEPTION_COUNT = Counter(
    "reminder_api_exceptions_total",
    "Unhandled exceptions in the reminder API",
    ["endpoint"]
)


def _endpoint(request: Request) -> str:
    # route template keeps task ids out of the label set
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


@router.get("/")
def metrics():
    data = generate_latest()
    return Response(data, media_type=CONTENT_TYPE_LATEST)


async def metrics_middleware(request: Request, call_next):
    start_time = time.time()

    try:
        response = await call_next(request)
    except Exception:
        EXCEPTION_COUNT.labels(endpoint=_endpoint(request)).inc()
        raise

    process_time = time.time() - start_time
    endpoint = _endpoint(request)

    REQUEST_LATENCY.labels(endpoint=endpoint).observe(process_time)
    REQUEST_COUNT.labels(
        method=request.method,
        endpoint=endpoint,
        http_status=response.status_code
    ).inc()

    return response
