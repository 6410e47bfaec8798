"""
Prometheus metrics for the valuation and caching services.

Metrics are exposed on a SEPARATE admin port (METRICS_ADMIN_PORT) behind HTTP
Basic Auth, never on the public API port.

Dev access: curl -u admin:metrics_admin http://localhost:9090/metrics
"""

import base64
import hmac

from fastapi import FastAPI
from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Route
from starlette.types import ASGIApp

from finsight.config import settings


cache_lookups_total = Counter(
    "finsight_cache_lookups_total",
    "Cache lookups by outcome",
    ["cache", "outcome"],  # outcome: hit, miss, refreshed, stale_served
)

upstream_failures_total = Counter(
    "finsight_upstream_failures_total",
    "Failed calls to external market data providers",
    ["provider", "operation"],
)

holding_mutations_total = Counter(
    "finsight_holding_mutations_total",
    "Holding add/reduce requests by outcome",
    ["direction", "outcome"],  # outcome: success or an error code
)


def setup_metrics(app: FastAPI) -> None:
    """
    Instrument the FastAPI app with HTTP metrics collectors.

    Does NOT expose a /metrics route on the main API port.
    """
    instrumentator = Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=True,
        excluded_handlers=["/health", "/docs", "/openapi.json"],
    )
    instrumentator.instrument(app)


def _unauthorized() -> Response:
    return Response(
        content="Unauthorized",
        status_code=401,
        headers={"WWW-Authenticate": 'Basic realm="metrics"'},
    )


def create_metrics_app() -> ASGIApp:
    """Create a minimal ASGI app that serves /metrics behind HTTP Basic Auth."""

    async def metrics_endpoint(request: Request) -> Response:
        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Basic "):
            return _unauthorized()

        try:
            decoded = base64.b64decode(auth_header[6:]).decode("utf-8", errors="replace")
            username, password = decoded.split(":", 1)
        except ValueError:
            return _unauthorized()

        if not (
            hmac.compare_digest(username, settings.METRICS_USERNAME)
            and hmac.compare_digest(password, settings.METRICS_PASSWORD)
        ):
            return _unauthorized()

        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return Starlette(routes=[Route("/metrics", metrics_endpoint)])


def track_cache_lookup(cache: str, outcome: str) -> None:
    cache_lookups_total.labels(cache=cache, outcome=outcome).inc()


def track_upstream_failure(provider: str, operation: str) -> None:
    upstream_failures_total.labels(provider=provider, operation=operation).inc()


def track_holding_mutation(direction: str, outcome: str) -> None:
    holding_mutations_total.labels(direction=direction, outcome=outcome).inc()
