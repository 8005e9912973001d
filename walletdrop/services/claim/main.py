"""Public claim-link endpoint.

Serves `GET /claim/{token}`. The token itself carries the credentials, so
this service only needs the envelope key and the wallet table for access
tracking.
"""

from time import perf_counter
from uuid import uuid4

from fastapi import Depends, FastAPI, HTTPException, Request

from walletdrop.common.config import settings
from walletdrop.common.db import SessionLocal
from walletdrop.common.envelope import SecretEnvelope
from walletdrop.common.errors import ExpiredClaimToken, InvalidClaimToken
from walletdrop.common.logging import configure_logging, trace_id_ctx
from walletdrop.common.metrics import http_request_duration_seconds, http_requests_total, metrics_response
from walletdrop.common.startup import log_startup_config
from walletdrop.common.tracing import instrument_app, setup_tracing
from walletdrop.services.claim.schemas import ClaimError, ClaimResponse
from walletdrop.services.claim.service import ClaimService
from walletdrop.services.wallets.service import WalletService

EXPIRED_DETAIL = "This claim link has expired. Mention the bot again with 'create wallet' to get a new one."
INVALID_DETAIL = "invalid claim link"

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(
    settings.service_name,
    ["SERVICE_NAME", "DATABASE_URL", "CLAIM_DOMAIN", "CLAIM_TOKEN_SECRET", "ENCRYPTION_KEY"],
)
service = ClaimService(
    SecretEnvelope(settings.envelope_secret),
    WalletService(SessionLocal, service_name=settings.service_name),
    service_name=settings.service_name,
)

app = FastAPI(title="WalletDrop Claim Service")
instrument_app(app)


def get_claim_service() -> ClaimService:
    return service


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    """Record request count and latency for every HTTP call."""

    start = perf_counter()
    trace_id_ctx.set(request.headers.get("x-correlation-id") or str(uuid4()))
    route = request.url.path
    method = request.method
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        route_obj = request.scope.get("route")
        if route_obj is not None and getattr(route_obj, "path", None):
            route = route_obj.path
        return response
    finally:
        elapsed = max(0.0, perf_counter() - start)
        http_request_duration_seconds.labels(service=settings.service_name, route=route, method=method).observe(
            elapsed
        )
        http_requests_total.labels(
            service=settings.service_name,
            route=route,
            method=method,
            status_code=str(status_code),
        ).inc()


@app.get(
    "/claim/{token}",
    response_model=ClaimResponse,
    responses={400: {"model": ClaimError}, 410: {"model": ClaimError}},
)
def claim(token: str, claims: ClaimService = Depends(get_claim_service)):
    """Reveal wallet credentials for a live claim token."""

    try:
        return claims.reveal(token)
    except ExpiredClaimToken:
        raise HTTPException(status_code=410, detail=EXPIRED_DETAIL)
    except InvalidClaimToken:
        raise HTTPException(status_code=400, detail=INVALID_DETAIL)


@app.get("/health")
def health():
    """Container health probe endpoint."""

    return {"ok": True}


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()
