from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, Response
from starlette.concurrency import run_in_threadpool

from bootkv.core.client_ip import get_client_address
from bootkv.core.config import Settings
from bootkv.core.errors import CapacityExceededAppError, NotFoundAppError, SecretMismatchAppError
from bootkv.core.logging import set_client_ip
from bootkv.core.rate_limit import enforce_rate_limit
from bootkv.core.request_body import read_body_limited
from bootkv.services.authorizer import allowed_value_size, validate_key
from bootkv.services.kv_service import KVService, WriteOutcome

logger = logging.getLogger(__name__)

router = APIRouter(tags=["KV"])

LANDING_PAGE = """<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8"><title>bootkv</title></head>
<body>
<h1>bootkv</h1>
<p>Public, ephemeral key-value store for bootstrapping peers.</p>
<ul>
<li><code>POST /&lt;key&gt;</code> stores the request body (send <code>X-Owner-Secret</code> to claim the key).</li>
<li><code>GET /&lt;key&gt;</code> returns the stored bytes.</li>
<li><code>POST /ip/&lt;name&gt;</code> stores under <code>ip/&lt;your address&gt;/&lt;name&gt;</code> and answers with your address.</li>
</ul>
<p>Keys expire after a period without writes. Requests are rate limited per IP.</p>
</body>
</html>
"""


def get_kv_service(request: Request) -> KVService:
    return request.app.state.kv_service


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


@router.get("/", response_class=HTMLResponse, include_in_schema=False)
def landing_page() -> HTMLResponse:
    return HTMLResponse(LANDING_PAGE)


@router.post("/", include_in_schema=False)
def root_write() -> Response:
    """Writes to the root path are accepted and ignored."""
    return Response(status_code=200)


@router.get("/{key:path}")
def read_key(
    key: str,
    request: Request,
    service: Annotated[KVService, Depends(get_kv_service)],
    app_settings: Annotated[Settings, Depends(get_app_settings)],
) -> Response:
    """Return the bytes stored under ``key``.

    Raises:
        ValidationAppError: 400 for an invalid key or a non-IPv4 client.
        RateLimitedAppError: 429 when the client's budget is exhausted.
        NotFoundAppError: 404 when the key is absent or expired.
    """
    validate_key(key, app_settings.store.max_key_size)
    client = get_client_address(request, app_settings.server)
    set_client_ip(client.text)
    enforce_rate_limit(service, client, request.method, app_settings.rate_limit)

    result = service.handle_read(key)
    if not result.found:
        raise NotFoundAppError(code="key_not_found", message="Key not found")

    return Response(content=result.value, media_type="application/octet-stream")


@router.post("/{key:path}", response_class=PlainTextResponse)
async def write_key(
    key: str,
    request: Request,
    service: Annotated[KVService, Depends(get_kv_service)],
    app_settings: Annotated[Settings, Depends(get_app_settings)],
    x_owner_secret: Annotated[str | None, Header(alias="X-Owner-Secret")] = None,
) -> PlainTextResponse:
    """Store the request body under ``key``.

    Keys starting with ``ip/`` are rewritten to ``ip/<client ip>/<rest>``
    and the response body is the client's address instead of ``OK``.

    Raises:
        ValidationAppError: 400 for invalid keys or oversized value/secret.
        RateLimitedAppError: 429 when the client's budget is exhausted.
        SecretMismatchAppError: 403 when the key is claimed by another secret.
        CapacityExceededAppError: 507 when a new key does not fit.
    """
    validate_key(key, app_settings.store.max_key_size)
    client = get_client_address(request, app_settings.server)
    set_client_ip(client.text)
    enforce_rate_limit(service, client, request.method, app_settings.rate_limit)

    secret = x_owner_secret or None
    max_body = allowed_value_size(secret, app_settings.store.max_value_size)
    body = await read_body_limited(request, max_body)

    result = await run_in_threadpool(service.handle_write, key, body, secret, client.ip)

    if result.outcome in (WriteOutcome.TOO_LARGE, WriteOutcome.INVALID_KEY) and result.error is not None:
        raise result.error
    if result.outcome is WriteOutcome.SECRET_MISMATCH:
        raise SecretMismatchAppError(code="secret_mismatch", message="Forbidden: Incorrect secret")
    if result.outcome is WriteOutcome.CAPACITY_EXCEEDED:
        raise CapacityExceededAppError(code="capacity_exceeded", message="Store capacity reached")

    return PlainTextResponse(result.payload or b"")
