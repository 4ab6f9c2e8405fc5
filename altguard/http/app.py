"""HTTP surface for verification submissions."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import FileResponse
from pydantic import BaseModel, Field

from ..config import VerifierConfig
from ..housekeeping import TokenSweeper
from ..verification.coordinator import VerificationCoordinator

logger = logging.getLogger(__name__)


class VerifyRequest(BaseModel):
    token: str = ""
    fingerprint: str = ""
    components: Any = None


class VerifyResponse(BaseModel):
    success: bool
    reason: Optional[str] = None
    detail: Optional[str] = None
    match_type: Optional[str] = Field(default=None, alias="matchType")


def client_address(request: Request) -> str:
    """First hop of X-Forwarded-For, then X-Real-IP, then the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else ""


def create_app(
    coordinator: VerificationCoordinator,
    config: Optional[VerifierConfig] = None,
    *,
    sweeper: Optional[TokenSweeper] = None,
) -> FastAPI:
    """Build the public verification app.

    Exposes:

    - ``GET /verify``: the static verification page;
    - ``POST /api/verify``: one verification attempt;
    - ``GET /healthz``.

    ``POST /api/verify`` answers 200 with ``success: false`` for every
    rejection, including internal errors.
    """
    cfg = config or VerifierConfig()

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        if sweeper is not None:
            sweeper.start()
        try:
            yield
        finally:
            if sweeper is not None:
                await sweeper.stop()

    app = FastAPI(title="altguard", lifespan=lifespan)

    @app.get("/healthz")
    async def healthz() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/verify")
    async def verify_page() -> FileResponse:
        page = Path(cfg.verify_page)
        if not page.is_file():
            raise HTTPException(status_code=404, detail="verification page not found")
        return FileResponse(page)

    @app.post("/api/verify", response_model=VerifyResponse, response_model_exclude_none=True, response_model_by_alias=True)
    async def submit_verification(req: VerifyRequest, request: Request) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {
            "components": req.components,
            "user_agent": request.headers.get("user-agent"),
        }
        outcome = await coordinator.attempt(req.token, req.fingerprint, metadata, client_address(request))
        return outcome.to_payload()

    return app
