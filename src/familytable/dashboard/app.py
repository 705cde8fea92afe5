"""FastAPI application — admin security REST API."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from familytable import __version__
from familytable.auth.two_factor import RateLimitedError, TwoFactorError
from familytable.crypto import CryptoError

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Our Family Table — Admin Security",
    description="Two-factor enrollment and verification for super admins",
    version=__version__,
)


@app.exception_handler(TwoFactorError)
async def two_factor_error_handler(request: Request, exc: TwoFactorError) -> JSONResponse:
    headers = None
    if isinstance(exc, RateLimitedError):
        headers = {"Retry-After": str(max(1, int(exc.retry_after)))}
    return JSONResponse({"error": exc.message}, status_code=exc.status_code, headers=headers)


@app.exception_handler(CryptoError)
async def crypto_error_handler(request: Request, exc: CryptoError) -> JSONResponse:
    # Never echo details: the envelope or key may be involved
    logger.error("2FA crypto failure on %s: %s", request.url.path, type(exc).__name__)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    if any("action" in err.get("loc", ()) for err in exc.errors()):
        return JSONResponse({"error": "Invalid action"}, status_code=400)
    return JSONResponse({"error": "Invalid request body"}, status_code=400)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("2FA API error on %s", request.url.path)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


# Import and include route modules
from familytable.dashboard.routes import security  # noqa: E402

app.include_router(security.router)
