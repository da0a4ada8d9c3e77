"""Marketplace FastAPI application.

Processes commands synchronously over HTTP. Every request runs inside the
marketplace domain context.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# PROTEAN_ENV selects the config overlay from domain.toml:
#   - default/"test" → in-memory stores, sync event processing
#   - "production"   → PostgreSQL, async event processing (see server.py)
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from marketplace.domain import marketplace  # noqa: E402
from marketplace.utils.logging import bind_request_context, clear_request_context

marketplace.init()


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Marketplace API",
    description="Clothing rental and purchase marketplace: checkout, orders, payments, violations, payouts",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the marketplace domain context and bind request ids for logging."""
    clear_request_context()
    bind_request_context(
        request_id=request.headers.get("x-request-id") or uuid4().hex,
        actor_id=request.headers.get("x-actor-id"),
    )
    with marketplace.domain_context():
        return await call_next(request)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from marketplace.api import register_error_handlers, routers  # noqa: E402

for router in routers:
    app.include_router(router)

register_error_handlers(app)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(content={"status": "ok", "domain": marketplace.name})
