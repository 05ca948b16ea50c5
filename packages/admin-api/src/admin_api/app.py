"""FastAPI application -- entry point for the feature flag API."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from admin_api.deps import close_flag_service
from admin_api.routes import feature_flags
from financbase.flags.errors import (
    EvaluationUnavailable,
    FlagAlreadyExistsError,
    FlagNotFoundError,
    InvalidRuleError,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_flag_service(app)


app = FastAPI(
    lifespan=lifespan,
    title="Financbase Feature Flags API",
    version="0.1.0",
    description="Feature flag management and evaluation for the Financbase dashboard.",
)

# CORS -- allow the local dev frontends
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(feature_flags.router)


# Every error body has the same shape: {"error": "<message>"}


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "details": jsonable_errors(exc)},
    )


@app.exception_handler(FlagNotFoundError)
async def flag_not_found(request: Request, exc: FlagNotFoundError):
    return JSONResponse(status_code=404, content={"error": str(exc)})


@app.exception_handler(FlagAlreadyExistsError)
async def flag_exists(request: Request, exc: FlagAlreadyExistsError):
    return JSONResponse(status_code=409, content={"error": str(exc)})


@app.exception_handler(InvalidRuleError)
async def invalid_rule(request: Request, exc: InvalidRuleError):
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(EvaluationUnavailable)
async def store_unavailable(request: Request, exc: EvaluationUnavailable):
    logger.error("Flag store unavailable: %s", exc)
    return JSONResponse(status_code=503, content={"error": "Feature flag store unavailable"})


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]


@app.get("/health")
async def health():
    """Unauthenticated health-check endpoint."""
    return {"status": "ok"}
