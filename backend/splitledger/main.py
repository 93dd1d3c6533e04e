"""FastAPI app entrypoint."""
import json
import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from splitledger.config import ALLOWED_ORIGINS, configure_logging
from splitledger.database import engine, Base
from splitledger.errors import InvalidStateError, PreconditionViolation, ValidationError
from splitledger.routers import auth, groups, expenses, settlements

configure_logging()
logger = logging.getLogger("splitledger.http")

Base.metadata.create_all(bind=engine)

REDACTED_FIELDS = {"password", "token"}

app = FastAPI(
    title="SplitLedger API",
    description="Share expenses within a group and work out who pays whom to settle up.",
    version="1.0.0",
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    if request.method in ("POST", "PUT", "PATCH") and logger.isEnabledFor(logging.DEBUG):
        body = await request.body()
        try:
            payload = json.loads(body or b"{}")
        except ValueError:
            payload = None
        if isinstance(payload, dict):
            payload = {k: "[REDACTED]" if k in REDACTED_FIELDS else v for k, v in payload.items()}
        logger.debug("%s %s body=%s", request.method, request.url.path, payload)
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info("%s %s %s %.1fms", request.method, request.url.path, response.status_code, duration_ms)
    return response


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc)
    return _error(400, exc)


@app.exception_handler(InvalidStateError)
async def invalid_state_handler(request: Request, exc: InvalidStateError):
    logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc)
    return _error(409, exc)


@app.exception_handler(PreconditionViolation)
async def precondition_handler(request: Request, exc: PreconditionViolation):
    logger.error("Ledger precondition violated on %s %s: %s", request.method, request.url.path, exc)
    return _error(500, exc)


app.include_router(auth.router, prefix="/api")
app.include_router(groups.router, prefix="/api")
app.include_router(expenses.router, prefix="/api")
app.include_router(settlements.router, prefix="/api")


@app.get("/")
def root():
    return {"message": "SplitLedger API", "docs": "/docs"}
