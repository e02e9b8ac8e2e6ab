from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import config
from .coordinator import VoteLedger
from .errors import LedgerError, RateLimited
from .models import ErrorOut
from .observability import configure_logging
from .ratelimit import RateLimiter
from .retry import RetryPolicy
from .routes import router as votes_router
from .store import DocumentStore, build_store

log = structlog.get_logger(__name__)


def validation_message(errors) -> str:
    """'blogId is required' for a missing id or body, else the first pydantic message."""
    for err in errors:
        loc = tuple(err.get("loc", ()))
        if err.get("type") == "missing" and loc in (("body",), ("body", "blogId")):
            return "blogId is required"
    if errors:
        first = errors[0]
        where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        msg = first.get("msg", "Invalid request")
        return f"{where}: {msg}" if where else msg
    return "Invalid request"


def _store_from_config() -> DocumentStore:
    return build_store(
        config.STORE_BACKEND,
        token=config.GITHUB_TOKEN,
        owner=config.GITHUB_OWNER,
        repo=config.GITHUB_REPO,
        branch=config.GITHUB_BRANCH,
        api_url=config.GITHUB_API_URL,
        timeout=config.STORE_TIMEOUT,
        data_dir=config.DATA_DIR,
    )


def create_app(
    store: Optional[DocumentStore] = None,
    limiter: Optional[RateLimiter] = None,
    policy: Optional[RetryPolicy] = None,
) -> FastAPI:
    """Build the service; tests pass their own store/limiter/policy."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(config.LOG_LEVEL, config.LOG_FORMAT)
        doc_store = store or _store_from_config()
        app.state.identity_salt = config.IDENTITY_SALT
        app.state.limiter = limiter or RateLimiter(
            capacity=config.MAX_VOTES_PER_WINDOW,
            window=config.RATE_LIMIT_WINDOW,
        )
        app.state.ledger = VoteLedger(
            doc_store,
            aggregate_path=config.DATA_PATH,
            ledger_path=config.VOTES_PATH,
            policy=policy
            or RetryPolicy(
                max_attempts=config.MAX_RETRIES,
                backoff=config.RETRY_BACKOFF,
                refresh_delay=config.CONFLICT_REFRESH_DELAY,
            ),
        )
        log.info("service_started", backend=type(doc_store).__name__)
        yield
        await doc_store.aclose()

    app = FastAPI(title="Vote Ledger", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    app.include_router(votes_router)

    @app.exception_handler(LedgerError)
    async def ledger_error(request: Request, exc: LedgerError):
        body = ErrorOut(error=exc.message, code=exc.code)
        headers = {}
        if isinstance(exc, RateLimited):
            body.retryAfter = exc.retry_after
            headers["Retry-After"] = str(exc.retry_after)
        elif exc.code == "already_voted":
            body.alreadyVoted = True
        elif exc.code == "not_voted":
            body.notVoted = True
        if exc.status_code >= 500:
            log.error("request_failed", path=request.url.path, code=exc.code, error=exc.message)
        return JSONResponse(body.model_dump(exclude_none=True), status_code=exc.status_code, headers=headers)

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError):
        body = ErrorOut(error=validation_message(exc.errors()), code="invalid_request")
        return JSONResponse(body.model_dump(exclude_none=True), status_code=400)

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        log.exception("request_crashed", path=request.url.path)
        body = ErrorOut(error="Failed to process request", code="internal_error")
        return JSONResponse(body.model_dump(exclude_none=True), status_code=500)

    @app.get("/health")
    def health():
        return {"ok": True}

    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run("voteledger.main:app", host=config.HOST, port=config.PORT, log_level="info")


if __name__ == "__main__":
    run()
