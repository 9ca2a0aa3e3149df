import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException

from storefront import config, email_service, stripe_service
from storefront.admin import router as admin_router
from storefront.database import Base, SessionLocal, engine
from storefront.errors import StorefrontError
from storefront.logging_setup import configure_logging
from storefront.routes import router
from storefront.schemas import HealthOut
from storefront.seed import ensure_admin
from storefront.webhooks import router as webhook_router

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        ensure_admin(db)
    finally:
        db.close()
    logger.info(
        "Storefront API ready (env=%s, stripe=%s, email=%s)",
        config.APP_ENV,
        "configured" if stripe_service.is_configured() else "not configured",
        "configured" if email_service.is_configured() else "not configured",
    )
    yield


app = FastAPI(title="Foundation Storefront API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhook_router)
app.include_router(router)
app.include_router(admin_router)


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    ctx_error = (first.get("ctx") or {}).get("error")
    message = str(ctx_error) if ctx_error else first.get("msg", "Invalid request")
    field = ".".join(str(part) for part in first.get("loc", ())[1:])
    if not ctx_error and field:
        message = f"{field}: {message}"
    return JSONResponse(status_code=400, content={"error": message})


@app.get("/api/health", response_model=HealthOut)
def health():
    services = {
        "stripe": "configured" if stripe_service.is_configured() else "not configured",
        "email": "configured" if email_service.is_configured() else "not configured",
    }
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Health check database probe failed")
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "error": "Service unavailable",
            },
        )

    return HealthOut(
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        environment=config.APP_ENV,
        services={"database": "connected", **services},
    )
