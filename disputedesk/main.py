from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from disputedesk.api.middleware import AuditMiddleware
from disputedesk.api.v1.router import v1_router
from disputedesk.common.exceptions import ValidationFailedError
from disputedesk.common.logging import setup_logging
from disputedesk.config import settings
from disputedesk.integrations import BookingClient, EscrowClient, NotifierClient


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    yield


app = FastAPI(
    title="DisputeDesk API",
    description="Marketplace dispute resolution engine",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
origins = settings.ALLOWED_ORIGINS.split(",") if settings.ALLOWED_ORIGINS != "*" else ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Error-Code", "X-Retryable", "X-Request-Duration-Ms"],
)
app.add_middleware(AuditMiddleware)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies share the engine's VALIDATION_FAILED contract."""
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_encoder(exc.errors())},
        headers={"X-Error-Code": ValidationFailedError.error_code, "X-Retryable": "false"},
    )


# API routes
app.include_router(v1_router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    collaborators = {
        client.name: await client.health_check()
        for client in (EscrowClient(), BookingClient(), NotifierClient())
    }
    return {
        "status": "healthy" if all(collaborators.values()) else "degraded",
        "service": "disputedesk",
        "version": "1.0.0",
        "env": settings.APP_ENV,
        "collaborators": collaborators,
    }
