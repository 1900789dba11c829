"""
Proposal Workflow: status transitions, audit trail and notifications for event proposals
"""
import logging
import traceback
from contextlib import asynccontextmanager

from starlette.requests import Request

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from proposal_workflow.config import settings
from proposal_workflow.api.router import api_router
from proposal_workflow.database import engine

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle"""
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logger.info(f"{settings.APP_NAME} is starting...")
    yield
    await engine.dispose()
    logger.info(f"{settings.APP_NAME} is shutting down...")


app = FastAPI(
    title=settings.APP_NAME,
    description="""
    ## Event proposal workflow

    - **Proposals**: drafts, submission, reviewer decisions (approve, deny, request revision)
    - **Audit trail**: every action on a proposal, with per-action stats and export
    - **Notifications**: per-user inbox with priorities, read/archive state and expiry
    """,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(
        "Validation error on %s %s\nBody received: %s\nErrors: %s",
        request.method,
        request.url.path,
        exc.body,
        exc.errors(),
    )
    return JSONResponse(
        status_code=422,
        content={"detail": exc.errors()},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception on %s %s: %s\n%s",
        request.method,
        request.url.path,
        exc,
        traceback.format_exc(),
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "An internal error occurred. Please try again later."},
    )


# Health check
@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "proposal-workflow", "version": "1.0.0"}


# Include API routes
app.include_router(api_router)
