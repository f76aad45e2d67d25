"""
FastAPI application entry point for the Exam Variants API.

This is the main application file that configures and runs the FastAPI server.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .database import init_db, close_db
from .errors import ExamVariantsError
from .api.v0 import generated_tests as generated_tests_v0
from .api.v0 import grading as grading_v0
from .api.v0 import results as results_v0

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    logger.info("Starting Exam Variants API...")
    await init_db()

    yield

    logger.info("Shutting down Exam Variants API...")
    await close_db()


# Create FastAPI application
app = FastAPI(
    title="Exam Variants API",
    description="""
    Randomized exam variants with printable layouts and scan grading.

    ## Features

    * **Generation**: Build uniquely coded, shuffled variants from a subject's question bank
    * **Printing**: Two-column printable PDFs, answer keys and signed download links
    * **Grading**: Grade digitized answer sheets against the exact printed variant
    * **Results**: Query and correct the result ledger

    ## Endpoints

    All endpoints are under `/api/v0/`
    """,
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ExamVariantsError)
async def domain_error_handler(request: Request, exc: ExamVariantsError):
    """Render domain errors with their mapped status code."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


# Register API routers
app.include_router(generated_tests_v0.router)
app.include_router(grading_v0.router)
app.include_router(results_v0.router)


@app.get("/", tags=["health"])
async def root():
    """Root endpoint - API information."""
    return {
        "name": "Exam Variants API",
        "version": "0.1.0",
        "status": "running",
        "docs": "/docs",
    }


@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint for container orchestration."""
    return {"status": "healthy"}
