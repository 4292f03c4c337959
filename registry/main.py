"""
FastAPI Backend - Main Application Entry Point

Serves the registry pipeline over HTTP:
- Registry build from uploaded extraction exports
- Registry retrieval and export

Run with: uvicorn registry.main:app --reload --port 8000
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from contextlib import asynccontextmanager
import logging
import time

from registry import __version__
from registry.api import registry_builder
from registry.core.name_canonicalizer import NameCanonicalizer

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


# ===== Middleware for Request Logging =====

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log all incoming requests"""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        logger.info(f"📨 Incoming request: {request.method} {request.url.path}")

        try:
            response = await call_next(request)
            process_time = time.time() - start_time
            logger.info(f"✅ Response: {response.status_code} (took {process_time:.3f}s)")
            return response
        except Exception as e:
            logger.error(f"❌ Error processing request: {str(e)}", exc_info=True)
            raise


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager for startup and shutdown events"""
    logger.info("🚀 Starting Database Registry Backend Server")

    conflicts = NameCanonicalizer().find_rule_conflicts()
    if conflicts:
        logger.warning(f"⚠️  Name rule table has {len(conflicts)} ordering conflicts")
    else:
        logger.info("✅ Name rule table is consistent")

    yield

    logger.info("🛑 Shutting down server...")
    registry_builder.registry_storage.clear()


app = FastAPI(
    title="Database Registry API",
    description="Consolidates candidate databases from systematic review extraction exports",
    version=__version__,
    lifespan=lifespan
)

app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def root():
    """Root endpoint - simple health check"""
    return {
        "status": "healthy",
        "service": "Database Registry Backend",
        "version": __version__
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


app.include_router(
    registry_builder.router,
    prefix="/api/registry",
    tags=["Registry"]
)


if __name__ == "__main__":
    import uvicorn

    logger.info("🏃 Running development server directly...")
    uvicorn.run(
        "registry.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
