"""
Main FastAPI application entry point.
Responsibilities: App setup, router registration, startup/shutdown hooks.
"""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .routes import chat, papers, publications, research
from .db.migrations import run_sql_migrations
from .logging_config import logger

# -------------------------------------------------
# App setup
# -------------------------------------------------

app = FastAPI(title="AcademiaLink AI", version="1.0.0")

# Register routers
app.include_router(papers.router)
app.include_router(chat.router)
app.include_router(research.router)
app.include_router(publications.router)


@app.on_event("startup")
async def startup_event():
    """Initialize database on startup."""
    logger.info("Running database migrations...")
    run_sql_migrations()
    logger.info("Database migrations completed")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    logger.info("Application shutting down")


@app.get("/api/health")
async def health():
    return {"ok": True}


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled error", path=request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})
