from fastapi import FastAPI, Request
from loguru import logger

from app.calendar.api import router as calendar_router
from app.config.settings import settings
from app.core.logger import setup_logger
from app.db.models import Base
from app.db.session import get_engine, test_database_connection

# Initialize logger
setup_logger(level=settings.log_level, log_file=settings.log_file)

# Fail fast when the database is unreachable
test_database_connection()

# Ensure database tables exist
logger.info("Ensuring database tables exist")
Base.metadata.create_all(bind=get_engine())
logger.info("Database tables verified")

app = FastAPI(title="Week Timeline")

app.include_router(calendar_router)

logger.info("FastAPI application initialized")


@app.get("/health")
def health():
    return {"status": "ok"}


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all HTTP requests."""
    logger.debug(f"Request: {request.method} {request.url.path}")
    response = await call_next(request)
    logger.debug(f"Response: {response.status_code} for {request.method} {request.url.path}")
    return response
