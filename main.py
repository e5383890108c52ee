"""
Main FastAPI application entrypoint.
"""
import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from app.api.routes.apple_webhook import router as apple_webhook_router
from app.api.routes.transactions import router as transactions_router
from app.core.config import settings
from app.core.errors import AppError
from app.db.session import create_tables

logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="App Store subscription ledger API",
    version="1.0.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
)

# Set up CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(apple_webhook_router, prefix=settings.API_V1_PREFIX, tags=["webhook"])
app.include_router(transactions_router, prefix=settings.API_V1_PREFIX, tags=["transactions"])


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Render domain errors as {"code", "message"}."""
    logger.warning(f"{request.method} {request.url.path} failed: {exc.code.value} {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.on_event("startup")
async def startup_event():
    """Initialize application on startup."""
    logger.info("Starting Hound Subscription Ledger...")
    create_tables()


@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
