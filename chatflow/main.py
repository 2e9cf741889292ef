"""FastAPI main application."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from .config import settings
from .services.chat_session import ChatSession
from .utils.logger import init_app_logger
from .api.v1 import session


# Initialize logger
logger = init_app_logger(settings)

# Global chat session instance
chat_session_instance: ChatSession = None


def _mask(secret: str) -> str:
    return secret[:8] + "..." + secret[-4:] if len(secret) > 12 else "***"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.

    Args:
        app: FastAPI application instance
    """
    # Startup
    logger.info("=" * 70)
    logger.info("Starting Chatflow Session Gateway...")
    logger.info("=" * 70)

    logger.info("")
    logger.info("📡 Server Configuration:")
    logger.info(f"  Host: {settings.host}")
    logger.info(f"  Port: {settings.port}")
    logger.info(f"  Debug: {settings.debug}")
    logger.info(f"  Log Level: {settings.log_level}")
    logger.info(f"  Log File: {settings.log_file}")

    logger.info("")
    logger.info("🤖 Workflow Service:")
    logger.info(f"  API Base: {settings.workflow_api_base}")
    logger.info(f"  API Key: {_mask(settings.workflow_api_key) if settings.workflow_api_key else 'Not set'}")
    logger.info(f"  Streaming: {settings.enable_streaming}")
    logger.info(f"  Retry Budget: {settings.get_retry_budget()}")
    logger.info(f"  Timeouts: {settings.request_timeout}s / {settings.workflow_timeout}s (workflow)")

    logger.info("")
    logger.info("💾 Storage:")
    logger.info(f"  Session State: {settings.state_db_path}")
    logger.info(f"  History Backend: {settings.history_backend}")
    logger.info(f"  Billing Endpoint: {settings.billing_endpoint or 'Not set (logging only)'}")

    global chat_session_instance
    chat_session_instance = ChatSession.from_settings(settings)
    resolved = chat_session_instance.start()

    # Set chat session in API modules
    session.chat_session = chat_session_instance

    logger.info("")
    logger.info("=" * 70)
    logger.info(f"✅ Session ready for participant {resolved.participant_id}")
    logger.info(f"📍 Access at: http://{settings.host}:{settings.port}")
    logger.info(f"📚 API Docs: http://{settings.host}:{settings.port}/docs")
    logger.info("=" * 70)

    yield

    # Shutdown
    logger.info("")
    logger.info("Shutting down Chatflow Session Gateway...")
    if chat_session_instance:
        await chat_session_instance.close()
    logger.info("✅ Chatflow Session Gateway shut down successfully")


# Create FastAPI application
app = FastAPI(
    title="Chatflow Session Gateway",
    description="Session controller for multi-stage workflow chat services",
    version="1.0.0",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(session.router)


@app.get("/health")
async def health():
    """
    Simple health check endpoint.

    Returns:
        Health status
    """
    return {
        "status": "healthy",
        "service": "Chatflow Session Gateway"
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "chatflow.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
