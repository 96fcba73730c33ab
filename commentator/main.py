"""
FastAPI Main Application
Commentary engine, viewer streams and optional Telegram control in one process
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging
import asyncio
from typing import AsyncGenerator

from commentator.config import settings
from commentator.domain.errors import ConfigurationError, MarketDataUnavailable
from commentator.realtime.runtime import CommentaryEngine, build_engine
from commentator.telegram.bot import CommentatorTelegramBot
from commentator.utils.logging_redaction import install_redaction_filter

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)
install_redaction_filter()

# Reduce noisy loggers
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("websockets").setLevel(logging.WARNING)
logging.getLogger("apscheduler").setLevel(logging.WARNING)


engine: CommentaryEngine | None = None
telegram_bot: CommentatorTelegramBot | None = None
telegram_task: asyncio.Task | None = None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager
    Handles startup and shutdown of the commentary engine and the bot
    """
    global engine, telegram_bot, telegram_task

    # ===================
    # STARTUP
    # ===================
    logger.info("="*60)
    logger.info("🚀 Starting Sid - Live Commentator")
    logger.info("="*60)

    logger.info("\n⚙️  Step 1/3: Building commentary engine...")
    engine = build_engine(settings)
    app.state.engine = engine
    app.state.control_token = settings.CONTROL_TOKEN
    logger.info("✅ Engine built (persona: %s)", engine.persona.name)

    logger.info("\n🎙️  Step 2/3: Starting commentary...")
    try:
        await engine.start()
    except ConfigurationError as e:
        logger.warning("⏸️  Engine idle: %s (use /api/v1/control/watch)", e)
    except MarketDataUnavailable as e:
        logger.error("❌ Engine not started: %s", e)

    logger.info("\n🤖 Step 3/3: Control surfaces...")
    if settings.TELEGRAM_ENABLED and settings.TELEGRAM_BOT_TOKEN:
        try:
            telegram_bot = CommentatorTelegramBot(
                settings.TELEGRAM_BOT_TOKEN, engine, settings.TELEGRAM_CHAT_ID
            )
            telegram_task = asyncio.create_task(telegram_bot.start_async())
            app.state.telegram_task = telegram_task
            logger.info("✅ Telegram bot task created")
        except Exception as e:
            logger.error(f"❌ Failed to start Telegram bot: {e}")
    else:
        logger.info("📱 Telegram bot disabled")

    logger.info("\n" + "="*60)
    logger.info("🎯 Services:")
    logger.info(f"   ✅ API Server: http://{settings.API_HOST}:{settings.API_PORT}")
    logger.info(f"   ✅ Viewer stream: /events (SSE), /ws/events (WebSocket)")
    logger.info(f"   {'✅' if engine.live else '⏸️ '} Engine: {'live' if engine.live else 'idle'}")
    logger.info(f"   ✅ Telegram: {'Enabled' if telegram_task else 'Disabled'}")
    logger.info("="*60 + "\n")

    yield

    # ===================
    # SHUTDOWN
    # ===================
    logger.info("\n" + "="*60)
    logger.info("🛑 Shutting down Sid...")
    logger.info("="*60)

    if telegram_task and not telegram_task.done():
        logger.info("🤖 Stopping Telegram bot...")
        telegram_task.cancel()
        try:
            await telegram_task
        except asyncio.CancelledError:
            logger.info("✅ Telegram bot stopped gracefully")

    if engine:
        await engine.stop()

    logger.info("👋 Shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Sid - Live Token Commentator",
    description="Autonomous live commentary for a traded token",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "🎙️ Sid - Live Token Commentator",
        "version": "1.0.0",
        "streams": {"sse": "/events", "websocket": "/ws/events"},
        "docs": "/docs"
    }


# Import and include routers
from commentator.api.routes import control, health, viewers

app.include_router(health.router, tags=["Health"])
app.include_router(control.router, prefix="/api/v1", tags=["Control"])
app.include_router(viewers.router, tags=["Viewers"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("commentator.main:app", host=settings.API_HOST, port=settings.API_PORT, reload=settings.DEBUG)
