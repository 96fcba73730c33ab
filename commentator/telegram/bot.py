"""
Telegram Bot - operator control surface
/watch, /status, /say against the running commentary engine
"""

import asyncio
import logging
from typing import Optional

from telegram import Update
from telegram.ext import Application, CommandHandler, ContextTypes

from commentator.domain.errors import ConfigurationError, MarketDataUnavailable
from commentator.domain.models import Emotion
from commentator.realtime.runtime import CommentaryEngine

logger = logging.getLogger(__name__)


def format_status(status: dict) -> str:
    market = status.get("market") or {}
    lines = [
        f"🎙️ *{'LIVE' if status.get('live') else 'IDLE'}* ${status.get('symbol') or '?'}",
        f"Address: `{status.get('address') or '-'}`",
        f"Feed: {status.get('feed_state')}{' (polling)' if status.get('polling') else ''}",
        f"Queue: {status.get('queue_depth', 0)} | Viewers: {status.get('viewers', 0)}",
    ]
    if market:
        lines.append(
            f"MCap: ${market.get('market_cap', 0) / 1000:.1f}k | "
            f"5m {market.get('change_5m', 0):+.1f}% | 1h {market.get('change_1h', 0):+.1f}%"
        )
    degraded = status.get("degraded") or {}
    if degraded.get("text") or degraded.get("voice"):
        modes = [name for name in ("text", "voice") if degraded.get(name)]
        lines.append(f"⚠️ Degraded: {', '.join(modes)}")
    return "\n".join(lines)


class CommentatorTelegramBot:
    """Operator bot; restricted to one chat when TELEGRAM_CHAT_ID is set"""

    def __init__(self, token: Optional[str], engine: CommentaryEngine, allowed_chat_id: Optional[str] = None):
        if not token:
            raise ValueError("TELEGRAM_BOT_TOKEN not set in environment")
        self.token = token
        self.engine = engine
        self.allowed_chat_id = str(allowed_chat_id) if allowed_chat_id else None
        self.application: Optional[Application] = None

    def _authorized(self, update: Update) -> bool:
        if self.allowed_chat_id is None:
            return True
        chat = update.effective_chat
        return chat is not None and str(chat.id) == self.allowed_chat_id

    async def start_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /start command"""
        if not self._authorized(update):
            return
        msg = (
            "🎙️ *Sid control*\n\n"
            "/watch <address> - switch the watched token\n"
            "/status - engine status\n"
            "/say <text> - make Sid say something"
        )
        await update.message.reply_text(msg, parse_mode="Markdown")

    async def watch_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not self._authorized(update):
            return
        if not context.args:
            await update.message.reply_text("Usage: /watch <token address>")
            return
        address = context.args[0].strip()
        try:
            if self.engine.live:
                await self.engine.retarget(address)
            else:
                await self.engine.start(address)
        except (ConfigurationError, MarketDataUnavailable) as exc:
            await update.message.reply_text(f"❌ {exc}")
            return
        await update.message.reply_text(format_status(self.engine.status()), parse_mode="Markdown")

    async def status_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not self._authorized(update):
            return
        await update.message.reply_text(format_status(self.engine.status()), parse_mode="Markdown")

    async def say_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not self._authorized(update):
            return
        text = " ".join(context.args or ()).strip()
        if not text:
            await update.message.reply_text("Usage: /say <text>")
            return
        if not self.engine.say(text[:500], Emotion.NEUTRAL):
            await update.message.reply_text("⚠️ Not queued: engine idle or speech backlog full")
            return
        await update.message.reply_text(f"🗣️ Queued ({self.engine.speech_queue.size()} pending)")

    async def error_handler(self, update: object, context: ContextTypes.DEFAULT_TYPE):
        logger.warning("Telegram handler error: %s", context.error)

    def build_application(self) -> Application:
        application = Application.builder().token(self.token).build()
        application.add_handler(CommandHandler("start", self.start_command))
        application.add_handler(CommandHandler("watch", self.watch_command))
        application.add_handler(CommandHandler("status", self.status_command))
        application.add_handler(CommandHandler("say", self.say_command))
        application.add_error_handler(self.error_handler)
        return application

    async def start_async(self):
        """Run polling inside the current event loop until cancelled"""
        self.application = self.build_application()
        await self.application.initialize()
        await self.application.start()
        await self.application.updater.start_polling(allowed_updates=Update.ALL_TYPES)
        logger.info("✅ Telegram bot polling")
        try:
            await asyncio.Event().wait()
        finally:
            await self.application.updater.stop()
            await self.application.stop()
            await self.application.shutdown()
