"""Telegram front-end for the finance bot."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Message, Update
from telegram.constants import ChatAction, ParseMode
from telegram.ext import (
    Application,
    ApplicationBuilder,
    ApplicationHandlerStop,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    TypeHandler,
    filters,
)

from .config import Settings, get_settings
from .db import create_db_engine, create_session_factory, init_db
from .errors import FinanceBotError
from .llm.extraction import StructuredExtractor
from .llm.gateway import ModelGateway
from .llm.media import MediaAnalyzer, format_document_reply, format_voice_reply
from .llm.orchestrator import IntentOrchestrator
from .llm.prompts import LangfusePromptStore, PromptManager
from .router import MessageRouter
from .schemas import BotReply, Choice
from .services.analytics import AnalyticsService, QueryExecutor, QueryGenerator, QuerySafetyGate
from .services.archive import ArchiveFlow
from .services.expense_tracker import ExpenseTracker
from .services.reports import ReportService
from .services.transaction_flow import COMPLETE_EXPENSE_PREFIX, TransactionFlow, TransactionParser

logger = logging.getLogger(__name__)

PENDING_TX_KEY = "pending_transaction"
ROUTER_KEY = "router"
MEDIA_KEY = "media"
SETTINGS_KEY = "settings"

GENERIC_ERROR = "Sorry, I encountered an error processing your message."

WELCOME_TEXT = "Welcome! I am your finance tracker bot. Send me a message and I will process it."
HELP_TEXT = (
    "Available commands:\n"
    "/start - Start the bot\n"
    "/help - Show this help message\n"
    "/balance - View account balances\n"
    "/recent - View recent transactions\n"
    "/report - View monthly expense report\n\n"
    "You can also:\n"
    '• Send expense messages (e.g., "Spent $50 on groceries")\n'
    '• Send income messages (e.g., "Got my salary, 2450 EUR")\n'
    "• Ask questions (e.g., \"Which account did I spend the most from this month?\")\n"
    '• Archive a transaction (e.g., "Delete the coffee expense")\n'
    "• Send images, voice messages, audio, or documents for AI analysis"
)


@dataclass(slots=True)
class BotComponents:
    router: MessageRouter
    media: MediaAnalyzer


def build_components(settings: Settings) -> BotComponents:
    """Construct every collaborator once; handlers reach them through ``bot_data``."""
    engine = create_db_engine(settings.database_url)
    init_db(engine)
    session_factory = create_session_factory(engine)

    gateway = ModelGateway(settings.openrouter_api_key, settings.model_defaults, settings.openrouter_base_url)
    store = LangfusePromptStore(settings.langfuse_public_key, settings.langfuse_secret_key, settings.langfuse_host)
    prompts = PromptManager(store, ttl_seconds=settings.prompt_cache_ttl_seconds)
    extractor = StructuredExtractor(gateway)
    tracker = ExpenseTracker(session_factory)

    router = MessageRouter(
        orchestrator=IntentOrchestrator(prompts, extractor),
        transactions=TransactionFlow(
            TransactionParser(prompts, extractor),
            tracker,
            confidence_threshold=settings.transaction_confidence_threshold,
            default_credit_card=settings.default_credit_card,
        ),
        analytics=AnalyticsService(
            QueryGenerator(prompts, extractor),
            QuerySafetyGate(prompts, gateway),
            QueryExecutor(session_factory),
        ),
        archive=ArchiveFlow(tracker),
        reports=ReportService(tracker, recent_limit=settings.recent_transactions_limit),
        prompts=prompts,
        gateway=gateway,
    )
    return BotComponents(router=router, media=MediaAnalyzer(gateway, prompts))


def build_keyboard(choices: list[Choice], columns: int = 1) -> InlineKeyboardMarkup | None:
    if not choices:
        return None
    buttons = [InlineKeyboardButton(choice.label, callback_data=choice.callback_data) for choice in choices]
    return InlineKeyboardMarkup([buttons[i:i + columns] for i in range(0, len(buttons), columns)])


def _router(context: ContextTypes.DEFAULT_TYPE) -> MessageRouter:
    return context.bot_data[ROUTER_KEY]


def _media(context: ContextTypes.DEFAULT_TYPE) -> MediaAnalyzer:
    return context.bot_data[MEDIA_KEY]


async def _send_reply(message: Message, reply: BotReply, context: ContextTypes.DEFAULT_TYPE) -> None:
    if reply.pending is not None:
        context.user_data[PENDING_TX_KEY] = reply.pending
    await message.reply_text(
        reply.text,
        reply_markup=build_keyboard(reply.choices, reply.columns),
        parse_mode=ParseMode.MARKDOWN if reply.markdown else None,
    )


async def _run(
    update: Update,
    context: ContextTypes.DEFAULT_TYPE,
    work: Callable[[], BotReply],
    error_text: str = GENERIC_ERROR,
) -> None:
    """Run blocking pipeline work off the event loop and send its reply."""
    await context.bot.send_chat_action(chat_id=update.effective_chat.id, action=ChatAction.TYPING)
    try:
        reply = await asyncio.to_thread(work)
    except FinanceBotError as exc:
        logger.error("Request failed: %s", exc)
        reply = BotReply(text=f"❌ {exc}")
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unexpected error while handling update: %s", exc)
        reply = BotReply(text=error_text)
    await _send_reply(update.message, reply, context)


async def _download(context: ContextTypes.DEFAULT_TYPE, file_id: str) -> bytes:
    file = await context.bot.get_file(file_id)
    return bytes(await file.download_as_bytearray())


async def authorize(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    settings: Settings = context.bot_data[SETTINGS_KEY]
    allowed = settings.authorized_user_id
    user = update.effective_user
    if allowed is None or (user is not None and user.id == allowed):
        return

    logger.warning(
        "Unauthorized access attempt from user %s (%s)",
        user.id if user else "unknown",
        (user.username if user else None) or "unknown",
    )
    chat = update.effective_chat
    if chat is not None:
        if settings.unauthorized_animation:
            await context.bot.send_animation(chat_id=chat.id, animation=settings.unauthorized_animation)
        else:
            await context.bot.send_message(chat_id=chat.id, text="You are not allowed to use this bot.")
    raise ApplicationHandlerStop


async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.message.reply_text(WELCOME_TEXT)


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.message.reply_text(HELP_TEXT)


async def balance_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _run(update, context, _router(context).balances, "❌ Error retrieving balances")


async def recent_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _run(update, context, _router(context).recent_transactions, "❌ Error retrieving transactions")


async def report_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _run(update, context, _router(context).monthly_report, "❌ Error generating monthly report")


async def handle_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    text = update.message.text or ""
    user = update.effective_user
    logger.info("Message from %s (%s): %r", user.username if user else "unknown", user.id if user else "?", text)
    router = _router(context)
    await _run(update, context, lambda: router.route(text))


async def handle_photo(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    photo = update.message.photo[-1]
    caption = update.message.caption or None
    media = _media(context)
    try:
        data = await _download(context, photo.file_id)
    except Exception as exc:  # noqa: BLE001
        logger.error("Failed to download photo: %s", exc)
        await update.message.reply_text("Sorry, I encountered an error processing your image.")
        return
    await _run(
        update,
        context,
        lambda: BotReply(text=media.describe_photo(data, caption)),
        "Sorry, I encountered an error processing your image.",
    )


async def handle_voice(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    media = _media(context)
    try:
        data = await _download(context, update.message.voice.file_id)
    except Exception as exc:  # noqa: BLE001
        logger.error("Failed to download voice message: %s", exc)
        await update.message.reply_text("Sorry, I encountered an error processing your voice message.")
        return
    await _run(
        update,
        context,
        lambda: BotReply(text=format_voice_reply(media.analyze_voice(data, "voice.ogg"))),
        "Sorry, I encountered an error processing your voice message.",
    )


async def handle_audio(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    audio = update.message.audio
    filename = audio.file_name or "audio.mp3"
    media = _media(context)
    try:
        data = await _download(context, audio.file_id)
    except Exception as exc:  # noqa: BLE001
        logger.error("Failed to download audio file: %s", exc)
        await update.message.reply_text("Sorry, I encountered an error processing your audio file.")
        return
    await _run(
        update,
        context,
        lambda: BotReply(text=f"🎵 Transcription:\n{media.transcribe(data, filename)}"),
        "Sorry, I encountered an error processing your audio file.",
    )


async def handle_document(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    document = update.message.document
    logger.info("Received document %s (%s)", document.file_name, document.mime_type)
    media = _media(context)
    try:
        data = await _download(context, document.file_id)
    except Exception as exc:  # noqa: BLE001
        logger.error("Failed to download document: %s", exc)
        await update.message.reply_text("Sorry, I encountered an error processing your document.")
        return
    await _run(
        update,
        context,
        lambda: BotReply(text=format_document_reply(media.analyze_document(data, document.mime_type))),
        "Sorry, I encountered an error processing your document.",
    )


async def handle_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    data = query.data or ""
    router = _router(context)
    pending = context.user_data.get(PENDING_TX_KEY)

    try:
        reply = await asyncio.to_thread(router.handle_callback, data, pending)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Error handling callback %s: %s", data, exc)
        reply = BotReply(text="❌ Sorry, something went wrong with that action.", pending=pending)

    # The pending expense is dropped only once a reply no longer carries it.
    if data.startswith(COMPLETE_EXPENSE_PREFIX):
        if reply.pending is not None:
            context.user_data[PENDING_TX_KEY] = reply.pending
        else:
            context.user_data.pop(PENDING_TX_KEY, None)
    await query.edit_message_text(reply.text, reply_markup=build_keyboard(reply.choices, reply.columns))


async def _on_error(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    logger.error("Bot error: %s", context.error)


def build_application(settings: Settings | None = None, components: BotComponents | None = None) -> Application:
    settings = settings or get_settings()
    if not settings.telegram_bot_token:
        raise RuntimeError("TELEGRAM_BOT_TOKEN is missing from configuration.")
    components = components or build_components(settings)

    application = ApplicationBuilder().token(settings.telegram_bot_token).build()
    application.bot_data.update(
        {SETTINGS_KEY: settings, ROUTER_KEY: components.router, MEDIA_KEY: components.media}
    )
    if settings.authorized_user_id is not None:
        logger.info("Bot restricted to user ID: %s", settings.authorized_user_id)
    else:
        logger.info("Bot is open to all users (USER_ID not set)")

    handlers: list[Any] = [
        CommandHandler("start", start_command),
        CommandHandler("help", help_command),
        CommandHandler("balance", balance_command),
        CommandHandler("recent", recent_command),
        CommandHandler("report", report_command),
        CallbackQueryHandler(handle_callback),
        MessageHandler(filters.PHOTO, handle_photo),
        MessageHandler(filters.VOICE, handle_voice),
        MessageHandler(filters.AUDIO, handle_audio),
        MessageHandler(filters.Document.ALL, handle_document),
        MessageHandler(filters.TEXT & ~filters.COMMAND, handle_text),
    ]
    application.add_handler(TypeHandler(Update, authorize), group=-1)
    application.add_handlers(handlers)
    application.add_error_handler(_on_error)
    return application


def main() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    if not settings.telegram_bot_token:
        raise SystemExit("Please set TELEGRAM_BOT_TOKEN in the environment to run the bot.")
    application = build_application(settings)
    logger.info("Starting Telegram bot...")
    application.run_polling(drop_pending_updates=True)


if __name__ == "__main__":
    main()
