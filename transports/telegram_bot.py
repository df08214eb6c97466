import asyncio
import logging

from telegram import (
    CopyTextButton,
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    Message,
    ReactionTypeEmoji,
    Update,
)
from telegram.constants import ChatType
from telegram.ext import Application, ContextTypes, MessageHandler, filters

from core.assistant import Assistant, ConversationKind, InboundMessage
from core.copy_suggestion import COPY_SUGGESTION_TYPE

log = logging.getLogger(__name__)

# Telegram caps copy_text payloads at 256 characters.
COPY_TEXT_LIMIT = 256


class TelegramConversation:
    def __init__(self, message: Message):
        self.message = message

    async def send_text(self, text: str) -> None:
        await self.message.reply_text(text)

    async def send_reaction(self, emoji: str) -> None:
        await self.message.set_reaction(ReactionTypeEmoji(emoji))

    async def send_content(self, content, codec) -> None:
        fallback = codec.fallback(content)
        if not COPY_SUGGESTION_TYPE.same_as(codec.content_type) or len(content.text) > COPY_TEXT_LIMIT:
            await self.message.reply_text(fallback)
            return
        markup = InlineKeyboardMarkup(
            [[InlineKeyboardButton(content.label, copy_text=CopyTextButton(content.text))]]
        )
        await self.message.reply_text(fallback, reply_markup=markup)


class TelegramTransport:
    def __init__(self, assistant: Assistant, token: str):
        self.assistant = assistant
        self.application = Application.builder().token(token).concurrent_updates(True).build()
        self._register_handlers()
        self._stop_event = asyncio.Event()

    def _register_handlers(self):
        self.application.add_handler(
            MessageHandler(filters.TEXT & (~filters.COMMAND), self.handle_message)
        )

    async def handle_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        user = update.effective_user
        chat = update.effective_chat
        if not message or not message.text or not user or user.is_bot or not chat:
            return
        kind = ConversationKind.DIRECT if chat.type == ChatType.PRIVATE else ConversationKind.GROUP
        inbound = InboundMessage(
            text=message.text,
            sender_id=str(user.id),
            conversation_id=str(chat.id),
            conversation_kind=kind,
        )
        conversation = TelegramConversation(message)
        try:
            await self.assistant.handle_message(inbound, conversation)
        except Exception as exc:
            log.exception("Assistant error: %s", exc)
            await message.reply_text(self.assistant.replies.render("unavailable"))

    async def start(self):
        await self.application.initialize()
        await self.application.start()
        await self.application.updater.start_polling()
        log.info("Telegram transport polling")
        try:
            await self._stop_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self.application.updater.stop()
            await self.application.stop()
            await self.application.shutdown()

    async def stop(self):
        self._stop_event.set()
