import logging
from typing import Optional

import discord
from discord.ext import commands

from core.assistant import Assistant, ConversationKind, InboundMessage

log = logging.getLogger(__name__)


def normalize_bot_mentions(content: str, bot_user: Optional[discord.abc.User], handle: str) -> str:
    """Rewrite Discord's ``<@id>`` mention markup into the ``@handle`` form the gate expects."""

    if not bot_user or not content:
        return content
    for variant in (f"<@{bot_user.id}>", f"<@!{bot_user.id}>"):
        content = content.replace(variant, f"@{handle}")
    return content


class DiscordConversation:
    def __init__(self, message: discord.Message):
        self.message = message
        self.is_dm = message.guild is None

    async def send_text(self, text: str) -> None:
        await self.message.channel.send(text, reference=self.message if not self.is_dm else None)

    async def send_reaction(self, emoji: str) -> None:
        await self.message.add_reaction(emoji)

    async def send_content(self, content, codec) -> None:
        # no client-side copy buttons on Discord; the fallback is the copy text itself
        await self.message.channel.send(codec.fallback(content))


class DiscordTransport(commands.Bot):
    def __init__(self, assistant: Assistant, *, guild_id: Optional[int] = None):
        intents = discord.Intents.default()
        intents.message_content = True
        super().__init__(command_prefix="!", intents=intents)
        self.assistant = assistant
        self.guild_id = guild_id
        self._handle = assistant.settings.mention_handles[0]

    async def on_ready(self):
        log.info("Discord bot ready as %s", self.user)

    async def on_message(self, message: discord.Message):
        if not message or not message.content:
            return
        if message.author.bot:
            return
        if self.guild_id and message.guild and message.guild.id != self.guild_id:
            return
        is_dm = message.guild is None
        inbound = InboundMessage(
            text=normalize_bot_mentions(message.content, self.user, self._handle),
            sender_id=str(message.author.id),
            conversation_id=str(message.channel.id),
            conversation_kind=ConversationKind.DIRECT if is_dm else ConversationKind.GROUP,
        )
        try:
            await self.assistant.handle_message(inbound, DiscordConversation(message))
        except Exception as exc:
            log.exception("Assistant error: %s", exc)
            await message.channel.send(self.assistant.replies.render("unavailable"))


async def run_discord_bot(assistant: Assistant, token: str, guild_id: Optional[int] = None):
    bot = DiscordTransport(assistant, guild_id=guild_id)
    try:
        await bot.start(token)
    finally:
        await bot.close()
