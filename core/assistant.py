import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Optional, Tuple

import aiohttp

from .backend import BackendUnavailable, CatalogError, PaymentError, SongcastBackend
from .config import Settings
from .copy_suggestion import CopySuggestion, CopySuggestionCodec
from .forum import ForumClient
from .mentions import MentionGate
from .payments import PaymentSigner
from .relay import RelayClient, RelayError, looks_like_intent
from .replies import ReplyBook
from .tokenizer import CoinRecord, FanOut, IdempotencyGuard, TokenizeWorkflow, coin_url
from .tracks import DEFAULT_TRACK_HOSTS, extract_track_refs, parse_track_id

log = logging.getLogger(__name__)


class ConversationKind(str, Enum):
    DIRECT = "direct"
    GROUP = "group"


@dataclass(frozen=True)
class InboundMessage:
    text: str
    sender_id: str
    conversation_id: str
    conversation_kind: ConversationKind

    @property
    def is_group(self) -> bool:
        return self.conversation_kind == ConversationKind.GROUP


SILENT = "silent"
TOKENIZE = "tokenize"
RELAY = "relay"
HELP = "help"


@dataclass(frozen=True)
class Decision:
    branch: str
    mentioned: bool = False
    working_text: str = ""
    track_refs: Tuple[str, ...] = field(default_factory=tuple)
    reaction: Optional[str] = None


def classify_message(
    message: InboundMessage,
    gate: MentionGate,
    *,
    relay_enabled: bool = False,
    hosts: Iterable[str] = DEFAULT_TRACK_HOSTS,
) -> Decision:
    """Decide which branch a message takes. Pure: sends nothing.

    ``reaction`` names the acknowledgment to send first ("mention" or "link").
    """

    text = message.text or ""
    mentioned = gate.is_mentioned(text)
    if message.is_group and not mentioned:
        return Decision(SILENT)

    refs = extract_track_refs(text, hosts)
    intent = relay_enabled and looks_like_intent(text)
    if not message.is_group and not mentioned and not refs and not intent:
        return Decision(SILENT)

    reaction = None
    working = text.strip()
    if mentioned:
        reaction = "mention"
        working = gate.remove_mention(text)
        refs = extract_track_refs(working, hosts)
        intent = relay_enabled and looks_like_intent(working)
    elif refs:
        reaction = "link"

    if refs:
        return Decision(TOKENIZE, mentioned, working, tuple(refs), reaction)
    if relay_enabled and (mentioned or intent) and working:
        return Decision(RELAY, mentioned, working, (), reaction)
    if mentioned:
        return Decision(HELP, mentioned, working, (), reaction)
    return Decision(SILENT)


def classify_error(exc: BaseException, replies: ReplyBook, base_url: str) -> str:
    text = str(exc)
    lowered = text.lower()
    if isinstance(exc, (BackendUnavailable, aiohttp.ClientConnectionError)) or "econnrefused" in lowered:
        return replies.render("error_connectivity", base_url=base_url)
    if "insufficient funds" in lowered:
        return replies.render("error_funds")
    if isinstance(exc, PaymentError) or "payment" in lowered:
        return replies.render("error_payment")
    if isinstance(exc, CatalogError) or "spotify" in lowered or "catalog" in lowered:
        return replies.render("error_catalog")
    return text or replies.render("error_generic")


class Assistant:
    """Routes inbound chat messages to the tokenize, relay or help branches.

    ``conversation`` objects handed to :meth:`handle_message` are transport
    adapters exposing ``send_text(text)``, ``send_reaction(emoji)`` and
    ``send_content(content, codec)`` coroutines.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        backend: Optional[SongcastBackend] = None,
        signer: Optional[PaymentSigner] = None,
        replies: Optional[ReplyBook] = None,
        relay: Optional[RelayClient] = None,
        forum: Optional[ForumClient] = None,
    ):
        self.settings = settings
        self.replies = replies or ReplyBook(
            override_path=Path(settings.replies_path) if settings.replies_path else None
        )
        self.backend = backend or SongcastBackend(settings.base_url, timeout=settings.http_timeout)
        self.signer = signer or PaymentSigner(settings.wallet_key)
        if relay is None and settings.relay_enabled:
            relay = RelayClient(
                settings.bankr_base_url,
                settings.bankr_api_key,
                poll_interval=settings.bankr_poll_interval,
                max_attempts=settings.bankr_max_attempts,
            )
        self.relay = relay
        if forum is None and settings.forum_enabled:
            forum = ForumClient(settings.forum_base_url, settings.forum_api_key, settings.forum_board)
        self.forum = forum
        self.gate = MentionGate(settings.mention_handles)
        self.codec = CopySuggestionCodec()
        self.guard = IdempotencyGuard(self.backend)
        self.workflow = TokenizeWorkflow(self.backend, self.signer, settings)
        self.fanout = FanOut(
            self.backend,
            replies=self.replies,
            site_url=settings.site_url,
            forum=self.forum,
        )

    async def close(self) -> None:
        await self.fanout.wait()
        await self.backend.close()
        if self.relay:
            await self.relay.close()
        if self.forum:
            await self.forum.close()

    async def handle_message(self, message: InboundMessage, conversation: Any) -> Decision:
        log.info(
            "received %s message from %s in %s",
            message.conversation_kind.value,
            message.sender_id,
            message.conversation_id,
        )
        decision = classify_message(
            message,
            self.gate,
            relay_enabled=self.relay is not None,
            hosts=self.settings.track_hosts,
        )
        if decision.branch == SILENT:
            return decision
        if decision.reaction:
            await self._react(conversation, decision.reaction)

        if decision.branch == TOKENIZE:
            for ref in decision.track_refs:
                try:
                    await self._tokenize_one(conversation, ref)
                except Exception as exc:
                    # tracks are handled independently
                    log.exception("handling %s failed: %s", ref, exc)
        elif decision.branch == RELAY:
            await self._relay(conversation, decision.working_text)
        else:
            await conversation.send_text(self.replies.render("help"))
        return decision

    async def _react(self, conversation: Any, kind: str) -> None:
        emoji = self.replies.render(f"reaction_{kind}")
        try:
            await conversation.send_reaction(emoji)
        except Exception as exc:
            log.debug("reaction %s failed: %s", emoji, exc)

    def _coin_values(self, record: CoinRecord) -> dict:
        return {
            "name": record.asset_name,
            "artist": record.artist_name,
            "address": record.asset_address,
            "coin_url": coin_url(self.settings.site_url, record.asset_address),
            "tx_hash": record.transaction_hash,
        }

    async def _tokenize_one(self, conversation: Any, ref: str) -> Optional[CoinRecord]:
        track_id = parse_track_id(ref)
        if not track_id:
            await conversation.send_text(self.replies.render("unparseable", ref=ref))
            return None

        existing = await self.guard.lookup(track_id)
        if existing:
            await conversation.send_text(
                self.replies.render(
                    "already_tokenized",
                    address=existing,
                    coin_url=coin_url(self.settings.site_url, existing),
                )
            )
            return None

        await conversation.send_text(self.replies.render("processing"))
        try:
            record = await self.workflow.run(track_id)
        except Exception as exc:
            log.exception("tokenizing %s failed: %s", ref, exc)
            reason = classify_error(exc, self.replies, self.settings.base_url)
            await conversation.send_text(self.replies.render("error", ref=ref, reason=reason))
            return None

        self.fanout.dispatch(record)
        values = self._coin_values(record)
        await conversation.send_text(self.replies.render("success", **values))
        suggestion = CopySuggestion(
            label=self.replies.render("suggestion_label"),
            text=self.replies.render("suggestion_text", **values),
        )
        try:
            await conversation.send_content(suggestion, self.codec)
        except Exception as exc:
            log.warning("copy suggestion for %s not delivered: %s", record.asset_address, exc)
        return record

    async def _relay(self, conversation: Any, prompt: str) -> None:
        try:
            result = await self.relay.submit_and_await(prompt)
        except (RelayError, aiohttp.ClientError, asyncio.TimeoutError) as exc:
            log.warning("relay request failed: %s", exc)
            await conversation.send_text(self.replies.render("relay_error"))
            return
        if result.status == "completed":
            reply = result.text or self.replies.render("relay_failed", reason="empty response")
        elif result.status == "cancelled":
            reply = self.replies.render("relay_cancelled")
        elif result.status == "timed_out":
            reply = self.replies.render("relay_timeout")
        else:
            reply = self.replies.render("relay_failed", reason=result.text or "unknown error")
        await conversation.send_text(reply)
