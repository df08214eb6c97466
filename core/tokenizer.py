"""Track-to-coin workflow: idempotency lookup, mint with payment retry, fan-out."""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Set

import aiohttp

from .backend import (
    BackendError,
    MintError,
    PaymentError,
    SongcastBackend,
    error_text,
)
from .config import Settings
from .forum import ForumClient
from .payments import PaymentSigner
from .replies import ReplyBook

log = logging.getLogger(__name__)

BASE_CHAIN_ID = 8453
PLATFORM_REFERRER = "0x32C8ACD3118766CBE5c3E45a44BCEDde953EF627"
COIN_CURRENCY = "ZORA"
DEFAULT_COVER_IMAGE = "https://songcast.xyz/images/default-cover.jpg"
SYMBOL_MAX_LENGTH = 11
FALLBACK_SYMBOL = "SPOTIFY"
FALLBACK_ARTIST = "Spotify Artist"
FALLBACK_TRACK = "Spotify Track"


@dataclass(frozen=True)
class CoinRecord:
    identifier: str
    asset_address: str
    transaction_hash: str
    asset_name: str
    artist_name: str


def derive_symbol(name: Optional[str]) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9]", "", name or "")
    return cleaned[:SYMBOL_MAX_LENGTH].upper() or FALLBACK_SYMBOL


def _first_artist(track: dict) -> dict:
    artists = track.get("artists") or []
    if artists and isinstance(artists[0], dict):
        return artists[0]
    return {}


def _album_image(track: dict) -> str:
    album = track.get("album") or {}
    for image in (album.get("images") or [])[:3]:
        if isinstance(image, dict) and image.get("url"):
            return str(image["url"])
    return ""


def build_metadata(track: dict) -> dict:
    artist = _first_artist(track)
    artist_name = artist.get("name") or FALLBACK_ARTIST
    name = track.get("name") or FALLBACK_TRACK
    external = track.get("external_urls") or {}
    spotify_url = external.get("spotify") or track.get("external_url") or ""
    album = track.get("album") or {}

    metadata = {
        "name": name,
        "description": (
            f"{name} by {artist_name} (imported from Spotify to @songcast). "
            f"Listen on Spotify: {spotify_url}"
        ),
        "artist": artist_name,
        "properties": {
            "spotify_track_id": track.get("id") or "",
            "spotify_artist_id": artist.get("id") or "",
            "spotify_artist_name": artist_name,
            "spotify_album": album.get("name") or "",
            "spotify_external_url": spotify_url,
        },
        "attributes": [
            {"trait_type": "Artist", "value": artist_name},
            {"trait_type": "Genre", "value": "Spotify"},
            {"trait_type": "Type", "value": "Music"},
            {"trait_type": "Source", "value": "Spotify"},
        ],
        "image": _album_image(track) or DEFAULT_COVER_IMAGE,
    }
    if spotify_url:
        metadata["external_url"] = spotify_url
    if track.get("preview_url"):
        metadata["animation_url"] = track["preview_url"]
    return metadata


class IdempotencyGuard:
    """Answers "was this track already minted?" from the registry, then the mapping.

    Lookups fail open: a transport error counts as a miss. Nothing here locks,
    so two concurrent messages for the same track can both get a miss.
    """

    def __init__(self, backend: SongcastBackend) -> None:
        self.backend = backend

    async def lookup(self, track_id: str) -> Optional[str]:
        for label, source in (
            ("registry", self.backend.lookup_known),
            ("mapping", self.backend.lookup_mapping),
        ):
            try:
                address = await source(track_id)
            except (BackendError, aiohttp.ClientError) as exc:
                log.warning("%s lookup for %s failed, treating as miss: %s", label, track_id, exc)
                continue
            if address:
                log.info("track %s already tokenized at %s (%s)", track_id, address, label)
                return address
        return None


class TokenizeWorkflow:
    def __init__(self, backend: SongcastBackend, signer: PaymentSigner, settings: Settings) -> None:
        self.backend = backend
        self.signer = signer
        self.settings = settings

    def coin_request(self, name: str, uri: str) -> dict:
        return {
            "name": name,
            "symbol": derive_symbol(name),
            "uri": uri,
            "chainId": BASE_CHAIN_ID,
            "payoutRecipient": self.settings.payout_recipient,
            "platformReferrer": PLATFORM_REFERRER,
            "currency": COIN_CURRENCY,
        }

    async def _mint(self, coin_data: dict) -> dict:
        status, body = await self.backend.create_coin(coin_data)
        if status == 402:
            log.info("mint for %s requires payment, signing challenge", coin_data["symbol"])
            signature = self.signer.authorize(body)
            status, body = await self.backend.create_coin(coin_data, payment_signature=signature)
            if status == 402:
                raise PaymentError(
                    f"payment rejected by mint backend: {error_text(body, 'payment required')}"
                )
        if status >= 300 or not isinstance(body, dict):
            raise MintError(error_text(body, "Failed to create coin"))
        return body

    async def run(self, track_id: str) -> CoinRecord:
        track = await self.backend.fetch_track(track_id)
        metadata = build_metadata(track)
        log.info("fetched %s: %s by %s", track_id, metadata["name"], metadata["artist"])

        uri = await self.backend.pin_json(metadata)
        log.info("pinned metadata for %s at %s", track_id, uri)

        result = await self._mint(self.coin_request(metadata["name"], uri))
        address = result.get("assetAddress") or result.get("coinAddress")
        if not address:
            raise MintError("mint response missing asset address")
        record = CoinRecord(
            identifier=track_id,
            asset_address=str(address),
            transaction_hash=str(result.get("transactionHash") or ""),
            asset_name=metadata["name"],
            artist_name=metadata["artist"],
        )
        log.info("minted %s for %s (tx %s)", record.asset_address, track_id, record.transaction_hash)
        return record


def coin_url(site_url: str, address: str) -> str:
    return f"{site_url.rstrip('/')}/coins/{address}"


class FanOut:
    """Best-effort follow-ups after a mint. Each runs detached; failures are logged only."""

    def __init__(
        self,
        backend: SongcastBackend,
        *,
        replies: ReplyBook,
        site_url: str,
        forum: Optional[ForumClient] = None,
    ) -> None:
        self.backend = backend
        self.replies = replies
        self.site_url = site_url
        self.forum = forum
        self._tasks: Set[asyncio.Task] = set()

    async def _guarded(self, label: str, call: Callable[[], Awaitable[Any]]) -> None:
        try:
            await call()
        except Exception as exc:
            log.warning("fan-out %s failed: %s", label, exc)
        else:
            log.debug("fan-out %s done", label)

    async def _announce(self, record: CoinRecord) -> None:
        values = {
            "name": record.asset_name,
            "artist": record.artist_name,
            "coin_url": coin_url(self.site_url, record.asset_address),
            "tx_hash": record.transaction_hash,
        }
        await self.forum.post(
            self.replies.render("forum_title", **values),
            self.replies.render("forum_content", **values),
        )

    def dispatch(self, record: CoinRecord) -> List[asyncio.Task]:
        calls = [
            ("known-registry", lambda: self.backend.register_known(record.asset_address)),
            ("points", lambda: self.backend.add_points_asset(record.asset_address)),
            (
                "mapping",
                lambda: self.backend.register_mapping(record.identifier, record.asset_address),
            ),
        ]
        if self.forum is not None:
            calls.append(("forum", lambda: self._announce(record)))
        started = []
        for label, call in calls:
            task = asyncio.create_task(self._guarded(label, call))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            started.append(task)
        return started

    async def wait(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks))
