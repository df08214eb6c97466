import logging
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

from eth_account import Account
from web3 import Web3

from .tracks import DEFAULT_TRACK_HOSTS

log = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:3000"
DEFAULT_SITE_URL = "https://songcast.xyz"
DEFAULT_MENTION_HANDLES = ("song.base.eth", "songcast", "song")
DEFAULT_BANKR_URL = "https://api.bankr.bot"
DEFAULT_FORUM_URL = "https://www.moltbook.com/api/v1"
DEFAULT_FORUM_BOARD = "clawrinet"
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class ConfigError(RuntimeError):
    """Raised when required settings are missing or malformed."""


def _split_csv(raw: Optional[str]) -> Tuple[str, ...]:
    if not raw:
        return ()
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _float(environ: Mapping[str, str], key: str, default: float) -> float:
    raw = (environ.get(key) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from exc


def _int(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = (environ.get(key) or "").strip()
    if not raw:
        return default
    if not raw.isdigit():
        raise ConfigError(f"{key} must be a positive integer, got {raw!r}")
    return int(raw)


@dataclass(frozen=True)
class Settings:
    wallet_key: str
    telegram_token: Optional[str] = None
    discord_token: Optional[str] = None
    discord_guild_id: Optional[int] = None
    base_url: str = DEFAULT_BASE_URL
    site_url: str = DEFAULT_SITE_URL
    escrow_address: Optional[str] = None
    mention_handles: Tuple[str, ...] = DEFAULT_MENTION_HANDLES
    track_hosts: Tuple[str, ...] = DEFAULT_TRACK_HOSTS
    bankr_api_key: Optional[str] = None
    bankr_base_url: str = DEFAULT_BANKR_URL
    bankr_poll_interval: float = 2.0
    bankr_max_attempts: int = 30
    forum_api_key: Optional[str] = None
    forum_base_url: str = DEFAULT_FORUM_URL
    forum_board: str = DEFAULT_FORUM_BOARD
    replies_path: Optional[str] = None
    http_timeout: float = 60.0

    @property
    def payout_recipient(self) -> str:
        return self.escrow_address or ZERO_ADDRESS

    @property
    def relay_enabled(self) -> bool:
        return bool(self.bankr_api_key)

    @property
    def forum_enabled(self) -> bool:
        return bool(self.forum_api_key)

    @property
    def is_local_backend(self) -> bool:
        return "localhost" in self.base_url or "127.0.0.1" in self.base_url

    @classmethod
    def from_env(cls, environ: Mapping[str, str], *, require_transport: bool = True) -> "Settings":
        """Build settings from an environment mapping.

        Raises ``ConfigError`` for anything the agent cannot start without.
        """

        wallet_key = (environ.get("AGENT_WALLET_KEY") or "").strip()
        if not wallet_key:
            raise ConfigError("AGENT_WALLET_KEY environment variable is required")
        try:
            Account.from_key(wallet_key)
        except Exception as exc:
            raise ConfigError(
                "AGENT_WALLET_KEY must be a 32-byte hex private key (64 hex characters)"
            ) from exc

        telegram_token = (environ.get("TELEGRAM_TOKEN") or "").strip() or None
        discord_token = (environ.get("DISCORD_TOKEN") or "").strip() or None
        if require_transport and not telegram_token and not discord_token:
            raise ConfigError("Set TELEGRAM_TOKEN and/or DISCORD_TOKEN to enable a transport.")

        guild_raw = (environ.get("DISCORD_GUILD_ID") or "").strip()
        guild_id = int(guild_raw) if guild_raw.isdigit() else None

        escrow = (environ.get("ESCROW_ADDRESS") or "").strip() or None
        if escrow:
            if not Web3.is_address(escrow):
                raise ConfigError(f"ESCROW_ADDRESS is not a valid address: {escrow}")
            escrow = Web3.to_checksum_address(escrow)

        return cls(
            wallet_key=wallet_key,
            telegram_token=telegram_token,
            discord_token=discord_token,
            discord_guild_id=guild_id,
            base_url=(environ.get("SONGCAST_BASE_URL") or DEFAULT_BASE_URL).rstrip("/"),
            site_url=(environ.get("SONGCAST_SITE_URL") or DEFAULT_SITE_URL).rstrip("/"),
            escrow_address=escrow,
            mention_handles=_split_csv(environ.get("MENTION_HANDLES")) or DEFAULT_MENTION_HANDLES,
            track_hosts=_split_csv(environ.get("TRACK_LINK_HOSTS")) or DEFAULT_TRACK_HOSTS,
            bankr_api_key=(environ.get("BANKR_API_KEY") or "").strip() or None,
            bankr_base_url=(environ.get("BANKR_BASE_URL") or DEFAULT_BANKR_URL).rstrip("/"),
            bankr_poll_interval=_float(environ, "BANKR_POLL_INTERVAL", 2.0),
            bankr_max_attempts=_int(environ, "BANKR_MAX_ATTEMPTS", 30),
            forum_api_key=(environ.get("FORUM_API_KEY") or "").strip() or None,
            forum_base_url=(environ.get("FORUM_BASE_URL") or DEFAULT_FORUM_URL).rstrip("/"),
            forum_board=(environ.get("FORUM_BOARD") or DEFAULT_FORUM_BOARD).strip(),
            replies_path=(environ.get("REPLIES_PATH") or "").strip() or None,
            http_timeout=_float(environ, "HTTP_TIMEOUT", 60.0),
        )
