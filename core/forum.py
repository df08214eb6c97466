import logging
from dataclasses import dataclass
from typing import Any, Optional

import aiohttp

from .backend import error_text

log = logging.getLogger(__name__)


class ForumError(Exception):
    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class ForumRateLimited(ForumError):
    pass


@dataclass(frozen=True)
class AgentRegistration:
    api_key: str
    claim_url: Optional[str] = None
    verification_code: Optional[str] = None


class ForumClient:
    """Posts mint announcements to the community forum board.

    Also carries the one-off admin calls (agent registration, board creation
    and description updates) used by ``scripts/forum_admin.py``. Registration
    is the only call made without an API key.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str],
        board: str,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.board = board
        self._api_key = api_key
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session and self._owns_session and not self._session.closed:
            await self._session.close()

    async def _send(self, method: str, path: str, payload: dict, *, action: str) -> Any:
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        async with self._get_session().request(
            method, f"{self.base_url}{path}", json=payload, headers=headers
        ) as resp:
            try:
                data = await resp.json(content_type=None)
            except ValueError:
                data = None
            if resp.status == 429:
                raise ForumRateLimited(
                    f"forum rate limit hit: {error_text(data, 'too many requests')}", resp.status
                )
            if resp.status >= 300:
                raise ForumError(
                    f"{action} failed ({resp.status}): {error_text(data, resp.reason or '')}",
                    resp.status,
                )
        return data

    async def post(self, title: str, content: str) -> Optional[str]:
        body = {"board": self.board, "title": title}
        if content.startswith("http://") or content.startswith("https://"):
            body["url"] = content
        else:
            body["content"] = content
        data = await self._send("POST", "/posts", body, action="forum post")
        post_id = None
        if isinstance(data, dict):
            nested = data.get("data")
            post_id = (nested.get("id") if isinstance(nested, dict) else None) or data.get("id")
        log.info("posted to %s: %s", self.board, title)
        return str(post_id) if post_id else None

    async def register_agent(self, name: str, description: str) -> AgentRegistration:
        data = await self._send(
            "POST",
            "/agents/register",
            {"name": name, "description": description},
            action="agent registration",
        )
        agent = data.get("agent") if isinstance(data, dict) else None
        if not isinstance(agent, dict):
            agent = data if isinstance(data, dict) else {}
        api_key = agent.get("api_key")
        if not api_key:
            raise ForumError("agent registration returned no api key")
        log.info("registered forum agent %s", name)
        return AgentRegistration(
            api_key=str(api_key),
            claim_url=agent.get("claim_url"),
            verification_code=agent.get("verification_code"),
        )

    async def create_board(self, display_name: str, description: str) -> None:
        await self._send(
            "POST",
            "/submolts",
            {"name": self.board, "display_name": display_name, "description": description},
            action="board creation",
        )
        log.info("created board %s", self.board)

    async def update_board_description(self, description: str) -> None:
        await self._send(
            "PATCH",
            f"/submolts/{self.board}/settings",
            {"description": description},
            action="board update",
        )
        log.info("updated description of board %s", self.board)
