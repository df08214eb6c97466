"""Relay for trading/wallet questions to the Bankr prompt service."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import aiohttp

from .backend import error_text

log = logging.getLogger(__name__)

INTENT_KEYWORDS = (
    "balance",
    "portfolio",
    "holdings",
    "swap",
    "buy ",
    "sell ",
    "trade",
    "trading",
    "transfer",
    "send ",
    "bridge",
    "price",
    "market cap",
    "marketcap",
    "liquidity",
    "stake",
    "staking",
    "wallet",
    "usdc",
    "eth ",
    "limit order",
    "dca ",
)

TERMINAL_STATUSES = {"completed", "failed", "cancelled"}


def looks_like_intent(text: Optional[str]) -> bool:
    if not text:
        return False
    lowered = f"{text.lower()} "
    return any(keyword in lowered for keyword in INTENT_KEYWORDS)


class RelayError(Exception):
    pass


@dataclass(frozen=True)
class RelayResult:
    status: str
    text: str = ""

    @property
    def ok(self) -> bool:
        return self.status == "completed"


class RelayClient:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        poll_interval: float = 2.0,
        max_attempts: int = 30,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self._headers = {"X-API-Key": api_key}
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=30))
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session and self._owns_session and not self._session.closed:
            await self._session.close()

    @staticmethod
    async def _read(resp: aiohttp.ClientResponse, action: str):
        try:
            return await resp.json(content_type=None)
        except ValueError as exc:
            raise RelayError(f"{action} failed ({resp.status}): response was not JSON") from exc

    async def submit(self, prompt: str) -> str:
        async with self._get_session().post(
            f"{self.base_url}/agent/prompt", json={"prompt": prompt}, headers=self._headers
        ) as resp:
            data = await self._read(resp, "prompt submit")
            if resp.status >= 300 or not isinstance(data, dict) or not data.get("jobId"):
                raise RelayError(f"prompt submit failed ({resp.status}): {error_text(data, 'no job id')}")
        return str(data["jobId"])

    async def poll(self, job_id: str) -> dict:
        async with self._get_session().get(
            f"{self.base_url}/agent/job/{job_id}", headers=self._headers
        ) as resp:
            data = await self._read(resp, "job poll")
            if resp.status >= 300 or not isinstance(data, dict):
                raise RelayError(f"job poll failed ({resp.status}): {error_text(data, 'no body')}")
        return data

    async def submit_and_await(self, prompt: str) -> RelayResult:
        job_id = await self.submit(prompt)
        log.info("relay job %s submitted", job_id)
        for attempt in range(self.max_attempts):
            await asyncio.sleep(self.poll_interval)
            job = await self.poll(job_id)
            status = str(job.get("status") or "").lower()
            if status not in TERMINAL_STATUSES:
                continue
            log.info("relay job %s finished with %s after %d polls", job_id, status, attempt + 1)
            if status == "completed":
                return RelayResult("completed", str(job.get("response") or ""))
            return RelayResult(status, str(job.get("error") or ""))
        log.warning("relay job %s timed out after %d polls", job_id, self.max_attempts)
        return RelayResult("timed_out")
