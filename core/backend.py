import asyncio
import json
import logging
from typing import Any, Dict, Optional, Tuple
from urllib.parse import quote

import aiohttp

log = logging.getLogger(__name__)


class BackendError(Exception):
    """Base class for failures reported by (or while reaching) the SongCast backend."""


class BackendUnavailable(BackendError):
    pass


class CatalogError(BackendError):
    pass


class StorageError(BackendError):
    pass


class MintError(BackendError):
    pass


class PaymentError(MintError):
    pass


def error_text(body: Any, default: str) -> str:
    if isinstance(body, dict):
        for key in ("error", "message", "hint"):
            value = body.get(key)
            if value:
                return str(value)
    if isinstance(body, str) and body.strip():
        return body.strip()[:300]
    return default


class SongcastBackend:
    """Thin aiohttp client for the catalog, storage, mint and registry endpoints."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 60.0,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
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

    async def request(
        self,
        method: str,
        path: str,
        *,
        payload: Optional[dict] = None,
        params: Optional[Dict[str, str]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Tuple[int, Any]:
        url = f"{self.base_url}{path}"
        session = self._get_session()
        try:
            async with session.request(
                method, url, json=payload, params=params, headers=headers
            ) as resp:
                raw = await resp.text()
                try:
                    body = json.loads(raw) if raw else None
                except json.JSONDecodeError:
                    body = raw
                return resp.status, body
        except aiohttp.ClientConnectionError as exc:
            raise BackendUnavailable(
                f"Cannot connect to server at {self.base_url} (ECONNREFUSED): {exc}"
            ) from exc
        except asyncio.TimeoutError as exc:
            raise BackendUnavailable(f"Request to {url} timed out") from exc

    async def fetch_track(self, track_id: str) -> dict:
        status, body = await self.request("GET", "/catalog/track", params={"id": track_id})
        if status != 200 or not isinstance(body, dict):
            raise CatalogError(
                f"Spotify catalog lookup failed for {track_id} ({status}): "
                f"{error_text(body, 'no track data')}"
            )
        return body

    async def pin_json(self, document: dict) -> str:
        status, body = await self.request("POST", "/storage/json", payload=document)
        if not isinstance(body, dict):
            raise StorageError(f"Invalid response from IPFS upload service ({status})")
        uri = body.get("uri")
        if not uri and body.get("IpfsHash"):
            uri = f"ipfs://{body['IpfsHash']}"
        if status >= 300 or not uri or not str(uri).startswith("ipfs://"):
            raise StorageError(
                f"Failed to upload metadata to IPFS: {error_text(body, 'Unknown error')}"
            )
        return str(uri)

    async def create_coin(
        self, coin_data: dict, *, payment_signature: Optional[str] = None
    ) -> Tuple[int, Any]:
        headers = {"PAYMENT-SIGNATURE": payment_signature} if payment_signature else None
        return await self.request("POST", "/mint", payload=coin_data, headers=headers)

    async def _lookup(self, kind: str, track_id: str) -> Optional[str]:
        status, body = await self.request("GET", f"/{kind}/{quote(track_id, safe='')}")
        if status == 404:
            return None
        if status != 200 or not isinstance(body, dict):
            raise BackendError(f"{kind} lookup failed ({status}): {error_text(body, 'no body')}")
        if body.get("exists") and body.get("assetAddress"):
            return str(body["assetAddress"])
        return None

    async def lookup_known(self, track_id: str) -> Optional[str]:
        return await self._lookup("known", track_id)

    async def lookup_mapping(self, track_id: str) -> Optional[str]:
        return await self._lookup("map", track_id)

    async def _post_expect_ok(self, path: str, payload: dict) -> None:
        status, body = await self.request("POST", path, payload=payload)
        if status >= 300:
            raise BackendError(f"POST {path} failed ({status}): {error_text(body, 'no body')}")

    async def register_known(self, asset_address: str) -> None:
        await self._post_expect_ok("/known", {"assetAddress": asset_address})

    async def register_mapping(self, track_id: str, asset_address: str) -> None:
        await self._post_expect_ok(
            "/map", {"identifier": track_id, "assetAddress": asset_address}
        )

    async def add_points_asset(self, asset_address: str) -> None:
        await self._post_expect_ok("/points/add-asset", {"assetAddress": asset_address})
