from typing import Any, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from core.config import Settings

# Well-known throwaway key from the eth-account docs; never funded.
WALLET_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"

TRACK_ID = "4gMgiXfqyzZLMhsksGmbQV"
OTHER_TRACK_ID = "7ouMYWpwJ422jRcDASZB7P"


def sample_track(track_id: str = TRACK_ID, name: str = "Midnight City") -> dict:
    return {
        "id": track_id,
        "name": name,
        "artists": [{"id": "63MQldklfxkjYDoUE4Tppz", "name": "M83"}],
        "album": {
            "name": "Hurry Up, We're Dreaming",
            "images": [{"url": "https://i.scdn.co/image/cover640"}],
        },
        "external_urls": {"spotify": f"https://open.spotify.com/track/{track_id}"},
        "preview_url": "https://p.scdn.co/mp3-preview/abc",
    }


class FakeSongcast:
    """In-process stand-in for the SongCast backend HTTP API."""

    def __init__(self) -> None:
        self.base_url = ""
        self.tracks: Dict[str, dict] = {
            TRACK_ID: sample_track(),
            OTHER_TRACK_ID: sample_track(OTHER_TRACK_ID, "Wait"),
        }
        self.known: Dict[str, str] = {}
        self.mapping: Dict[str, str] = {}
        self.mint_responses: List[Tuple[int, Any]] = []
        self.mint_calls: List[Dict[str, Any]] = []
        self.pinned: List[dict] = []
        self.storage_response: Optional[Tuple[int, Any]] = None
        self.fail_writes = False
        self.fail_lookups = False
        self.known_writes: List[dict] = []
        self.map_writes: List[dict] = []
        self.points_writes: List[dict] = []
        self._mint_counter = 0

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/catalog/track", self.catalog)
        app.router.add_post("/storage/json", self.storage)
        app.router.add_post("/mint", self.mint)
        app.router.add_get("/known/{identifier}", self.lookup_known)
        app.router.add_get("/map/{identifier}", self.lookup_map)
        app.router.add_post("/known", self.write_known)
        app.router.add_post("/map", self.write_map)
        app.router.add_post("/points/add-asset", self.write_points)
        return app

    async def catalog(self, request: web.Request) -> web.Response:
        track = self.tracks.get(request.query.get("id", ""))
        if track is None:
            return web.json_response({"error": "Track not found"}, status=404)
        return web.json_response(track)

    async def storage(self, request: web.Request) -> web.Response:
        self.pinned.append(await request.json())
        if self.storage_response is not None:
            status, body = self.storage_response
            return web.json_response(body, status=status)
        return web.json_response({"uri": f"ipfs://bafymeta{len(self.pinned)}"})

    async def mint(self, request: web.Request) -> web.Response:
        self.mint_calls.append(
            {"body": await request.json(), "payment": request.headers.get("PAYMENT-SIGNATURE")}
        )
        if self.mint_responses:
            status, body = self.mint_responses.pop(0)
            return web.json_response(body, status=status)
        self._mint_counter += 1
        return web.json_response(
            {
                "assetAddress": f"0x{self._mint_counter:040x}",
                "transactionHash": f"0x{self._mint_counter:064x}",
            }
        )

    def _lookup(self, table: Dict[str, str], identifier: str) -> web.Response:
        if self.fail_lookups:
            return web.json_response({"error": "registry down"}, status=503)
        address = table.get(identifier)
        return web.json_response({"exists": address is not None, "assetAddress": address})

    async def lookup_known(self, request: web.Request) -> web.Response:
        return self._lookup(self.known, request.match_info["identifier"])

    async def lookup_map(self, request: web.Request) -> web.Response:
        return self._lookup(self.mapping, request.match_info["identifier"])

    async def _write(self, request: web.Request, log: List[dict]) -> web.Response:
        body = await request.json()
        log.append(body)
        if self.fail_writes:
            return web.json_response({"error": "write rejected"}, status=500)
        return web.json_response({"ok": True})

    async def write_known(self, request: web.Request) -> web.Response:
        return await self._write(request, self.known_writes)

    async def write_map(self, request: web.Request) -> web.Response:
        return await self._write(request, self.map_writes)

    async def write_points(self, request: web.Request) -> web.Response:
        return await self._write(request, self.points_writes)


class FakeConversation:
    def __init__(self, *, fail_reactions: bool = False) -> None:
        self.texts: List[str] = []
        self.reactions: List[str] = []
        self.contents: List[Tuple[Any, Any]] = []
        self.fail_reactions = fail_reactions

    @property
    def call_count(self) -> int:
        return len(self.texts) + len(self.reactions) + len(self.contents)

    async def send_text(self, text: str) -> None:
        self.texts.append(text)

    async def send_reaction(self, emoji: str) -> None:
        if self.fail_reactions:
            raise RuntimeError("reactions unsupported")
        self.reactions.append(emoji)

    async def send_content(self, content: Any, codec: Any) -> None:
        self.contents.append((content, codec))


async def start_server(app: web.Application) -> TestServer:
    server = TestServer(app)
    await server.start_server()
    return server


@pytest_asyncio.fixture
async def songcast():
    fake = FakeSongcast()
    server = await start_server(fake.app())
    fake.base_url = f"http://{server.host}:{server.port}"
    yield fake
    await server.close()


@pytest.fixture
def settings_for():
    def _build(base_url: str, **overrides: Any) -> Settings:
        return Settings(wallet_key=WALLET_KEY, base_url=base_url, **overrides)

    return _build
