import pytest
from aiohttp import web

from conftest import start_server
from core.forum import AgentRegistration, ForumClient, ForumError, ForumRateLimited
from scripts import forum_admin


def forum_app(responses, seen):
    async def posts(request):
        seen.append((await request.json(), request.headers.get("Authorization")))
        status, body = responses.pop(0)
        return web.json_response(body, status=status)

    app = web.Application()
    app.router.add_post("/posts", posts)
    return app


async def _post(responses, title, content):
    seen = []
    server = await start_server(forum_app(responses, seen))
    client = ForumClient(f"http://{server.host}:{server.port}", "secret", "clawrinet")
    try:
        return await client.post(title, content), seen
    finally:
        await client.close()
        await server.close()


@pytest.mark.asyncio
async def test_text_post():
    post_id, seen = await _post([(200, {"data": {"id": "p1"}})], "New coin", "hello")
    assert post_id == "p1"
    body, auth = seen[0]
    assert body == {"board": "clawrinet", "title": "New coin", "content": "hello"}
    assert auth == "Bearer secret"


@pytest.mark.asyncio
async def test_link_post():
    _, seen = await _post([(201, {"id": "p2"})], "Site", "https://songcast.xyz")
    assert seen[0][0] == {"board": "clawrinet", "title": "Site", "url": "https://songcast.xyz"}


@pytest.mark.asyncio
async def test_rate_limited():
    with pytest.raises(ForumRateLimited):
        await _post([(429, {"error": "slow down"})], "t", "c")


@pytest.mark.asyncio
async def test_other_failure():
    with pytest.raises(ForumError, match="forbidden"):
        await _post([(403, {"error": "forbidden"})], "t", "c")


def admin_app(seen, *, board_status=200):
    async def register(request):
        seen.append(("register", await request.json(), request.headers.get("Authorization")))
        return web.json_response(
            {"agent": {"api_key": "fk_new", "claim_url": "https://forum/claim/1"}}
        )

    async def create(request):
        seen.append(("create", await request.json(), request.headers.get("Authorization")))
        return web.json_response({"error": "Board already exists"}, status=board_status)

    async def settings(request):
        seen.append(("settings", await request.json(), request.match_info["board"]))
        return web.Response(text="", status=204)

    app = web.Application()
    app.router.add_post("/agents/register", register)
    app.router.add_post("/submolts", create)
    app.router.add_patch("/submolts/{board}/settings", settings)
    return app


@pytest.mark.asyncio
async def test_register_agent_without_key():
    seen = []
    server = await start_server(admin_app(seen))
    client = ForumClient(f"http://{server.host}:{server.port}", None, "clawrinet")
    try:
        registration = await client.register_agent("SongCast", "song coins")
    finally:
        await client.close()
        await server.close()
    assert registration == AgentRegistration("fk_new", "https://forum/claim/1", None)
    assert seen == [("register", {"name": "SongCast", "description": "song coins"}, None)]


@pytest.mark.asyncio
async def test_board_admin_calls():
    seen = []
    server = await start_server(admin_app(seen))
    client = ForumClient(f"http://{server.host}:{server.port}", "secret", "clawrinet")
    try:
        await client.create_board("Clawrinet", "music")
        await client.update_board_description("new words")
    finally:
        await client.close()
        await server.close()
    assert seen[0] == (
        "create",
        {"name": "clawrinet", "display_name": "Clawrinet", "description": "music"},
        "Bearer secret",
    )
    assert seen[1] == ("settings", {"description": "new words"}, "clawrinet")


@pytest.mark.asyncio
async def test_existing_board_is_reported(monkeypatch):
    seen = []
    server = await start_server(admin_app(seen, board_status=409))
    monkeypatch.setenv("FORUM_BASE_URL", f"http://{server.host}:{server.port}")
    monkeypatch.setenv("FORUM_API_KEY", "secret")
    monkeypatch.delenv("FORUM_BOARD", raising=False)
    try:
        args = forum_admin.build_parser().parse_args(["create-board"])
        assert await forum_admin.run(args) == 1
    finally:
        await server.close()
    assert seen[0][1]["name"] == "clawrinet"


@pytest.mark.asyncio
async def test_admin_commands_need_a_key_except_register(monkeypatch):
    monkeypatch.delenv("FORUM_API_KEY", raising=False)
    args = forum_admin.build_parser().parse_args(["describe-board"])
    assert await forum_admin.run(args) == 1
