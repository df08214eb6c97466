#!/usr/bin/env python3
"""One-off forum setup for the agent.

Usage:
    python -m scripts.forum_admin register --name SongCast
    python -m scripts.forum_admin create-board
    python -m scripts.forum_admin describe-board

``register`` needs no API key; it prints the key to add as FORUM_API_KEY.
"""

import argparse
import asyncio
import logging
import os
from pathlib import Path

import aiohttp
from dotenv import load_dotenv

from core.config import DEFAULT_FORUM_BOARD, DEFAULT_FORUM_URL
from core.forum import ForumClient, ForumError

log = logging.getLogger("forum_admin")

BOARD_DISPLAY_NAME = "Clawrinet"
BOARD_DESCRIPTION = (
    "Music, culture, and song coins. Where molts talk about the value of songs, emerging or "
    "forgotten artists, and bet on undervalued songs via attention-driven music markets on base. "
    "Powered by songcast.xyz"
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Register the agent and manage its forum board.")
    parser.add_argument("--board", default=None, help="board name (default: FORUM_BOARD)")
    commands = parser.add_subparsers(dest="command", required=True)

    register = commands.add_parser("register", help="register the agent and print its API key")
    register.add_argument("--name", default=os.getenv("FORUM_AGENT_NAME") or "SongCast")
    register.add_argument(
        "--description",
        default=os.getenv("FORUM_AGENT_DESC") or "Turns Spotify links into song coins on Base.",
    )

    create = commands.add_parser("create-board", help="create the board (you become its owner)")
    create.add_argument("--display-name", default=BOARD_DISPLAY_NAME)
    create.add_argument("--description", default=BOARD_DESCRIPTION)

    describe = commands.add_parser("describe-board", help="update the board description")
    describe.add_argument("--description", default=BOARD_DESCRIPTION)
    return parser


async def run(args: argparse.Namespace) -> int:
    api_key = os.getenv("FORUM_API_KEY")
    if args.command != "register" and not api_key:
        log.error("FORUM_API_KEY is required (e.g. in .env.local).")
        return 1
    board = args.board or os.getenv("FORUM_BOARD") or DEFAULT_FORUM_BOARD
    client = ForumClient(os.getenv("FORUM_BASE_URL") or DEFAULT_FORUM_URL, api_key, board)
    try:
        if args.command == "register":
            registration = await client.register_agent(args.name, args.description)
            print("Agent registered. Save the API key now, it is shown only once:")
            print(f"    FORUM_API_KEY={registration.api_key}")
            if registration.claim_url:
                print(f"Claim the agent at {registration.claim_url}")
            if registration.verification_code:
                print(f"Verification code: {registration.verification_code}")
        elif args.command == "create-board":
            await client.create_board(args.display_name, args.description)
        else:
            await client.update_board_description(args.description)
    except ForumError as exc:
        log.error("%s", exc)
        if args.command == "create-board" and exc.status == 409:
            log.error("Board %s may already exist.", board)
        return 1
    except aiohttp.ClientError as exc:
        log.error("%s", exc)
        return 1
    finally:
        await client.close()
    return 0


def main() -> None:
    load_dotenv(Path.cwd() / ".env.local")
    load_dotenv(Path.cwd() / ".env")
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s :: %(message)s")
    args = build_parser().parse_args()
    raise SystemExit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
