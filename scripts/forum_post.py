#!/usr/bin/env python3
"""Post to the community forum as the agent.

Usage:
    python -m scripts.forum_post "Title" "Content here."
    python -m scripts.forum_post "Link title" "https://songcast.xyz"
"""

import argparse
import asyncio
import logging
import os
from pathlib import Path

import aiohttp
from dotenv import load_dotenv

from core.config import DEFAULT_FORUM_BOARD, DEFAULT_FORUM_URL
from core.forum import ForumClient, ForumError, ForumRateLimited

log = logging.getLogger("forum_post")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Post to the forum board as the agent.")
    parser.add_argument("title")
    parser.add_argument("content", help="post body, or a URL for a link post")
    parser.add_argument("--board", default=None, help="board to post in (default: FORUM_BOARD)")
    return parser


async def run(args: argparse.Namespace) -> int:
    api_key = os.getenv("FORUM_API_KEY")
    if not api_key:
        log.error("FORUM_API_KEY is required (e.g. in .env.local).")
        return 1
    board = args.board or os.getenv("FORUM_BOARD") or DEFAULT_FORUM_BOARD
    client = ForumClient(os.getenv("FORUM_BASE_URL") or DEFAULT_FORUM_URL, api_key, board)
    try:
        post_id = await client.post(args.title, args.content)
    except ForumRateLimited as exc:
        log.error("%s (1 post per 30 minutes)", exc)
        return 1
    except (ForumError, aiohttp.ClientError) as exc:
        log.error("%s", exc)
        return 1
    finally:
        await client.close()
    log.info("Posted to %s%s", board, f" (id {post_id})" if post_id else "")
    return 0


def main() -> None:
    load_dotenv(Path.cwd() / ".env.local")
    load_dotenv(Path.cwd() / ".env")
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s :: %(message)s")
    args = build_parser().parse_args()
    raise SystemExit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
