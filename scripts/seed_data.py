from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

from sqlalchemy import delete

from tague_api.core.config import Settings
from tague_api.db import Base, SessionLocal, engine
from tague_api.docstore import SqlDocumentStore
from tague_api.engine import Engine
from tague_api.models import StoredDocument
from tague_api.schemas import POSTS, Post

DEMO_ACCOUNT_ID = "acct_demo"

ACCOUNTS = [
    (DEMO_ACCOUNT_ID, "Demo Curator", False),
    ("acct_ines", "Ines Lumen", False),
    ("acct_oskar", "Oskar Field", False),
    ("acct_mira", "Mira (private)", True),
    ("acct_tobi", "Tobi (private)", True),
]

POSTS_BY_AUTHOR = {
    "acct_ines": ["post_ines_harbor", "post_ines_market", "post_ines_dunes"],
    "acct_oskar": ["post_oskar_ridge", "post_oskar_fog"],
    "acct_mira": ["post_mira_studio", "post_mira_sketch"],
    "acct_tobi": ["post_tobi_garden"],
}


def _ensure_sqlite_dir(db_url: str) -> None:
    prefix = "sqlite:///"
    if db_url.startswith(prefix):
        Path(db_url[len(prefix) :]).parent.mkdir(parents=True, exist_ok=True)


async def _seed(app: Engine, store: SqlDocumentStore) -> dict[str, int]:
    counts = {"accounts": 0, "posts": 0, "bookmarks": 0, "boards": 0}
    for account_id, display_name, is_private in ACCOUNTS:
        res = await app.create_account(
            account_id, display_name=display_name, is_private=is_private
        )
        if res.ok:
            counts["accounts"] += 1

    for author_id, post_ids in POSTS_BY_AUTHOR.items():
        for post_id in post_ids:
            post = Post(id=post_id, author_id=author_id, caption=post_id.split("_")[-1])
            await store.set_document(POSTS, post.id, post.to_doc())
            counts["posts"] += 1

    # Demo follows the public accounts and asks to follow the private ones.
    for target_id in ("acct_ines", "acct_oskar", "acct_mira"):
        rel = await app.relationship(DEMO_ACCOUNT_ID, target_id)
        if rel.ok and rel.value.state.value == "not_following":
            await app.toggle_follow(DEMO_ACCOUNT_ID, target_id)

    saved = ["post_ines_harbor", "post_ines_dunes", "post_oskar_ridge", "post_mira_studio"]
    for post_id in saved:
        if (await app.add_bookmark(DEMO_ACCOUNT_ID, post_id)).ok:
            counts["bookmarks"] += 1

    boards = await app.list_boards(DEMO_ACCOUNT_ID)
    if boards.ok and not boards.value:
        trips = (await app.create_board(DEMO_ACCOUNT_ID, "Trips")).value
        await app.add_posts_to_board(DEMO_ACCOUNT_ID, trips.id, saved)
        counts["boards"] += 1
    return counts


def main() -> None:
    settings = Settings()
    _ensure_sqlite_dir(settings.db_url)

    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--reset", action="store_true", help="Delete all documents and regenerate."
    )
    args = parser.parse_args()

    Base.metadata.create_all(engine)
    if args.reset:
        with SessionLocal() as session:
            session.execute(delete(StoredDocument))
            session.commit()

    store = SqlDocumentStore(settings=settings)
    app = Engine(store, settings=settings)
    try:
        counts = asyncio.run(_seed(app, store))
    finally:
        app.logout()
    print(
        "seeded "
        + ", ".join(f"{name}={count}" for name, count in counts.items())
        + f" (login as {DEMO_ACCOUNT_ID})"
    )


if __name__ == "__main__":
    main()
