from __future__ import annotations

import asyncio

from tague_api.results import ErrorKind
from tague_api.schemas import CuratedBoard, boards_path


def _raw_board(store, owner_id, board_id):
    return CuratedBoard.from_doc(
        asyncio.run(store.get_document(boards_path(owner_id), board_id))
    )


def _assert_count_invariant(board: CuratedBoard) -> None:
    assert board.post_count == len(board.post_ids)
    assert len(set(board.post_ids)) == len(board.post_ids)


def test_private_author_bookmark_is_evicted_and_cascades(make_engine, seed, store, uid) -> None:
    viewer, owner, other = uid("viewer"), uid("owner"), uid("other")
    p1, p2 = uid("p1"), uid("p2")
    seed.account(viewer)
    seed.account(owner, is_private=True)
    seed.account(other)
    seed.post(p1, author_id=owner)
    seed.post(p2, author_id=other)
    engine = make_engine()

    assert asyncio.run(engine.add_bookmark(viewer, p1)).ok
    assert asyncio.run(engine.add_bookmark(viewer, p2)).ok
    board = asyncio.run(engine.create_board(viewer, "Fav")).value
    board = asyncio.run(engine.add_posts_to_board(viewer, board.id, [p1, p2])).value
    assert board.post_ids == [p1, p2]
    assert board.post_count == 2

    visible = asyncio.run(engine.list_visible_bookmarks(viewer)).value
    assert [b.post_id for b in visible] == [p2]

    bookmarks = asyncio.run(engine.bookmarks.post_ids(viewer))
    assert bookmarks == {p2}
    raw = _raw_board(store, viewer, board.id)
    assert raw.post_ids == [p2]
    assert raw.post_count == 1


def test_followers_keep_bookmarks_of_private_authors(make_engine, seed, uid) -> None:
    viewer, owner = uid("viewer"), uid("owner")
    p1 = uid("p1")
    seed.account(viewer)
    seed.account(owner, is_private=True)
    seed.post(p1, author_id=owner)
    engine = make_engine()

    req_id = asyncio.run(engine.toggle_follow(viewer, owner)).value.request_id
    asyncio.run(engine.resolve_follow_request(req_id, "accept", acting_id=owner))
    asyncio.run(engine.add_bookmark(viewer, p1))

    visible = asyncio.run(engine.list_visible_bookmarks(viewer)).value
    assert [b.post_id for b in visible] == [p1]


def test_bookmark_of_missing_post_is_not_found(make_engine, seed, uid) -> None:
    viewer = uid("viewer")
    seed.account(viewer)
    engine = make_engine()
    res = asyncio.run(engine.add_bookmark(viewer, uid("nope")))
    assert res.kind == ErrorKind.NOT_FOUND


def test_add_bookmark_is_idempotent(make_engine, seed, uid) -> None:
    viewer, author, p = uid("viewer"), uid("author"), uid("p")
    seed.account(viewer)
    seed.account(author)
    seed.post(p, author_id=author)
    engine = make_engine()

    first = asyncio.run(engine.add_bookmark(viewer, p)).value
    second = asyncio.run(engine.add_bookmark(viewer, p)).value
    assert first.bookmarked_at == second.bookmarked_at
    assert first.author_id == author
    assert len(asyncio.run(engine.list_visible_bookmarks(viewer)).value) == 1


def test_removing_bookmark_cascades_to_every_board(make_engine, seed, store, uid) -> None:
    viewer, author = uid("viewer"), uid("author")
    p1, p2 = uid("p1"), uid("p2")
    seed.account(viewer)
    seed.account(author)
    seed.post(p1, author_id=author)
    seed.post(p2, author_id=author)
    engine = make_engine()

    asyncio.run(engine.add_bookmark(viewer, p1))
    asyncio.run(engine.add_bookmark(viewer, p2))
    b1 = asyncio.run(engine.create_board(viewer, "One")).value
    b2 = asyncio.run(engine.create_board(viewer, "Two")).value
    asyncio.run(engine.add_posts_to_board(viewer, b1.id, [p1, p2]))
    asyncio.run(engine.add_posts_to_board(viewer, b2.id, [p1]))

    removed = asyncio.run(engine.remove_bookmark(viewer, p1))
    assert removed.ok
    assert removed.value.post_id == p1

    one = _raw_board(store, viewer, b1.id)
    two = _raw_board(store, viewer, b2.id)
    assert one.post_ids == [p2]
    assert two.post_ids == []
    _assert_count_invariant(one)
    _assert_count_invariant(two)

    again = asyncio.run(engine.remove_bookmark(viewer, p1))
    assert again.kind == ErrorKind.NOT_FOUND


def test_boards_only_accept_bookmarked_posts(make_engine, seed, uid) -> None:
    viewer, author = uid("viewer"), uid("author")
    p1, p2 = uid("p1"), uid("p2")
    seed.account(viewer)
    seed.account(author)
    seed.post(p1, author_id=author)
    seed.post(p2, author_id=author)
    engine = make_engine()

    asyncio.run(engine.add_bookmark(viewer, p1))
    board = asyncio.run(engine.create_board(viewer, "Mixed")).value
    board = asyncio.run(engine.add_posts_to_board(viewer, board.id, [p1, p2, p1])).value
    assert board.post_ids == [p1]
    _assert_count_invariant(board)

    # Adding again is a no-op.
    board = asyncio.run(engine.add_posts_to_board(viewer, board.id, [p1])).value
    assert board.post_ids == [p1]

    board = asyncio.run(engine.remove_post_from_board(viewer, board.id, p1)).value
    assert board.post_ids == []
    assert board.post_count == 0
    board = asyncio.run(engine.remove_post_from_board(viewer, board.id, p1)).value
    assert board.post_count == 0


def test_save_post_to_board_bookmarks_first(make_engine, seed, uid) -> None:
    viewer, author, p = uid("viewer"), uid("author"), uid("p")
    seed.account(viewer)
    seed.account(author)
    seed.post(p, author_id=author)
    engine = make_engine()

    board = asyncio.run(engine.create_board(viewer, "Saved")).value
    board = asyncio.run(engine.save_post_to_board(viewer, board.id, p)).value
    assert board.post_ids == [p]
    assert asyncio.run(engine.bookmarks.post_ids(viewer)) == {p}

    missing = asyncio.run(engine.save_post_to_board(viewer, board.id, uid("nope")))
    assert missing.kind == ErrorKind.NOT_FOUND


def test_board_reads_repair_dangling_posts(make_engine, seed, store, uid) -> None:
    viewer, author, p = uid("viewer"), uid("author"), uid("p")
    seed.account(viewer)
    seed.account(author)
    seed.post(p, author_id=author)
    engine = make_engine()

    asyncio.run(engine.add_bookmark(viewer, p))
    board = asyncio.run(engine.create_board(viewer, "Stale")).value
    asyncio.run(engine.add_posts_to_board(viewer, board.id, [p]))
    # Bookmark vanishes without going through the engine.
    from tague_api.schemas import bookmarks_path

    asyncio.run(store.delete_document(bookmarks_path(viewer), p))

    read = asyncio.run(engine.get_board(viewer, board.id)).value
    assert read.post_ids == []
    assert _raw_board(store, viewer, board.id).post_count == 0

    listed = asyncio.run(engine.list_boards(viewer)).value
    assert [b.id for b in listed] == [board.id]
    assert listed[0].post_ids == []


def test_drop_keeps_posts_bookmarked_again(make_engine, seed, store, uid) -> None:
    viewer, author, p = uid("viewer"), uid("author"), uid("p")
    seed.account(viewer)
    seed.account(author)
    seed.post(p, author_id=author)
    engine = make_engine()

    asyncio.run(engine.add_bookmark(viewer, p))
    board = asyncio.run(engine.create_board(viewer, "Kept")).value
    asyncio.run(engine.add_posts_to_board(viewer, board.id, [p]))

    kept = asyncio.run(engine.boards.drop_post_ids(viewer, board.id, {p}))
    assert kept.post_ids == [p]
    dropped = asyncio.run(
        engine.boards.drop_post_ids(viewer, board.id, {p}, only_unbookmarked=False)
    )
    assert dropped.post_ids == []
    assert asyncio.run(engine.boards.drop_post_ids(viewer, "brd_missing", {p})) is None


def test_board_name_rules(make_engine, seed, uid) -> None:
    viewer = uid("viewer")
    seed.account(viewer)
    engine = make_engine()

    assert asyncio.run(engine.create_board(viewer, "")).kind == ErrorKind.INVALID
    assert asyncio.run(engine.create_board(viewer, "   ")).kind == ErrorKind.INVALID
    assert asyncio.run(engine.create_board(viewer, "x" * 41)).kind == ErrorKind.INVALID

    board = asyncio.run(engine.create_board(viewer, "  " + "y" * 40 + " ")).value
    assert board.name == "y" * 40

    renamed = asyncio.run(engine.rename_board(viewer, board.id, "Trips")).value
    assert renamed.name == "Trips"
    assert asyncio.run(engine.rename_board(viewer, board.id, "")).kind == ErrorKind.INVALID
    assert asyncio.run(engine.rename_board(viewer, "brd_nope", "A")).kind == ErrorKind.NOT_FOUND


def test_delete_board(make_engine, seed, uid) -> None:
    viewer = uid("viewer")
    seed.account(viewer)
    engine = make_engine()

    board = asyncio.run(engine.create_board(viewer, "Gone")).value
    assert asyncio.run(engine.delete_board(viewer, board.id)).ok
    assert asyncio.run(engine.get_board(viewer, board.id)).kind == ErrorKind.NOT_FOUND
    assert asyncio.run(engine.delete_board(viewer, board.id)).kind == ErrorKind.NOT_FOUND


def test_session_cache_is_dropped_on_logout(make_engine, seed, uid) -> None:
    viewer, author, p = uid("viewer"), uid("author"), uid("p")
    seed.account(viewer)
    seed.account(author)
    seed.post(p, author_id=author)
    engine = make_engine()

    asyncio.run(engine.add_bookmark(viewer, p))
    assert len(engine.cache) == 1
    engine.logout()
    assert len(engine.cache) == 0
    assert engine.cache.closed is True
    # Lookups still work after logout, they are just not cached.
    assert asyncio.run(engine.cache.get_post(p)).author_id == author
    assert len(engine.cache) == 0


def test_unauthenticated_board_and_bookmark_calls(make_engine) -> None:
    engine = make_engine()
    assert asyncio.run(engine.list_visible_bookmarks(None)).kind == ErrorKind.UNAUTHENTICATED
    assert asyncio.run(engine.create_board("", "A")).kind == ErrorKind.UNAUTHENTICATED
    assert asyncio.run(engine.list_boards(None)).kind == ErrorKind.UNAUTHENTICATED


def test_eviction_covers_bookmarks_beyond_the_page_limit(make_engine, seed, store, uid) -> None:
    from tague_api.core.config import Settings

    viewer, owner, other = uid("viewer"), uid("owner"), uid("other")
    old, new, public = uid("old"), uid("new"), uid("public")
    seed.account(viewer)
    seed.account(owner)
    seed.account(other)
    seed.post(old, author_id=owner)
    seed.post(new, author_id=owner)
    seed.post(public, author_id=other)
    engine = make_engine(settings=Settings(bookmarks_page_limit=1))

    for pid in (old, new, public):
        assert asyncio.run(engine.add_bookmark(viewer, pid)).ok
    board = asyncio.run(engine.create_board(viewer, "Fav")).value
    asyncio.run(engine.add_posts_to_board(viewer, board.id, [old, new, public]))
    assert asyncio.run(engine.set_privacy(owner, True)).ok

    visible = asyncio.run(engine.list_visible_bookmarks(viewer)).value
    assert [b.post_id for b in visible] == [public]
    assert asyncio.run(engine.bookmarks.post_ids(viewer)) == {public}

    raw = _raw_board(store, viewer, board.id)
    assert raw.post_ids == [public]
    _assert_count_invariant(raw)
    assert asyncio.run(engine.get_board(viewer, board.id)).value.post_ids == [public]


def test_visible_bookmarks_are_capped_at_the_page_limit(make_engine, seed, uid) -> None:
    from tague_api.core.config import Settings

    viewer, author = uid("viewer"), uid("author")
    p1, p2 = uid("p1"), uid("p2")
    seed.account(viewer)
    seed.account(author)
    seed.post(p1, author_id=author)
    seed.post(p2, author_id=author)
    engine = make_engine(settings=Settings(bookmarks_page_limit=1))

    asyncio.run(engine.add_bookmark(viewer, p1))
    asyncio.run(engine.add_bookmark(viewer, p2))

    visible = asyncio.run(engine.list_visible_bookmarks(viewer)).value
    assert [b.post_id for b in visible] == [p2]
    assert asyncio.run(engine.bookmarks.post_ids(viewer)) == {p1, p2}


def test_is_bookmarked(make_engine, seed, uid) -> None:
    viewer, author, p = uid("viewer"), uid("author"), uid("p")
    seed.account(viewer)
    seed.account(author)
    seed.post(p, author_id=author)
    engine = make_engine()

    assert asyncio.run(engine.is_bookmarked(viewer, p)).value is False
    asyncio.run(engine.add_bookmark(viewer, p))
    assert asyncio.run(engine.is_bookmarked(viewer, p)).value is True
    asyncio.run(engine.remove_bookmark(viewer, p))
    assert asyncio.run(engine.is_bookmarked(viewer, p)).value is False
    assert asyncio.run(engine.is_bookmarked(None, p)).kind == ErrorKind.UNAUTHENTICATED


def test_concurrent_bookmark_removals_on_one_board(make_engine, seed, store, uid) -> None:
    viewer, author = uid("viewer"), uid("author")
    posts = [uid(f"p{i}") for i in range(4)]
    seed.account(viewer)
    seed.account(author)
    for pid in posts:
        seed.post(pid, author_id=author)
    engine = make_engine()
    for pid in posts:
        asyncio.run(engine.add_bookmark(viewer, pid))
    board = asyncio.run(engine.create_board(viewer, "Busy")).value
    asyncio.run(engine.add_posts_to_board(viewer, board.id, posts))

    async def run():
        return await asyncio.gather(
            *(engine.remove_bookmark(viewer, pid) for pid in posts[:3])
        )

    results = asyncio.run(run())
    assert all(r.ok for r in results)

    raw = _raw_board(store, viewer, board.id)
    assert raw.post_ids == [posts[3]]
    _assert_count_invariant(raw)
    assert asyncio.run(engine.bookmarks.post_ids(viewer)) == {posts[3]}


def test_adding_to_board_while_the_bookmark_is_removed(make_engine, seed, store, uid) -> None:
    viewer, author = uid("viewer"), uid("author")
    keep, racing = uid("keep"), uid("racing")
    seed.account(viewer)
    seed.account(author)
    seed.post(keep, author_id=author)
    seed.post(racing, author_id=author)
    engine = make_engine()
    asyncio.run(engine.add_bookmark(viewer, keep))
    asyncio.run(engine.add_bookmark(viewer, racing))
    board = asyncio.run(engine.create_board(viewer, "Race")).value
    asyncio.run(engine.add_posts_to_board(viewer, board.id, [keep]))

    async def run():
        return await asyncio.gather(
            engine.add_posts_to_board(viewer, board.id, [racing]),
            engine.remove_bookmark(viewer, racing),
        )

    added, removed = asyncio.run(run())
    assert added.ok
    assert removed.ok

    raw = _raw_board(store, viewer, board.id)
    assert racing not in raw.post_ids
    assert keep in raw.post_ids
    _assert_count_invariant(raw)
