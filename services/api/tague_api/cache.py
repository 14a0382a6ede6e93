from __future__ import annotations

from tague_api.docstore import DocumentStore
from tague_api.schemas import POSTS, Post


class SessionCache:
    """Post lookups cached for the lifetime of one user session.

    Built by the engine for a session and dropped on logout; nothing here is
    shared between sessions.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store
        self._posts: dict[str, Post] = {}
        self.closed = False

    async def get_post(self, post_id: str) -> Post | None:
        key = str(post_id)
        if not self.closed and key in self._posts:
            return self._posts[key]
        post = Post.from_doc(await self._store.get_document(POSTS, key))
        if post is not None and not self.closed:
            self._posts[key] = post
        return post

    def invalidate(self) -> None:
        self._posts.clear()
        self.closed = True

    def __len__(self) -> int:
        return len(self._posts)
