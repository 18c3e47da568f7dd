import json
import logging
from typing import Dict, List, Mapping, Optional, Protocol, Sequence

import redis.asyncio as aioredis

from ..config import settings
from ..models.schemas import PostRecord, TaggedPost

logger = logging.getLogger(settings.SERVICE_NAME + ".store")


class TagSink(Protocol):
    """Persists the tag list of a post. Writes overwrite earlier tags."""

    max_batch_size: int

    async def write_tags(self, post_id: str, tags: List[str]) -> None: ...

    async def write_tags_many(self, items: Sequence[TaggedPost]) -> None:
        """Write every item in one atomic operation (at most max_batch_size items)."""
        ...


class PostSource(Protocol):
    """Pages through stored posts."""

    async def fetch_untagged(self, limit: int, exclude: Optional[Mapping[str, Optional[str]]] = None) -> List[PostRecord]:
        """
        Posts without tags. `exclude` maps post ids to the caption they were
        last attempted with; such posts are skipped while that caption is unchanged.
        """
        ...

    async def fetch_posts(self, limit: int) -> List[PostRecord]: ...

    async def iter_tag_lists(self) -> List[Optional[List[str]]]:
        """Tag list of every post, None for posts that have never been tagged."""
        ...


def already_attempted(post: PostRecord, exclude: Optional[Mapping[str, Optional[str]]]) -> bool:
    """True when the post was attempted before with the caption it still has."""
    return bool(exclude) and post.id in exclude and exclude[post.id] == post.caption


class InMemoryPostStore:
    """Dict-backed post store for local runs and tests."""

    def __init__(self, max_batch_size: Optional[int] = None):
        self.max_batch_size = max_batch_size or settings.WRITE_CHUNK_SIZE
        self.posts: Dict[str, PostRecord] = {}

    async def save_post(self, post_id: str, caption: Optional[str]) -> None:
        self.posts[post_id] = PostRecord(id=post_id, caption=caption)

    async def write_tags(self, post_id: str, tags: List[str]) -> None:
        post = self.posts.get(post_id) or PostRecord(id=post_id)
        post.tags = list(tags)
        self.posts[post_id] = post

    async def write_tags_many(self, items: Sequence[TaggedPost]) -> None:
        if len(items) > self.max_batch_size:
            raise ValueError(f"Batch of {len(items)} writes exceeds limit {self.max_batch_size}")
        for item in items:
            await self.write_tags(item.post_id, item.tags)

    async def fetch_untagged(self, limit: int, exclude: Optional[Mapping[str, Optional[str]]] = None) -> List[PostRecord]:
        page = []
        for post_id in sorted(self.posts):
            if len(page) >= limit:
                break
            post = self.posts[post_id]
            if post.tags is None and not already_attempted(post, exclude):
                page.append(post.model_copy())
        return page

    async def fetch_posts(self, limit: int) -> List[PostRecord]:
        return [self.posts[post_id].model_copy() for post_id in sorted(self.posts)[:limit]]

    async def iter_tag_lists(self) -> List[Optional[List[str]]]:
        return [post.tags for post in self.posts.values()]

    async def close(self) -> None:
        return None


class RedisPostStore:
    """
    Redis-backed post store.

    Each post is a hash `<prefix>:post:<id>` with `caption` and, once tagged,
    `tags` (JSON list). Set `<prefix>:index` holds every post id and
    `<prefix>:untagged` the ids still waiting for tags.
    """

    def __init__(
        self,
        redis: Optional[aioredis.Redis] = None,
        key_prefix: Optional[str] = None,
        max_batch_size: Optional[int] = None,
    ):
        self.redis = redis or aioredis.from_url(str(settings.REDIS_URL), decode_responses=True)
        self.key_prefix = key_prefix or settings.REDIS_KEY_PREFIX
        self.max_batch_size = max_batch_size or settings.WRITE_CHUNK_SIZE
        logger.info(f"RedisPostStore initialized with key prefix '{self.key_prefix}'")

    def post_key(self, post_id: str) -> str:
        return f"{self.key_prefix}:post:{post_id}"

    @property
    def index_key(self) -> str:
        return f"{self.key_prefix}:index"

    @property
    def untagged_key(self) -> str:
        return f"{self.key_prefix}:untagged"

    async def save_post(self, post_id: str, caption: Optional[str]) -> None:
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.hset(self.post_key(post_id), mapping={"caption": caption or ""})
            pipe.hdel(self.post_key(post_id), "tags")
            pipe.sadd(self.index_key, post_id)
            pipe.sadd(self.untagged_key, post_id)
            await pipe.execute()

    def _queue_tags(self, pipe, post_id: str, tags: List[str]) -> None:
        pipe.hset(self.post_key(post_id), "tags", json.dumps(list(tags), ensure_ascii=False))
        pipe.sadd(self.index_key, post_id)
        pipe.srem(self.untagged_key, post_id)

    async def write_tags(self, post_id: str, tags: List[str]) -> None:
        async with self.redis.pipeline(transaction=True) as pipe:
            self._queue_tags(pipe, post_id, tags)
            await pipe.execute()
        logger.debug(f"Wrote tags for post {post_id}: {tags}")

    async def write_tags_many(self, items: Sequence[TaggedPost]) -> None:
        if len(items) > self.max_batch_size:
            raise ValueError(f"Batch of {len(items)} writes exceeds limit {self.max_batch_size}")
        if not items:
            return
        # MULTI/EXEC: the whole chunk commits or nothing does
        async with self.redis.pipeline(transaction=True) as pipe:
            for item in items:
                self._queue_tags(pipe, item.post_id, item.tags)
            await pipe.execute()
        logger.info(f"Committed tags for {len(items)} posts")

    async def _read_post(self, post_id: str) -> Optional[PostRecord]:
        data = await self.redis.hgetall(self.post_key(post_id))
        if not data:
            return None
        raw_tags = data.get("tags")
        return PostRecord(
            id=post_id,
            caption=data.get("caption") or None,
            tags=json.loads(raw_tags) if raw_tags is not None else None,
        )

    async def _read_page(self, set_key: str, limit: int, exclude: Optional[Mapping[str, Optional[str]]] = None) -> List[PostRecord]:
        page: List[PostRecord] = []
        async for post_id in self.redis.sscan_iter(set_key, count=max(limit, 10)):
            if len(page) >= limit:
                break
            post = await self._read_post(post_id)
            if post is not None and not already_attempted(post, exclude):
                page.append(post)
        return page

    async def fetch_untagged(self, limit: int, exclude: Optional[Mapping[str, Optional[str]]] = None) -> List[PostRecord]:
        return await self._read_page(self.untagged_key, limit, exclude)

    async def fetch_posts(self, limit: int) -> List[PostRecord]:
        return await self._read_page(self.index_key, limit)

    async def iter_tag_lists(self) -> List[Optional[List[str]]]:
        tag_lists: List[Optional[List[str]]] = []
        async for post_id in self.redis.sscan_iter(self.index_key):
            raw_tags = await self.redis.hget(self.post_key(post_id), "tags")
            tag_lists.append(json.loads(raw_tags) if raw_tags is not None else None)
        return tag_lists

    async def close(self) -> None:
        try:
            await self.redis.aclose()
            logger.info("Redis connection closed.")
        except Exception as e:
            logger.error(f"Error closing Redis connection: {e}", exc_info=True)


def create_post_store(backend: Optional[str] = None):
    """Build the post store selected by STORE_BACKEND."""
    backend = backend or settings.STORE_BACKEND
    if backend == "memory":
        logger.info("Using in-memory post store")
        return InMemoryPostStore()
    return RedisPostStore()
