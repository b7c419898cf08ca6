"""Relational store client — users, posts, replies, votes and story records.

Console handlers talk to the hosted database through the protocol below and
never implement storage logic themselves: filtering, soft deletion, vote
upserts and counting are the store's job.

    PostgrestStore  — real HTTP client for a Supabase / PostgREST backend.
    MemoryStore     — in-process dictionaries. Lets you run the console and
                      the web app without a database; the tests use it too.

Rows are plain dicts shaped like PostgREST responses. Posts and stories carry
their author under "users" ({"username": ..., "avatar": ...}).
"""

from __future__ import annotations

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Protocol

import httpx

logger = logging.getLogger(__name__)

Row = dict[str, Any]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _base36(n: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    out = ""
    while True:
        n, r = divmod(n, 36)
        out = digits[r] + out
        if n == 0:
            return out


def unique_username(base: str) -> str:
    """Username for a new profile: base name plus a base-36 millisecond stamp."""
    return f"{base}_{_base36(int(time.time() * 1000))}".lower()


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------

class CommunityStore(Protocol):
    async def get_user(self, user_id: str) -> Row | None: ...
    async def update_user(self, user_id: str, fields: Row) -> Row | None: ...
    async def ensure_user_profile(self, user_id: str | None, email: str, username: str) -> Row: ...

    async def create_post(self, data: Row) -> Row: ...
    async def get_post(self, post_id: str) -> Row | None: ...
    async def list_posts(self, limit: int = 10) -> list[Row]: ...
    async def create_reply(self, data: Row) -> Row: ...
    async def vote_on_post(self, user_id: str, post_id: str, vote_type: str, reason: str = "") -> Row: ...
    async def search_posts(self, query: str, limit: int = 5) -> list[Row]: ...
    async def delete_post(self, post_id: str, author_id: str) -> Row | None: ...

    async def create_story(self, data: Row) -> Row: ...
    async def list_stories(self, limit: int = 10, is_public: bool | None = True) -> list[Row]: ...
    async def get_story_by_slug(self, slug: str) -> Row | None: ...
    async def update_story(self, story_id: str, fields: Row) -> Row | None: ...
    async def search_stories(self, query: str, limit: int = 5) -> list[Row]: ...
    async def fork_story(self, original_id: str, data: Row) -> Row: ...


# ---------------------------------------------------------------------------
# PostgrestStore
# ---------------------------------------------------------------------------

_POST_SELECT = "*,users!posts_author_id_fkey(username,avatar,reputation_score)"
_STORY_SELECT = "*,users!stories_author_id_fkey(username,avatar,reputation_score)"


def _ilike_term(query: str) -> str:
    # PostgREST logic trees use , ( ) as syntax
    return "".join(c for c in query if c not in ",()")


class PostgrestStore:
    """Async HTTP client for a Supabase project (PostgREST + auth admin API).

    Args:
        url:         Project URL, e.g. "https://abc.supabase.co".
        service_key: Service-role key; sent as apikey and bearer token.
        timeout:     HTTP timeout in seconds. Defaults to 30.
    """

    def __init__(self, url: str, service_key: str, timeout: float = 30.0) -> None:
        self._base_url = url.rstrip("/")
        self._key = service_key
        self._timeout = timeout

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        headers = {
            "apikey": self._key,
            "Authorization": f"Bearer {self._key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> Any:
        url = f"{self._base_url}{path}"
        logger.debug("store call %s %s params=%s", method, path, params)
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.request(
                    method, url, params=params, json=json, headers=self._headers(prefer)
                )
                resp.raise_for_status()
            return resp.json() if resp.content else None
        except httpx.ConnectError as e:
            raise StoreError(f"Cannot connect to database at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise StoreError(_describe_failure(e.response)) from e
        except httpx.TimeoutException as e:
            raise StoreError(f"Database timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise StoreError(f"Database request failed: {e}") from e
        except ValueError as e:
            raise StoreError("Database returned a non-JSON response") from e

    async def _select(self, table: str, params: dict[str, Any]) -> list[Row]:
        return await self._request("GET", f"/rest/v1/{table}", params=params) or []

    async def _first(self, table: str, params: dict[str, Any]) -> Row | None:
        rows = await self._select(table, {**params, "limit": 1})
        return rows[0] if rows else None

    async def _write(self, method: str, table: str, *, params=None, json=None, prefer="return=representation") -> Row | None:
        rows = await self._request(method, f"/rest/v1/{table}", params=params, json=json, prefer=prefer)
        if isinstance(rows, list):
            return rows[0] if rows else None
        return rows

    # -- users -----------------------------------------------------------

    async def get_user(self, user_id: str) -> Row | None:
        return await self._first("users", {"select": "*", "id": f"eq.{user_id}"})

    async def update_user(self, user_id: str, fields: Row) -> Row | None:
        return await self._write("PATCH", "users", params={"id": f"eq.{user_id}"}, json=fields)

    async def _create_auth_user(self, email: str, username: str) -> str | None:
        body = {
            "email": email,
            "password": f"{uuid.uuid4()}Aa1!",
            "email_confirm": True,
            "user_metadata": {"username": username},
        }
        created = await self._request("POST", "/auth/v1/admin/users", json=body)
        if isinstance(created, dict):
            return created.get("id") or (created.get("user") or {}).get("id")
        return None

    async def ensure_user_profile(self, user_id: str | None, email: str, username: str) -> Row:
        if user_id:
            existing = await self.get_user(user_id)
            if existing:
                return existing
        else:
            user_id = await self._create_auth_user(email, username)
        if not user_id:
            raise StoreError("Unable to resolve auth user id")
        profile = await self._write("POST", "users", json={
            "id": user_id,
            "username": unique_username(username or email.split("@")[0] or "aiuser"),
            "email": email,
            "avatar": None,
        })
        if profile is None:
            raise StoreError("Profile insert returned no row")
        logger.info("created profile for user %s", user_id)
        return profile

    # -- posts -----------------------------------------------------------

    async def create_post(self, data: Row) -> Row:
        row = await self._write("POST", "posts", json=data)
        if row is None:
            raise StoreError("Post insert returned no row")
        return row

    async def get_post(self, post_id: str) -> Row | None:
        return await self._first("posts", {
            "select": _POST_SELECT + ",replies(count)",
            "id": f"eq.{post_id}",
            "deleted_at": "is.null",
        })

    async def list_posts(self, limit: int = 10) -> list[Row]:
        return await self._select("posts", {
            "select": _POST_SELECT,
            "deleted_at": "is.null",
            "order": "created_at.desc",
            "limit": limit,
        })

    async def create_reply(self, data: Row) -> Row:
        row = await self._write("POST", "replies", json=data)
        if row is None:
            raise StoreError("Reply insert returned no row")
        return row

    async def vote_on_post(self, user_id: str, post_id: str, vote_type: str, reason: str = "") -> Row:
        row = await self._write(
            "POST", "votes",
            json={
                "user_id": user_id,
                "target_type": "post",
                "target_id": post_id,
                "vote_type": vote_type,
                "reason": reason or None,
            },
            prefer="resolution=merge-duplicates,return=representation",
        )
        if row is None:
            raise StoreError("Vote upsert returned no row")
        return row

    async def search_posts(self, query: str, limit: int = 5) -> list[Row]:
        term = _ilike_term(query)
        return await self._select("posts", {
            "select": _POST_SELECT,
            "deleted_at": "is.null",
            "or": f"(title.ilike.*{term}*,text.ilike.*{term}*)",
            "order": "upvotes.desc",
            "limit": limit,
        })

    async def delete_post(self, post_id: str, author_id: str) -> Row | None:
        now = _now()
        return await self._write(
            "PATCH", "posts",
            params={"id": f"eq.{post_id}", "author_id": f"eq.{author_id}"},
            json={"deleted_at": now, "updated_at": now},
        )

    # -- stories ---------------------------------------------------------

    async def create_story(self, data: Row) -> Row:
        row = await self._write("POST", "stories", json={**data, "is_public": data.get("is_public", True)})
        if row is None:
            raise StoreError("Story insert returned no row")
        return row

    async def list_stories(self, limit: int = 10, is_public: bool | None = True) -> list[Row]:
        params: dict[str, Any] = {"select": _STORY_SELECT, "order": "created_at.desc", "limit": limit}
        if is_public is not None:
            params["is_public"] = f"eq.{str(is_public).lower()}"
        return await self._select("stories", params)

    async def get_story_by_slug(self, slug: str) -> Row | None:
        return await self._first("stories", {"select": _STORY_SELECT, "slug": f"eq.{slug}"})

    async def update_story(self, story_id: str, fields: Row) -> Row | None:
        return await self._write(
            "PATCH", "stories",
            params={"id": f"eq.{story_id}"},
            json={**fields, "updated_at": _now()},
        )

    async def search_stories(self, query: str, limit: int = 5) -> list[Row]:
        term = _ilike_term(query)
        return await self._select("stories", {
            "select": "*,users!stories_author_id_fkey(username,avatar)",
            "is_public": "eq.true",
            "or": f"(title.ilike.*{term}*,description.ilike.*{term}*)",
            "order": "play_count.desc",
            "limit": limit,
        })

    async def fork_story(self, original_id: str, data: Row) -> Row:
        original = await self._first("stories", {"select": "*", "id": f"eq.{original_id}"})
        if original is None:
            raise StoreError("Story not found")
        story = await self.create_story({
            **data,
            "tags": original.get("tags") or [],
            "attributes": {
                **(original.get("attributes") or {}),
                "forked_from": original_id,
                "fork_created_at": _now(),
            },
        })
        await self._request("POST", "/rest/v1/rpc/increment_story_fork_count", json={"story_id": original_id})
        return story


def _describe_failure(response: httpx.Response) -> str:
    message = ""
    try:
        body = response.json()
        if isinstance(body, dict):
            message = body.get("message") or body.get("msg") or body.get("error") or ""
    except ValueError:
        pass
    text = f"Database returned HTTP {response.status_code}"
    return f"{text}: {message}" if message else text


# ---------------------------------------------------------------------------
# MemoryStore
# ---------------------------------------------------------------------------

class MemoryStore:
    """Dictionary-backed store with the same row shapes as PostgrestStore.

    Useful for running the console without a database. Nothing is persisted.
    """

    def __init__(self) -> None:
        self.users: dict[str, Row] = {}
        self.posts: dict[str, Row] = {}
        self.replies: dict[str, Row] = {}
        self.votes: dict[tuple[str, str], Row] = {}
        self.stories: dict[str, Row] = {}

    def _author(self, user_id: str | None) -> Row | None:
        user = self.users.get(user_id or "")
        if user is None:
            return None
        return {"username": user["username"], "avatar": user.get("avatar")}

    def _with_author(self, row: Row) -> Row:
        return {**row, "users": self._author(row.get("author_id"))}

    # -- users -----------------------------------------------------------

    async def get_user(self, user_id: str) -> Row | None:
        user = self.users.get(user_id)
        return dict(user) if user else None

    async def update_user(self, user_id: str, fields: Row) -> Row | None:
        user = self.users.get(user_id)
        if user is None:
            return None
        user.update(fields)
        return dict(user)

    async def ensure_user_profile(self, user_id: str | None, email: str, username: str) -> Row:
        user_id = user_id or str(uuid.uuid4())
        if user_id not in self.users:
            self.users[user_id] = {
                "id": user_id,
                "username": unique_username(username or email.split("@")[0] or "aiuser"),
                "email": email,
                "avatar": None,
                "created_at": _now(),
            }
        return dict(self.users[user_id])

    # -- posts -----------------------------------------------------------

    async def create_post(self, data: Row) -> Row:
        post = {
            "id": str(uuid.uuid4()),
            "title": None,
            "upvotes": 0,
            "tags": [],
            "deleted_at": None,
            "created_at": _now(),
            **data,
        }
        self.posts[post["id"]] = post
        return dict(post)

    def _live_posts(self) -> list[Row]:
        posts = [p for p in self.posts.values() if p.get("deleted_at") is None]
        return list(reversed(posts))

    async def get_post(self, post_id: str) -> Row | None:
        post = self.posts.get(post_id)
        if post is None or post.get("deleted_at") is not None:
            return None
        count = sum(1 for r in self.replies.values() if r.get("parent_id") == post_id)
        return {**self._with_author(post), "replies": [{"count": count}]}

    async def list_posts(self, limit: int = 10) -> list[Row]:
        return [self._with_author(p) for p in self._live_posts()[:limit]]

    async def create_reply(self, data: Row) -> Row:
        if data.get("parent_id") not in self.posts:
            raise StoreError(f"Post {data.get('parent_id')} does not exist")
        reply = {"id": str(uuid.uuid4()), "created_at": _now(), **data}
        self.replies[reply["id"]] = reply
        return dict(reply)

    async def vote_on_post(self, user_id: str, post_id: str, vote_type: str, reason: str = "") -> Row:
        if post_id not in self.posts:
            raise StoreError(f"Post {post_id} does not exist")
        vote = {
            "user_id": user_id,
            "target_type": "post",
            "target_id": post_id,
            "vote_type": vote_type,
            "reason": reason or None,
        }
        self.votes[(user_id, post_id)] = vote
        post = self.posts[post_id]
        post["upvotes"] = sum(
            1 for v in self.votes.values()
            if v["target_id"] == post_id and v["vote_type"] == "upvote"
        )
        return dict(vote)

    async def search_posts(self, query: str, limit: int = 5) -> list[Row]:
        needle = query.lower()
        hits = [
            p for p in self._live_posts()
            if needle in (p.get("title") or "").lower() or needle in (p.get("text") or "").lower()
        ]
        hits.sort(key=lambda p: p.get("upvotes", 0), reverse=True)
        return [self._with_author(p) for p in hits[:limit]]

    async def delete_post(self, post_id: str, author_id: str) -> Row | None:
        post = self.posts.get(post_id)
        if post is None or post.get("author_id") != author_id:
            return None
        now = _now()
        post["deleted_at"] = now
        post["updated_at"] = now
        return dict(post)

    # -- stories ---------------------------------------------------------

    async def create_story(self, data: Row) -> Row:
        if any(s["slug"] == data.get("slug") for s in self.stories.values()):
            raise StoreError(f"A story with slug '{data.get('slug')}' already exists")
        story = {
            "id": str(uuid.uuid4()),
            "play_count": 0,
            "like_count": 0,
            "fork_count": 0,
            "tags": [],
            "attributes": {},
            "created_at": _now(),
            **data,
            "is_public": data.get("is_public", True),
        }
        self.stories[story["id"]] = story
        return dict(story)

    async def list_stories(self, limit: int = 10, is_public: bool | None = True) -> list[Row]:
        stories = list(reversed(self.stories.values()))
        if is_public is not None:
            stories = [s for s in stories if s.get("is_public") == is_public]
        return [self._with_author(s) for s in stories[:limit]]

    async def get_story_by_slug(self, slug: str) -> Row | None:
        for story in self.stories.values():
            if story["slug"] == slug:
                return self._with_author(story)
        return None

    async def update_story(self, story_id: str, fields: Row) -> Row | None:
        story = self.stories.get(story_id)
        if story is None:
            return None
        story.update(fields)
        story["updated_at"] = _now()
        return dict(story)

    async def search_stories(self, query: str, limit: int = 5) -> list[Row]:
        needle = query.lower()
        hits = [
            s for s in self.stories.values()
            if s.get("is_public")
            and (needle in (s.get("title") or "").lower() or needle in (s.get("description") or "").lower())
        ]
        hits.sort(key=lambda s: s.get("play_count", 0), reverse=True)
        return [self._with_author(s) for s in hits[:limit]]

    async def fork_story(self, original_id: str, data: Row) -> Row:
        original = self.stories.get(original_id)
        if original is None:
            raise StoreError("Story not found")
        story = await self.create_story({
            **data,
            "tags": list(original.get("tags") or []),
            "attributes": {
                **(original.get("attributes") or {}),
                "forked_from": original_id,
                "fork_created_at": _now(),
            },
        })
        original["fork_count"] = original.get("fork_count", 0) + 1
        return story


# ---------------------------------------------------------------------------
# StoreError — raised for all connection and protocol failures
# ---------------------------------------------------------------------------

class StoreError(RuntimeError):
    """Raised when the relational store cannot be reached or rejects a request."""
