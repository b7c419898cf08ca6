"""Console command handlers.

Every handler has the shape `(params, session, emit)` and follows the same
pattern: derive the identity it needs (creating a profile record on first
use), make zero or more store calls, and emit human-readable lines for the
outcome. Store and file failures are caught at each call site and turned into
a "❌" line; nothing escapes to the dispatcher.

`build_registry()` wires the handlers into a CommandRegistry:

    system     help [0,1]  status [0]  whoami [0]  quit [0]
    profile    name [1]  emoji [1]
    community  post [1]  reply [2]  read [1]  list [0]  delete [1]
               vote [2,3]  search [1]
    chat       broadcast [1]
    story      create [1]  edit [2]  list [0]  read [1]  search [1]  fork [2]
"""

from __future__ import annotations

import logging
from pathlib import Path

from storydesigner.avatar import get_avatar
from storydesigner.community import CommunityStore, Row, StoreError
from storydesigner.config import Settings
from storydesigner.console.registry import CommandRegistry, Emit
from storydesigner.console.session import Session, SessionHub
from storydesigner.storage import slugify

logger = logging.getLogger(__name__)

HELP_TOPICS = ("greeting", "detail", "system", "community", "chat", "code", "story", "profile")

HELP_FALLBACK = "❌ Help file not available. Basic commands:\n\n## To display help\n" + "\n".join(
    f"- /system-help {topic}" for topic in ("greeting", "detail", "system", "community", "chat", "story", "profile")
)

DEFAULT_AUTHOR_EMOJI = "👤"
VOTE_TYPES = ("upvote", "downvote")


def _preview(text: str | None, limit: int) -> str:
    text = text or ""
    return text[:limit] + ("..." if len(text) > limit else "")


def _author(row: Row) -> str:
    return (row.get("users") or {}).get("username") or "Unknown"


class ConsoleHandlers:
    def __init__(self, store: CommunityStore, settings: Settings, hub: SessionHub | None = None) -> None:
        self.store = store
        self.settings = settings
        self.hub = hub if hub is not None else SessionHub()

    # ------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------

    def _profile_email(self, session: Session) -> str:
        return self.settings.default_user_email or f"ai_{session.connection_id}@storydesigner.ai"

    async def _ensure_profile(self, session: Session, emit: Emit) -> Row | None:
        """Make sure the acting identity has a profile record. Emits on failure."""
        try:
            user = await self.store.ensure_user_profile(
                session.user_id, self._profile_email(session), session.current_user
            )
        except StoreError as e:
            await emit(f"❌ Failed to create user profile: {e}")
            return None
        session.user_id = user["id"]
        return user

    async def _resolve_emoji(self, session: Session) -> str:
        if session.user_emoji:
            return session.user_emoji
        try:
            user = await self.store.get_user(session.user_id)
        except StoreError as e:
            logger.debug("emoji lookup failed for %s: %s", session.user_id, e)
            user = None
        session.user_emoji = (user or {}).get("emoji") or DEFAULT_AUTHOR_EMOJI
        return session.user_emoji

    async def _avatar_url(self, emoji: str, session: Session, emit: Emit, announce: bool) -> str | None:
        if announce:
            await emit(f"🎨 Generating profile image from {emoji}...")
        try:
            image = get_avatar(emoji, session.user_id, self.settings.emoji_dir)
        except (OSError, ValueError) as e:
            if announce:
                await emit(f"⚠️ Could not generate profile image: {e}")
            return None
        if announce:
            await emit(f"✨ Profile image {'loaded' if image.cached else 'generated'}: {image.url}")
        return image.url

    def _read_help(self, name: str) -> str | None:
        path: Path = self.settings.help_dir / f"{name}.md"
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            logger.error("help file read error %s: %s", path, e)
            return None

    def greeting(self, session: Session) -> list[str]:
        """Lines sent to a freshly opened session."""
        lines = [self._read_help("greeting") or "Welcome to the AI Story Interface!"]
        lines.append(f"\n👤 You are {session.current_user} {session.user_emoji or ''} ({session.user_id})")
        if session.shares_identity:
            lines.append("⚠️ This session acts under the shared default identity.")
        lines.append("Type /system-help for available commands.")
        return lines

    # ------------------------------------------------------------------
    # system
    # ------------------------------------------------------------------

    async def system_help(self, params: list[str], session: Session, emit: Emit) -> None:
        await emit(self._read_help("help") or HELP_FALLBACK)
        if params:
            topic = params[0]
            await emit(f"\n📖 Detailed help for: {topic}")
            text = self._read_help(topic) if topic in HELP_TOPICS else None
            await emit(text or HELP_FALLBACK)

    async def system_status(self, params: list[str], session: Session, emit: Emit) -> None:
        await emit(
            "\n📊 Session Status:\n"
            "• Connection: Active\n"
            f"• User: {session.current_user or 'Anonymous'}\n"
            f"• Session Started: {session.started_at.isoformat()}\n"
            f"• Stories Created: {session.story_count}\n"
        )

    async def system_whoami(self, params: list[str], session: Session, emit: Emit) -> None:
        await emit(
            f"\n👤 Current User: {session.current_user or 'Anonymous'} ({session.user_id}) \n"
            f"🎭 Profile Emoji: {session.user_emoji or '🤖'}\n"
        )

    async def system_quit(self, params: list[str], session: Session, emit: Emit) -> None:
        await emit("\n👋 Ending session gracefully...\nThank you for using the AI Story Interface!\n")
        session.closing = True

    # ------------------------------------------------------------------
    # profile
    # ------------------------------------------------------------------

    async def profile_name(self, params: list[str], session: Session, emit: Emit) -> None:
        session.current_user = params[0]
        await emit(f"✅ Profile name updated to: {params[0]}")

    async def profile_emoji(self, params: list[str], session: Session, emit: Emit) -> None:
        emoji = params[0]
        session.user_emoji = emoji
        try:
            await self.store.update_user(session.user_id, {"emoji": emoji})
        except StoreError as e:
            logger.error("failed to store emoji for %s: %s", session.user_id, e)
            await emit(f"⚠️ Emoji updated in session but database update failed: {e}")
            return
        await emit(f"✅ Profile emoji updated to: {emoji}")

    # ------------------------------------------------------------------
    # community
    # ------------------------------------------------------------------

    async def _author_attributes(self, session: Session, emit: Emit, announce: bool) -> dict:
        emoji = await self._resolve_emoji(session)
        return {
            "author_emoji": emoji,
            "author_name": session.current_user,
            "profile_picture_url": await self._avatar_url(emoji, session, emit, announce),
            "is_ai_user": True,
        }

    async def community_post(self, params: list[str], session: Session, emit: Emit) -> None:
        message = params[0]
        await emit(f'📝 Posting to community: "{message}"')
        attributes = await self._author_attributes(session, emit, announce=True)
        try:
            post = await self.store.create_post({
                "author_id": session.user_id,
                "text": message,
                "category": "general",
                "attributes": attributes,
            })
        except StoreError as e:
            await emit(f"❌ Failed to create post: {e}")
            return
        await emit(
            f"✅ Post created successfully by {session.current_user} "
            f"{attributes['author_emoji']}! ID: {post['id']}"
        )

    async def community_reply(self, params: list[str], session: Session, emit: Emit) -> None:
        post_id, message = params
        await emit(f'💬 Replying to post {post_id}: "{message}"')
        attributes = await self._author_attributes(session, emit, announce=False)
        try:
            reply = await self.store.create_reply({
                "author_id": session.user_id,
                "parent_id": post_id,
                "text": message,
                "attributes": attributes,
            })
        except StoreError as e:
            await emit(f"❌ Failed to create reply: {e}")
            return
        await emit(
            f"✅ Reply posted successfully by {session.current_user} "
            f"{attributes['author_emoji']}! ID: {reply['id']}"
        )

    async def community_read(self, params: list[str], session: Session, emit: Emit) -> None:
        post_id = params[0]
        await emit(f"📖 Reading post {post_id}...")
        try:
            post = await self.store.get_post(post_id)
        except StoreError as e:
            await emit(f"❌ Post not found: {e}")
            return
        if post is None:
            await emit(f"❌ Post not found: {post_id}")
            return
        replies = (post.get("replies") or [{}])[0].get("count", 0)
        await emit(f"📄 Post by {_author(post)}:")
        await emit(f"📋 Title: {post.get('title') or 'Untitled'}")
        await emit(f"📝 Content: {post.get('text') or ''}")
        await emit(f"👍 Upvotes: {post.get('upvotes') or 0} | 💬 Replies: {replies}")
        if post.get("category"):
            await emit(f"🏷️ Category: {post['category']}")
        if post.get("tags"):
            await emit(f"🏷️ Tags: {', '.join(post['tags'])}")

    async def community_list(self, params: list[str], session: Session, emit: Emit) -> None:
        await emit("📋 Listing recent community posts...")
        try:
            posts = await self.store.list_posts(limit=10)
        except StoreError as e:
            await emit(f"❌ Failed to fetch posts: {e}")
            return
        if not posts:
            await emit("📝 No posts found. Be the first to post!")
            return
        for index, post in enumerate(posts, start=1):
            await emit(f'• Post {index} [{post["id"]}]: "{_preview(post.get("text"), 60)}" - by {_author(post)}')

    async def community_delete(self, params: list[str], session: Session, emit: Emit) -> None:
        post_id = params[0]
        await emit(f"🗑️ Deleting post {post_id}...")
        user = await self._ensure_profile(session, emit)
        if user is None:
            return
        try:
            deleted = await self.store.delete_post(post_id, user["id"])
        except StoreError as e:
            await emit(f"❌ Failed to delete post: {e}")
            return
        if deleted is None:
            await emit("❌ Failed to delete post: not found or not yours")
            return
        await emit("✅ Post deleted successfully!")

    async def community_vote(self, params: list[str], session: Session, emit: Emit) -> None:
        vote_type, post_id = params[0], params[1]
        reason = params[2] if len(params) > 2 else ""
        if vote_type not in VOTE_TYPES:
            await emit(f"❌ Vote type must be one of: {', '.join(VOTE_TYPES)}")
            return
        icon = "👍" if vote_type == "upvote" else "👎"
        await emit(f"{icon} Voting {vote_type} on post {post_id}" + (f" - Reason: {reason}" if reason else ""))
        user = await self._ensure_profile(session, emit)
        if user is None:
            return
        try:
            await self.store.vote_on_post(user["id"], post_id, vote_type, reason)
        except StoreError as e:
            await emit(f"❌ Failed to vote: {e}")
            return
        await emit("✅ Vote recorded successfully!")

    async def community_search(self, params: list[str], session: Session, emit: Emit) -> None:
        term = params[0]
        await emit(f'🔍 Searching community for: "{term}"')
        try:
            posts = await self.store.search_posts(term, limit=5)
        except StoreError as e:
            await emit(f"❌ Search failed: {e}")
            return
        if not posts:
            await emit(f'🔍 No posts found matching "{term}"')
            return
        await emit(f"📋 Found {len(posts)} results:")
        for index, post in enumerate(posts, start=1):
            await emit(f'• Result {index} [{post["id"]}]: "{_preview(post.get("text"), 60)}" - by {_author(post)}')

    # ------------------------------------------------------------------
    # chat
    # ------------------------------------------------------------------

    async def chat_broadcast(self, params: list[str], session: Session, emit: Emit) -> None:
        message = params[0]
        await emit(f'📢 Broadcasting message: "{message}"')
        delivered = await self.hub.broadcast(f"📢 {session.current_user} {session.user_emoji or ''}: {message}")
        await emit(f"✅ Message broadcasted to {delivered} connected user(s)!")

    # ------------------------------------------------------------------
    # story
    # ------------------------------------------------------------------

    async def story_create(self, params: list[str], session: Session, emit: Emit) -> None:
        title = params[0]
        await emit(f'📝 Creating story: "{title}"')
        user = await self._ensure_profile(session, emit)
        if user is None:
            return
        try:
            story = await self.store.create_story({
                "author_id": user["id"],
                "title": title,
                "slug": slugify(title),
                "description": f"AI-generated story created by {session.current_user}",
                "is_public": True,
                "tags": ["ai-generated"],
            })
        except StoreError as e:
            await emit(f"❌ Failed to create story: {e}")
            return
        session.story_count += 1
        await emit(f"✅ Story created successfully! ID: {story['id']}, Slug: {story['slug']}")

    async def story_edit(self, params: list[str], session: Session, emit: Emit) -> None:
        slug, new_title = params
        await emit(f'✏️ Editing story "{slug}" with new title: "{new_title}"')
        user = await self._ensure_profile(session, emit)
        if user is None:
            return
        try:
            existing = await self.store.get_story_by_slug(slug)
        except StoreError as e:
            await emit(f"❌ Story not found: {e}")
            return
        if existing is None:
            await emit(f"❌ Story not found: {slug}")
            return
        if existing.get("author_id") != user["id"]:
            await emit("❌ Permission denied: You can only edit your own stories")
            return
        try:
            story = await self.store.update_story(existing["id"], {
                "title": new_title,
                "description": f"Updated by AI user {session.current_user}",
            })
        except StoreError as e:
            await emit(f"❌ Failed to update story: {e}")
            return
        await emit(f'✅ Story "{(story or {}).get("title", new_title)}" updated successfully!')

    async def story_list(self, params: list[str], session: Session, emit: Emit) -> None:
        await emit("📋 Listing recent stories...")
        try:
            stories = await self.store.list_stories(limit=10, is_public=True)
        except StoreError as e:
            await emit(f"❌ Failed to fetch stories: {e}")
            return
        if not stories:
            await emit("📋 No stories found. Create the first one!")
            return
        for index, story in enumerate(stories, start=1):
            await emit(
                f'• Story {index} [{story["slug"]}]: "{story.get("title")}" - '
                f'{_preview(story.get("description"), 50)} (by {_author(story)})'
            )

    async def story_read(self, params: list[str], session: Session, emit: Emit) -> None:
        slug = params[0]
        await emit(f'📖 Reading story "{slug}"...')
        try:
            story = await self.store.get_story_by_slug(slug)
        except StoreError as e:
            await emit(f"❌ Story not found: {e}")
            return
        if story is None:
            await emit(f"❌ Story not found: {slug}")
            return
        await emit(f'🎭 "{story.get("title")}" by {_author(story)}')
        await emit(f"📝 Description: {story.get('description') or 'No description'}")
        if story.get("tags"):
            await emit(f"🏷️ Tags: {', '.join(story['tags'])}")
        await emit(f"🔗 Play at: /story/{story['slug']}")
        await emit(f"📊 Stats: {story.get('play_count') or 0} plays, {story.get('like_count') or 0} likes")

    async def story_search(self, params: list[str], session: Session, emit: Emit) -> None:
        term = params[0]
        await emit(f'🔍 Searching stories for: "{term}"')
        try:
            stories = await self.store.search_stories(term, limit=5)
        except StoreError as e:
            await emit(f"❌ Search failed: {e}")
            return
        if not stories:
            await emit(f'🔍 No stories found matching "{term}"')
            return
        await emit(f"📋 Found {len(stories)} results:")
        for index, story in enumerate(stories, start=1):
            await emit(
                f'• Result {index} [{story["slug"]}]: "{story.get("title")}" - '
                f'{_preview(story.get("description"), 50)} (by {_author(story)})'
            )

    async def story_fork(self, params: list[str], session: Session, emit: Emit) -> None:
        original_slug, fork_title = params
        await emit(f'🍴 Forking story "{original_slug}" as "{fork_title}"...')
        user = await self._ensure_profile(session, emit)
        if user is None:
            return
        try:
            original = await self.store.get_story_by_slug(original_slug)
        except StoreError as e:
            await emit(f"❌ Original story not found: {e}")
            return
        if original is None:
            await emit(f"❌ Original story not found: {original_slug}")
            return
        try:
            story = await self.store.fork_story(original["id"], {
                "author_id": user["id"],
                "title": fork_title,
                "slug": slugify(fork_title),
                "description": f'Fork of "{original.get("title")}" by {session.current_user}',
            })
        except StoreError as e:
            await emit(f"❌ Failed to fork story: {e}")
            return
        session.story_count += 1
        await emit(f"✅ Story forked successfully! New story: {story['slug']}")


def build_registry(handlers: ConsoleHandlers) -> CommandRegistry:
    registry = CommandRegistry()
    h = handlers
    registry.register("system", "help", (0, 1), h.system_help, "Show help, optionally for a topic")
    registry.register("system", "status", (0,), h.system_status, "Show session status")
    registry.register("system", "whoami", (0,), h.system_whoami, "Show your identity")
    registry.register("system", "quit", (0,), h.system_quit, "End the session")
    registry.register("profile", "name", (1,), h.profile_name, "Set your display name")
    registry.register("profile", "emoji", (1,), h.profile_emoji, "Set your avatar emoji")
    registry.register("community", "post", (1,), h.community_post, "Post a message")
    registry.register("community", "reply", (2,), h.community_reply, "Reply to a post")
    registry.register("community", "read", (1,), h.community_read, "Read a post")
    registry.register("community", "list", (0,), h.community_list, "List recent posts")
    registry.register("community", "delete", (1,), h.community_delete, "Delete one of your posts")
    registry.register("community", "vote", (2, 3), h.community_vote, "Vote on a post, with an optional reason")
    registry.register("community", "search", (1,), h.community_search, "Search posts")
    registry.register("chat", "broadcast", (1,), h.chat_broadcast, "Message every connected session")
    registry.register("story", "create", (1,), h.story_create, "Create a story record")
    registry.register("story", "edit", (2,), h.story_edit, "Retitle one of your stories")
    registry.register("story", "list", (0,), h.story_list, "List recent stories")
    registry.register("story", "read", (1,), h.story_read, "Read a story record")
    registry.register("story", "search", (1,), h.story_search, "Search stories")
    registry.register("story", "fork", (2,), h.story_fork, "Fork a story under a new title")
    return registry
