"""Tests for the story document model."""

import json

import pytest
import httpx
from unittest.mock import AsyncMock, patch

from storydesigner.media import FalMedia, MediaError
from storydesigner.storage import StoryStore
from storydesigner.story import Story, media_filename


@pytest.fixture
def store(tmp_path) -> StoryStore:
    return StoryStore(tmp_path / "stories")


@pytest.fixture
def story(store) -> Story:
    return Story.create("The Badger Awakens", "A woodland tale", store=store)


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

class TestMutations:
    def test_chainable(self, story) -> None:
        result = story.add_scene("a").set_text("hi").add_event("x.jpg").link("a", "a").add_keyword("k")
        assert result is story

    def test_add_scene_becomes_current(self, story) -> None:
        story.add_scene("a").add_scene("b")
        assert story.current_scene.key == "b"
        assert [s.key for s in story.scenes] == ["a", "b"]

    def test_readding_scene_replaces_it(self, story) -> None:
        story.add_scene("a").set_text("first").add_event("old.jpg")
        story.add_scene("b")
        story.add_scene("a").set_text("second")
        assert [s.key for s in story.scenes] == ["a", "b"]
        assert story.scene("a").text == "second"
        assert story.scene("a").events == []
        assert story.events == []

    def test_set_text_without_scene_is_noop(self, story) -> None:
        story.set_text("nowhere")
        assert story.scenes == []

    def test_add_event_without_scene_is_noop(self, story) -> None:
        story.add_event("x.jpg")
        assert story.events == []

    def test_event_attached_to_scene_and_story(self, story) -> None:
        story.add_scene("start").add_event("media/forest.jpg")
        event = story.events[0]
        assert story.scene("start").events == [event]
        assert event.source == "start"
        assert event.media == "media/forest.jpg"
        assert event.event == "autostart"
        assert event.key == "start_forest_1"

    def test_event_keys_unique_for_same_media(self, story) -> None:
        story.add_scene("start").add_event("a.jpg").add_event("a.jpg").add_event("a.jpg")
        keys = [e.key for e in story.events]
        assert len(set(keys)) == 3

    def test_non_autostart_trigger_becomes_after(self, story) -> None:
        story.add_scene("s").add_event("a.jpg", "after").add_event("b.jpg", "whenever")
        assert [e.event for e in story.events] == ["after", "after"]

    def test_link_dedup(self, story) -> None:
        story.add_scene("a").add_scene("b")
        story.link("a", "b").link("a", "b")
        assert story.scene("a").connections == ["b"]

    def test_link_missing_keys_noop(self, story) -> None:
        story.add_scene("a").add_scene("b")
        story.link("a", "ghost").link("ghost", "b")
        assert story.scene("a").connections == []
        assert story.scene("b").connections == []

    def test_keywords(self, story) -> None:
        story.add_keyword("forest").add_keyword("forest").add_keyword("badger")
        assert story.keywords == ["forest", "badger"]
        story.remove_keyword("forest")
        assert story.keywords == ["badger"]

    def test_remove_scene_drops_its_events(self, story) -> None:
        story.add_scene("a").add_event("x.jpg").add_scene("b").add_event("y.jpg")
        story.remove_scene("a")
        assert [s.key for s in story.scenes] == ["b"]
        assert [e.source for e in story.events] == ["b"]

    def test_remove_current_scene_clears_current(self, story) -> None:
        story.add_scene("a").remove_scene("a")
        assert story.current_scene is None
        story.set_text("ignored")

    def test_remove_event(self, story) -> None:
        story.add_scene("a").add_event("x.jpg")
        key = story.events[0].key
        story.remove_event(key)
        assert story.events == []
        assert story.scene("a").events == []


# ---------------------------------------------------------------------------
# validate
# ---------------------------------------------------------------------------

class TestValidate:
    def test_clean_story(self, story) -> None:
        story.add_scene("a").add_scene("b").link("a", "b")
        assert story.validate() == []

    def test_reports_dangling_link_and_orphan_event(self, story) -> None:
        story.add_scene("a").add_event("x.jpg").add_scene("b").link("a", "b")
        story.scenes = [s for s in story.scenes if s.key != "b"]
        story.events[0].source = "gone"
        issues = story.validate()
        assert "scene 'a' links to missing scene 'b'" in issues
        assert any("attached to missing scene 'gone'" in i for i in issues)


# ---------------------------------------------------------------------------
# publish / load
# ---------------------------------------------------------------------------

class TestPublish:
    def test_summary(self, story, store) -> None:
        story.add_scene("a").add_event("x.jpg").add_scene("b")
        summary = story.publish()
        assert summary.slug == "the-badger-awakens"
        assert summary.scenes == 2
        assert summary.events == 1
        assert summary.media == 0
        assert store.exists("the-badger-awakens")

    def test_serialised_fields(self, story, store) -> None:
        story.add_scene("a").set_locked(True).set_mindmap({"nodes": []}).set_attributes({"mood": "calm"})
        story.publish()
        raw = json.loads(store.story_file(story.slug).read_text())
        assert raw["isLocked"] is True
        assert raw["mindmap"] == {"nodes": []}
        assert raw["attributes"] == {"mood": "calm"}
        assert raw["description"] == "A woodland tale"

    def test_round_trip_preserves_scene_order(self, story, store) -> None:
        story.add_scene("start").set_text("Begin").add_event("f.jpg")
        story.add_scene("den").set_text("Den")
        story.add_scene("river").set_text("River")
        story.link("start", "river").link("start", "den").link("den", "river")
        story.publish()

        loaded = Story.load(store, story.slug)
        assert loaded.name == story.name
        assert [s.key for s in loaded.scenes] == ["start", "den", "river"]
        assert [s.text for s in loaded.scenes] == ["Begin", "Den", "River"]
        assert loaded.scene("start").connections == ["river", "den"]
        assert loaded.scene("den").connections == ["river"]
        # scene events and the story-wide list stay the same objects
        assert loaded.scene("start").events[0] is loaded.events[0]

    def test_loaded_story_keeps_event_keys_unique(self, story, store) -> None:
        story.add_scene("a").add_event("x.jpg")
        story.publish()
        loaded = Story.load(store, story.slug)
        loaded.add_scene("b").add_event("x.jpg")
        assert len({e.key for e in loaded.events}) == 2

    def test_keys_continue_past_removed_events_after_load(self, story, store) -> None:
        story.add_scene("p").add_event("q_r.jpg").add_event("x.jpg")
        story.add_scene("p_q").add_event("r.jpg")
        story.remove_event("p_q_r_1")
        story.publish()
        loaded = Story.load(store, story.slug)
        loaded.add_scene("p").add_event("q_r.jpg")
        keys = [e.key for e in loaded.events]
        assert keys == ["p_q_r_3", "p_q_r_4"]
        assert [e.source for e in loaded.events] == ["p_q", "p"]

    def test_load_missing(self, store) -> None:
        assert Story.load(store, "ghost") is None

    def test_publish_without_store(self) -> None:
        with pytest.raises(RuntimeError):
            Story.create("Loose").publish()


# ---------------------------------------------------------------------------
# generate_media
# ---------------------------------------------------------------------------

class TestGenerateMedia:
    async def test_downloads_into_story_dir(self, store) -> None:
        media = AsyncMock()
        media.generate_images.return_value = ["https://cdn.example/img.jpg"]
        media.download.return_value = b"JPEGDATA"
        story = Story.create("Tale", store=store, media=media)

        filename = await story.generate_media("misty forest", "fantasy")

        assert filename == "misty-forest.jpg"
        assert store.media_path("tale", filename).read_bytes() == b"JPEGDATA"
        prompt = media.generate_images.call_args.args[0]
        assert prompt.startswith("fantasy art style, misty forest")
        record = story.media[0]
        assert record.original_url == "https://cdn.example/img.jpg"
        assert record.error is None

    async def test_failure_writes_placeholder_and_still_publishes(self, store) -> None:
        media = AsyncMock()
        media.generate_images.side_effect = MediaError("service down")
        story = Story.create("Tale", store=store, media=media)
        story.add_scene("a")

        filename = await story.generate_media("misty forest")
        story.add_event(filename)
        summary = story.publish()

        assert summary.media == 1
        assert story.media[0].error == "service down"
        placeholder = store.media_path("tale", filename).read_text()
        assert "# Placeholder for: misty forest" in placeholder
        assert "# Error: service down" in placeholder
        assert store.load("tale").scenes[0].events[0].media == filename

    async def test_no_generator_writes_placeholder(self, store) -> None:
        story = Story.create("Tale", store=store)
        filename = await story.generate_media("a cave")
        assert story.media[0].error
        assert store.has_media("tale", filename)

    async def test_transport_error_from_fal_writes_placeholder(self, store) -> None:
        story = Story.create("Tale", store=store, media=FalMedia(api_key="k", base_url="https://fal.test"))
        with patch("httpx.AsyncClient.post", AsyncMock(side_effect=httpx.ReadError("reset"))):
            filename = await story.generate_media("misty forest")
        assert "reset" in story.media[0].error
        assert "# Placeholder for: misty forest" in store.media_path("tale", filename).read_text()

    def test_media_filename(self) -> None:
        assert media_filename("A Misty Forest!") == "a-misty-forest.jpg"
