"""Create a demo story for development/testing."""

from backend import storage
from storydesigner.models import PublishSummary
from storydesigner.story import Story

DEMO_SCENES = [
    ("start", "Mist hangs over the old forest. A narrow path winds between the roots.", "forest-dawn.jpg"),
    ("den", "Beneath a fallen oak, a badger stirs in its den and eyes you warily.", "badger-den.jpg"),
    ("river", "The path ends at a cold river. Stepping stones lead to the far bank.", "river-crossing.jpg"),
]


def create_demo_data() -> PublishSummary:
    """Replace the demo story with a fresh copy and publish it."""
    store = storage.story_store()
    story = Story.create(
        "The Badger Awakens",
        "A short woodland tale with two branches.",
        store=store,
    )
    store.delete(story.slug)

    for key, text, media in DEMO_SCENES:
        story.add_scene(key).set_text(text).add_event(media)
        if key == "den":
            story.add_event("badger-growl.mp3", "after")
    story.link("start", "den").link("start", "river").link("den", "river")
    story.add_keyword("forest").add_keyword("demo")
    return story.publish()
