"""pytest fixtures for podcast canvas tests."""

import pytest
import tempfile
from pathlib import Path

from podcast_canvas.core.models import Podcast, PodcastNode
from podcast_canvas.core.persistence import MemoryPersistence
from podcast_canvas.core.store import PodcastStore


@pytest.fixture
def temp_dir():
    """temporary directory that cleans up after test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def podcast():
    """draft podcast about the pyramids."""
    return Podcast.create(user_id="tester", title="金字塔之谜", root_topic="金字塔之谜")


@pytest.fixture
def root(podcast):
    return PodcastNode.create_root(podcast.id, podcast.root_topic)


@pytest.fixture
def store(podcast, root):
    """store with the podcast and just its root."""
    s = PodcastStore()
    s.set_podcast(podcast)
    s.set_nodes([root])
    return s


@pytest.fixture
def tree(store, podcast, root):
    """root with three topics, a content node under the first, and an ending.

    returns (store, nodes by name).
    """
    a = PodcastNode.create_topic(podcast.id, root.id, "建造之谜", "巨石如何运输", 0)
    b = PodcastNode.create_topic(podcast.id, root.id, "法老的诅咒", "传说与真相", 1)
    c = PodcastNode.create_topic(podcast.id, root.id, "星象对齐", "天文学视角", 2)
    a_content = PodcastNode.create_content(podcast.id, a.id, a.title)
    b_child = PodcastNode.create_topic(podcast.id, b.id, "图坦卡蒙", "考古发现", 0)
    ending = PodcastNode.create_ending(podcast.id, root.id)
    store.add_nodes([a, b, c, a_content, b_child, ending])
    store.mark_clean()
    return store, {
        "root": root,
        "a": a,
        "b": b,
        "c": c,
        "a_content": a_content,
        "b_child": b_child,
        "ending": ending,
    }


@pytest.fixture
def memory():
    """in-memory persistence."""
    return MemoryPersistence()


@pytest.fixture
def chunks_of():
    """build an async iterable over transport chunks."""
    def make(*parts):
        async def gen():
            for part in parts:
                yield part
        return gen()
    return make
