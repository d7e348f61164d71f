"""tests for persistence backends."""

import json

import pytest

from podcast_canvas.core.models import PodcastNode, ScriptStyle
from podcast_canvas.core.persistence import (
    DATA_DIR_ENV_VAR,
    JsonFilePersistence,
    MemoryPersistence,
    PersistenceError,
    get_data_dir,
)


@pytest.fixture(params=["memory", "json"])
def backend(request, temp_dir):
    if request.param == "memory":
        return MemoryPersistence()
    return JsonFilePersistence(temp_dir)


class TestBackends:
    """behaviour shared by both backends."""

    @pytest.mark.asyncio
    async def test_create_and_fetch(self, backend, podcast, root):
        await backend.create_podcast(podcast, root)
        assert (await backend.get_podcast(podcast.id)).title == podcast.title
        nodes = await backend.fetch_nodes(podcast.id)
        assert [n.id for n in nodes] == [root.id]

    @pytest.mark.asyncio
    async def test_missing_podcast(self, backend):
        assert await backend.get_podcast("nope") is None
        with pytest.raises(PersistenceError):
            await backend.fetch_nodes("nope")

    @pytest.mark.asyncio
    async def test_fetch_ordered_by_creation(self, backend, podcast, root):
        await backend.create_podcast(podcast, root)
        later = PodcastNode.create_topic(podcast.id, root.id, "b", "", 1)
        earlier = PodcastNode.create_topic(podcast.id, root.id, "a", "", 0)
        earlier.created_at = "2000-01-01T00:00:00"
        await backend.upsert_nodes(podcast.id, [later, earlier])
        ids = [n.id for n in await backend.fetch_nodes(podcast.id)]
        assert ids[0] == earlier.id

    @pytest.mark.asyncio
    async def test_upsert_and_delete(self, backend, podcast, root):
        await backend.create_podcast(podcast, root)
        t = PodcastNode.create_topic(podcast.id, root.id, "a", "", 0)
        await backend.upsert_nodes(podcast.id, [t])
        t.title = "renamed"
        await backend.upsert_nodes(podcast.id, [t])
        nodes = {n.id: n for n in await backend.fetch_nodes(podcast.id)}
        assert nodes[t.id].title == "renamed"

        await backend.delete_nodes(podcast.id, [t.id, "never-existed"])
        assert [n.id for n in await backend.fetch_nodes(podcast.id)] == [root.id]

    @pytest.mark.asyncio
    async def test_update_podcast(self, backend, podcast, root):
        await backend.create_podcast(podcast, root)
        updated = await backend.update_podcast(podcast.id, title="新标题", script_style=ScriptStyle.DIALOGUE)
        assert updated.title == "新标题"
        assert updated.script_style == ScriptStyle.DIALOGUE
        with pytest.raises(PersistenceError):
            await backend.update_podcast(podcast.id, bogus=1)

    @pytest.mark.asyncio
    async def test_autosave_replaces_node_set(self, backend, podcast, root):
        await backend.create_podcast(podcast, root)
        stale = PodcastNode.create_topic(podcast.id, root.id, "stale", "", 0)
        await backend.upsert_nodes(podcast.id, [stale])

        fresh = PodcastNode.create_topic(podcast.id, root.id, "fresh", "", 1)
        await backend.autosave(podcast.id, [root, fresh], {"selected_path": [root.id]})

        assert {n.id for n in await backend.fetch_nodes(podcast.id)} == {root.id, fresh.id}
        saved = await backend.get_podcast(podcast.id)
        assert saved.canvas_state == {"selected_path": [root.id]}
        assert saved.last_autosave_at is not None

    @pytest.mark.asyncio
    async def test_list_filters_by_user(self, backend, podcast, root):
        await backend.create_podcast(podcast, root)
        assert [p.id for p in await backend.list_podcasts()] == [podcast.id]
        assert await backend.list_podcasts(user_id="someone-else") == []

    @pytest.mark.asyncio
    async def test_returned_nodes_are_copies(self, backend, podcast, root):
        await backend.create_podcast(podcast, root)
        fetched = (await backend.fetch_nodes(podcast.id))[0]
        fetched.title = "mutated"
        assert (await backend.fetch_nodes(podcast.id))[0].title == root.title


class TestJsonFilePersistence:
    """file-specific behaviour."""

    @pytest.mark.asyncio
    async def test_file_layout(self, temp_dir, podcast, root):
        await JsonFilePersistence(temp_dir).create_podcast(podcast, root)
        data = json.loads((temp_dir / f"{podcast.id}.json").read_text(encoding="utf-8"))
        assert data["podcast"]["root_topic"] == "金字塔之谜"
        assert list(data["nodes"]) == [root.id]

    @pytest.mark.asyncio
    async def test_corrupt_file(self, temp_dir, podcast, root):
        backend = JsonFilePersistence(temp_dir)
        await backend.create_podcast(podcast, root)
        (temp_dir / f"{podcast.id}.json").write_text("{broken", encoding="utf-8")
        with pytest.raises(PersistenceError):
            await backend.fetch_nodes(podcast.id)
        assert await backend.list_podcasts() == []

    def test_data_dir_env(self, temp_dir, monkeypatch):
        monkeypatch.setenv(DATA_DIR_ENV_VAR, str(temp_dir / "store"))
        assert get_data_dir() == temp_dir / "store"
        assert (temp_dir / "store").is_dir()


class TestMemoryPersistence:
    """test-double behaviour."""

    @pytest.mark.asyncio
    async def test_failing(self, podcast, root):
        backend = MemoryPersistence()
        backend.failing = True
        with pytest.raises(PersistenceError):
            await backend.create_podcast(podcast, root)
        assert backend.calls == ["create_podcast"]
