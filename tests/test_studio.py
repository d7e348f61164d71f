"""tests for the studio session."""

import asyncio

import pytest

from podcast_canvas.core.client import MockGenerationService
from podcast_canvas.core.models import NodeType, ScriptStyle, TopicSuggestion
from podcast_canvas.core.persistence import MemoryPersistence, PersistenceError
from podcast_canvas.core.studio import PodcastStudio


@pytest.fixture
def generator():
    return MockGenerationService(
        topics=[
            TopicSuggestion("建造之谜", "巨石如何运输"),
            TopicSuggestion("法老的诅咒", "传说与真相"),
            TopicSuggestion("星象对齐", "天文学视角"),
        ],
        fragments=["古埃及人", "如何", "搬运巨石"],
        chunk_size=7,
    )


@pytest.fixture
def studio(generator):
    # triggers disabled; tests save explicitly
    return PodcastStudio(MemoryPersistence(), generator, debounce=0, autosave_interval=0)


def lanes(studio, parent_id):
    return [c.node_type for c in studio.store.get_child_nodes(parent_id)]


class TestLifecycle:
    """tests for creating, loading and closing a podcast."""

    @pytest.mark.asyncio
    async def test_create(self, studio):
        podcast = await studio.create_podcast("金字塔之谜", "金字塔之谜")
        root = studio.store.get_root_node()

        assert studio.podcast.id == podcast.id
        assert root.title == "金字塔之谜"
        assert studio.store.selected_path == [root.id]
        assert root.id in studio.positions
        assert not studio.store.is_dirty
        assert [n.id for n in await studio.persistence.fetch_nodes(podcast.id)] == [root.id]

    @pytest.mark.asyncio
    async def test_load(self, studio, generator):
        podcast = await studio.create_podcast("金字塔之谜", "金字塔之谜")
        await studio.expand_topics(studio.store.get_root_node().id)
        await studio.save()

        other = PodcastStudio(studio.persistence, generator)
        await other.load(podcast.id)
        assert set(other.store.nodes) == set(studio.store.nodes)
        assert other.store.get_root_node() is not None

    @pytest.mark.asyncio
    async def test_load_missing(self, studio):
        with pytest.raises(PersistenceError):
            await studio.load("nope")

    @pytest.mark.asyncio
    async def test_close_flushes(self, studio):
        podcast = await studio.create_podcast("金字塔之谜", "金字塔之谜")
        await studio.expand_topics(studio.store.get_root_node().id)
        nodes = set(studio.store.nodes)

        await studio.close()
        assert studio.podcast is None
        stored = await studio.persistence.fetch_nodes(podcast.id)
        assert {n.id for n in stored} == nodes

    @pytest.mark.asyncio
    async def test_update_podcast(self, studio):
        await studio.create_podcast("金字塔之谜", "金字塔之谜")
        updated = await studio.update_podcast(script_style="dialogue", co_host_name="小李")
        assert updated.script_style == ScriptStyle.DIALOGUE
        assert studio.podcast.co_host_name == "小李"


class TestTopics:
    """tests for topic expansion."""

    @pytest.mark.asyncio
    async def test_expand_root(self, studio):
        await studio.create_podcast("金字塔之谜", "金字塔之谜")
        root = studio.store.get_root_node()

        result = await studio.expand_topics(root.id)

        assert result.ok
        assert [n.title for n in result.nodes] == ["建造之谜", "法老的诅咒", "星象对齐"]
        assert [n.order_index for n in result.nodes] == [0, 1, 2]
        assert lanes(studio, root.id) == [NodeType.TOPIC] * 3 + [NodeType.ENDING, NodeType.MORE]
        assert all(nid in studio.positions for nid in studio.store.nodes)
        assert studio.store.is_dirty

    @pytest.mark.asyncio
    async def test_request_carries_path(self, studio, generator):
        await studio.create_podcast("金字塔之谜", "金字塔之谜")
        root = studio.store.get_root_node()
        await studio.expand_topics(root.id, count=2)

        request = generator.topic_requests[-1]
        assert request.root_topic == "金字塔之谜"
        assert request.count == 2
        assert request.current_topic is None
        assert [n.id for n in request.path_nodes] == [root.id]

    @pytest.mark.asyncio
    async def test_load_more_appends(self, studio, generator):
        await studio.create_podcast("金字塔之谜", "金字塔之谜")
        root = studio.store.get_root_node()
        await studio.expand_topics(root.id)

        generator.topics = [TopicSuggestion("狮身人面像", "守护者")]
        result = await studio.load_more_topics(root.id)

        assert result.ok
        assert result.nodes[0].order_index == 3
        assert generator.topic_requests[-1].existing_titles == ["建造之谜", "法老的诅咒", "星象对齐"]
        kinds = lanes(studio, root.id)
        assert kinds.count(NodeType.ENDING) == 1
        assert kinds.count(NodeType.MORE) == 1

    @pytest.mark.asyncio
    async def test_expanding_more_node_loads_more(self, studio, generator):
        await studio.create_podcast("金字塔之谜", "金字塔之谜")
        root = studio.store.get_root_node()
        await studio.expand_topics(root.id)
        more = next(c for c in studio.store.get_child_nodes(root.id) if c.node_type == NodeType.MORE)

        result = await studio.expand_topics(more.id)
        assert result.ok
        assert len([k for k in lanes(studio, root.id) if k == NodeType.TOPIC]) == 6

    @pytest.mark.asyncio
    async def test_ending_not_expandable(self, studio):
        await studio.create_podcast("金字塔之谜", "金字塔之谜")
        root = studio.store.get_root_node()
        await studio.expand_topics(root.id)
        ending = next(c for c in studio.store.get_child_nodes(root.id) if c.node_type == NodeType.ENDING)

        result = await studio.expand_topics(ending.id)
        assert not result.ok

    @pytest.mark.asyncio
    async def test_commit_prunes_siblings(self, studio):
        await studio.create_podcast("金字塔之谜", "金字塔之谜")
        root = studio.store.get_root_node()
        first = (await studio.expand_topics(root.id)).nodes[0]

        await studio.expand_topics(first.id)
        await studio.pruning.drain()

        topics = [c for c in studio.store.get_child_nodes(root.id) if c.node_type == NodeType.TOPIC]
        assert [t.id for t in topics] == [first.id]
        assert len(studio.store.get_child_nodes(first.id)) == 5
        assert studio.generator.topic_requests[-1].current_topic == "建造之谜"

    @pytest.mark.asyncio
    async def test_failure_reported(self, studio, generator):
        await studio.create_podcast("金字塔之谜", "金字塔之谜")
        root = studio.store.get_root_node()
        generator.topic_error = "model unavailable"

        result = await studio.expand_topics(root.id)
        assert not result.ok
        assert "model unavailable" in result.error
        assert studio.store.get_child_nodes(root.id) == []

    @pytest.mark.asyncio
    async def test_unknown_node(self, studio):
        await studio.create_podcast("金字塔之谜", "金字塔之谜")
        assert not (await studio.expand_topics("nope")).ok


class TestStreaming:
    """tests for streamed content and endings."""

    @pytest.mark.asyncio
    async def test_generate_content(self, studio):
        await studio.create_podcast("金字塔之谜", "金字塔之谜")
        root = studio.store.get_root_node()
        first = (await studio.expand_topics(root.id)).nodes[0]

        result = await studio.generate_content(first.id)

        assert result.ok
        assert result.text == "古埃及人如何搬运巨石"
        node = studio.store.get_node(result.node_id)
        assert node.node_type == NodeType.CONTENT
        assert node.parent_id == first.id
        assert node.content == "古埃及人如何搬运巨石"
        assert studio.store.selected_path[-1] == node.id
        assert not studio.store.streaming.is_streaming
        assert node.id in studio.positions

    @pytest.mark.asyncio
    async def test_request_style(self, studio, generator):
        await studio.create_podcast(
            "金字塔之谜", "金字塔之谜", script_style=ScriptStyle.DIALOGUE,
            host_name="老王", co_host_name="小李",
        )
        root = studio.store.get_root_node()
        first = (await studio.expand_topics(root.id)).nodes[0]
        await studio.generate_content(first.id)

        request = generator.content_requests[-1]
        assert request.current_topic == "建造之谜"
        assert request.script_style == ScriptStyle.DIALOGUE
        assert (request.host_name, request.co_host_name) == ("老王", "小李")

    @pytest.mark.asyncio
    async def test_regenerate_replaces_content(self, studio):
        await studio.create_podcast("金字塔之谜", "金字塔之谜")
        root = studio.store.get_root_node()
        first = (await studio.expand_topics(root.id)).nodes[0]

        old = await studio.generate_content(first.id)
        new = await studio.generate_content(first.id)

        assert studio.store.get_node(old.node_id) is None
        contents = [c for c in studio.store.get_child_nodes(first.id) if c.node_type == NodeType.CONTENT]
        assert [c.id for c in contents] == [new.node_id]

    @pytest.mark.asyncio
    async def test_stream_error_keeps_partial(self, studio, generator):
        await studio.create_podcast("金字塔之谜", "金字塔之谜")
        root = studio.store.get_root_node()
        first = (await studio.expand_topics(root.id)).nodes[0]
        generator.stream_error = "quota exceeded"

        result = await studio.generate_content(first.id)
        assert not result.ok
        assert studio.store.get_node(result.node_id).content == "古埃及人如何搬运巨石"
        assert studio.store.is_dirty

    @pytest.mark.asyncio
    async def test_content_for_ending_rejected(self, studio):
        await studio.create_podcast("金字塔之谜", "金字塔之谜")
        root = studio.store.get_root_node()
        await studio.expand_topics(root.id)
        ending = next(c for c in studio.store.get_child_nodes(root.id) if c.node_type == NodeType.ENDING)
        assert not (await studio.generate_content(ending.id)).ok

    @pytest.mark.asyncio
    async def test_generate_ending(self, studio, generator):
        await studio.create_podcast("金字塔之谜", "金字塔之谜")
        root = studio.store.get_root_node()
        await studio.expand_topics(root.id)
        ending = next(c for c in studio.store.get_child_nodes(root.id) if c.node_type == NodeType.ENDING)
        generator.fragments = ["感谢", "收听。"]

        result = await studio.generate_ending(ending.id)

        assert result.ok
        assert studio.store.get_node(ending.id).content == "感谢收听。"
        assert ending.id in studio.store.selected_path
        assert len(studio.store.get_child_nodes(root.id)) == 5  # nothing pruned

    @pytest.mark.asyncio
    async def test_ending_requires_ending_node(self, studio):
        await studio.create_podcast("金字塔之谜", "金字塔之谜")
        root = studio.store.get_root_node()
        assert not (await studio.generate_ending(root.id)).ok


class TestEditing:
    """tests for deletion, toggling and export."""

    @pytest.mark.asyncio
    async def test_delete_node(self, studio):
        await studio.create_podcast("金字塔之谜", "金字塔之谜")
        root = studio.store.get_root_node()
        first = (await studio.expand_topics(root.id)).nodes[0]
        await studio.generate_content(first.id)

        removed = studio.delete_node(first.id)
        await studio.pruning.drain()

        assert len(removed) == 2
        assert first.id not in studio.positions
        assert studio.delete_node(root.id) == []

    @pytest.mark.asyncio
    async def test_toggle_expand(self, studio):
        await studio.create_podcast("金字塔之谜", "金字塔之谜")
        root = studio.store.get_root_node()
        assert studio.toggle_expand(root.id) is True
        assert studio.toggle_expand(root.id) is False
        assert studio.toggle_expand("nope") is None

    @pytest.mark.asyncio
    async def test_export_path(self, studio):
        await studio.create_podcast("金字塔之谜", "金字塔之谜")
        root = studio.store.get_root_node()
        first = (await studio.expand_topics(root.id)).nodes[0]
        await studio.generate_content(first.id)

        result = studio.export()
        assert "古埃及人如何搬运巨石" in result.markdown
        assert "> 主题：金字塔之谜" in result.markdown


class TestSiblingOrder:
    """content and topic children share one parent without index clashes."""

    @pytest.mark.asyncio
    async def test_content_after_topics_gets_next_index(self, studio):
        await studio.create_podcast("金字塔之谜", "金字塔之谜")
        root = studio.store.get_root_node()
        first = (await studio.expand_topics(root.id)).nodes[0]
        await studio.expand_topics(first.id)

        result = await studio.generate_content(first.id)

        children = studio.store.get_child_nodes(first.id)
        indices = [c.order_index for c in children]
        assert len(children) == 6
        assert indices == sorted(set(indices))
        assert studio.store.get_node(result.node_id).order_index == 3

    @pytest.mark.asyncio
    async def test_more_topics_after_content_keep_unique(self, studio):
        await studio.create_podcast("金字塔之谜", "金字塔之谜")
        root = studio.store.get_root_node()
        first = (await studio.expand_topics(root.id)).nodes[0]
        await studio.expand_topics(first.id)
        await studio.generate_content(first.id)
        await studio.load_more_topics(first.id)

        indices = [c.order_index for c in studio.store.get_child_nodes(first.id)]
        assert len(indices) == len(set(indices))


class TestReexpand:
    """re-expanding a node replaces every child."""

    @pytest.mark.asyncio
    async def test_content_child_removed(self, studio):
        await studio.create_podcast("金字塔之谜", "金字塔之谜")
        root = studio.store.get_root_node()
        first = (await studio.expand_topics(root.id)).nodes[0]
        content = await studio.generate_content(first.id)

        result = await studio.expand_topics(first.id)
        await studio.pruning.drain()

        assert studio.store.get_node(content.node_id) is None
        assert content.node_id not in studio.store.selected_path
        assert {n.id for n in result.nodes} <= {c.id for c in studio.store.get_child_nodes(first.id)}
        assert NodeType.CONTENT not in lanes(studio, first.id)


class TestReopen:
    """state that has to survive close and load."""

    @pytest.mark.asyncio
    async def test_path_restored_for_export(self, studio, generator):
        podcast = await studio.create_podcast("金字塔之谜", "金字塔之谜")
        root = studio.store.get_root_node()
        first = (await studio.expand_topics(root.id)).nodes[0]
        content = await studio.generate_content(first.id)
        path = list(studio.store.selected_path)
        before = studio.export()
        await studio.close()

        reopened = PodcastStudio(studio.persistence, generator, debounce=0, autosave_interval=0)
        await reopened.load(podcast.id)

        assert reopened.store.selected_path == path
        after = reopened.export()
        assert after.char_count == before.char_count > 0
        assert "古埃及人如何搬运巨石" in after.markdown
        assert content.node_id in after.path_node_ids
        assert not reopened.store.is_dirty

    @pytest.mark.asyncio
    async def test_stale_path_ids_dropped(self, studio, generator):
        podcast = await studio.create_podcast("金字塔之谜", "金字塔之谜")
        root = studio.store.get_root_node()
        await studio.persistence.update_podcast(
            podcast.id, canvas_state={"selected_path": ["gone", root.id], "active_node_id": "gone"}
        )

        reopened = PodcastStudio(studio.persistence, generator)
        await reopened.load(podcast.id)
        assert reopened.store.selected_path == [root.id]
        assert reopened.store.active_node_id is None

    @pytest.mark.asyncio
    async def test_autosave_follows_reload(self, generator):
        studio = PodcastStudio(MemoryPersistence(), generator, debounce=0.01, autosave_interval=0)
        podcast = await studio.create_podcast("金字塔之谜", "金字塔之谜")
        studio.start()

        await studio.load(podcast.id)
        await studio.expand_topics(studio.store.get_root_node().id)
        await asyncio.sleep(0.05)

        assert studio.autosave.saves == 1
        assert not studio.store.is_dirty
        await studio.close()
