"""prompt templates and response parsing for the generation service."""

from __future__ import annotations

import json
import re
from typing import Optional

from .context import build_context_messages, compress_context, render_context
from .models import (
    ContentRequest,
    GenerationError,
    GenerationKind,
    ScriptStyle,
    TopicRequest,
    TopicSuggestion,
)


SYSTEM_PROMPT_TOPICS = """你是一位资深播客内容策划师。你的任务是基于当前话题生成自然延伸的子话题。

## 要求
1. 每个子话题用标题（10字以内）+ 一句话概述（20字以内）
2. 子话题之间有递进或关联关系，不要跳跃
3. 与已讨论内容自然衔接，不要重复已经讨论过的
4. 保持与根主题的关联性
5. 考虑主题的事实脉络、历史发展、不同视角
6. 返回严格的 JSON 格式

## 返回格式
返回一个 JSON 数组，每个元素包含 title 和 summary：
[{"title": "子话题标题", "summary": "简短概述"}]"""

SYSTEM_PROMPT_CONTENT = """你是一位情感充沛、知识渊博的播客主播。你正在录制一期播客节目。

## 你的风格
- 口语化表达，像在和朋友聊天一样自然
- 讲事实和脉络：围绕主题讲清来龙去脉
- 有观点和思考：不是百科搬运，有自己独到的见解
- 有情绪：热情、思考、感慨、惊讶、幽默，让人感受到你的态度
- 有故事性：善于用故事和例子让观点生动
- 能引发共鸣：让听者听完后也能产生情绪和思考

## 要求
1. 与上一段内容自然过渡衔接
2. 不要使用「大家好」「各位听众」等开场白（除非是第一段）
3. 不要重复已经讲过的内容
4. 约 800-1500 字
5. 不要使用 markdown 格式，纯文本即可"""

SYSTEM_PROMPT_ENDING = """你是一位播客主播，现在需要为今天的节目做一个完美的收尾。

## 要求
1. 总结今天讨论的所有核心内容和观点
2. 给听众一个有力的结尾感受
3. 语气温暖、有感染力
4. 可以展望未来或留下思考
5. 约 300-500 字
6. 不要使用 markdown 格式，纯文本即可"""

_TOPIC_ARRAY = re.compile(r"\[[\s\S]*\]")


def style_instructions(script_style: ScriptStyle, host_name: str, co_host_name: Optional[str]) -> str:
    """speaker instructions for the script style."""
    if script_style == ScriptStyle.DIALOGUE and co_host_name:
        return (
            "## 节目形式\n"
            f"本期节目是双人对话：主播「{host_name}」和搭档「{co_host_name}」。\n"
            f"每段发言单独成行，以「{host_name}：」或「{co_host_name}：」开头，两人交替推进话题。"
        )
    return f"## 节目形式\n本期节目由主播「{host_name}」独白讲述。"


def build_topic_prompt(current_topic: str, count: int, existing_titles: Optional[list[str]] = None) -> str:
    prompt = f"当前话题是「{current_topic}」。请生成 {count} 个自然延伸的子话题。只返回 JSON 数组，不要其他内容。"
    if existing_titles:
        prompt += f"\n\n以下话题已经存在，请不要重复：{'、'.join(existing_titles)}"
    return prompt


def build_content_prompt(current_topic: str) -> str:
    return f"现在请围绕「{current_topic}」这个话题，生成一段完整的播客演讲稿。"


def build_ending_prompt() -> str:
    return "请基于以上所有讨论内容，生成一段播客结束语。总结今天的核心观点，给听众留下深刻印象。"


def assemble_topic_prompt(request: TopicRequest) -> tuple[str, str]:
    """(system prompt, user prompt) for a topic request."""
    context = build_context_messages(request.root_topic, compress_context(request.path_nodes))
    current = request.current_topic or request.root_topic
    user = build_topic_prompt(current, request.count, request.existing_titles)
    return SYSTEM_PROMPT_TOPICS, f"{render_context(context)}\n\n---\n\n{user}"


def assemble_content_prompt(request: ContentRequest) -> tuple[str, str]:
    """(system prompt, user prompt) for a content or ending request."""
    if request.kind == GenerationKind.ENDING:
        system, user = SYSTEM_PROMPT_ENDING, build_ending_prompt()
    else:
        system, user = SYSTEM_PROMPT_CONTENT, build_content_prompt(request.current_topic)
    system = f"{system}\n\n{style_instructions(request.script_style, request.host_name, request.co_host_name)}"
    context = build_context_messages(request.root_topic, compress_context(request.path_nodes))
    return system, f"{render_context(context)}\n\n---\n\n{user}"


def parse_topics(text: str) -> list[TopicSuggestion]:
    """extract the topic array from a model response.

    raises GenerationError when no well-formed array is found.
    """
    match = _TOPIC_ARRAY.search(text)
    if not match:
        raise GenerationError("failed to parse topics: no JSON array in response")
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise GenerationError(f"failed to parse topics JSON: {e}") from e

    if not isinstance(parsed, list):
        raise GenerationError("failed to parse topics: expected a list")

    topics = []
    for item in parsed:
        if not isinstance(item, dict) or not str(item.get("title", "")).strip():
            raise GenerationError(f"failed to parse topics: malformed entry {item!r}")
        topics.append(TopicSuggestion(title=str(item["title"]).strip(), summary=str(item.get("summary", "")).strip()))
    return topics
