"""
Node roles - finer-grained meaning of a node, derived from kind + label.
节点角色 —— 由节点类型（kind）与显示名称（label）推导出的细分语义。

The editor stores configuration as a free-form dict whose recognized keys
depend on what the node *is* (an LLM step, a text splitter, a vector DB...).
Here that dict is turned into a typed settings model per role, applying
defaults for anything missing or mistyped. Nothing in this module raises
on bad configuration.
编辑器将配置保存为自由格式的 dict，可识别的键取决于节点「是什么」（LLM、文本切分、向量库……）。
本模块把该 dict 转换为按角色划分的类型化配置模型；缺失或类型错误的字段一律使用默认值，
不会因为配置错误而抛出异常。
"""

from __future__ import annotations

import logging
import math
import re
from enum import Enum
from typing import Any

from pydantic import BaseModel

import config
from schema import (
    EmailSettings,
    FlowNode,
    LLMSettings,
    NodeKind,
    NoSettings,
    SlackSettings,
    TextSplitterSettings,
    VectorStoreSettings,
)

logger = logging.getLogger(__name__)


class NodeRole(str, Enum):
    """
    What a node does, one level below its kind.
    节点的具体职责（比 kind 更细一级）。
    """
    # trigger
    CHAT_INPUT = "chat_input"
    WEBHOOK = "webhook"
    FILE_UPLOAD = "file_upload"
    TRIGGER = "trigger"
    # processing
    LLM = "llm"
    TEXT_SPLITTER = "text_splitter"
    WEB_SCRAPER = "web_scraper"
    IMAGE_GEN = "image_gen"
    TRANSCRIBE = "transcribe"
    CODE_INTERPRETER = "code_interpreter"
    PROCESSING = "processing"
    # data / logic
    VECTOR_STORE = "vector_store"
    ROUTER = "router"
    # action
    EMAIL = "email"
    SLACK = "slack"
    ACTION = "action"


# Label keyword rules, checked in order; first match wins.
# 标签关键词规则，按顺序匹配，先匹配者生效。
_ROLE_RULES: list[tuple[NodeKind, re.Pattern[str], NodeRole]] = [
    (NodeKind.TRIGGER, re.compile(r"webhook", re.I), NodeRole.WEBHOOK),
    (NodeKind.TRIGGER, re.compile(r"file|upload", re.I), NodeRole.FILE_UPLOAD),
    (NodeKind.TRIGGER, re.compile(r"chat|input|message", re.I), NodeRole.CHAT_INPUT),
    (NodeKind.PROCESSING, re.compile(r"LLM"), NodeRole.LLM),  # 区分大小写，与编辑器配置面板一致
    (NodeKind.PROCESSING, re.compile(r"split|chunk", re.I), NodeRole.TEXT_SPLITTER),
    (NodeKind.PROCESSING, re.compile(r"scrap|crawl|web", re.I), NodeRole.WEB_SCRAPER),
    (NodeKind.PROCESSING, re.compile(r"image", re.I), NodeRole.IMAGE_GEN),
    (NodeKind.PROCESSING, re.compile(r"transcri|speech|whisper", re.I), NodeRole.TRANSCRIBE),
    (NodeKind.PROCESSING, re.compile(r"code|interpreter", re.I), NodeRole.CODE_INTERPRETER),
    (NodeKind.ACTION, re.compile(r"e-?mail", re.I), NodeRole.EMAIL),
    (NodeKind.ACTION, re.compile(r"slack", re.I), NodeRole.SLACK),
]

_KIND_DEFAULT_ROLES: dict[NodeKind, NodeRole] = {
    NodeKind.TRIGGER: NodeRole.TRIGGER,
    NodeKind.PROCESSING: NodeRole.PROCESSING,
    NodeKind.DATA: NodeRole.VECTOR_STORE,
    NodeKind.LOGIC: NodeRole.ROUTER,
    NodeKind.ACTION: NodeRole.ACTION,
}


def infer_role(node: FlowNode) -> NodeRole:
    """
    Derive a node's role from its kind and label.
    根据节点 kind 与 label 推导角色；无关键词命中时使用该 kind 的默认角色。
    """
    for kind, pattern, role in _ROLE_RULES:
        if node.kind == kind and pattern.search(node.label):
            return role
    return _KIND_DEFAULT_ROLES[node.kind]


# ----------------------------------------------------------------------
# Config coercion helpers
# 配置值转换辅助函数：无法使用的值返回 default
# ----------------------------------------------------------------------

def _text(value: Any, default: str, allow_empty: bool = False) -> str:
    if not isinstance(value, str):
        return default
    if not allow_empty and not value.strip():
        return default
    return value


def _number(value: Any, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return default
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except (ValueError, OverflowError):
        # 非数字字符串，或超出 float 范围的整数
        return default
    return number if math.isfinite(number) else default


def _count(value: Any, default: int, minimum: int = 1) -> int:
    number = _number(value, float("nan"))
    if math.isnan(number) or not number.is_integer() or number < minimum:
        return default
    return int(number)


def _log_fallbacks(node: FlowNode, resolved: dict[str, Any]) -> None:
    """`resolved` maps config keys to the values actually used."""
    for key in resolved:
        if key in node.config and node.config[key] != resolved[key]:
            logger.debug("[Compiler] Node %s: config %s=%r unusable, using %r", node.id, key, node.config[key], resolved[key])


def resolve_settings(node: FlowNode, role: NodeRole | None = None) -> BaseModel:
    """
    Build the typed settings for `node`, applying documented defaults.
    为 `node` 构建类型化配置，缺失或类型错误的字段使用文档约定的默认值。
    """
    role = role or infer_role(node)
    cfg = node.config

    if role == NodeRole.LLM:
        settings = LLMSettings(
            model=_text(cfg.get("model"), config.DEFAULT_LLM_MODEL),
            temperature=_number(cfg.get("temperature"), config.DEFAULT_LLM_TEMPERATURE),
            system_prompt=_text(cfg.get("systemPrompt"), "", allow_empty=True),
        )
        _log_fallbacks(
            node,
            {"model": settings.model, "temperature": settings.temperature, "systemPrompt": settings.system_prompt},
        )
        return settings

    if role == NodeRole.TEXT_SPLITTER:
        chunk_size = _count(cfg.get("chunkSize"), config.DEFAULT_CHUNK_SIZE)
        chunk_overlap = _count(cfg.get("chunkOverlap"), 0, minimum=0)
        if chunk_overlap >= chunk_size:
            chunk_overlap = 0  # 重叠必须小于块大小
        _log_fallbacks(node, {"chunkSize": chunk_size, "chunkOverlap": chunk_overlap})
        return TextSplitterSettings(chunk_size=chunk_size, chunk_overlap=chunk_overlap)

    if role == NodeRole.VECTOR_STORE:
        settings = VectorStoreSettings(
            index=_text(cfg.get("index"), config.DEFAULT_VECTOR_INDEX),
            top_k=_count(cfg.get("topK"), config.DEFAULT_VECTOR_TOP_K),
        )
        _log_fallbacks(node, {"index": settings.index, "topK": settings.top_k})
        return settings

    if role == NodeRole.SLACK:
        settings = SlackSettings(channel=_text(cfg.get("channel"), config.DEFAULT_SLACK_CHANNEL))
        _log_fallbacks(node, {"channel": settings.channel})
        return settings

    if role == NodeRole.EMAIL:
        settings = EmailSettings(
            to=_text(cfg.get("to"), "", allow_empty=True),
            subject=_text(cfg.get("subject"), config.DEFAULT_EMAIL_SUBJECT),
        )
        _log_fallbacks(node, {"to": settings.to, "subject": settings.subject})
        return settings

    return NoSettings()
