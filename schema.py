"""
Pydantic data models for NeuroFlow.
Defines the graph snapshot, simulation state and export document structures
shared by the traversal engine and the artifact compiler.
NeuroFlow 的 Pydantic 数据模型。
定义了图快照、模拟运行状态与导出文档等贯穿 engine 与 compiler 的核心数据结构。
"""

from __future__ import annotations

import copy
import json
import time
from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

import config


# ======================================================================
# Graph Model
# 图模型
# ======================================================================

class NodeKind(str, Enum):
    """
    Closed set of node kinds a pipeline graph may contain.
    流水线图中允许出现的节点类型（封闭集合）。
    """
    TRIGGER = "trigger"         # 触发器：流水线入口（聊天输入、Webhook、文件上传）
    PROCESSING = "processing"   # 处理步骤：LLM、文本切分、网页抓取等
    DATA = "data"               # 数据存储：向量库
    LOGIC = "logic"             # 逻辑分支：路由（If/Else）
    ACTION = "action"           # 动作：发送邮件、Slack 通知


class Position(BaseModel):
    """Canvas coordinates. Only the editor's renderer cares about these."""
    model_config = ConfigDict(frozen=True)

    x: float = 0.0
    y: float = 0.0


def _stringify_id(value: Any) -> Any:
    # Editor dumps sometimes carry numeric ids.
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class FlowNode(BaseModel):
    """
    A single typed node in the pipeline graph.
    流水线图中的单个类型化节点。

    `kind` is serialized as ``type`` to match the editor's data shape.
    `kind` 序列化时使用 ``type`` 字段名，与编辑器的数据结构保持一致。
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(description="Unique node ID within the graph")                     # 节点唯一 ID
    kind: NodeKind = Field(alias="type", description="Node kind tag")                  # 节点类型
    label: str = Field(default="", description="Human-editable display label")         # 显示名称（可编辑）
    config: dict[str, Any] = Field(default_factory=dict, description="Free-form settings bag")  # 自由格式配置
    position: Position = Field(default_factory=Position)                               # 画布坐标（核心逻辑不使用）

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return _stringify_id(value)

    @field_validator("label", mode="before")
    @classmethod
    def _coerce_label(cls, value: Any) -> Any:
        if value is None:
            return ""
        return value if isinstance(value, str) else str(value)

    @field_validator("config", mode="before")
    @classmethod
    def _coerce_config(cls, value: Any) -> Any:
        # Absent or non-mapping configuration is treated as empty.
        # 缺失或非字典的配置一律视为空配置。
        if isinstance(value, Mapping):
            return {str(k): v for k, v in value.items()}
        return {}

    @classmethod
    def from_editor(cls, data: Mapping[str, Any]) -> FlowNode:
        """
        Build a node from either the flat document shape or the editor's
        native shape (``{id, type: "custom", position, data: {...}}``).
        支持两种输入：扁平文档结构，或编辑器原生结构（属性嵌套在 data 中）。
        """
        payload = data.get("data")
        if isinstance(payload, Mapping):
            return cls(
                id=data.get("id"),
                type=payload.get("type"),
                label=payload.get("label"),
                config=copy.deepcopy(payload.get("config")),
                position=data.get("position") or {},
            )
        return cls.model_validate(copy.deepcopy(dict(data)))


class FlowEdge(BaseModel):
    """
    A directed edge between two nodes.
    两个节点之间的有向边。
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Unique edge ID")         # 边唯一 ID
    source: str = Field(description="Source node ID")     # 起点节点 ID
    target: str = Field(description="Target node ID")     # 终点节点 ID
    animated: bool = False                                # 动画标记（仅渲染使用）

    @model_validator(mode="before")
    @classmethod
    def _fill_id(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        data = {k: _stringify_id(v) if k in ("id", "source", "target") else v for k, v in data.items()}
        if not data.get("id") and data.get("source") is not None and data.get("target") is not None:
            data["id"] = f"e{data['source']}-{data['target']}"
        return data


class GraphSnapshot(BaseModel):
    """
    Immutable pairing of all nodes and edges at the moment an operation starts.
    某次操作开始瞬间的全部节点与边的不可变快照。

    Engine and compiler only ever read a snapshot; the editor keeps mutating
    its own copies without affecting a run in flight.
    Engine 与 Compiler 只读取快照；编辑器继续修改自己的数据不会影响进行中的操作。
    """
    model_config = ConfigDict(frozen=True)

    nodes: tuple[FlowNode, ...] = ()
    edges: tuple[FlowEdge, ...] = ()

    @model_validator(mode="after")
    def _check_unique_ids(self) -> GraphSnapshot:
        seen: set[str] = set()
        for node in self.nodes:
            if node.id in seen:
                raise ValueError(f"Duplicate node id '{node.id}' in snapshot")
            seen.add(node.id)
        return self

    @classmethod
    def capture(
        cls,
        nodes: Iterable[FlowNode | Mapping[str, Any]],
        edges: Iterable[FlowEdge | Mapping[str, Any]],
    ) -> GraphSnapshot:
        """
        Deep-copy the given nodes/edges into a new snapshot.
        将传入的节点与边深拷贝为新快照，调用方之后的修改不会被观察到。
        """
        frozen_nodes = tuple(
            n.model_copy(deep=True) if isinstance(n, FlowNode) else FlowNode.from_editor(n)
            for n in nodes
        )
        frozen_edges = tuple(
            e.model_copy(deep=True) if isinstance(e, FlowEdge) else FlowEdge.model_validate(dict(e))
            for e in edges
        )
        return cls(nodes=frozen_nodes, edges=frozen_edges)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> GraphSnapshot:
        """Load an exported pipeline document or an editor dump."""
        return cls.capture(data.get("nodes") or [], data.get("edges") or [])

    @classmethod
    def from_json(cls, text: str) -> GraphSnapshot:
        return cls.from_dict(json.loads(text))


# ======================================================================
# Simulation State
# 模拟运行状态
# ======================================================================

class RunStatus(str, Enum):
    """
    Lifecycle of one simulation run, managed by SimulationStateMachine.
    单次模拟运行的生命周期状态，由 SimulationStateMachine 管理合法转移。

    Transition graph:
    转移图：
        IDLE -> RUNNING -> FINISHED
                        -> CANCELLED
                        -> FAILED
        FINISHED / CANCELLED / FAILED -> RUNNING   (a new run / 开始新一轮运行)
    """
    IDLE = "idle"               # 尚未运行
    RUNNING = "running"         # 运行中
    FINISHED = "finished"       # 所有分支已完成
    CANCELLED = "cancelled"     # 被调用方取消
    FAILED = "failed"           # 检测到环或超出深度限制


class StateTransition(BaseModel):
    """
    One observable change of the shared simulation state.
    共享模拟状态的一次可观测变化（供渲染层订阅）。
    """
    field: str = Field(description="'status' or 'active_node_id'")    # 发生变化的字段
    old: str | None = None                                              # 旧值
    new: str | None = None                                              # 新值
    timestamp: float = Field(default_factory=time.monotonic)           # 单调时钟时间戳


# ======================================================================
# Export Document
# 导出文档模型
# ======================================================================

class NodeDescriptor(BaseModel):
    """Node entry of the exported pipeline document."""
    id: str
    type: NodeKind
    label: str
    config: dict[str, Any] = Field(default_factory=dict)


class EdgeDescriptor(BaseModel):
    """Edge entry of the exported pipeline document."""
    id: str
    source: str
    target: str


class PipelineDocument(BaseModel):
    """
    Structural projection of a graph snapshot.
    图快照的结构化投影：节点与边均按快照原始顺序排列，不做排序或语义转换。
    """
    nodes: list[NodeDescriptor] = Field(default_factory=list)
    edges: list[EdgeDescriptor] = Field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


# ======================================================================
# Per-role Settings
# 按角色划分的节点配置
# ======================================================================

class LLMSettings(BaseModel):
    """
    Recognized settings of an LLM processing node.
    LLM 处理节点可识别的配置项（config 键：model / temperature / systemPrompt）。
    """
    model: str = config.DEFAULT_LLM_MODEL
    temperature: float = config.DEFAULT_LLM_TEMPERATURE
    system_prompt: str = ""


class TextSplitterSettings(BaseModel):
    chunk_size: int = config.DEFAULT_CHUNK_SIZE   # config 键：chunkSize
    chunk_overlap: int = 0                        # config 键：chunkOverlap


class VectorStoreSettings(BaseModel):
    index: str = config.DEFAULT_VECTOR_INDEX      # config 键：index
    top_k: int = config.DEFAULT_VECTOR_TOP_K      # config 键：topK


class SlackSettings(BaseModel):
    channel: str = config.DEFAULT_SLACK_CHANNEL


class EmailSettings(BaseModel):
    to: str = ""
    subject: str = config.DEFAULT_EMAIL_SUBJECT


class NoSettings(BaseModel):
    """Roles without recognized configuration keys."""
