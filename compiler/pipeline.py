"""
Pipeline document export - structural projection of a graph snapshot.
流水线文档导出 —— 图快照的结构化投影。

No semantic transformation happens here: nodes and edges keep snapshot
order, absent configuration becomes {}, and dangling edges are projected
as-is (the document mirrors the graph, it is not a compiled program).
这里不做任何语义转换：节点与边保持快照顺序，缺失配置变为 {}，
悬空边原样投影（文档是图的镜像，而不是编译后的程序）。
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from typing import Any

import config
from schema import EdgeDescriptor, FlowEdge, FlowNode, GraphSnapshot, NodeDescriptor, PipelineDocument


def build_pipeline_document(snapshot: GraphSnapshot) -> PipelineDocument:
    return PipelineDocument(
        nodes=[
            NodeDescriptor(id=n.id, type=n.kind, label=n.label, config=n.config)
            for n in snapshot.nodes
        ],
        edges=[
            EdgeDescriptor(id=e.id, source=e.source, target=e.target)
            for e in snapshot.edges
        ],
    )


def to_pipeline_document(
    nodes: Iterable[FlowNode | Mapping[str, Any]],
    edges: Iterable[FlowEdge | Mapping[str, Any]],
) -> dict[str, Any]:
    """
    Project the graph into a JSON-serializable document:
    将图投影为可 JSON 序列化的文档：

        {"nodes": [{"id", "type", "label", "config"}, ...],
         "edges": [{"id", "source", "target"}, ...]}
    """
    snapshot = GraphSnapshot.capture(nodes, edges)
    return build_pipeline_document(snapshot).to_dict()


def render_pipeline_document(
    nodes: Iterable[FlowNode | Mapping[str, Any]],
    edges: Iterable[FlowEdge | Mapping[str, Any]],
) -> str:
    """
    Pretty-printed JSON text of the pipeline document. Keys keep their
    projection order (no sort_keys), so output is stable for identical input.
    流水线文档的格式化 JSON 文本。键保持投影顺序（不排序），相同输入输出稳定。
    """
    document = to_pipeline_document(nodes, edges)
    return json.dumps(document, indent=config.EXPORT_JSON_INDENT, ensure_ascii=False)
