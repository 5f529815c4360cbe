"""
Demo graph - the five-node RAG pipeline the editor loads with "Load Demo".
演示图 —— 编辑器「加载演示」时使用的五节点 RAG 流水线。

    User Input -> Text Splitter -> Vector DB -> LLM (GPT-4) -> Output Response
"""

from __future__ import annotations

from schema import FlowEdge, FlowNode, GraphSnapshot, NodeKind

DEMO_NODES: tuple[FlowNode, ...] = (
    FlowNode(id="1", kind=NodeKind.TRIGGER, label="User Input", position={"x": 100, "y": 100}),
    FlowNode(id="2", kind=NodeKind.PROCESSING, label="Text Splitter", config={"chunkSize": 1000},
             position={"x": 400, "y": 100}),
    FlowNode(id="3", kind=NodeKind.DATA, label="Vector DB", config={"index": "main-index"},
             position={"x": 700, "y": 100}),
    FlowNode(id="4", kind=NodeKind.PROCESSING, label="LLM (GPT-4)", config={"model": "gpt-4", "temperature": 0.7},
             position={"x": 700, "y": 300}),
    FlowNode(id="5", kind=NodeKind.ACTION, label="Output Response", position={"x": 1000, "y": 300}),
)

DEMO_EDGES: tuple[FlowEdge, ...] = (
    FlowEdge(id="e1-2", source="1", target="2", animated=True),
    FlowEdge(id="e2-3", source="2", target="3", animated=True),
    FlowEdge(id="e3-4", source="3", target="4", animated=True),
    FlowEdge(id="e4-5", source="4", target="5", animated=True),
)


def demo_snapshot() -> GraphSnapshot:
    """Fresh copy of the demo graph."""
    return GraphSnapshot.capture(DEMO_NODES, DEMO_EDGES)
