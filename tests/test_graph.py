"""
Graph model tests - 测试分别体现：
  1. 快照构造与隔离 (Snapshot capture & isolation)
  2. 起点选择 (Start node selection)
  3. 拓扑排序与稳定平局 (Topological order with stable tie-break)
  4. 悬空边与环 (Dangling edges & cycles)

运行方式:
    pytest tests/test_graph.py -v
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from dag.demo import demo_snapshot
from dag.graph import CyclicGraphError, FlowGraph
from schema import FlowEdge, FlowNode, GraphSnapshot, NodeKind


def _node(nid: str, kind: str = "processing", label: str = "", **config) -> dict:
    return {"id": nid, "type": kind, "label": label or f"Node {nid}", "config": config}


def _edge(source: str, target: str) -> dict:
    return {"id": f"e{source}-{target}", "source": source, "target": target}


def _graph(nodes: list[dict], edges: list[dict]) -> FlowGraph:
    return FlowGraph(GraphSnapshot.capture(nodes, edges))


# ======================================================================
# Test 1: 快照构造
# ======================================================================


class TestSnapshot:

    def test_capture_accepts_flat_and_editor_shapes(self):
        """扁平文档结构与编辑器原生结构都能加载，且结果一致."""
        flat = GraphSnapshot.capture([_node("1", "trigger", "Chat Input")], [])
        editor = GraphSnapshot.capture(
            [{
                "id": "1",
                "type": "custom",
                "position": {"x": 10, "y": 20},
                "data": {"label": "Chat Input", "type": "trigger", "icon": "MessageSquare", "config": {}},
            }],
            [],
        )
        assert flat.nodes[0].kind == editor.nodes[0].kind == NodeKind.TRIGGER
        assert flat.nodes[0].label == editor.nodes[0].label == "Chat Input"
        assert editor.nodes[0].position.x == 10

    def test_capture_is_isolated_from_caller_mutation(self):
        """快照捕获后，调用方修改原始数据不会影响快照."""
        raw = _node("1", "data", "Vector DB", index="main-index")
        snapshot = GraphSnapshot.capture([raw], [])
        raw["config"]["index"] = "changed"
        raw["label"] = "changed"
        assert snapshot.nodes[0].config == {"index": "main-index"}
        assert snapshot.nodes[0].label == "Vector DB"

    def test_missing_or_invalid_config_becomes_empty(self):
        snapshot = GraphSnapshot.capture(
            [{"id": "1", "type": "action", "label": "Send Email"},
             {"id": "2", "type": "action", "label": "Slack", "config": "oops"}],
            [],
        )
        assert snapshot.nodes[0].config == {}
        assert snapshot.nodes[1].config == {}

    def test_numeric_ids_and_missing_edge_id(self):
        snapshot = GraphSnapshot.capture(
            [{"id": 1, "type": "trigger"}, {"id": 2, "type": "action"}],
            [{"source": 1, "target": 2}],
        )
        assert [n.id for n in snapshot.nodes] == ["1", "2"]
        assert snapshot.edges[0].id == "e1-2"

    def test_unknown_kind_is_rejected(self):
        with pytest.raises(ValidationError):
            GraphSnapshot.capture([_node("1", "teleporter")], [])

    def test_duplicate_node_ids_are_rejected(self):
        with pytest.raises(ValidationError):
            GraphSnapshot.capture([_node("1"), _node("1")], [])

    def test_from_json_roundtrip_of_model_dump(self):
        snapshot = demo_snapshot()
        again = GraphSnapshot.from_json(snapshot.model_dump_json(by_alias=True))
        assert again == snapshot

    def test_models_are_frozen(self):
        node = FlowNode(id="1", kind=NodeKind.TRIGGER)
        with pytest.raises(ValidationError):
            node.label = "mutated"


# ======================================================================
# Test 2: 起点选择
# ======================================================================


class TestStartSelection:

    def test_trigger_preferred_over_earlier_node(self):
        """[processing, trigger] —— 起点应为 trigger 节点 2，而不是节点 1."""
        graph = _graph([_node("1", "processing"), _node("2", "trigger")], [])
        assert graph.select_start_node().id == "2"

    def test_first_trigger_wins(self):
        graph = _graph([_node("1", "action"), _node("2", "trigger"), _node("3", "trigger")], [])
        assert graph.select_start_node().id == "2"

    def test_falls_back_to_first_node(self):
        graph = _graph([_node("a", "data"), _node("b", "action")], [])
        assert graph.select_start_node().id == "a"

    def test_empty_graph_has_no_start(self):
        graph = _graph([], [])
        assert graph.is_empty()
        assert graph.select_start_node() is None


# ======================================================================
# Test 3: 拓扑排序
# ======================================================================


class TestTopologicalSort:

    def test_order_respects_every_edge(self):
        nodes = [_node("d"), _node("b"), _node("a", "trigger"), _node("c")]
        edges = [_edge("a", "b"), _edge("a", "c"), _edge("b", "d"), _edge("c", "d")]
        order, leftover = _graph(nodes, edges).topological_sort()
        idx = {nid: i for i, nid in enumerate(order)}
        assert leftover == []
        for e in edges:
            assert idx[e["source"]] < idx[e["target"]], f"{e['source']} 必须在 {e['target']} 之前"

    def test_ready_nodes_follow_snapshot_order(self):
        """多个节点同时就绪时按快照顺序取出（非 FIFO）."""
        nodes = [_node("x"), _node("root", "trigger"), _node("late"), _node("early")]
        edges = [_edge("root", "early"), _edge("root", "late")]
        order, _ = _graph(nodes, edges).topological_sort()
        # x 与 root 初始就绪，x 在快照中更靠前；late 在快照中先于 early（与边顺序无关）
        assert order == ["x", "root", "late", "early"]

    def test_parallel_edges_counted_once(self):
        nodes = [_node("a"), _node("b")]
        edges = [_edge("a", "b"), {"id": "dup", "source": "a", "target": "b"}]
        order, leftover = _graph(nodes, edges).topological_sort()
        assert order == ["a", "b"] and leftover == []

    def test_cycle_members_are_leftover(self):
        nodes = [_node("t", "trigger"), _node("x"), _node("y")]
        edges = [_edge("t", "x"), _edge("x", "y"), _edge("y", "x")]
        order, leftover = _graph(nodes, edges).topological_sort()
        assert order == ["t"]
        assert leftover == ["x", "y"]


# ======================================================================
# Test 4: 悬空边与环
# ======================================================================


class TestDanglingAndCycles:

    def test_dangling_edges_are_ignored(self):
        graph = _graph([_node("a")], [_edge("a", "missing"), _edge("ghost", "a")])
        assert graph.outgoing_edges("a") == []
        assert graph.producer_ids("a") == []
        assert graph.valid_edges() == []
        assert "2 dangling" in graph.summary()

    def test_outgoing_keeps_parallel_edges(self):
        graph = _graph([_node("a"), _node("b")], [_edge("a", "b"), {"id": "again", "source": "a", "target": "b"}])
        assert [e.id for e in graph.outgoing_edges("a")] == ["ea-b", "again"]
        assert graph.consumer_ids("a") == ["b"]

    def test_adjacency_queries_return_copies(self):
        """邻接表在构造时建立一次；查询返回副本，调用方修改不影响图."""
        graph = _graph([_node("a"), _node("b"), _node("c")], [_edge("a", "b"), _edge("a", "c"), _edge("b", "c")])
        graph.consumer_ids("a").append("zzz")
        graph.producer_ids("c").clear()
        graph.outgoing_edges("a").clear()
        assert graph.consumer_ids("a") == ["b", "c"]
        assert graph.producer_ids("c") == ["a", "b"]
        assert [e.id for e in graph.outgoing_edges("a")] == ["ea-b", "ea-c"]
        assert graph.consumer_ids("unknown") == []

    def test_long_chain_sorts_and_finds_sink(self):
        n = 3000
        nodes = [_node(f"n{i}") for i in range(n)]
        edges = [_edge(f"n{i}", f"n{i + 1}") for i in range(n - 1)]
        graph = _graph(nodes, edges)
        order, leftover = graph.topological_sort()
        assert order == [f"n{i}" for i in range(n)]
        assert leftover == []
        assert graph.sink_ids() == [f"n{n - 1}"]

    def test_find_cycle_reports_path(self):
        graph = _graph([_node("a"), _node("b"), _node("c")], [_edge("a", "b"), _edge("b", "c"), _edge("c", "b")])
        assert graph.find_cycle("a") == ["b", "c", "b"]

    def test_self_loop_is_a_cycle(self):
        graph = _graph([_node("a")], [_edge("a", "a")])
        assert graph.find_cycle() == ["a", "a"]
        assert graph.sink_ids() == ["a"]

    def test_diamond_is_not_a_cycle(self):
        nodes = [_node("a"), _node("b"), _node("c"), _node("d")]
        edges = [_edge("a", "b"), _edge("a", "c"), _edge("b", "d"), _edge("c", "d")]
        graph = _graph(nodes, edges)
        assert graph.find_cycle("a") is None
        assert graph.get_downstream("a") == ["b", "c", "d"]
        assert graph.sink_ids() == ["d"]

    def test_unreachable_cycle_ignored_from_start(self):
        nodes = [_node("t", "trigger"), _node("x"), _node("y")]
        graph = _graph(nodes, [_edge("x", "y"), _edge("y", "x")])
        assert graph.find_cycle("t") is None
        assert graph.find_cycle() == ["x", "y", "x"]

    def test_cyclic_graph_error_carries_cycle(self):
        err = CyclicGraphError(["a", "b", "a"])
        assert err.cycle == ["a", "b", "a"]
        assert "a -> b -> a" in str(err)


def test_demo_graph_is_linear_chain():
    graph = FlowGraph(demo_snapshot())
    order, leftover = graph.topological_sort()
    assert order == ["1", "2", "3", "4", "5"]
    assert leftover == []
    assert graph.select_start_node().label == "User Input"
    assert [e.id for e in graph.edges] == ["e1-2", "e2-3", "e3-4", "e4-5"]
    assert isinstance(graph.edges[0], FlowEdge)
