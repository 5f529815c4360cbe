"""
FlowGraph - Read-only view over a pipeline graph snapshot.
FlowGraph —— 流水线图快照的只读视图。

The FlowGraph holds:
  - nodes: ordered dict of FlowNode (snapshot order preserved)
  - edges: tuple of FlowEdge (snapshot order preserved)

FlowGraph 包含：
  - nodes: 按快照顺序排列的 FlowNode 字典
  - edges: 按快照顺序排列的 FlowEdge 元组

Key operations:
  - select_start_node(): first trigger, else first node
  - outgoing_edges():    fan-out targets used by the traversal engine
  - topological_sort():  Kahn's algorithm with snapshot-order tie-break
  - find_cycle():        DFS cycle search used as the engine's guard

核心操作：
  - select_start_node(): 选择模拟起点（首个 trigger 节点，否则首个节点）
  - outgoing_edges():    遍历引擎扇出时使用的出边
  - topological_sort():  Kahn 算法，平局时按快照顺序决定
  - find_cycle():        DFS 环检测，作为遍历引擎的保护措施

Edges whose source or target is missing ("dangling") are logged once and
excluded from every query.
源或目标节点不存在的边（悬空边）只在构造时记录一次日志，之后所有查询都会忽略它们。
"""

from __future__ import annotations

import heapq
import logging
from collections import deque

from schema import FlowEdge, FlowNode, GraphSnapshot, NodeKind

logger = logging.getLogger(__name__)


class CyclicGraphError(Exception):
    """
    Raised when a cycle makes a traversal non-terminating.
    当图中存在环、导致遍历无法终止时抛出。
    """

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        super().__init__(f"Cycle detected: {' -> '.join(cycle)}")


class FlowGraph:
    """
    Query helper over an immutable GraphSnapshot.
    基于不可变 GraphSnapshot 的查询辅助类，本身从不修改图数据。
    """

    def __init__(self, snapshot: GraphSnapshot):
        self.snapshot = snapshot
        self.nodes: dict[str, FlowNode] = {n.id: n for n in snapshot.nodes}
        self.edges: tuple[FlowEdge, ...] = snapshot.edges
        # 节点在快照中的位置，用于稳定的平局决策
        self._order: dict[str, int] = {nid: i for i, nid in enumerate(self.nodes)}

        self._valid_edges = [e for e in self.edges if e.source in self.nodes and e.target in self.nodes]

        # Adjacency built once: outgoing edges per node, and distinct
        # producers / consumers in edge order (self-loops excluded).
        # 邻接表只构建一次：每个节点的出边，以及去重后的上下游节点（按边顺序，忽略自环）。
        self._outgoing: dict[str, list[FlowEdge]] = {nid: [] for nid in self.nodes}
        self._producers: dict[str, list[str]] = {nid: [] for nid in self.nodes}
        self._consumers: dict[str, list[str]] = {nid: [] for nid in self.nodes}
        for e in self._valid_edges:
            self._outgoing[e.source].append(e)
            if e.source == e.target:
                continue
            if e.target not in self._consumers[e.source]:
                self._consumers[e.source].append(e.target)
            if e.source not in self._producers[e.target]:
                self._producers[e.target].append(e.source)

        self._validate_graph()

    # ------------------------------------------------------------------
    # Node queries
    # 节点查询
    # ------------------------------------------------------------------

    @property
    def node_ids(self) -> list[str]:
        return list(self.nodes)

    def get_node(self, node_id: str) -> FlowNode | None:
        return self.nodes.get(node_id)

    def is_empty(self) -> bool:
        return not self.nodes

    def select_start_node(self) -> FlowNode | None:
        """
        First trigger node in snapshot order, else the first node.
        按快照顺序返回第一个 trigger 节点；不存在时退回第一个节点；空图返回 None。

        With several triggers only the first one starts a simulation.
        存在多个 trigger 时只有第一个作为起点。
        """
        for node in self.nodes.values():
            if node.kind == NodeKind.TRIGGER:
                return node
        return next(iter(self.nodes.values()), None)

    # ------------------------------------------------------------------
    # Edge queries
    # 边查询
    # ------------------------------------------------------------------

    def valid_edges(self) -> list[FlowEdge]:
        """Edges whose endpoints both exist, in snapshot order."""
        return list(self._valid_edges)

    def outgoing_edges(self, node_id: str) -> list[FlowEdge]:
        """
        Valid edges leaving `node_id`. Parallel edges are kept: each one
        activates its target once during a simulation.
        从 `node_id` 出发的有效边。重复边会保留，模拟时每条边都会激活一次目标节点。
        """
        return list(self._outgoing.get(node_id, ()))

    def producer_ids(self, node_id: str) -> list[str]:
        """
        Distinct upstream node IDs of `node_id` in edge order (self-loops excluded).
        返回 `node_id` 的上游节点 ID（去重、按边顺序、忽略自环）。
        """
        return list(self._producers.get(node_id, ()))

    def consumer_ids(self, node_id: str) -> list[str]:
        """Distinct downstream node IDs of `node_id` in edge order (self-loops excluded)."""
        return list(self._consumers.get(node_id, ()))

    def sink_ids(self) -> list[str]:
        """Nodes nothing else consumes, in snapshot order."""
        return [nid for nid in self.nodes if not self._consumers[nid]]

    def get_downstream(self, node_id: str) -> list[str]:
        """
        Return all node IDs reachable from `node_id` via BFS.
        通过 BFS 返回从 `node_id` 可达的全部节点 ID。
        """
        visited: set[str] = set()
        queue: deque[str] = deque(self.consumer_ids(node_id))
        result: list[str] = []

        while queue:
            nid = queue.popleft()
            if nid in visited:
                continue
            visited.add(nid)
            result.append(nid)
            queue.extend(self.consumer_ids(nid))

        return result

    # ------------------------------------------------------------------
    # Graph algorithms
    # 图算法
    # ------------------------------------------------------------------

    def topological_sort(self) -> tuple[list[str], list[str]]:
        """
        Kahn's algorithm. Among ready nodes, the one earliest in the
        snapshot is taken next, so identical input yields identical order.
        Kahn 算法。多个节点同时就绪时，取快照中最靠前的节点，保证相同输入得到相同顺序。

        Returns (order, leftover): `leftover` holds nodes trapped in cycles,
        in snapshot order. It is empty for an acyclic graph.
        返回 (order, leftover)：leftover 为因环无法排序的节点（按快照顺序），无环时为空。
        """
        # 统计每个节点的入度（重复边与自环只计一次 / 不计）
        in_degree: dict[str, int] = {nid: 0 for nid in self.nodes}
        children: dict[str, list[str]] = {nid: self.consumer_ids(nid) for nid in self.nodes}
        for nid, targets in children.items():
            for target in targets:
                in_degree[target] += 1

        ready = [self._order[nid] for nid, deg in in_degree.items() if deg == 0]
        heapq.heapify(ready)
        ids = list(self.nodes)
        order: list[str] = []

        while ready:
            nid = ids[heapq.heappop(ready)]
            order.append(nid)
            for child in children[nid]:
                in_degree[child] -= 1
                if in_degree[child] == 0:
                    heapq.heappush(ready, self._order[child])

        leftover = [nid for nid in self.nodes if in_degree[nid] > 0]
        if leftover:
            logger.warning("[Graph] Cycle detected! %d node(s) could not be ordered: %s", len(leftover), leftover)
        return order, leftover

    def find_cycle(self, start_id: str | None = None) -> list[str] | None:
        """
        Return one cycle as a list of node IDs (first ID repeated at the end),
        or None. When `start_id` is given only nodes reachable from it are searched.
        返回一个环（首节点在末尾重复出现）；无环时返回 None。
        指定 `start_id` 时只搜索从该节点可达的部分。
        """
        roots = [start_id] if start_id is not None else list(self.nodes)
        done: set[str] = set()

        for root in roots:
            if root in done or root not in self.nodes:
                continue
            # 迭代式 DFS：栈中保存 (节点, 出边迭代器)，path 为当前路径
            path: list[str] = [root]
            on_path: set[str] = {root}
            stack = [(root, iter(self.outgoing_edges(root)))]
            while stack:
                nid, it = stack[-1]
                edge = next(it, None)
                if edge is None:
                    stack.pop()
                    path.pop()
                    on_path.discard(nid)
                    done.add(nid)
                    continue
                target = edge.target
                if target in on_path:
                    return path[path.index(target):] + [target]
                if target in done:
                    continue
                path.append(target)
                on_path.add(target)
                stack.append((target, iter(self.outgoing_edges(target))))
        return None

    # ------------------------------------------------------------------
    # Validation
    # 校验
    # ------------------------------------------------------------------

    def _validate_graph(self) -> None:
        """
        Log dangling edges. They are not errors: every query skips them.
        记录悬空边。悬空边不视为错误，所有查询都会跳过它们。
        """
        for e in self.edges:
            if e.source not in self.nodes:
                logger.warning("[Graph] Edge %s: source '%s' not found in nodes", e.id, e.source)
            if e.target not in self.nodes:
                logger.warning("[Graph] Edge %s: target '%s' not found in nodes", e.id, e.target)

    # ------------------------------------------------------------------
    # Display helpers
    # 展示辅助方法
    # ------------------------------------------------------------------

    def summary(self) -> str:
        """
        One-line summary for logging, e.g. Graph[5 nodes (1 trigger, 2 processing, ...), 4 edges].
        生成单行摘要用于日志输出。
        """
        kind_counts: dict[str, int] = {}
        for n in self.nodes.values():
            kind_counts[n.kind.value] = kind_counts.get(n.kind.value, 0) + 1
        parts = [f"{v} {k}" for k, v in kind_counts.items()]
        dangling = len(self.edges) - len(self._valid_edges)
        text = f"Graph[{len(self.nodes)} nodes ({', '.join(parts)}), {len(self._valid_edges)} edges"
        if dangling:
            text += f", {dangling} dangling"
        return text + "]"
