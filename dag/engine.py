"""
Traversal Engine - Simulates execution order over a pipeline graph.
遍历引擎 —— 在流水线图上模拟执行顺序。

No node does real work. A visit only moves the shared "active node" marker,
waits a fixed dwell time, clears the marker, then fans out to every
successor concurrently:
节点不执行任何真实工作。一次访问只做以下事情：

  1. Mark the node active                          / 标记节点为激活
  2. Dwell SIM_NODE_DWELL_MS ("processing")        / 停留一段时间（模拟处理中）
  3. Clear the active marker                        / 清除激活标记
  4. Wait SIM_EDGE_DELAY_MS (edge animation)       / 等待边动画
  5. Visit every target concurrently, join all     / 并发访问所有后继节点，全部完成后才返回

Fan-out uses one asyncio task per outgoing edge joined with asyncio.gather,
so sibling dwell periods overlap and a run only finishes once every branch
has finished. A node reached through N incoming edges is visited N times.
扇出时每条出边对应一个 asyncio 任务，用 asyncio.gather 汇合：
兄弟分支的停留时间相互重叠，只有所有分支都完成后整次运行才算完成。
通过 N 条入边到达的节点会被访问 N 次。

Cycles reachable from the start node are reported up front as
CyclicGraphError instead of recursing forever; a depth budget guards the
recursion as well.
从起点可达的环会在开始前以 CyclicGraphError 报告，而不是无限递归；递归深度也有上限保护。
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from typing import Any, Callable

import config
from dag.graph import CyclicGraphError, FlowGraph
from dag.state_machine import SimulationStateMachine
from schema import FlowEdge, FlowNode, GraphSnapshot, RunStatus

logger = logging.getLogger(__name__)


class TraversalDepthError(Exception):
    """
    Raised when a branch recurses deeper than the configured budget.
    分支递归深度超过配置上限时抛出。
    """

    def __init__(self, node_id: str, max_depth: int):
        self.node_id = node_id
        self.max_depth = max_depth
        super().__init__(f"Traversal exceeded max depth {max_depth} at node '{node_id}'")


class TraversalEngine:
    """
    Drives one simulation run at a time over a graph snapshot.
    每次针对一个图快照驱动一次模拟运行。

    The engine owns the shared SimulationStateMachine for the duration of a
    run. A second `simulate()` while one is in flight is rejected by the
    state machine (RUNNING -> RUNNING is not a legal transition).
    运行期间引擎独占共享的 SimulationStateMachine。
    在运行未结束时再次调用 `simulate()` 会被状态机拒绝（RUNNING -> RUNNING 非法）。
    """

    def __init__(
        self,
        state: SimulationStateMachine | None = None,
        dwell_ms: float | None = None,
        edge_delay_ms: float | None = None,
        max_depth: int | None = None,
        on_event: Callable[[str, Any], None] | None = None,
    ):
        self.state = state or SimulationStateMachine()    # 共享的可观测状态
        self._dwell_s = (config.SIM_NODE_DWELL_MS if dwell_ms is None else dwell_ms) / 1000
        self._edge_delay_s = (config.SIM_EDGE_DELAY_MS if edge_delay_ms is None else edge_delay_ms) / 1000
        self._max_depth = config.SIM_MAX_DEPTH if max_depth is None else max_depth
        self._emit = on_event or (lambda *_: None)      # 事件回调（用于 UI 实时更新）
        self._run_task: asyncio.Task | None = None
        self._cancel_requested = False

    @property
    def is_running(self) -> bool:
        return self.state.is_running

    # ------------------------------------------------------------------
    # Public API
    # 对外接口
    # ------------------------------------------------------------------

    async def simulate(
        self,
        nodes: Iterable[FlowNode | Mapping[str, Any]],
        edges: Iterable[FlowEdge | Mapping[str, Any]],
    ) -> None:
        """
        Run one simulation and return once every branch has completed.
        执行一次模拟，所有分支完成后返回。

        Raises:
            InvalidTransitionError: a run is already in flight.
            CyclicGraphError: a cycle is reachable from the start node.
            TraversalDepthError: recursion exceeded SIM_MAX_DEPTH.
        """
        graph = FlowGraph(GraphSnapshot.capture(nodes, edges))
        self.state.transition(RunStatus.RUNNING)
        self._cancel_requested = False
        self._emit("simulation_started", {"summary": graph.summary()})
        logger.info("[Engine] Simulation started. %s", graph.summary())

        start = graph.select_start_node()
        if start is None:
            logger.info("[Engine] Empty graph, nothing to simulate")
            self._finish(RunStatus.FINISHED)
            return

        cycle = graph.find_cycle(start.id)
        if cycle is not None:
            logger.error("[Engine] Cycle reachable from start node %s: %s", start.id, " -> ".join(cycle))
            self._emit("cycle_detected", {"cycle": cycle})
            self._finish(RunStatus.FAILED, reason="cycle")
            raise CyclicGraphError(cycle)

        self._run_task = asyncio.ensure_future(self._visit(graph, start.id, depth=0))
        try:
            await self._run_task
        except asyncio.CancelledError:
            self._finish(RunStatus.CANCELLED)
            if not self._cancel_requested:
                raise  # 外部取消：继续向上传播
            return
        except Exception as exc:
            self._finish(RunStatus.FAILED, reason=str(exc))
            raise
        finally:
            self._run_task = None

        self._finish(RunStatus.FINISHED)

    def cancel(self) -> bool:
        """
        Cancel the in-flight run. Returns False if nothing is running.
        取消进行中的运行；没有运行时返回 False。
        """
        if self._run_task is None or self._run_task.done():
            return False
        logger.info("[Engine] Cancellation requested")
        self._cancel_requested = True
        self._run_task.cancel()
        return True

    # ------------------------------------------------------------------
    # Traversal
    # 遍历
    # ------------------------------------------------------------------

    async def _visit(self, graph: FlowGraph, node_id: str, depth: int) -> None:
        """
        Visit one node, then every successor concurrently.
        访问单个节点，然后并发访问其全部后继节点。
        """
        if depth > self._max_depth:
            raise TraversalDepthError(node_id, self._max_depth)

        node = graph.get_node(node_id)
        self.state.set_active(node_id)
        self._emit("node_active", {"node": node, "depth": depth})
        logger.info("[Engine] Node %s (%s) active", node_id, node.label if node else "?")

        await asyncio.sleep(self._dwell_s)  # 模拟「处理中」

        outgoing = graph.outgoing_edges(node_id)
        self.state.set_active(None)
        self._emit("node_cleared", {"node_id": node_id})

        if not outgoing:
            return  # 叶子节点：该分支结束

        await asyncio.sleep(self._edge_delay_s)  # 等待边动画
        targets = [e.target for e in outgoing]
        self._emit("fan_out", {"node_id": node_id, "targets": targets})
        if len(targets) > 1:
            logger.debug("[Engine] Fan-out %s -> %s", node_id, targets)

        # One task per branch, joined before this branch counts as complete.
        # 每个分支一个任务；全部汇合后，本分支才算完成。
        tasks = [asyncio.ensure_future(self._visit(graph, t, depth + 1)) for t in targets]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            # 任一分支失败或被取消：取消其余兄弟分支后再向上传播
            for task in tasks:
                task.cancel()
            raise

    # ------------------------------------------------------------------
    # Helpers
    # 辅助方法
    # ------------------------------------------------------------------

    def _finish(self, status: RunStatus, reason: str | None = None) -> None:
        """Clear the active marker, then leave RUNNING."""
        if self.state.active_node_id is not None:
            self.state.set_active(None)
        self.state.transition(status)

        event = {
            RunStatus.FINISHED: "simulation_finished",
            RunStatus.CANCELLED: "simulation_cancelled",
            RunStatus.FAILED: "simulation_failed",
        }[status]
        payload: dict[str, Any] = {"status": status.value}
        if reason:
            payload["reason"] = reason
        self._emit(event, payload)
        logger.info("[Engine] Simulation %s", status.value)
