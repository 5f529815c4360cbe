"""
Simulation State Machine - Owns the shared "active node" / "is running" state.
模拟状态机 —— 持有共享的「当前激活节点」与「是否运行中」状态。

The transition table is the single source of truth for what run-status
changes are legal. Starting a run while another one is in flight is an
invalid RUNNING -> RUNNING transition and raises InvalidTransitionError.
转移表是运行状态合法变化的唯一权威来源。
在已有运行未结束时再次启动，会触发非法的 RUNNING -> RUNNING 转移并抛出 InvalidTransitionError。

Transition graph:
转移图：
    IDLE ──> RUNNING ──> FINISHED
                     ──> CANCELLED
                     ──> FAILED
    FINISHED / CANCELLED / FAILED ──> RUNNING   (next run / 下一次运行)

The active node marker is not guarded: concurrent branches overwrite it
(last writer wins), which is what the canvas displays.
激活节点标记不受转移表约束：并发分支会相互覆盖（后写者胜），画布按此显示。
"""

from __future__ import annotations

import logging
from typing import Callable

from schema import RunStatus, StateTransition

logger = logging.getLogger(__name__)


class InvalidTransitionError(Exception):
    """
    Raised when an illegal run-status transition is attempted.
    当尝试非法运行状态转移时抛出此异常。
    """
    pass


VALID_TRANSITIONS: dict[RunStatus, set[RunStatus]] = {
    RunStatus.IDLE:      {RunStatus.RUNNING},
    RunStatus.RUNNING:   {RunStatus.FINISHED, RunStatus.CANCELLED, RunStatus.FAILED},
    RunStatus.FINISHED:  {RunStatus.RUNNING},
    RunStatus.CANCELLED: {RunStatus.RUNNING},
    RunStatus.FAILED:    {RunStatus.RUNNING},
}


class SimulationStateMachine:
    """
    Validates run-status transitions and records every observable change.
    校验运行状态转移，并记录每一次可观测的状态变化。

    Consumers (the canvas renderer, the CLI, tests) read `active_node_id`
    and `is_running`, or subscribe through `on_transition`.
    消费方（画布渲染、CLI、测试）读取 `active_node_id` 与 `is_running`，
    或通过 `on_transition` 回调订阅变化。
    """

    def __init__(self, on_transition: Callable[[StateTransition], None] | None = None):
        """
        Args:
            on_transition: Optional callback receiving each StateTransition.
            on_transition: 可选回调，每次状态变化时接收 StateTransition。
        """
        self._on_transition = on_transition
        self.status = RunStatus.IDLE
        self.active_node_id: str | None = None
        self.history: list[StateTransition] = []

    @property
    def is_running(self) -> bool:
        return self.status == RunStatus.RUNNING

    def can_transition(self, new_status: RunStatus) -> bool:
        return new_status in VALID_TRANSITIONS.get(self.status, set())

    def transition(self, new_status: RunStatus) -> None:
        """
        Apply a run-status transition. Raises InvalidTransitionError if illegal.
        应用运行状态转移。若转移非法则抛出 InvalidTransitionError。
        """
        if not self.can_transition(new_status):
            raise InvalidTransitionError(
                f"Simulation cannot transition from {self.status.value} to {new_status.value}. "
                f"Valid targets: {sorted(s.value for s in VALID_TRANSITIONS.get(self.status, set()))}"
            )

        old_status = self.status
        self.status = new_status
        logger.debug("[SM] status: %s -> %s", old_status.value, new_status.value)
        self._record("status", old_status.value, new_status.value)

    def set_active(self, node_id: str | None) -> None:
        """
        Mark `node_id` as the active node, or clear the marker with None.
        将 `node_id` 标记为激活节点；传入 None 表示清除标记。
        """
        old = self.active_node_id
        self.active_node_id = node_id
        logger.debug("[SM] active: %s -> %s", old, node_id)
        self._record("active_node_id", old, node_id)

    def active_history(self) -> list[str | None]:
        """Sequence of values the active marker took, in order."""
        return [t.new for t in self.history if t.field == "active_node_id"]

    def _record(self, field: str, old: str | None, new: str | None) -> None:
        transition = StateTransition(field=field, old=old, new=new)
        self.history.append(transition)
        if self._on_transition:
            try:
                self._on_transition(transition)
            except Exception:
                # UI errors should never crash the simulation / UI 异常不能影响模拟主流程
                logger.exception("[SM] on_transition callback failed")
