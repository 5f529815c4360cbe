"""
DAG module - Graph model queries and the simulation engine.
DAG 模块 —— 图模型查询与模拟执行引擎。

Components:
  - graph.py:         FlowGraph read-only view (start selection, topological sort, cycle search)
  - state_machine.py: Shared active-node / run-status state
  - engine.py:        TraversalEngine (concurrent fan-out simulation)
  - demo.py:          The editor's five-node demo graph

模块组成：
  - graph.py:         FlowGraph 只读视图（起点选择、拓扑排序、环检测）
  - state_machine.py: 共享的激活节点 / 运行状态
  - engine.py:        TraversalEngine 遍历引擎（并发扇出模拟）
  - demo.py:          编辑器自带的五节点演示图
"""

from dag.graph import CyclicGraphError, FlowGraph          # 图只读视图
from dag.state_machine import SimulationStateMachine      # 模拟状态机
from dag.engine import TraversalEngine                    # 遍历引擎
