"""
Compiler module - Turns a graph snapshot into export artifacts.
Compiler 模块 —— 将图快照转换为导出产物。

Components:
  - pipeline.py: structured pipeline document (JSON)
  - script.py:   equivalent Python script (LangChain)
  - roles.py:    node roles and typed per-role settings

模块组成：
  - pipeline.py: 结构化流水线文档（JSON）
  - script.py:   等价的 Python 脚本（LangChain）
  - roles.py:    节点角色与按角色划分的类型化配置
"""

from compiler.pipeline import render_pipeline_document, to_pipeline_document  # 流水线文档
from compiler.script import to_script_text                                      # Python 脚本
from compiler.roles import NodeRole, infer_role, resolve_settings              # 节点角色
