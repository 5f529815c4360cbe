"""
Configuration module for NeuroFlow.
Loads settings from environment variables or .env file.
NeuroFlow 配置模块。
从环境变量或 .env 文件加载所有配置项。
"""

import os
from dotenv import load_dotenv

load_dotenv()  # 自动读取项目根目录的 .env 文件（若存在），优先级低于系统环境变量

# --- Simulation Timing ---
# --- 模拟执行时序 ---
# Delays are visual only: no node performs real work during a simulation.
# 延迟仅用于可视化效果：模拟过程中节点不执行任何真实工作。
SIM_NODE_DWELL_MS = int(os.getenv("SIM_NODE_DWELL_MS", "1500"))  # 节点「处理中」停留时间（毫秒）
SIM_EDGE_DELAY_MS = int(os.getenv("SIM_EDGE_DELAY_MS", "300"))   # 边动画过渡时间（毫秒）
SIM_MAX_DEPTH = int(os.getenv("SIM_MAX_DEPTH", "1000"))          # 遍历最大递归深度，超出即视为失败

# --- Script Export Defaults ---
# --- 脚本导出默认值 ---
DEFAULT_LLM_MODEL = os.getenv("DEFAULT_LLM_MODEL", "gpt-4")                      # LLM 节点默认模型
DEFAULT_LLM_TEMPERATURE = float(os.getenv("DEFAULT_LLM_TEMPERATURE", "0.7"))     # LLM 节点默认温度
DEFAULT_CHUNK_SIZE = int(os.getenv("DEFAULT_CHUNK_SIZE", "1000"))                # 文本切分默认块大小
DEFAULT_VECTOR_INDEX = os.getenv("DEFAULT_VECTOR_INDEX", "default-index")        # 向量库默认索引名
DEFAULT_VECTOR_TOP_K = int(os.getenv("DEFAULT_VECTOR_TOP_K", "4"))               # 向量检索默认返回条数
DEFAULT_SLACK_CHANNEL = os.getenv("DEFAULT_SLACK_CHANNEL", "#general")           # Slack 通知默认频道
DEFAULT_EMAIL_SUBJECT = os.getenv("DEFAULT_EMAIL_SUBJECT", "NeuroFlow notification")  # 邮件默认主题

# --- Export Rendering ---
# --- 导出渲染 ---
EXPORT_JSON_INDENT = int(os.getenv("EXPORT_JSON_INDENT", "2"))  # JSON 文档缩进空格数
