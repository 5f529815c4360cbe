"""
NeuroFlow - Command line entry point.
NeuroFlow —— 命令行入口。

Runs the core outside the visual editor: simulate a pipeline graph with a
live activity log, or print its export artifacts.
在可视化编辑器之外运行核心功能：模拟流水线图并实时打印节点活动，或输出导出产物。

Usage / 用法:
    python main.py simulate [graph.json] [--fast] [-v]
    python main.py export   [graph.json] [--format json|python|both]

Without a graph file the editor's demo graph is used.
未指定图文件时使用编辑器自带的演示图。
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

import config
from compiler import render_pipeline_document, to_script_text
from dag.demo import demo_snapshot
from dag.engine import TraversalDepthError, TraversalEngine
from dag.graph import CyclicGraphError, FlowGraph
from schema import GraphSnapshot

console = Console()

# Node kind -> Rich style mapping
# 节点类型 -> Rich 样式映射
_KIND_STYLES = {
    "trigger": "bold green",
    "processing": "bold blue",
    "data": "bold magenta",
    "logic": "bold yellow",
    "action": "bold red",
}

# --fast divides the visual delays by this factor
_FAST_FACTOR = 10


# ======================================================================
# UI Event Handler
# UI 事件处理器
# ======================================================================

def on_event(event: str, data: Any) -> None:
    """
    Render TraversalEngine events on the console.
    将 TraversalEngine 事件渲染到控制台。
    """
    if event == "simulation_started":
        console.print(f"\n[bold cyan]>>> Simulation started[/bold cyan] [dim]{data['summary']}[/dim]")

    elif event == "node_active":
        node = data["node"]
        style = _KIND_STYLES.get(node.kind.value, "white")
        indent = "  " * data["depth"]
        console.print(f"{indent}[{style}]●[/{style}] {node.label or node.id} [dim]({node.id}, {node.kind.value})[/dim]")

    elif event == "fan_out":
        if len(data["targets"]) > 1:
            console.print(f"[dim]  fan-out {data['node_id']} -> {', '.join(data['targets'])}[/dim]")

    elif event == "cycle_detected":
        console.print(f"[red]Cycle detected:[/red] {' -> '.join(data['cycle'])}")

    elif event == "simulation_finished":
        console.print("[bold green]>>> Simulation finished[/bold green]")

    elif event == "simulation_cancelled":
        console.print("[yellow]>>> Simulation cancelled[/yellow]")

    elif event == "simulation_failed":
        console.print(f"[red]>>> Simulation failed:[/red] {data.get('reason', '')}")


def _graph_table(snapshot: GraphSnapshot) -> Table:
    """Overview table of the loaded graph."""
    graph = FlowGraph(snapshot)
    order, leftover = graph.topological_sort()
    table = Table(title=graph.summary(), show_lines=False)
    table.add_column("#", style="dim")
    table.add_column("ID", style="cyan")
    table.add_column("Kind")
    table.add_column("Label")
    table.add_column("Consumers", style="dim")
    for i, nid in enumerate(order + leftover, start=1):
        node = graph.nodes[nid]
        style = _KIND_STYLES.get(node.kind.value, "white")
        table.add_row(
            str(i),
            nid,
            f"[{style}]{node.kind.value}[/{style}]",
            node.label,
            ", ".join(graph.consumer_ids(nid)),
        )
    return table


# ======================================================================
# Commands
# 子命令
# ======================================================================

def load_snapshot(path: str | None) -> GraphSnapshot:
    """Load a graph from a JSON file, or the demo graph."""
    if path is None:
        return demo_snapshot()
    return GraphSnapshot.from_json(Path(path).read_text(encoding="utf-8"))


async def run_simulation(snapshot: GraphSnapshot, fast: bool = False) -> int:
    """
    Simulate the graph; Ctrl+C cancels the run cleanly.
    模拟执行图；Ctrl+C 可干净地取消运行。
    """
    kwargs: dict[str, Any] = {}
    if fast:
        kwargs = {
            "dwell_ms": config.SIM_NODE_DWELL_MS / _FAST_FACTOR,
            "edge_delay_ms": config.SIM_EDGE_DELAY_MS / _FAST_FACTOR,
        }

    engine = TraversalEngine(on_event=on_event, **kwargs)
    console.print(_graph_table(snapshot))
    try:
        await engine.simulate(snapshot.nodes, snapshot.edges)
    except (CyclicGraphError, TraversalDepthError):
        # simulation_failed 事件已输出原因
        return 1
    return 0


def run_export(snapshot: GraphSnapshot, fmt: str = "both") -> int:
    """Print the requested export artifacts."""
    if fmt in ("json", "both"):
        console.print(Panel(
            Syntax(render_pipeline_document(snapshot.nodes, snapshot.edges), "json"),
            title="[bold blue]Pipeline Schema (JSON)[/bold blue]",
            border_style="blue",
        ))
    if fmt in ("python", "both"):
        console.print(Panel(
            Syntax(to_script_text(snapshot.nodes, snapshot.edges), "python"),
            title="[bold green]Python Script (LangChain)[/bold green]",
            border_style="green",
        ))
    return 0


def setup_logging(verbose: bool = False) -> None:
    """
    Configure logging with rich handler.
    配置 Rich 日志处理器。verbose 模式下输出 DEBUG 级别日志。
    """
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=True)],
    )


def _split_args(args: list[str]) -> tuple[list[str], dict[str, str]]:
    """Separate positional arguments from ``--name value`` options."""
    positional: list[str] = []
    options: dict[str, str] = {}
    i = 0
    while i < len(args):
        arg = args[i]
        if arg == "--format" and i + 1 < len(args):
            options[arg] = args[i + 1]
            i += 2
            continue
        if not arg.startswith("-"):
            positional.append(arg)
        i += 1
    return positional, options


def main() -> None:
    """
    程序入口：解析命令行参数，决定运行模式。
    - simulate：模拟执行（--fast 缩短动画延迟）
    - export：输出导出产物（--format json|python|both）
    - -v / --verbose：启用调试日志
    """
    argv = sys.argv[1:]
    verbose = "--verbose" in argv or "-v" in argv
    setup_logging(verbose)

    # 过滤掉选项参数及其取值，保留位置参数
    positional, options = _split_args(argv)
    fmt = options.get("--format", "both")
    if not positional or positional[0] not in ("simulate", "export"):
        console.print(__doc__)
        sys.exit(2)

    command = positional[0]
    path = positional[1] if len(positional) > 1 else None
    try:
        snapshot = load_snapshot(path)
    except (OSError, ValueError) as exc:
        console.print(f"[red]Cannot load graph:[/red] {exc}")
        sys.exit(1)

    if command == "simulate":
        try:
            code = asyncio.run(run_simulation(snapshot, fast="--fast" in argv))
        except KeyboardInterrupt:
            console.print("\n[yellow]Simulation interrupted.[/yellow]")
            code = 130
    else:
        if fmt not in ("json", "python", "both"):
            console.print(f"[red]Unknown format:[/red] {fmt}")
            sys.exit(2)
        code = run_export(snapshot, fmt)
    sys.exit(code)


if __name__ == "__main__":
    main()
