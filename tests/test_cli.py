"""
CLI tests - 参数解析、图加载与导出命令。
"""

from __future__ import annotations

import json

import pytest

import main
from schema import GraphSnapshot


class TestArguments:

    def test_split_args(self):
        positional, options = main._split_args(["export", "g.json", "--format", "json", "-v"])
        assert positional == ["export", "g.json"]
        assert options == {"--format": "json"}

    def test_format_without_value_is_ignored(self):
        positional, options = main._split_args(["export", "--format"])
        assert positional == ["export"]
        assert options == {}


class TestCommands:

    def test_load_snapshot_defaults_to_demo(self):
        snapshot = main.load_snapshot(None)
        assert [n.id for n in snapshot.nodes] == ["1", "2", "3", "4", "5"]

    def test_load_snapshot_from_exported_document(self, tmp_path):
        doc = {"nodes": [{"id": "a", "type": "trigger", "label": "Chat Input", "config": {}}], "edges": []}
        path = tmp_path / "graph.json"
        path.write_text(json.dumps(doc), encoding="utf-8")
        snapshot = main.load_snapshot(str(path))
        assert isinstance(snapshot, GraphSnapshot)
        assert snapshot.nodes[0].label == "Chat Input"

    @pytest.mark.parametrize("fmt", ["json", "python", "both"])
    def test_run_export(self, fmt):
        assert main.run_export(main.load_snapshot(None), fmt) == 0

    @pytest.mark.asyncio
    async def test_run_simulation_reports_cycle(self, monkeypatch):
        monkeypatch.setattr(main.config, "SIM_NODE_DWELL_MS", 0)
        monkeypatch.setattr(main.config, "SIM_EDGE_DELAY_MS", 0)
        snapshot = GraphSnapshot.capture(
            [{"id": "a", "type": "trigger"}, {"id": "b", "type": "processing"}],
            [{"source": "a", "target": "b"}, {"source": "b", "target": "a"}],
        )
        assert await main.run_simulation(snapshot, fast=True) == 1

    @pytest.mark.asyncio
    async def test_run_simulation_reports_depth_overflow(self, monkeypatch):
        monkeypatch.setattr(main.config, "SIM_NODE_DWELL_MS", 0)
        monkeypatch.setattr(main.config, "SIM_EDGE_DELAY_MS", 0)
        monkeypatch.setattr(main.config, "SIM_MAX_DEPTH", 1)
        snapshot = GraphSnapshot.capture(
            [{"id": str(i), "type": "processing"} for i in range(4)],
            [{"source": str(i), "target": str(i + 1)} for i in range(3)],
        )
        assert await main.run_simulation(snapshot, fast=True) == 1

    @pytest.mark.asyncio
    async def test_run_simulation_demo(self, monkeypatch):
        monkeypatch.setattr(main.config, "SIM_NODE_DWELL_MS", 0)
        monkeypatch.setattr(main.config, "SIM_EDGE_DELAY_MS", 0)
        assert await main.run_simulation(main.load_snapshot(None), fast=True) == 0
