"""Tests for the persistcache CLI.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

import textwrap

from typer.testing import CliRunner

from persistcache_core.cli import app


runner = CliRunner()


def _write_engine_module(tmp_path, monkeypatch):
    """Write an importable engine module that never loads anything."""
    (tmp_path / "losing_engine.py").write_text(textwrap.dedent("""
        from persistcache_core.store.memory import MemoryEngine

        class LosingEngine(MemoryEngine):
            async def load(self):
                return []
    """))
    monkeypatch.syspath_prepend(str(tmp_path))


class TestEnginesCommand:
    """Tests for 'persistcache engines'."""

    def test_lists_builtins(self, registry):
        result = runner.invoke(app, ["engines"])

        assert result.exit_code == 0
        for name in ("memory-test", "file", "redis"):
            assert name in result.output


class TestTestCommand:
    """Tests for 'persistcache test'."""

    def test_memory_engine_passes(self, registry, locations):
        """Test a passing engine exits 0."""
        result = runner.invoke(app, ["test", "memory-test"])

        assert result.exit_code == 0, result.output
        assert "[PASS] memory-test" in result.output

    def test_file_engine_with_options(self, registry, locations, tmp_path):
        """Test engine options are passed through."""
        result = runner.invoke(
            app, ["test", "file", "--option", f"file.dir={tmp_path / 'cli'}"]
        )

        assert result.exit_code == 0, result.output
        assert (tmp_path / "cli").exists()

    def test_imported_engine_failing(self, registry, locations, tmp_path, monkeypatch):
        """Test name=module:Class registers and a failing engine exits 1."""
        _write_engine_module(tmp_path, monkeypatch)
        result = runner.invoke(app, ["test", "losing=losing_engine:LosingEngine"])

        assert result.exit_code == 1
        assert "[FAIL] losing" in result.output
        assert "losing" in registry

    def test_unknown_engine(self, registry, locations):
        """Test unknown names are rejected."""
        result = runner.invoke(app, ["test", "nope"])

        assert result.exit_code != 0
        assert "nope" in result.output

    def test_bad_import(self, registry, locations):
        """Test unimportable engines are rejected."""
        result = runner.invoke(app, ["test", "x=no_such_module:Engine"])

        assert result.exit_code != 0

    def test_bad_option(self, registry, locations):
        """Test malformed options are rejected."""
        result = runner.invoke(app, ["test", "memory-test", "--option", "nodot=1"])

        assert result.exit_code != 0

    def test_nothing_to_test(self, registry, locations):
        """Test an empty invocation exits 2."""
        result = runner.invoke(app, ["test"])

        assert result.exit_code == 2
