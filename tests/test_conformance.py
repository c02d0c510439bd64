"""Tests for the engine conformance suite.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

import pytest

from persistcache_core.engines.conformance import ConformanceReport, run_conformance
from persistcache_core.errors import ConformanceError
from persistcache_core.store.memory import MemoryEngine


class ForgetfulEngine(MemoryEngine):
    """Engine that loses everything on reload."""

    async def load(self):
        return []


class TestConformanceReport:
    """Tests for ConformanceReport."""

    def test_records_checks(self):
        """Test passed and failed checks are kept apart."""
        report = ConformanceReport("x")
        report.check(True, "first")
        report.equal(1, 2, "second")

        assert report.passed == ["first"]
        assert report.failures == ["second: expected 2, got 1"]
        assert not report.ok
        assert report.to_dict()["passed"] == 1

    def test_raise_for_failures(self):
        """Test failing reports raise."""
        ConformanceReport("ok").raise_for_failures()

        report = ConformanceReport("bad", failures=["broken"])
        with pytest.raises(ConformanceError):
            report.raise_for_failures()


class TestRunConformance:
    """Tests for run_conformance."""

    @pytest.mark.asyncio
    async def test_memory_engine_passes(self, registry, locations):
        """Test the reference engine passes every check."""
        report = await run_conformance("memory-test", registry=registry, locations=locations)

        assert report.ok, report.failures
        assert len(report.passed) > 30
        assert len(locations) == 0

    @pytest.mark.asyncio
    async def test_file_engine_passes(self, registry, locations, file_options):
        """Test the file engine passes every check."""
        report = await run_conformance(
            "file", registry=registry, locations=locations, engine_options=file_options
        )

        assert report.ok, report.failures

    @pytest.mark.asyncio
    async def test_forgetful_engine_fails(self, registry, locations):
        """Test an engine that loses data is reported, not raised."""
        registry.register("forgetful", ForgetfulEngine)

        report = await run_conformance("forgetful", registry=registry, locations=locations)

        assert not report.ok
        assert any("persisted string value" in failure for failure in report.failures)
        assert len(locations) == 0

    @pytest.mark.asyncio
    async def test_unknown_engine_aborts(self, registry, locations):
        """Test a suite that cannot start is reported as aborted."""
        report = await run_conformance("missing", registry=registry, locations=locations)

        assert not report.ok
        assert report.failures[0].startswith("suite aborted: UnknownEngineError")
