"""Tests for pyproject.toml and package installation."""
from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).parent.parent


class TestPackageInstallation:
    """Test that the package is properly installed."""

    def test_version_defined(self):
        import narrapace
        assert isinstance(narrapace.__version__, str)
        assert len(narrapace.__version__) > 0

    def test_core_modules_importable(self):
        from narrapace.api import routes, schemas
        from narrapace.core import config, logging, metrics
        from narrapace.pacing import driver, rate, timeline
        from narrapace.store import json_store

        for module in (routes, schemas, config, logging, metrics, driver, rate, timeline, json_store):
            assert module is not None

    def test_pacing_exports(self):
        from narrapace.pacing import PlaybackDriver, RateEstimator, compute_seek, format_time

        assert callable(compute_seek)
        assert callable(format_time)
        assert PlaybackDriver is not None
        assert RateEstimator is not None


class TestCLIEntryPoint:
    """Test the CLI entry point."""

    def test_cli_help_exits_zero(self):
        env = dict(os.environ)
        env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(ROOT / "src"), env.get("PYTHONPATH")]))
        result = subprocess.run(
            [sys.executable, "-m", "narrapace.cli", "--help"],
            capture_output=True,
            text=True,
            env=env,
        )
        assert result.returncode == 0
        assert "narrapace CLI" in result.stdout


class TestPyprojectToml:
    """Test pyproject.toml configuration."""

    def test_pyproject_has_dependencies(self):
        tomllib = pytest.importorskip("tomllib")
        data = tomllib.loads((ROOT / "pyproject.toml").read_text(encoding="utf-8"))

        assert data["project"]["name"] == "narrapace"
        dep_names = [d.split(">=")[0].split("[")[0] for d in data["project"]["dependencies"]]
        for name in ("fastapi", "uvicorn", "pydantic", "pyyaml", "prometheus_client"):
            assert name in dep_names
