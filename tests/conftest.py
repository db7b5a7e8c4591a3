"""Shared pytest fixtures for code-sandbox tests."""

import shutil
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest

from code_sandbox.config import SandboxConfig
from code_sandbox.environment import Environment
from code_sandbox.metrics import ExecutionMetrics
from code_sandbox.platform_utils import has_process_groups

# ============================================================================
# Toolchain Skip Markers
# ============================================================================
# Every language runs a real toolchain from PATH. Tests for a language skip
# when its toolchain is not installed rather than failing the suite.

requires_python3 = pytest.mark.skipif(shutil.which("python3") is None, reason="python3 not installed")
requires_node = pytest.mark.skipif(shutil.which("node") is None, reason="node not installed")
requires_go = pytest.mark.skipif(shutil.which("go") is None, reason="go not installed")
requires_gcc = pytest.mark.skipif(shutil.which("gcc") is None, reason="gcc not installed")
requires_gxx = pytest.mark.skipif(shutil.which("g++") is None, reason="g++ not installed")
requires_bash = pytest.mark.skipif(shutil.which("bash") is None, reason="bash not installed")

# Process-group kill semantics (killpg) are POSIX-only
skip_unless_posix = pytest.mark.skipif(not has_process_groups(), reason="Requires POSIX process groups")


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    """Empty shared work directory, unique per test."""
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def sandbox_config(work_dir: Path) -> SandboxConfig:
    """SandboxConfig with test-friendly limits.

    Base timeout 10s (compiled languages get 20s) leaves room for a cold
    `go build` cache while keeping hung tests short.
    """
    return SandboxConfig(
        work_dir=work_dir,
        default_timeout_seconds=10,
        max_concurrent_executions=4,
        admission_timeout_seconds=30,
    )


@pytest.fixture
async def environment(sandbox_config: SandboxConfig) -> AsyncGenerator[Environment, None]:
    """Started Environment with its own metrics instance.

    Usage:
        async def test_something(environment: Environment) -> None:
            result = await environment.run_code("print(1)", "python")
    """
    async with Environment(sandbox_config, metrics=ExecutionMetrics()) as env:
        yield env
