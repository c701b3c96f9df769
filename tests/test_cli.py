"""Tests for the chainlock CLI."""

import asyncio

import pytest
from click.testing import CliRunner

from chainlock.cli import main
from chainlock.storage import ComponentStore


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "chainlock"


@pytest.fixture
def stored(data_dir, component):
    async def _save():
        async with ComponentStore(data_dir / "data" / "components.db") as store:
            await store.save_component(component)

    asyncio.run(_save())
    return component


def run(data_dir, *args):
    return CliRunner().invoke(main, ["--data-dir", str(data_dir), *args])


def test_version() -> None:
    runner = CliRunner()
    result = runner.invoke(main, ["--version"])
    assert result.exit_code == 0
    assert "0.1.0" in result.output


def test_init(data_dir) -> None:
    result = run(data_dir, "init")
    assert result.exit_code == 0
    assert "initialized" in result.output.lower()
    assert (data_dir / "data" / "components.db").exists()


def test_list_empty(data_dir) -> None:
    result = run(data_dir, "list")
    assert result.exit_code == 0
    assert "No locked components" in result.output


def test_list(data_dir, stored) -> None:
    result = run(data_dir, "list")
    assert result.exit_code == 0
    assert "Locked Components" in result.output


def test_show(data_dir, stored) -> None:
    result = run(data_dir, "show", stored.component_id)
    assert result.exit_code == 0
    assert stored.context_hash[:16] in result.output
    assert "Immutable context" in result.output


def test_show_missing(data_dir) -> None:
    result = run(data_dir, "show", "locked_missing")
    assert result.exit_code == 1
    assert "not found" in result.output


def test_check_allow(data_dir, stored) -> None:
    result = run(
        data_dir,
        "check",
        stored.component_id,
        "Build a responsive navbar component",
        "--domain",
        "frontend",
        "--complexity",
        "3",
    )
    assert result.exit_code == 0
    assert "ALLOW" in result.output


def test_check_reject(data_dir, stored) -> None:
    result = run(
        data_dir, "check", stored.component_id, "Design a schema", "--domain", "backend"
    )
    assert result.exit_code == 0
    assert "REJECT" in result.output
    assert "backend-expert" in result.output


def test_check_complexity_range(data_dir, stored) -> None:
    result = run(data_dir, "check", stored.component_id, "x", "--complexity", "11")
    assert result.exit_code != 0
