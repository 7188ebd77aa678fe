"""Tests for the kahoy command line tool."""

from pathlib import Path

import pytest

import kahoy
from kahoy.exceptions import CommandException
from kahoy.tool.kahoy import main

from . import run_command

MANIFEST = """\
apiVersion: v1
kind: ConfigMap
metadata:
  name: {name}
  namespace: test
"""


@pytest.fixture(name="manifests")
def manifests_fixture(tmp_path: Path) -> Path:
    """Old and new manifest trees."""
    for path, name in (
        ("old/app/a.yaml", "a"),
        ("new/app/b.yaml", "b"),
    ):
        (tmp_path / path).parent.mkdir(parents=True, exist_ok=True)
        (tmp_path / path).write_text(MANIFEST.format(name=name))
    return tmp_path


async def test_version() -> None:
    """Test the version command."""
    result = await run_command(["version"])
    assert result.strip() == kahoy.__version__


async def test_apply_dry_run(manifests: Path) -> None:
    """Test a dry run between two manifest trees."""
    result = await run_command(
        [
            "apply",
            "--dry-run",
            "--provider",
            "paths",
            "-o",
            str(manifests / "old"),
            "-n",
            str(manifests / "new"),
        ]
    )
    assert "⯈ Apply (1 resources)" in result
    assert "core/v1/ConfigMap/test/b" in result
    assert "⯈ Delete (1 resources)" in result
    assert "core/v1/ConfigMap/test/a" in result


async def test_apply_invalid_options() -> None:
    """Test the tool exits with an error on invalid options."""
    with pytest.raises(CommandException, match="return code 1") as exc_info:
        await run_command(["apply", "--provider", "paths", "-n", "new"])
    assert "kahoy error:" in exc_info.value.stderr
    assert "old manifests path is required" in exc_info.value.stderr


def test_main_dry_run(manifests: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """Test the entry point writes the dry run to stdout."""
    main(
        [
            "apply",
            "--dry-run",
            "--provider",
            "paths",
            "-o",
            str(manifests / "old"),
            "-n",
            str(manifests / "new"),
            "--kube-exclude-type",
            "v1/Secret",
        ]
    )
    assert "core/v1/ConfigMap/test/b (" in capsys.readouterr().out


def test_main_error(capsys: pytest.CaptureFixture[str]) -> None:
    """Test the entry point exits with an error message."""
    with pytest.raises(SystemExit) as exc_info:
        main(["apply", "--dry-run", "--diff", "--kube-provider-id", "x", "-n", "new"])
    assert exc_info.value.code == 1
    assert "kahoy error:  diff and dry-run are exclusive" in capsys.readouterr().err


def test_invalid_duration(capsys: pytest.CaptureFixture[str]) -> None:
    """Test a timeout that is not a duration."""
    with pytest.raises(SystemExit) as exc_info:
        main(["apply", "-n", "new", "--timeout", "soon"])
    assert exc_info.value.code == 2
    assert "--timeout" in capsys.readouterr().err
