"""Tests for the apply orchestrator."""

import io
import json
from pathlib import Path
from typing import Any
from unittest.mock import patch

import git
import pytest

from kahoy.apply import Applier, ApplyConfig
from kahoy.codec import decode_objects
from kahoy.command import Command
from kahoy.config import AppConfig, GroupConfig
from kahoy.exceptions import MissingException, NotValidException
from kahoy.storage.kubernetes import K8sClient, KubernetesRepository

CM = """\
apiVersion: v1
kind: ConfigMap
metadata:
  name: {name}
  namespace: {namespace}
data:
  value: "{value}"
"""


def _write(root: Path, path: str, name: str, value: str = "1", namespace: str = "test") -> None:
    file = root / path
    file.parent.mkdir(parents=True, exist_ok=True)
    file.write_text(CM.format(name=name, value=value, namespace=namespace))


@pytest.fixture(name="manifests")
def manifests_fixture(tmp_path: Path) -> Path:
    """Old and new manifest trees."""
    _write(tmp_path, "old/app/a.yaml", "a")
    _write(tmp_path, "old/app/b.yaml", "b")
    _write(tmp_path, "old/crds/c.yaml", "c")
    _write(tmp_path, "new/app/b.yaml", "b", value="2")
    _write(tmp_path, "new/crds/c.yaml", "c")
    _write(tmp_path, "new/crds/d.yaml", "d", namespace="other")
    return tmp_path


class FakeClient(K8sClient):
    """Client holding the secrets in memory."""

    def __init__(self) -> None:
        self.secrets: dict[tuple[str, str], dict[str, Any]] = {}

    async def ensure_secret(self, secret: dict[str, Any]) -> None:
        metadata = secret["metadata"]
        self.secrets[(metadata["namespace"], metadata["name"])] = secret

    async def ensure_missing_secret(self, namespace: str, name: str) -> None:
        self.secrets.pop((namespace, name), None)

    async def list_secrets(
        self, namespace: str, labels: dict[str, str]
    ) -> list[dict[str, Any]]:
        return [
            secret
            for (ns, _), secret in self.secrets.items()
            if ns == namespace
            and labels.items() <= secret["metadata"].get("labels", {}).items()
        ]

    async def get_secret(self, namespace: str, name: str) -> dict[str, Any]:
        if (secret := self.secrets.get((namespace, name))) is None:
            raise MissingException(f"secret {namespace}/{name} is missing")
        return secret


class FakeStream:
    """Records the kubectl commands and the names of the resources sent."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, list[str]]] = []

    async def __call__(
        self, cmd: Command, on_line: Any, stdin: bytes | None = None, combined: bool = False
    ) -> str:
        self.calls.append((cmd.cmd[1], [obj.name for obj in decode_objects(stdin or b"")]))
        return ""


def _paths_config(root: Path, **kwargs: Any) -> ApplyConfig:
    return ApplyConfig(
        provider="paths",
        old_path=str(root / "old"),
        new_path=str(root / "new"),
        **kwargs,
    )


async def test_dry_run(manifests: Path) -> None:
    """Test the dry run prints the planned resources."""
    out = io.StringIO()
    done = await Applier(_paths_config(manifests, dry_run=True), stdout=out).run()
    assert done
    text = out.getvalue()
    assert "⯈ Apply (3 resources)" in text
    assert "⯈ Delete (1 resources)" in text
    assert "core/v1/ConfigMap/test/a" in text


async def test_apply_with_priorities(manifests: Path) -> None:
    """Test resources are applied by group priority, then deleted."""
    app_config = AppConfig(groups=[GroupConfig(id="crds", priority=10)])
    fake = FakeStream()
    report = io.StringIO()
    with patch("kahoy.manage.kubectl.stream", new=fake):
        done = await Applier(
            _paths_config(manifests, auto_approve=True, report_path="-"),
            app_config=app_config,
            stdout=report,
        ).run()
    assert done
    assert fake.calls == [
        ("apply", ["c", "d"]),
        ("apply", ["b"]),
        ("delete", ["a"]),
    ]
    state = json.loads(report.getvalue())
    assert [r["name"] for r in state["applied_resources"]] == ["b", "c", "d"]
    assert [r["name"] for r in state["deleted_resources"]] == ["a"]


async def test_include_changes_and_filters(manifests: Path) -> None:
    """Test only changed resources matching the filters are applied."""
    fake = FakeStream()
    with patch("kahoy.manage.kubectl.stream", new=fake):
        await Applier(
            _paths_config(
                manifests,
                auto_approve=True,
                include_changes=True,
                include_namespaces=["^test$"],
            ),
            stdout=io.StringIO(),
        ).run()
    assert fake.calls == [("apply", ["b"]), ("delete", ["a"])]


async def test_nothing_to_do(manifests: Path) -> None:
    """Test the run stops early without resources."""
    out = io.StringIO()
    config = _paths_config(manifests, dry_run=True, exclude_kube_types=["ConfigMap"])
    assert not await Applier(config, stdout=out).run()
    assert out.getvalue() == ""


async def test_confirmation_declined(manifests: Path) -> None:
    """Test nothing is applied when the user doesn't confirm."""
    fake = FakeStream()
    out = io.StringIO()
    with patch("kahoy.manage.kubectl.stream", new=fake):
        done = await Applier(
            _paths_config(manifests), stdin=io.StringIO("n\n"), stdout=out
        ).run()
    assert not done
    assert fake.calls == []
    assert out.getvalue() == "Do you want to proceed? (y/N): "


async def test_confirmation_accepted(manifests: Path) -> None:
    """Test the changes are applied when the user confirms."""
    fake = FakeStream()
    with patch("kahoy.manage.kubectl.stream", new=fake):
        done = await Applier(
            _paths_config(manifests), stdin=io.StringIO("yes\n"), stdout=io.StringIO()
        ).run()
    assert done
    assert [action for action, _ in fake.calls] == ["apply", "delete"]


async def test_report_file(manifests: Path) -> None:
    """Test the report is written to a file."""
    report = manifests / "report.json"
    with patch("kahoy.manage.kubectl.stream", new=FakeStream()):
        await Applier(
            _paths_config(manifests, auto_approve=True, report_path=str(report)),
            stdout=io.StringIO(),
        ).run()
    state = json.loads(report.read_text())
    assert state["version"] == "v1"
    assert state["ended_at"] != "0001-01-01T00:00:00Z"


async def test_kubernetes_provider(manifests: Path) -> None:
    """Test the state stored in the cluster is the old state of the next run."""
    client = FakeClient()
    config = ApplyConfig(
        provider="kubernetes",
        new_path=str(manifests / "old"),
        kube_provider_id="test",
        auto_approve=True,
    )
    fake = FakeStream()
    with patch("kahoy.manage.kubectl.stream", new=fake):
        await Applier(config, stdout=io.StringIO(), k8s_client=client).run()
    assert fake.calls == [("apply", ["a", "b", "c"])]

    stored = await KubernetesRepository("test", client).list_resources()
    assert sorted(r.name for r in stored) == ["a", "b", "c"]

    fake = FakeStream()
    config.new_path = str(manifests / "new")
    with patch("kahoy.manage.kubectl.stream", new=fake):
        await Applier(config, stdout=io.StringIO(), k8s_client=client).run()
    assert fake.calls == [("apply", ["b", "c", "d"]), ("delete", ["a"])]

    stored = await KubernetesRepository("test", client).list_resources()
    assert sorted(r.name for r in stored) == ["b", "c", "d"]


async def test_stdin_manifests(manifests: Path) -> None:
    """Test the new manifests read from stdin."""
    client = FakeClient()
    stdin = io.TextIOWrapper(
        io.BytesIO(CM.format(name="s", value="1", namespace="test").encode())
    )
    config = ApplyConfig(
        provider="kubernetes",
        new_path="-",
        kube_provider_id="test",
        dry_run=True,
    )
    out = io.StringIO()
    await Applier(config, stdin=stdin, stdout=out, k8s_client=client).run()
    assert "core/v1/ConfigMap/test/s (stdin)" in out.getvalue()


async def test_git_provider(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test the changes of the current branch against the default branch."""
    repo = git.repo.Repo.init(tmp_path)
    repo.git.symbolic_ref("HEAD", "refs/heads/master")
    with repo.config_writer() as config:
        config.set_value("user", "name", "Kahoy Test")
        config.set_value("user", "email", "test@kahoy.dev")
    _write(tmp_path, "manifests/app/a.yaml", "a")
    _write(tmp_path, "manifests/app/b.yaml", "b")
    repo.git.add("--all")
    repo.git.commit("-m", "Initial manifests")
    repo.git.checkout("-b", "feature")
    (tmp_path / "manifests/app/a.yaml").unlink()
    _write(tmp_path, "manifests/app/c.yaml", "c")
    repo.git.add("--all")
    repo.git.commit("-m", "Update manifests")
    monkeypatch.chdir(tmp_path)

    out = io.StringIO()
    config = ApplyConfig(
        provider="git", new_path="manifests", dry_run=True, include_changes=True
    )
    assert await Applier(config, stdout=out).run()
    text = out.getvalue()
    assert "⯈ Apply (1 resources)" in text
    assert "core/v1/ConfigMap/test/c" in text
    assert "⯈ Delete (1 resources)" in text
    assert "core/v1/ConfigMap/test/a" in text
    assert "ConfigMap/test/b" not in text


@pytest.mark.parametrize(
    ("config", "match"),
    [
        (ApplyConfig(new_path="n", provider="other"), "unknown provider"),
        (ApplyConfig(new_path="n", provider="paths"), "old manifests path is required"),
        (
            ApplyConfig(new_path="n", old_path="o", provider="paths", dry_run=True, diff=True),
            "exclusive",
        ),
        (ApplyConfig(new_path="n"), "needs a provider id"),
        (
            ApplyConfig(new_path="n", provider="git", git_default_branch=""),
            "default branch or a before commit",
        ),
        (
            ApplyConfig(new_path="-", kube_provider_id="id"),
            "requires auto approve",
        ),
    ],
)
async def test_invalid_config(config: ApplyConfig, match: str) -> None:
    """Test invalid option combinations."""
    with pytest.raises(NotValidException, match=match):
        await Applier(config, stdout=io.StringIO()).run()
