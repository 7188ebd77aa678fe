"""Runs a complete apply: load, plan, process, manage and store the state.

The old and new resources are loaded by a provider:

- `paths`: two manifest trees on the file system.
- `git`: the same tree at two commits of a git repository.
- `kubernetes`: the resources stored in the cluster by the previous run, and
  a manifest tree (or stdin) as the new resources.

The planned resources are filtered by the processors, and handed to a chain
of resource managers that applies, diffs or prints them.

Example usage:

```python
from kahoy.apply import ApplyConfig, Applier

config = ApplyConfig(provider="paths", old_path="old/", new_path="new/", dry_run=True)
await Applier(config).run()
```
"""

import asyncio
import contextlib
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
import logging
import sys
from typing import IO, TextIO

from .config import AppConfig
from .context import trace_context
from .exceptions import FileSystemException, NotValidException
from .kubectl import KubectlOptions
from .manage import (
    DiffManager,
    DryRunManager,
    HookManager,
    KubectlManager,
    NamespaceEnsureManager,
    PriorityManager,
    ResourceManager,
    TimeoutManager,
    WaitManager,
)
from .manage.timeout import DEFAULT_TIMEOUT
from .model import Resource, ResourceAndGroupFactory, new_state
from .plan import Planner, split_plan
from .process import (
    AnnotationSelectorProcessor,
    ExcludeKubeTypeProcessor,
    IncludeNamespaceProcessor,
    LabelSelectorProcessor,
    ProcessorChain,
)
from .storage import (
    GroupRepository,
    InMemoryRepository,
    ResourceRepository,
    StateRepository,
)
from .storage import fs, git_repo
from .storage.json_state import JSONStateRepository
from .storage.kubernetes import K8sClient, KubectlClient, KubernetesRepository
from .storage.stream import DEFAULT_READ_TIMEOUT, StreamLoader

__all__ = [
    "ApplyConfig",
    "Applier",
    "PROVIDER_PATHS",
    "PROVIDER_GIT",
    "PROVIDER_KUBERNETES",
    "PROVIDERS",
]

_LOGGER = logging.getLogger(__name__)

PROVIDER_PATHS = "paths"
PROVIDER_GIT = "git"
PROVIDER_KUBERNETES = "kubernetes"
PROVIDERS = [PROVIDER_PATHS, PROVIDER_GIT, PROVIDER_KUBERNETES]

STDIN_PATH = "-"
STDOUT_PATH = "-"
CONFIRM_PROMPT = "Do you want to proceed? (y/N): "


@dataclass
class ApplyConfig:
    """Options of a single apply run.

    Attributes:
        provider: How the old and new resources are loaded.
        new_path: Manifests of the new (desired) state, `-` reads stdin.
        old_path: Manifests of the old state, the new path by default on git.
        report_path: Where the JSON state is written, `-` is stdout.
    """

    new_path: str
    provider: str = PROVIDER_KUBERNETES
    old_path: str | None = None

    exclude: list[str] = field(default_factory=list)
    include: list[str] = field(default_factory=list)

    git_before_commit_sha: str | None = None
    git_default_branch: str = git_repo.DEFAULT_BRANCH

    exclude_kube_types: list[str] = field(default_factory=list)
    label_selector: str | None = None
    annotation_selector: str | None = None
    include_namespaces: list[str] = field(default_factory=list)

    include_changes: bool = False
    dry_run: bool = False
    diff: bool = False
    auto_approve: bool = False
    create_namespace: bool = False
    disable_priorities: bool = False

    report_path: str | None = None

    kube_provider_id: str | None = None
    kube_provider_namespace: str = "default"

    timeout: timedelta = DEFAULT_TIMEOUT
    stream_timeout: float = DEFAULT_READ_TIMEOUT

    kubectl: KubectlOptions = field(default_factory=KubectlOptions)

    @property
    def real_run(self) -> bool:
        """Return true when the run changes the cluster."""
        return not self.dry_run and not self.diff

    def validate(self) -> None:
        """Raise `NotValidException` on invalid option combinations."""
        if self.provider not in PROVIDERS:
            raise NotValidException(f"unknown provider {self.provider!r}")
        if not self.new_path:
            raise NotValidException("new manifests path is required")
        if self.dry_run and self.diff:
            raise NotValidException("diff and dry-run are exclusive")
        if self.provider == PROVIDER_PATHS and not self.old_path:
            raise NotValidException("old manifests path is required by the paths provider")
        if self.provider == PROVIDER_GIT:
            if self.new_path == STDIN_PATH:
                raise NotValidException("git provider can't read manifests from stdin")
            if not self.git_default_branch and not self.git_before_commit_sha:
                raise NotValidException(
                    "git provider needs a default branch or a before commit"
                )
        if self.provider == PROVIDER_PATHS and STDIN_PATH in (self.old_path, self.new_path):
            raise NotValidException("paths provider can't read manifests from stdin")
        if self.provider == PROVIDER_KUBERNETES and not self.kube_provider_id:
            raise NotValidException("kubernetes provider needs a provider id")
        if self.new_path == STDIN_PATH and self.real_run and not self.auto_approve:
            raise NotValidException(
                "reading manifests from stdin requires auto approve"
            )


class Applier:
    """Runs an apply with the given options."""

    def __init__(
        self,
        config: ApplyConfig,
        app_config: AppConfig | None = None,
        stdin: IO[str] | None = None,
        stdout: TextIO | None = None,
        k8s_client: K8sClient | None = None,
        factory: ResourceAndGroupFactory | None = None,
    ) -> None:
        """Initialize Applier."""
        self._config = config
        self._app_config = app_config or AppConfig()
        self._stdin = stdin if stdin is not None else sys.stdin
        self._stdout = stdout if stdout is not None else sys.stdout
        self._k8s_client = k8s_client or KubectlClient(config.kubectl)
        self._factory = factory or ResourceAndGroupFactory()

    @property
    def _exclude(self) -> list[str]:
        return [*self._config.exclude, *self._app_config.fs.exclude]

    @property
    def _include(self) -> list[str]:
        return [*self._config.include, *self._app_config.fs.include]

    def _kube_repo(self) -> KubernetesRepository:
        return KubernetesRepository(
            self._config.kube_provider_id or "",
            self._k8s_client,
            namespace=self._config.kube_provider_namespace,
            factory=self._factory,
        )

    async def _load_new(self) -> InMemoryRepository:
        if self._config.new_path == STDIN_PATH:
            stdin = getattr(self._stdin, "buffer", self._stdin)
            return await StreamLoader(
                stdin,
                timeout=self._config.stream_timeout,
                app_config=self._app_config,
                factory=self._factory,
            ).load()
        return await self._fs_loader().load(self._config.new_path)

    def _fs_loader(self) -> fs.FsLoader:
        return fs.FsLoader(
            exclude=self._exclude,
            include=self._include,
            app_config=self._app_config,
            factory=self._factory,
        )

    async def load(
        self,
    ) -> tuple[ResourceRepository, ResourceRepository, GroupRepository]:
        """Load the old resources, new resources and new groups."""
        config = self._config
        if config.provider == PROVIDER_PATHS:
            old, new = await fs.load_repositories(
                config.old_path or "", config.new_path, self._fs_loader()
            )
            return old, new, new
        if config.provider == PROVIDER_GIT:
            old, new = await git_repo.load_repositories(
                git_repo.GitRepositoriesConfig(
                    old_rel_path=config.old_path or config.new_path,
                    new_rel_path=config.new_path,
                    before_commit_sha=config.git_before_commit_sha,
                    default_branch=config.git_default_branch,
                    diff_include_filter=config.include_changes,
                    exclude=self._exclude,
                    include=self._include,
                    app_config=self._app_config,
                ),
                factory=self._factory,
            )
            return old, new, new
        new = await self._load_new()
        return self._kube_repo(), new, new

    def processor(self) -> ProcessorChain:
        """Return the processor chain applied to the planned resources."""
        return ProcessorChain(
            [
                ExcludeKubeTypeProcessor(self._config.exclude_kube_types),
                LabelSelectorProcessor(self._config.label_selector),
                AnnotationSelectorProcessor(self._config.annotation_selector),
                IncludeNamespaceProcessor(self._config.include_namespaces),
            ]
        )

    def manager(self, group_repo: GroupRepository) -> ResourceManager:
        """Return the chain of managers for the run mode."""
        config = self._config
        manager: ResourceManager
        if config.dry_run:
            manager = DryRunManager(self._stdout)
        elif config.diff:
            manager = DiffManager(self._stdout, config.kubectl)
        else:
            manager = WaitManager(KubectlManager(config.kubectl), group_repo)

        manager = PriorityManager(
            manager, group_repo, disable_priorities=config.disable_priorities
        )
        if config.create_namespace and not config.dry_run:
            manager = NamespaceEnsureManager(manager, config.kubectl)
        if config.real_run:
            manager = HookManager(manager, group_repo, config.kubectl)
        return TimeoutManager(manager, config.timeout)

    def state_repositories(self, stack: contextlib.ExitStack) -> list[StateRepository]:
        """Return the repositories storing the state of a real run."""
        config = self._config
        if not config.real_run:
            return []
        repos: list[StateRepository] = []
        if config.report_path == STDOUT_PATH:
            repos.append(JSONStateRepository(self._stdout))
        elif config.report_path:
            try:
                out = stack.enter_context(open(config.report_path, "w", encoding="utf-8"))
            except OSError as err:
                raise FileSystemException(
                    f"could not open file {config.report_path!r} for the report: {err}"
                ) from err
            _LOGGER.info("Report will be written to %s", config.report_path)
            repos.append(JSONStateRepository(out))
        if config.provider == PROVIDER_KUBERNETES:
            repos.append(self._kube_repo())
        return repos

    async def confirm(self) -> bool:
        """Ask the user to confirm the changes."""
        self._stdout.write(CONFIRM_PROMPT)
        self._stdout.flush()
        answer = await asyncio.to_thread(self._stdin.readline)
        return answer.strip().lower() in ("y", "yes")

    def _process(self, name: str, resources: list[Resource]) -> list[Resource]:
        before = len(resources)
        resources = self.processor().process(resources)
        _LOGGER.info(
            "%s resources before filter %d, after %d", name, before, len(resources)
        )
        return resources

    async def run(self) -> bool:
        """Run the apply, returning false when nothing was done."""
        config = self._config
        config.validate()
        state = new_state()
        _LOGGER.info(
            "Running apply %s (provider %s, %s)",
            state.id,
            config.provider,
            "dry-run" if config.dry_run else "diff" if config.diff else "apply",
        )

        with trace_context("load"):
            old_repo, new_repo, group_repo = await self.load()
            old = await old_repo.list_resources()
            new = await new_repo.list_resources()

        with trace_context("plan"):
            apply_res, delete_res = split_plan(
                Planner(include_changes_only=config.include_changes).plan(old, new)
            )
            apply_res = self._process("apply", apply_res)
            delete_res = self._process("delete", delete_res)

        if not apply_res and not delete_res:
            _LOGGER.info("No resources to apply/delete, exiting")
            return False

        manager = self.manager(group_repo)
        with contextlib.ExitStack() as stack:
            state_repos = self.state_repositories(stack)
            if config.real_run and not config.auto_approve:
                if not await self.confirm():
                    _LOGGER.info("Apply cancelled")
                    return False

            with trace_context("apply"):
                await manager.apply(apply_res)
            with trace_context("delete"):
                await manager.delete(delete_res)

            state.ended_at = datetime.now(timezone.utc)
            state.applied_resources = apply_res
            state.deleted_resources = delete_res
            with trace_context("store"):
                for repo in state_repos:
                    await repo.store_state(state)
        return True
