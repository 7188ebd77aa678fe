"""Library for loading the old and new manifest trees from a git repository.

The new tree is the repository HEAD and the old tree is a previous commit,
either given explicitly or found as the common ancestor of HEAD and the
default branch. Each commit is checked out in its own detached worktree so
uncommitted local changes never leak into either side.

Example usage:

```python
from kahoy.storage import git_repo

old, new = await git_repo.load_repositories(
    git_repo.GitRepositoriesConfig(
        old_rel_path="manifests",
        new_rel_path="manifests",
        default_branch="main",
    )
)
```
"""

import contextlib
from dataclasses import dataclass, field
import logging
import os
from pathlib import Path
import tempfile
from typing import Generator

import git
from aiofiles.ospath import isdir

from kahoy.config import AppConfig
from kahoy.exceptions import CommandException, NotValidException
from kahoy.model import ResourceAndGroupFactory

from .fs import FileSystem, FsLoader, LocalFileSystem
from .memory import InMemoryRepository

__all__ = [
    "GitRepositoriesConfig",
    "WorktreeFileSystem",
    "load_repositories",
    "create_worktree",
    "diff_include_regexes",
]

_LOGGER = logging.getLogger(__name__)

DEFAULT_BRANCH = "master"


@dataclass
class GitRepositoriesConfig:
    """Settings for loading manifests from two commits of a repository."""

    old_rel_path: str
    """Manifests path of the old tree, relative to the repository root."""

    new_rel_path: str
    """Manifests path of the new tree, relative to the repository root."""

    before_commit_sha: str | None = None
    """Commit of the old tree, computed with merge-base when unset."""

    default_branch: str = DEFAULT_BRANCH
    """Branch used to find the common ancestor with HEAD."""

    diff_include_filter: bool = False
    """Only load the files changed between the two commits."""

    exclude: list[str] = field(default_factory=list)
    include: list[str] = field(default_factory=list)

    app_config: AppConfig = field(default_factory=AppConfig)

    repo_path: Path | None = None
    """Any path inside the repository, the current directory when unset."""


class WorktreeFileSystem(FileSystem):
    """File system over a worktree, with paths relative to the repository root.

    Absolute paths are rooted at the repository root (`/manifests/app.yaml`)
    so regexes don't depend on where the worktree was created.
    """

    def __init__(self, worktree: Path) -> None:
        """Initialize WorktreeFileSystem."""
        self._worktree = worktree
        self._local = LocalFileSystem()

    async def walk(self, root: Path) -> list[Path]:
        files = await self._local.walk(self._worktree / root)
        return [path.relative_to(self._worktree) for path in files]

    async def read_file(self, path: Path) -> bytes:
        return await self._local.read_file(self._worktree / path)

    def abs(self, path: Path) -> Path:
        return Path("/") / path


def _open_repo(path: Path | None) -> git.repo.Repo:
    try:
        return git.repo.Repo(
            str(path) if path else os.getcwd(), search_parent_directories=True
        )
    except git.GitError as err:
        raise NotValidException(f"Unable to find git repository from {path}: {err}") from err


@contextlib.contextmanager
def create_worktree(repo: git.repo.Repo, commit: str) -> Generator[Path, None, None]:
    """Create a ContextManager for a detached worktree at the commit."""
    try:
        with tempfile.TemporaryDirectory(prefix="kahoy-git-") as tmp_dir:
            _LOGGER.debug("Creating worktree for %s in %s", commit, tmp_dir)
            try:
                repo.git.worktree("add", "--detach", str(tmp_dir), commit)
            except git.GitCommandError as err:
                raise CommandException(
                    f"could not create worktree at {commit}: {err}"
                ) from err
            yield Path(tmp_dir)
    finally:
        # The temp directory is now removed and this prunes the worktree
        repo.git.worktree("prune")


def _before_commit(repo: git.repo.Repo, default_branch: str) -> str:
    """Return the common ancestor of HEAD and the default branch."""
    if not repo.head.is_detached and repo.active_branch.name == default_branch:
        raise NotValidException(
            f"can't get common parent from same branch ({default_branch!r}), use before commit"
        )
    try:
        bases = repo.merge_base(repo.head.commit, default_branch)
    except git.GitCommandError as err:
        raise NotValidException(
            f"could not translate branch ref {default_branch!r} to commit hash: {err}"
        ) from err
    if not bases:
        raise NotValidException("could not get common parent")
    return str(bases[0].hexsha)


def _resolve(repo: git.repo.Repo, rev: str) -> str:
    try:
        return str(repo.commit(rev).hexsha)
    except (git.exc.BadName, ValueError) as err:
        raise NotValidException(f"could not resolve git revision {rev!r}: {err}") from err


def diff_include_regexes(repo: git.repo.Repo, old: str, new: str) -> list[str]:
    """Return include regexes matching every file changed between the commits."""
    paths: set[str] = set()
    for diff in repo.commit(old).diff(repo.commit(new)):
        for path in (diff.a_path, diff.b_path):
            if path:
                paths.add(path)
    return [".*\\/" + path.replace("/", "\\/") + "$" for path in sorted(paths)]


async def load_repositories(
    config: GitRepositoriesConfig,
    factory: ResourceAndGroupFactory | None = None,
) -> tuple[InMemoryRepository, InMemoryRepository]:
    """Load the old and new manifest trees from the repository."""
    for name, rel_path in (("old", config.old_rel_path), ("new", config.new_rel_path)):
        if os.path.isabs(rel_path):
            raise NotValidException(
                f"{name} path {rel_path!r} is absolute, must be relative to the git repository"
            )

    repo = _open_repo(config.repo_path)
    new_sha = _resolve(repo, "HEAD")
    if config.before_commit_sha:
        old_sha = _resolve(repo, config.before_commit_sha)
    else:
        _LOGGER.debug(
            "Searching git before commit using common parent of HEAD and %s",
            config.default_branch,
        )
        old_sha = _before_commit(repo, config.default_branch)

    if old_sha == new_sha:
        raise NotValidException(
            f"old and new repo HEAD ref can't be the same ({old_sha}) use 'before commit'"
        )

    include = list(config.include)
    if config.diff_include_filter:
        _LOGGER.info("Using git diff include filter")
        include.extend(diff_include_regexes(repo, old_sha, new_sha))

    with contextlib.ExitStack() as stack:
        old_worktree = stack.enter_context(create_worktree(repo, old_sha))
        new_worktree = stack.enter_context(create_worktree(repo, new_sha))
        for name, worktree, rel_path, sha in (
            ("old", old_worktree, config.old_rel_path, old_sha),
            ("new", new_worktree, config.new_rel_path, new_sha),
        ):
            if not await isdir(worktree / rel_path):
                raise NotValidException(
                    f"{name} git repo path {rel_path!r} does not exist at {sha}"
                )

        _LOGGER.debug("Old repository worktree in %s commit", old_sha)
        _LOGGER.debug("New repository worktree in %s commit", new_sha)
        old = await FsLoader(
            file_system=WorktreeFileSystem(old_worktree),
            exclude=config.exclude,
            include=include,
            app_config=config.app_config,
            factory=factory,
        ).load(config.old_rel_path)
        new = await FsLoader(
            file_system=WorktreeFileSystem(new_worktree),
            exclude=config.exclude,
            include=include,
            app_config=config.app_config,
            factory=factory,
        ).load(config.new_rel_path)
    return old, new
