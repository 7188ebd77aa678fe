"""Library for loading resources and groups from a manifests directory tree.

Every directory holding manifests becomes a group, identified by its path
relative to the root of the tree. Manifests directly on the root belong to the
root group.

Example usage:

```python
from kahoy.storage.fs import FsLoader

loader = FsLoader(exclude=[".*/secrets/.*"])
repo = await loader.load("manifests/")
for resource in await repo.list_resources():
    print(f"{resource.group_id}: {resource.id}")
```
"""

from abc import ABC, abstractmethod
import asyncio
from collections.abc import Iterable
import logging
import os
from pathlib import Path

import aiofiles
from aiofiles.ospath import isdir

from kahoy.codec import decode_objects
from kahoy.config import AppConfig
from kahoy.exceptions import FileSystemException, NotValidException
from kahoy.model import ROOT_GROUP_ID, Group, Resource, ResourceAndGroupFactory
from kahoy.selector import PathFilter

from .memory import InMemoryRepository

__all__ = [
    "FileSystem",
    "LocalFileSystem",
    "FsLoader",
    "load_repositories",
]

_LOGGER = logging.getLogger(__name__)

MANIFEST_EXTENSIONS = (".yml", ".yaml")


class FileSystem(ABC):
    """The narrow view of a file system used to load manifests."""

    @abstractmethod
    async def walk(self, root: Path) -> list[Path]:
        """Return every file below root, in a stable order."""

    @abstractmethod
    async def read_file(self, path: Path) -> bytes:
        """Return the contents of a file."""

    @abstractmethod
    def abs(self, path: Path) -> Path:
        """Return the absolute form of the path, used to match regexes."""


class LocalFileSystem(FileSystem):
    """The operating system file system."""

    async def walk(self, root: Path) -> list[Path]:
        if not await isdir(root):
            raise FileSystemException(f"could not load fs manifests: {root} is not a directory")
        return await asyncio.to_thread(_walk, root)

    async def read_file(self, path: Path) -> bytes:
        try:
            async with aiofiles.open(str(path), mode="rb") as manifest_file:
                return await manifest_file.read()
        except OSError as err:
            raise FileSystemException(f"could not read {path}: {err}") from err

    def abs(self, path: Path) -> Path:
        return Path(os.path.abspath(path))


def _walk(root: Path) -> list[Path]:
    def _onerror(err: OSError) -> None:
        raise FileSystemException(f"could not access a path: {err}") from err

    files = []
    for dirpath, dirnames, filenames in os.walk(root, onerror=_onerror):
        dirnames.sort()
        files.extend(Path(dirpath) / filename for filename in sorted(filenames))
    return files


class FsLoader:
    """Loads a manifests tree into an in memory repository."""

    def __init__(
        self,
        file_system: FileSystem | None = None,
        exclude: Iterable[str] = (),
        include: Iterable[str] = (),
        app_config: AppConfig | None = None,
        factory: ResourceAndGroupFactory | None = None,
        root_group_id: str = ROOT_GROUP_ID,
    ) -> None:
        """Initialize FsLoader."""
        self._fs = file_system or LocalFileSystem()
        self._filter = PathFilter(exclude, include)
        self._app_config = app_config or AppConfig()
        self._factory = factory or ResourceAndGroupFactory()
        self._root_group_id = root_group_id

    def _group_id(self, root: Path, group_path: Path) -> str:
        group_id = group_path.relative_to(root).as_posix()
        if group_id in ("", "."):
            return self._root_group_id
        return group_id

    async def load(self, root: Path | str) -> InMemoryRepository:
        """Load every manifest below root that passes the path filters."""
        root = Path(os.path.normpath(root))
        resources: dict[str, Resource] = {}
        groups: dict[str, Group] = {}
        for path in await self._fs.walk(root):
            if path.suffix.lower() not in MANIFEST_EXTENSIONS:
                continue
            abs_path = str(self._fs.abs(path))
            if self._filter.ignore(abs_path):
                _LOGGER.debug("Ignoring file: %s", abs_path)
                continue

            group_path = path.parent
            group_id = self._group_id(root, group_path)
            try:
                objs = decode_objects(await self._fs.read_file(path))
            except NotValidException as err:
                raise NotValidException(f"could not load {path}: {err}") from err

            for obj in objs:
                resource = self._factory.new_resource(obj, group_id, str(path))
                if (stored := resources.get(resource.id)) is not None:
                    raise NotValidException(
                        f"resource collision with {resource.id} in "
                        f"{stored.manifest_path!r} and {str(path)!r}"
                    )
                resources[resource.id] = resource

            if (group := groups.get(group_id)) is not None:
                if group.path != str(group_path):
                    raise NotValidException(
                        f"group collision with {group_id} in {group.path!r} and {str(group_path)!r}"
                    )
                continue
            groups[group_id] = self._factory.new_group(
                group_id, str(group_path), self._app_config.group(group_id)
            )

        _LOGGER.info(
            "Loaded %d resources in %d groups from %s", len(resources), len(groups), root
        )
        return InMemoryRepository(resources, groups)


async def load_repositories(
    old_path: Path | str,
    new_path: Path | str,
    loader: FsLoader | None = None,
) -> tuple[InMemoryRepository, InMemoryRepository]:
    """Load the old and new manifest trees with the same loader settings."""
    loader = loader or FsLoader()
    old = await loader.load(old_path)
    new = await loader.load(new_path)
    return old, new
