"""Library for filtering the resources of a plan.

A processor receives a list of resources and returns the ones to keep.
Processors are combined with `ProcessorChain`:

```python
from kahoy import process

chain = process.ProcessorChain(
    [
        process.ExcludeKubeTypeProcessor([".*/Secret"]),
        process.LabelSelectorProcessor("app=api,tier!=cache"),
    ]
)
resources = chain.process(resources)
```
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
import logging

from .exceptions import KahoyException, ProcessException
from .model import Resource
from .selector import PathFilter, compile_regexes, parse_selector

__all__ = [
    "ResourceProcessor",
    "ProcessorChain",
    "ExcludeKubeTypeProcessor",
    "LabelSelectorProcessor",
    "AnnotationSelectorProcessor",
    "PathProcessor",
    "IncludeNamespaceProcessor",
]

_LOGGER = logging.getLogger(__name__)


class ResourceProcessor(ABC):
    """Maps a list of resources into a new list of resources."""

    @abstractmethod
    def process(self, resources: list[Resource]) -> list[Resource]:
        """Return the processed resources."""


class ProcessorChain(ResourceProcessor):
    """Runs the processors in order, each one on the output of the previous.

    On failure a `ProcessException` is raised holding the output of the last
    processor that succeeded.
    """

    def __init__(self, processors: Iterable[ResourceProcessor]) -> None:
        self._processors = list(processors)

    def process(self, resources: list[Resource]) -> list[Resource]:
        for processor in self._processors:
            try:
                resources = processor.process(resources)
            except KahoyException as err:
                raise ProcessException(str(err), resources) from err
        return resources


class ExcludeKubeTypeProcessor(ResourceProcessor):
    """Removes resources whose `group/version/Kind` type matches a regex.

    The group is omitted for core types (e.g. `v1/Pod`).
    """

    def __init__(self, regexes: Iterable[str]) -> None:
        self._regexes = compile_regexes(regexes)

    def process(self, resources: list[Resource]) -> list[Resource]:
        if not self._regexes:
            return resources
        result = []
        for resource in resources:
            kube_type = resource.k8s_object.kube_type
            if any(regex.search(kube_type) for regex in self._regexes):
                _LOGGER.debug("Resource %s ignored by kube type", resource.id)
                continue
            result.append(resource)
        return result


class LabelSelectorProcessor(ResourceProcessor):
    """Keeps resources whose labels match the selector."""

    def __init__(self, selector: str | None) -> None:
        self._requirements = parse_selector(selector)

    def _values(self, resource: Resource) -> dict[str, str]:
        return resource.k8s_object.labels

    def process(self, resources: list[Resource]) -> list[Resource]:
        if not self._requirements:
            return resources
        result = []
        for resource in resources:
            values = self._values(resource)
            if all(requirement.matches(values) for requirement in self._requirements):
                result.append(resource)
            else:
                _LOGGER.debug("Resource %s ignored by selector", resource.id)
        return result


class AnnotationSelectorProcessor(LabelSelectorProcessor):
    """Keeps resources whose annotations match the selector."""

    def _values(self, resource: Resource) -> dict[str, str]:
        return resource.k8s_object.annotations


class PathProcessor(ResourceProcessor):
    """Filters resources by the regexes on their manifest path.

    Same rules as the file system loader: excludes win, and when include
    regexes are present everything not included is removed.
    """

    def __init__(self, exclude: Iterable[str] = (), include: Iterable[str] = ()) -> None:
        self._filter = PathFilter(exclude, include)

    def process(self, resources: list[Resource]) -> list[Resource]:
        return [r for r in resources if not self._filter.ignore(r.manifest_path)]


class IncludeNamespaceProcessor(ResourceProcessor):
    """Keeps resources whose namespace matches any of the regexes.

    Resources without namespace are matched as the `default` namespace, the
    same namespace used in their id.
    """

    def __init__(self, regexes: Iterable[str]) -> None:
        self._regexes = compile_regexes(regexes)

    def process(self, resources: list[Resource]) -> list[Resource]:
        if not self._regexes:
            return resources
        result = []
        for resource in resources:
            namespace = resource.id.split("/")[3]
            if any(regex.search(namespace) for regex in self._regexes):
                result.append(resource)
            else:
                _LOGGER.debug("Resource %s ignored by namespace", resource.id)
        return result
