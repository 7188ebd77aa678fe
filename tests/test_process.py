"""Tests for the resource processors."""

import pytest

from kahoy.exceptions import KahoyException, NotValidException, ProcessException
from kahoy.model import K8sObject, Resource, ResourceAndGroupFactory
from kahoy.process import (
    AnnotationSelectorProcessor,
    ExcludeKubeTypeProcessor,
    IncludeNamespaceProcessor,
    LabelSelectorProcessor,
    PathProcessor,
    ProcessorChain,
    ResourceProcessor,
)

FACTORY = ResourceAndGroupFactory()


def _resource(
    api_version: str,
    kind: str,
    name: str,
    namespace: str | None = None,
    labels: dict[str, str] | None = None,
    annotations: dict[str, str] | None = None,
    path: str = "/manifests/test.yaml",
) -> Resource:
    metadata: dict = {"name": name}
    if namespace:
        metadata["namespace"] = namespace
    if labels:
        metadata["labels"] = labels
    if annotations:
        metadata["annotations"] = annotations
    obj = K8sObject({"apiVersion": api_version, "kind": kind, "metadata": metadata})
    return FACTORY.new_resource(obj, "root", path)


DEPLOY = _resource("apps/v1", "Deployment", "app", "prod", labels={"app": "web"})
SERVICE = _resource(
    "v1", "Service", "app", "prod", labels={"app": "web"}, annotations={"team": "a"}
)
SECRET = _resource("v1", "Secret", "creds", "dev", annotations={"team": "b"})
NAMESPACE = _resource("v1", "Namespace", "prod")


def test_exclude_kube_type() -> None:
    """Test excluding resources by type regex."""
    processor = ExcludeKubeTypeProcessor(["^v1/Secret$", "^apps/.*"])
    assert processor.process([DEPLOY, SERVICE, SECRET]) == [SERVICE]
    assert ExcludeKubeTypeProcessor([]).process([DEPLOY]) == [DEPLOY]


def test_label_selector() -> None:
    """Test including resources by label selector."""
    assert LabelSelectorProcessor("app=web").process([DEPLOY, SERVICE, SECRET]) == [
        DEPLOY,
        SERVICE,
    ]
    assert LabelSelectorProcessor("!app").process([DEPLOY, SECRET]) == [SECRET]
    assert LabelSelectorProcessor(None).process([DEPLOY, SECRET]) == [DEPLOY, SECRET]


def test_annotation_selector() -> None:
    """Test including resources by annotation selector."""
    processor = AnnotationSelectorProcessor("team=a")
    assert processor.process([DEPLOY, SERVICE, SECRET]) == [SERVICE]


def test_include_namespace() -> None:
    """Test including resources by namespace, the default without one."""
    assert IncludeNamespaceProcessor(["^prod$"]).process(
        [DEPLOY, SECRET, NAMESPACE]
    ) == [DEPLOY]
    assert IncludeNamespaceProcessor(["^default$"]).process(
        [DEPLOY, SECRET, NAMESPACE]
    ) == [NAMESPACE]


def test_path_processor() -> None:
    """Test filtering resources by manifest path."""
    in_apps = _resource("v1", "ConfigMap", "a", path="/m/apps/cm.yaml")
    in_secrets = _resource("v1", "ConfigMap", "b", path="/m/apps/secrets/cm.yaml")
    other = _resource("v1", "ConfigMap", "c", path="/m/other/cm.yaml")
    processor = PathProcessor(exclude=[".*/secrets/.*"], include=[".*/apps/.*"])
    assert processor.process([in_apps, in_secrets, other]) == [in_apps]


def test_chain() -> None:
    """Test processors run in order on the output of the previous one."""
    chain = ProcessorChain(
        [
            ExcludeKubeTypeProcessor(["^v1/Secret$"]),
            LabelSelectorProcessor("app=web"),
            IncludeNamespaceProcessor(["prod"]),
        ]
    )
    assert chain.process([DEPLOY, SERVICE, SECRET, NAMESPACE]) == [DEPLOY, SERVICE]


class FailingProcessor(ResourceProcessor):
    """Processor that always fails."""

    def process(self, resources: list[Resource]) -> list[Resource]:
        raise KahoyException("processor failed")


def test_chain_failure() -> None:
    """Test the chain keeps the output of the last successful processor."""
    chain = ProcessorChain(
        [ExcludeKubeTypeProcessor(["^v1/Secret$"]), FailingProcessor()]
    )
    with pytest.raises(ProcessException, match="processor failed") as exc_info:
        chain.process([DEPLOY, SECRET])
    assert exc_info.value.resources == [DEPLOY]


def test_invalid_processor_options() -> None:
    """Test invalid regexes and selectors are rejected."""
    with pytest.raises(NotValidException):
        ExcludeKubeTypeProcessor(["[a-"])
    with pytest.raises(NotValidException):
        LabelSelectorProcessor("=broken")
