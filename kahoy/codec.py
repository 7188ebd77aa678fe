"""Library for decoding and encoding kubernetes objects as YAML streams."""

import logging
import re
from collections.abc import Iterable
from typing import Any

import yaml

from .exceptions import NotValidException
from .model import K8sObject

__all__ = [
    "ManifestLoader",
    "decode_objects",
    "encode_objects",
]

_LOGGER = logging.getLogger(__name__)

_SPLIT_MARK_RE = re.compile(r"(?m)^---")
_COMMENTS_RE = re.compile(r"(?m)^#.*$")
_EMPTY_CHARS = "\n\t\r "


class ManifestLoader(yaml.SafeLoader):
    """Safe loader that reads a bare `=` as a string like kubernetes does."""


# https://github.com/yaml/pyyaml/issues/89
ManifestLoader.yaml_implicit_resolvers = {
    first: resolvers
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
    if first != "="
}


def _expand(doc: dict[str, Any]) -> list[dict[str, Any]]:
    """Expand `List` style objects into their items."""
    kind = str(doc.get("kind") or "")
    items = doc.get("items")
    if kind.endswith("List") and isinstance(items, list):
        return [item for item in items if item]
    return [doc]


def decode_objects(raw: bytes | str) -> list[K8sObject]:
    """Decode a multi-document YAML stream into kubernetes objects.

    Empty and comment only documents are skipped.
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    raw = raw.strip(_EMPTY_CHARS)
    raw = _COMMENTS_RE.sub("", raw)
    objs: list[K8sObject] = []
    for raw_doc in _SPLIT_MARK_RE.split(raw):
        raw_doc = raw_doc.strip(_EMPTY_CHARS)
        if not raw_doc:
            continue
        try:
            doc = yaml.load(raw_doc, Loader=ManifestLoader)
        except yaml.YAMLError as err:
            raise NotValidException(
                f"could not decode kubernetes object: {err}"
            ) from err
        if doc is None:
            continue
        if not isinstance(doc, dict):
            raise NotValidException(
                f"could not decode kubernetes object, expected a mapping: {raw_doc[:80]!r}"
            )
        objs.extend(K8sObject(item) for item in _expand(doc))
    return objs


def encode_objects(objs: Iterable[K8sObject | None]) -> bytes:
    """Encode the objects as a YAML stream with deterministic key order."""
    out = []
    for obj in objs:
        if obj is None:
            continue
        out.append("---\n")
        out.append(yaml.safe_dump(obj.obj, sort_keys=True, default_flow_style=False))
    return "".join(out).encode("utf-8")
