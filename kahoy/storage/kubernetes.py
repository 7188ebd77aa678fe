"""Resource and state repository backed by Kubernetes secrets.

Every applied resource is stored as a `Secret` in a namespace of the cluster,
so the next run can use the stored resources as the old state. Secrets of
different deployments sharing a namespace are kept apart by a storage id.

The secrets look like this:

```yaml
apiVersion: v1
kind: Secret
type: Opaque
metadata:
  name: 1d2a0a9f0bd6c9f4e4ab1f6a1ce0d5f4  # md5("kahoy.slok.dev-<storage id>-<resource id>")
  namespace: default
  labels:
    app.kubernetes.io/name: kahoy
    kahoy.slok.dev/storage-id: my-app
    ...
data:
  id: <resource id>
  group: <group id>
  path: <manifest path>
  raw: <gzip compressed YAML of the resource>
```
"""

from abc import ABC, abstractmethod
import base64
import binascii
import gzip
import hashlib
import logging
import re
import zlib
from typing import Any

from kahoy.codec import decode_objects, encode_objects
from kahoy.command import run
from kahoy.exceptions import (
    CommandException,
    MissingException,
    NotValidException,
    ProtocolException,
)
from kahoy.kubectl import KubectlOptions
from kahoy.model import K8sObject, Resource, ResourceAndGroupFactory, State

from .repository import ResourceRepository, StateRepository

__all__ = [
    "K8sClient",
    "KubectlClient",
    "KubernetesRepository",
]

_LOGGER = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "default"
KUBE_PATH_FMT = "kubernetes://{namespace}/{name}"

SECRET_DATA_KEY = "raw"
SECRET_ID_KEY = "id"
SECRET_GROUP_KEY = "group"
SECRET_PATH_KEY = "path"

_LABEL_VALUE_RE = re.compile(r"^(([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9])?$")
_LABEL_VALUE_MAX = 63


class K8sClient(ABC):
    """The secret operations needed from a Kubernetes cluster."""

    @abstractmethod
    async def ensure_secret(self, secret: dict[str, Any]) -> None:
        """Create or update the secret."""

    @abstractmethod
    async def ensure_missing_secret(self, namespace: str, name: str) -> None:
        """Delete the secret, doing nothing if it doesn't exist."""

    @abstractmethod
    async def list_secrets(
        self, namespace: str, labels: dict[str, str]
    ) -> list[dict[str, Any]]:
        """Return the secrets of the namespace having all the labels."""

    @abstractmethod
    async def get_secret(self, namespace: str, name: str) -> dict[str, Any]:
        """Return the secret or raise `MissingException`."""


class KubectlClient(K8sClient):
    """K8sClient talking to the cluster through kubectl."""

    def __init__(self, options: KubectlOptions | None = None) -> None:
        """Initialize KubectlClient."""
        self._options = options or KubectlOptions()

    async def ensure_secret(self, secret: dict[str, Any]) -> None:
        cmd = self._options.command(
            "apply",
            "--server-side=true",
            "--force-conflicts=true",
            "--field-manager",
            "kahoy",
            "-f",
            "-",
        )
        await run(cmd, stdin=encode_objects([K8sObject(secret)]))

    async def ensure_missing_secret(self, namespace: str, name: str) -> None:
        cmd = self._options.command(
            "delete",
            "secret",
            name,
            "--namespace",
            namespace,
            "--ignore-not-found=true",
            "--wait=false",
        )
        await run(cmd)

    async def list_secrets(
        self, namespace: str, labels: dict[str, str]
    ) -> list[dict[str, Any]]:
        selector = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
        cmd = self._options.command(
            "get", "secrets", "--namespace", namespace, "-l", selector, "-o", "yaml"
        )
        out = await run(cmd)
        try:
            return [obj.to_dict() for obj in decode_objects(out)]
        except NotValidException as err:
            raise ProtocolException(f"could not decode listed secrets: {err}") from err

    async def get_secret(self, namespace: str, name: str) -> dict[str, Any]:
        cmd = self._options.command(
            "get", "secret", name, "--namespace", namespace, "-o", "yaml"
        )
        try:
            out = await run(cmd)
        except CommandException as err:
            if "notfound" in err.stderr.lower():
                raise MissingException(f"secret {namespace}/{name} is missing") from err
            raise
        try:
            objs = decode_objects(out)
        except NotValidException as err:
            raise ProtocolException(f"could not decode secret {name}: {err}") from err
        if len(objs) != 1:
            raise ProtocolException(f"expected a single secret, got {len(objs)}")
        return objs[0].to_dict()


def validate_label_value(value: str) -> None:
    """Raise `NotValidException` when the value can't be used as a label value."""
    if len(value) > _LABEL_VALUE_MAX:
        raise NotValidException(
            f"invalid storage id: must be no more than {_LABEL_VALUE_MAX} characters"
        )
    if not _LABEL_VALUE_RE.match(value):
        raise NotValidException(
            "invalid storage id: a valid label must consist of alphanumeric "
            "characters, '-', '_' or '.', and must start and end with an "
            "alphanumeric character"
        )


class KubernetesRepository(ResourceRepository, StateRepository):
    """Stores applied resources as secrets and lists them back as resources."""

    def __init__(
        self,
        storage_id: str,
        client: K8sClient,
        namespace: str = DEFAULT_NAMESPACE,
        factory: ResourceAndGroupFactory | None = None,
    ) -> None:
        """Initialize KubernetesRepository."""
        if not storage_id:
            raise NotValidException("storage ID is required")
        validate_label_value(storage_id)
        self._storage_id = storage_id
        self._client = client
        self._namespace = namespace or DEFAULT_NAMESPACE
        self._factory = factory or ResourceAndGroupFactory()

    def secret_name(self, resource_id: str) -> str:
        """Return the deterministic name of the secret storing the resource."""
        key = f"kahoy.slok.dev-{self._storage_id}-{resource_id}"
        return hashlib.md5(key.encode("utf-8")).hexdigest()

    def labels(self) -> dict[str, str]:
        return {
            "app.kubernetes.io/name": "kahoy",
            "app.kubernetes.io/component": "internal",
            "app.kubernetes.io/part-of": "storage",
            "app.kubernetes.io/managed-by": "kahoy",
            "kahoy.slok.dev/storage-id": self._storage_id,
        }

    def _annotations(self, resource: Resource) -> dict[str, str]:
        return {
            "kahoy.slok.dev/resource-id": resource.id,
            "kahoy.slok.dev/resource-group": resource.group_id,
            "kahoy.slok.dev/resource-name": resource.k8s_object.name,
            "kahoy.slok.dev/resource-ns": resource.k8s_object.namespace,
        }

    def resource_to_secret(self, resource: Resource) -> dict[str, Any]:
        """Return the secret storing the resource."""
        raw = gzip.compress(encode_objects([resource.k8s_object]))
        data = {
            SECRET_DATA_KEY: raw,
            SECRET_ID_KEY: resource.id.encode("utf-8"),
            SECRET_GROUP_KEY: resource.group_id.encode("utf-8"),
            SECRET_PATH_KEY: resource.manifest_path.encode("utf-8"),
        }
        return {
            "apiVersion": "v1",
            "kind": "Secret",
            "type": "Opaque",
            "metadata": {
                "name": self.secret_name(resource.id),
                "namespace": self._namespace,
                "labels": self.labels(),
                "annotations": self._annotations(resource),
            },
            "data": {k: base64.b64encode(v).decode("ascii") for k, v in data.items()},
        }

    def secret_to_resource(self, secret: dict[str, Any]) -> Resource:
        """Rebuild the resource stored in the secret."""
        metadata = secret.get("metadata") or {}
        name = metadata.get("name", "")
        encoded = secret.get("data") or {}
        data: dict[str, bytes] = {}
        for key, description in (
            (SECRET_ID_KEY, "resource id"),
            (SECRET_GROUP_KEY, "resource group"),
            (SECRET_DATA_KEY, "resource data"),
            (SECRET_PATH_KEY, "resource fs path"),
        ):
            if key not in encoded:
                raise ProtocolException(
                    f"missing {description} in kubernetes secret {name!r}"
                )
            try:
                data[key] = base64.b64decode(encoded[key] or "", validate=True)
            except (binascii.Error, ValueError) as err:
                raise ProtocolException(
                    f"invalid {description} encoding in kubernetes secret {name!r}"
                ) from err

        try:
            objs = decode_objects(gzip.decompress(data[SECRET_DATA_KEY]))
        except (OSError, EOFError, zlib.error, NotValidException) as err:
            raise ProtocolException(
                f"could not deserialize kubernetes object data of secret {name!r}: {err}"
            ) from err
        if len(objs) != 1:
            raise ProtocolException(
                f"wrong number of decoded kubernetes objects in secret {name!r}: {len(objs)}"
            )

        path = KUBE_PATH_FMT.format(
            namespace=metadata.get("namespace", self._namespace), name=name
        )
        return self._factory.new_resource(
            objs[0], data[SECRET_GROUP_KEY].decode("utf-8"), path
        )

    async def get_resource(self, resource_id: str) -> Resource:
        secret = await self._client.get_secret(
            self._namespace, self.secret_name(resource_id)
        )
        return self.secret_to_resource(secret)

    async def list_resources(self) -> list[Resource]:
        secrets = await self._client.list_secrets(self._namespace, self.labels())
        return [self.secret_to_resource(secret) for secret in secrets]

    async def store_state(self, state: State) -> None:
        for resource in state.applied_resources:
            _LOGGER.debug("Storing resource %s", resource.id)
            await self._client.ensure_secret(self.resource_to_secret(resource))
        for resource in state.deleted_resources:
            _LOGGER.debug("Removing stored resource %s", resource.id)
            await self._client.ensure_missing_secret(
                self._namespace, self.secret_name(resource.id)
            )
        _LOGGER.info(
            "State %s stored in %s namespace (%d applied, %d deleted)",
            state.id,
            self._namespace,
            len(state.applied_resources),
            len(state.deleted_resources),
        )
