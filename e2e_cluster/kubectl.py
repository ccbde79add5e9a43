# /*
# Copyright 2026 The Grove Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""Schema-agnostic Kubernetes client: manifest apply and pod port-forwarding."""

from __future__ import annotations

import threading
from typing import IO, Any

import urllib3
import yaml
from kubernetes import config as k8s_config
from kubernetes.client.exceptions import ApiException
from kubernetes.dynamic import DynamicClient
from kubernetes.dynamic.exceptions import ResourceNotFoundError, ResourceNotUniqueError

from e2e_cluster import logger
from e2e_cluster.constants import DEFAULT_NAMESPACE, FIELD_MANAGER, MANIFEST_SEPARATOR
from e2e_cluster.errors import (
    ApplyError,
    ConfigError,
    EmptyManifestError,
    ManifestDecodeError,
    ResourceMappingError,
)
from e2e_cluster.portforward import forward_pod_port


def split_manifests(yaml_text: str) -> list[str]:
    """Split multi-document YAML on lines that are exactly ``---``.

    Blank lines and lines starting with ``#`` are dropped, and so are
    documents left empty.

    Raises:
        EmptyManifestError: If no document remains.
    """
    manifests: list[str] = []
    part: list[str] = []
    for line in yaml_text.split("\n"):
        if not line or line.startswith("#"):
            continue
        if line == MANIFEST_SEPARATOR:
            if part:
                manifests.append("\n".join(part))
            part = []
        else:
            part.append(line)
    if part:
        manifests.append("\n".join(part))

    if not manifests:
        raise EmptyManifestError()
    return manifests


def _decode_manifest(manifest: str) -> dict[str, Any]:
    try:
        obj = yaml.safe_load(manifest)
    except yaml.YAMLError as err:
        raise ManifestDecodeError(f"failed to decode manifest: {err}") from err

    if not isinstance(obj, dict):
        raise ManifestDecodeError(f"failed to decode manifest: expected a mapping, got {type(obj).__name__}")
    for key in ("apiVersion", "kind"):
        if not obj.get(key):
            raise ManifestDecodeError(f"failed to decode manifest: missing {key}")
    if not isinstance(obj.get("metadata"), dict) or not obj["metadata"].get("name"):
        raise ManifestDecodeError(f"failed to decode manifest: {obj['kind']} has no metadata.name")
    return obj


class Client:
    """Access to one cluster through its kubeconfig.

    The dynamic client is built on first use. Resolved ``(apiVersion, kind)``
    mappings are cached for the lifetime of the client and may be shared by
    concurrent callers.
    """

    def __init__(self, kubeconfig: str = "", dynamic_client: DynamicClient | None = None) -> None:
        self._kubeconfig = kubeconfig
        self._dynamic = dynamic_client
        self._lock = threading.Lock()
        self._resources: dict[tuple[str, str], Any] = {}

    @classmethod
    def from_kubeconfig(cls, kubeconfig: str) -> Client:
        return cls(kubeconfig=kubeconfig)

    @property
    def kubeconfig(self) -> str:
        return self._kubeconfig

    def _dynamic_client(self) -> DynamicClient:
        with self._lock:
            if self._dynamic is None:
                try:
                    api_client = k8s_config.new_client_from_config(config_file=self._kubeconfig or None)
                except k8s_config.ConfigException as err:
                    raise ConfigError(f"invalid kubeconfig {self._kubeconfig!r}: {err}") from err
                try:
                    self._dynamic = DynamicClient(api_client)
                except ApiException as err:
                    raise ResourceMappingError(f"API discovery failed: {err.reason}") from err
                except urllib3.exceptions.HTTPError as err:
                    raise ResourceMappingError(f"API discovery failed: {err}") from err
            return self._dynamic

    def _resource_for(self, api_version: str, kind: str) -> Any:
        key = (api_version, kind)
        with self._lock:
            resource = self._resources.get(key)
        if resource is not None:
            return resource

        dyn = self._dynamic_client()
        try:
            resource = dyn.resources.get(api_version=api_version, kind=kind)
        except (ResourceNotFoundError, ResourceNotUniqueError) as err:
            raise ResourceMappingError(f"failed to get resource for {api_version}/{kind}: {err}") from err
        except ApiException as err:
            raise ResourceMappingError(f"failed to get resource for {api_version}/{kind}: {err.reason}") from err
        except urllib3.exceptions.HTTPError as err:
            raise ResourceMappingError(f"failed to get resource for {api_version}/{kind}: {err}") from err

        with self._lock:
            return self._resources.setdefault(key, resource)

    def _apply_manifest(self, manifest: str) -> None:
        obj = _decode_manifest(manifest)
        kind = obj["kind"]
        name = obj["metadata"]["name"]
        namespace = obj["metadata"].get("namespace") or DEFAULT_NAMESPACE

        resource = self._resource_for(obj["apiVersion"], kind)
        logger.debug("Applying %s/%s", kind, name)
        try:
            self._dynamic_client().server_side_apply(
                resource,
                body=obj,
                name=name,
                namespace=namespace if resource.namespaced else None,
                field_manager=FIELD_MANAGER,
            )
        except ApiException as err:
            raise ApplyError(f"failed to apply {kind}/{name}: {err.reason}") from err
        except urllib3.exceptions.HTTPError as err:
            raise ApplyError(f"failed to apply {kind}/{name}: {err}") from err

    def apply(self, yaml_text: str) -> None:
        """Create or update the resources in a YAML manifest with server-side apply.

        Documents are applied one at a time in order; the first failure stops
        the apply.

        Args:
            yaml_text: One or more documents separated by ``---`` lines.

        Raises:
            EmptyManifestError: If the text has no documents.
            ManifestDecodeError: If a document is not a Kubernetes object.
            ResourceMappingError: If a kind is unknown to the API server.
            ApplyError: If the API server rejects a document.
        """
        for manifest in split_manifests(yaml_text):
            self._apply_manifest(manifest)

    def forward_pod_port(
        self,
        namespace: str,
        pod: str,
        remote_port: int,
        cancel: threading.Event,
        local_port: int = 0,
        stdout: IO[str] | None = None,
        stderr: IO[str] | None = None,
    ) -> int:
        """Open a local port forwarding to a pod's port.

        Returns once the tunnel is ready; it keeps running until ``cancel``
        is set. See :func:`e2e_cluster.portforward.forward_pod_port`.

        Returns:
            The local port the tunnel listens on.
        """
        return forward_pod_port(
            self._kubeconfig,
            namespace,
            pod,
            remote_port,
            cancel,
            local_port=local_port,
            stdout=stdout,
            stderr=stderr,
        )
