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

"""kind cluster lifecycle: create, look up, export kubeconfig, and delete."""

from __future__ import annotations

import math
import os
import tempfile
from collections.abc import Sequence
from pathlib import Path

import sh
from rich.panel import Panel

from e2e_cluster import console, logger
from e2e_cluster.config import ClusterConfig, NodePort
from e2e_cluster.constants import KIND_NODE_IMAGE_REPOSITORY
from e2e_cluster.errors import (
    ClusterError,
    ClusterNotFoundError,
    CommandNotFoundError,
    ConfigError,
    E2eClusterError,
    ImageError,
)
from e2e_cluster.images import ensure_images, load_images
from e2e_cluster.utils import check_host_port, command_output


# ============================================================================
# Provisioning backend
# ============================================================================

class KindProvider:
    """Session with the kind provisioning backend.

    Every call shells out to the ``kind`` CLI. The command is resolved on
    first use so that constructing a provider never fails.
    """

    def __init__(self, kind: sh.Command | None = None) -> None:
        self._kind = kind

    def _command(self) -> sh.Command:
        if self._kind is None:
            try:
                self._kind = sh.Command("kind")
            except sh.CommandNotFound as err:
                raise CommandNotFoundError("Required command 'kind' not found. Please install it first.") from err
        return self._kind

    def _run(self, operation: str, *args: str, **kwargs) -> str:
        try:
            return str(self._command()(*args, **kwargs))
        except sh.ErrorReturnCode as err:
            raise ClusterError(f"failed to {operation}: {command_output(err.stderr)}") from err

    def create(
        self,
        name: str,
        config: str,
        kubeconfig: str,
        node_image: str | None = None,
        wait: float = 0,
    ) -> None:
        """Create a cluster from a rendered kind configuration document."""
        args = ["create", "cluster", "--name", name, "--config", "-", "--kubeconfig", kubeconfig]
        if node_image:
            args += ["--image", node_image]
        if wait > 0:
            args += ["--wait", f"{math.ceil(wait)}s"]
        self._run(f"create cluster '{name}'", *args, _in=config)

    def delete(self, name: str, kubeconfig: str) -> None:
        self._run(f"delete cluster '{name}'", "delete", "cluster", "--name", name, "--kubeconfig", kubeconfig)

    def list_clusters(self) -> list[str]:
        output = self._run("list clusters", "get", "clusters")
        return [line.strip() for line in output.splitlines() if line.strip()]

    def list_nodes(self, name: str) -> list[str]:
        output = self._run(f"list nodes of cluster '{name}'", "get", "nodes", "--name", name)
        return [line.strip() for line in output.splitlines() if line.strip()]

    def export_kubeconfig(self, name: str, kubeconfig: str) -> None:
        self._run(
            f"export kubeconfig of cluster '{name}'",
            "export", "kubeconfig", "--name", name, "--kubeconfig", kubeconfig,
        )

    def load_image_archive(self, name: str, archive: str, node: str) -> None:
        self._run(
            f"load image archive into node '{node}'",
            "load", "image-archive", archive, "--name", name, "--nodes", node,
        )


# ============================================================================
# Cluster handle
# ============================================================================

class Cluster:
    """An active test cluster.

    The handle exclusively owns its provider session and kubeconfig file.
    """

    def __init__(
        self,
        name: str,
        kubeconfig: str,
        provider: KindProvider,
        node_ports: Sequence[NodePort] = (),
    ) -> None:
        self._name = name
        self._kubeconfig = kubeconfig
        self._provider = provider
        self._node_ports = tuple(node_ports)

    @property
    def name(self) -> str:
        return self._name

    @property
    def kubeconfig(self) -> str:
        """Path to the kubeconfig for the cluster."""
        return self._kubeconfig

    @property
    def node_ports(self) -> tuple[NodePort, ...]:
        """Node ports mapped to the host when the cluster was created."""
        return self._node_ports

    def delete(self) -> None:
        """Delete the cluster.

        Raises:
            ClusterError: If the backend fails to delete the cluster.
        """
        console.print(f"[yellow]ℹ️  Deleting kind cluster '{self._name}'...[/yellow]")
        self._provider.delete(self._name, self._kubeconfig)
        console.print(f"[green]✅ Cluster '{self._name}' deleted[/green]")

    def __repr__(self) -> str:
        return f"Cluster(name={self._name!r}, kubeconfig={self._kubeconfig!r})"


def delete_best_effort(cluster: Cluster) -> None:
    """Delete a cluster after a failed setup step, logging instead of raising."""
    try:
        cluster.delete()
    except E2eClusterError as err:
        logger.warning("Failed to delete cluster %s after setup failure: %s", cluster.name, err)


# ============================================================================
# Cluster operations
# ============================================================================

def _pull_node_image(version: str) -> str:
    node_image = f"{KIND_NODE_IMAGE_REPOSITORY}:{version}"
    console.print(f"[yellow]ℹ️  Pulling node image {node_image}...[/yellow]")
    try:
        ensure_images([node_image])
    except ImageError as err:
        raise ClusterError(f"failed to pull node image for Kubernetes version {version}: {err}") from err
    return node_image


def create_cluster(config: ClusterConfig, provider: KindProvider | None = None) -> Cluster:
    """Create a kind cluster.

    Host ports are checked before anything else. Once the backend has
    registered the cluster, a failure in a later step deletes it before the
    error is raised.

    Args:
        config: Validated cluster name and options.
        provider: Backend session, or None for a new one.

    Returns:
        Handle to the created cluster.

    Raises:
        PortUnavailableError: If a NodePort host port is already bound.
        ClusterError: If the node image cannot be pulled or a backend call fails.
        ImageError: If the images cannot be pre-loaded.
    """
    options = config.options
    console.print(Panel.fit(f"Creating kind cluster '{config.name}'", style="bold blue"))

    for np in options.node_ports:
        check_host_port(np.host_port)

    provider = provider if provider is not None else KindProvider()

    node_image = _pull_node_image(options.version) if options.version else None

    kubeconfig = config.kubeconfig
    provider.create(config.name, config.render(), kubeconfig, node_image=node_image, wait=options.wait)
    cluster = Cluster(config.name, kubeconfig, provider, options.node_ports)

    try:
        provider.export_kubeconfig(config.name, kubeconfig)
        if options.images:
            nodes = provider.list_nodes(config.name)
            load_images(
                options.images,
                nodes,
                lambda archive, node: provider.load_image_archive(config.name, archive, node),
            )
    except Exception:
        delete_best_effort(cluster)
        raise

    console.print(f"[green]✅ Cluster '{config.name}' created (kubeconfig: {kubeconfig})[/green]")
    return cluster


def get_cluster(name: str, kubeconfig: str = "", provider: KindProvider | None = None) -> Cluster | None:
    """Return a handle to an existing cluster.

    Args:
        name: Name of the cluster.
        kubeconfig: Path to export the kubeconfig to, or empty for ``<tmp>/<name>``.
        provider: Backend session, or None for a new one.

    Returns:
        Handle to the cluster, or None if no cluster has that name.

    Raises:
        ClusterError: If listing clusters or exporting the kubeconfig fails.
    """
    provider = provider if provider is not None else KindProvider()
    if name not in provider.list_clusters():
        return None

    kubeconfig = kubeconfig or os.path.join(tempfile.gettempdir(), name)
    provider.export_kubeconfig(name, kubeconfig)
    return Cluster(name, kubeconfig, provider)


def delete_cluster(name: str, quiet: bool = False, provider: KindProvider | None = None) -> None:
    """Delete a cluster given its name.

    Args:
        name: Name of the cluster.
        quiet: Whether a missing cluster is ignored instead of reported.
        provider: Backend session, or None for a new one.

    Raises:
        ConfigError: If the name is empty.
        ClusterNotFoundError: If the cluster does not exist and quiet is not set.
        ClusterError: If the backend fails to delete the cluster.
    """
    if not name:
        raise ConfigError("cluster name is mandatory")

    provider = provider if provider is not None else KindProvider()
    if name not in provider.list_clusters():
        if quiet:
            console.print(f"[yellow]⚠️  Cluster '{name}' not found or already deleted[/yellow]")
            return
        raise ClusterNotFoundError(name)

    # kind only deletes clusters through a kubeconfig, which is discarded afterwards
    fd, scratch = tempfile.mkstemp(prefix=f"{name}-", suffix=".kubeconfig")
    os.close(fd)
    try:
        Cluster(name, scratch, provider).delete()
    finally:
        Path(scratch).unlink(missing_ok=True)
