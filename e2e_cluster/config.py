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

"""Cluster options, kind config rendering, and e2e cluster configuration."""

from __future__ import annotations

import os
import tempfile
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from e2e_cluster.constants import (
    CONTOUR_MANIFESTS,
    DEFAULT_AGENT_IMAGE,
    DEFAULT_CLUSTER_NAME,
    DEFAULT_E2E_CLUSTER_NAME,
    DEFAULT_E2E_WAIT_SECONDS,
    DEFAULT_INGRESS_ADDRESS,
    DEFAULT_INGRESS_NODE_PORT,
    DEFAULT_INGRESS_PORT,
    ENV_PREFIX,
    KIND_CONFIG_HEADER,
    KIND_ETCD_RAM_DISK_PATCH,
    KIND_PORT_MAPPING,
    KIND_PORT_MAPPINGS_HEADER,
    KIND_WORKER_NODE,
)
from e2e_cluster.errors import ConfigError

if TYPE_CHECKING:
    from e2e_cluster.cluster import Cluster, KindProvider
    from e2e_cluster.e2e import E2eCluster


# ============================================================================
# Cluster options
# ============================================================================

@dataclass(frozen=True)
class NodePort:
    """Mapping of a cluster node port to a port on the host.

    The mapping is part of the cluster topology and cannot be changed once
    the cluster exists.

    Attributes:
        node_port: Port opened on every cluster node.
        host_port: Port on the test-runner machine mapped to ``node_port``.
    """

    node_port: int
    host_port: int


@dataclass(frozen=True)
class ClusterOptions:
    """Options for customizing a kind cluster.

    Attributes:
        config: Raw kind configuration. Overrides every other option.
        images: Images to pre-load on each node.
        wait: Seconds to wait for the control plane to be ready, or 0 to skip.
        node_ports: Node ports to expose on the host.
        workers: Number of worker nodes.
        version: Kubernetes version (e.g. ``v1.24.0``), or empty for kind's default.
        kubeconfig: Path to export the kubeconfig to, or empty for ``<tmp>/<name>``.
        use_etcd_ram_disk: Whether to keep etcd data on a memory-backed path.
    """

    config: str = ""
    images: tuple[str, ...] = ()
    wait: float = 0
    node_ports: tuple[NodePort, ...] = ()
    workers: int = 0
    version: str = ""
    kubeconfig: str = ""
    use_etcd_ram_disk: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "images", tuple(self.images))
        object.__setattr__(self, "node_ports", tuple(self.node_ports))


class ClusterConfig:
    """Validated name and options for creating a kind cluster."""

    def __init__(self, name: str, options: ClusterOptions | None = None) -> None:
        options = options if options is not None else ClusterOptions()
        if not name:
            raise ConfigError("cluster name is mandatory")
        for np in options.node_ports:
            if np.node_port == 0 or np.host_port == 0:
                raise ConfigError("node port and host port are required in a NodePort")
        if options.workers < 0:
            raise ConfigError(f"number of workers must not be negative: {options.workers}")
        self._name = name
        self._options = options

    @property
    def name(self) -> str:
        return self._name

    @property
    def options(self) -> ClusterOptions:
        return self._options

    @property
    def kubeconfig(self) -> str:
        """Path the kubeconfig is exported to."""
        return self._options.kubeconfig or os.path.join(tempfile.gettempdir(), self._name)

    def render(self) -> str:
        """Render the kind configuration document for this cluster.

        Returns:
            The raw override if one was given, otherwise a document with one
            control-plane node, its port mappings, the worker nodes and the
            optional etcd patch, in that order.
        """
        if self._options.config:
            return self._options.config

        parts = [KIND_CONFIG_HEADER]
        if self._options.node_ports:
            parts.append(KIND_PORT_MAPPINGS_HEADER)
            parts.extend(
                KIND_PORT_MAPPING.format(node_port=np.node_port, host_port=np.host_port)
                for np in self._options.node_ports
            )
        parts.extend(KIND_WORKER_NODE for _ in range(self._options.workers))
        if self._options.use_etcd_ram_disk:
            parts.append(KIND_ETCD_RAM_DISK_PATCH)
        return "".join(parts)

    def create(self, provider: KindProvider | None = None) -> Cluster:
        """Create the cluster. See :func:`e2e_cluster.cluster.create_cluster`."""
        from e2e_cluster.cluster import create_cluster

        return create_cluster(self, provider)


def default_cluster_config() -> ClusterConfig:
    """Build a ClusterConfig with default options and the default name."""
    return ClusterConfig(DEFAULT_CLUSTER_NAME, ClusterOptions())


# ============================================================================
# E2E cluster configuration
# ============================================================================

PostInstall = Callable[["E2eCluster"], None]


@dataclass(frozen=True)
class E2eClusterConfig:
    """Configuration of an e2e test cluster.

    Attributes:
        name: Name of the cluster.
        images: Images to pre-load on each node.
        ingress_addr: Address the ingress is reachable at from the host.
        ingress_port: Host port mapped to the ingress node port.
        post_install: Hooks run in order after the cluster is created.
        reuse: Whether an existing cluster with the same name is reused.
        wait: Seconds to wait for the cluster, also used as settle period.
        auto_cleanup: Whether ``E2eCluster.cleanup`` deletes the cluster.
        kubeconfig: Path to export the kubeconfig to.
        env_override: Whether E2E_* environment variables override this config.
        node_ports: Node ports to expose in addition to the ingress.
        workers: Number of worker nodes.
        version: Kubernetes version, or empty for kind's default.
        use_etcd_ram_disk: Whether to keep etcd data on a memory-backed path.
        config: Raw kind configuration. Overrides topology options.
    """

    name: str = DEFAULT_E2E_CLUSTER_NAME
    images: tuple[str, ...] = ()
    ingress_addr: str = DEFAULT_INGRESS_ADDRESS
    ingress_port: int = DEFAULT_INGRESS_PORT
    post_install: tuple[PostInstall, ...] = ()
    reuse: bool = False
    wait: float = 0
    auto_cleanup: bool = True
    kubeconfig: str = ""
    env_override: bool = True
    node_ports: tuple[NodePort, ...] = ()
    workers: int = 0
    version: str = ""
    use_etcd_ram_disk: bool = False
    config: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "images", tuple(self.images))
        object.__setattr__(self, "post_install", tuple(self.post_install))
        object.__setattr__(self, "node_ports", tuple(self.node_ports))

    @property
    def ingress(self) -> str:
        return f"{self.ingress_addr}:{self.ingress_port}"

    def cluster_options(self) -> ClusterOptions:
        """Build the ClusterOptions for creating this cluster, ingress mapping first."""
        ingress = NodePort(node_port=DEFAULT_INGRESS_NODE_PORT, host_port=self.ingress_port)
        return ClusterOptions(
            config=self.config,
            images=self.images,
            wait=self.wait,
            node_ports=(ingress, *self.node_ports),
            workers=self.workers,
            version=self.version,
            kubeconfig=self.kubeconfig,
            use_etcd_ram_disk=self.use_etcd_ram_disk,
        )


def default_e2e_cluster_config() -> E2eClusterConfig:
    """Build the default configuration for an e2e test cluster.

    The agent image is pre-loaded and Contour is installed as ingress.
    """
    from e2e_cluster.e2e import install_contour_ingress

    return E2eClusterConfig(
        name=DEFAULT_E2E_CLUSTER_NAME,
        images=(DEFAULT_AGENT_IMAGE,),
        ingress_addr=DEFAULT_INGRESS_ADDRESS,
        ingress_port=DEFAULT_INGRESS_PORT,
        reuse=False,
        auto_cleanup=True,
        env_override=True,
        wait=DEFAULT_E2E_WAIT_SECONDS,
        kubeconfig=os.path.join(tempfile.gettempdir(), DEFAULT_E2E_CLUSTER_NAME),
        post_install=(install_contour_ingress,) if CONTOUR_MANIFESTS else (),
    )


# ============================================================================
# Option functions
# ============================================================================

E2eClusterOption = Callable[[E2eClusterConfig], E2eClusterConfig]


def _check_port(port: int) -> None:
    if not 1 <= port <= 65535:
        raise ConfigError(f"invalid port: {port}")


def with_name(name: str) -> E2eClusterOption:
    """Set the cluster name."""
    def _apply(c: E2eClusterConfig) -> E2eClusterConfig:
        if not name:
            raise ConfigError("cluster name is mandatory")
        return replace(c, name=name)
    return _apply


def with_ingress_address(address: str) -> E2eClusterOption:
    """Set the ingress address."""
    return lambda c: replace(c, ingress_addr=address)


def with_ingress_port(port: int) -> E2eClusterOption:
    """Set the ingress host port."""
    def _apply(c: E2eClusterConfig) -> E2eClusterConfig:
        _check_port(port)
        return replace(c, ingress_port=port)
    return _apply


def with_kubeconfig(kubeconfig: str) -> E2eClusterOption:
    """Set the path to the kubeconfig file."""
    return lambda c: replace(c, kubeconfig=kubeconfig)


def with_wait(timeout: float) -> E2eClusterOption:
    """Set the wait for cluster creation and the settle period, in seconds."""
    def _apply(c: E2eClusterConfig) -> E2eClusterConfig:
        if timeout < 0:
            raise ConfigError(f"wait must not be negative: {timeout}")
        return replace(c, wait=timeout)
    return _apply


def with_auto_cleanup(auto_cleanup: bool) -> E2eClusterOption:
    """Set whether the cluster is deleted by ``E2eCluster.cleanup``."""
    return lambda c: replace(c, auto_cleanup=auto_cleanup)


def with_reuse(reuse: bool) -> E2eClusterOption:
    """Set whether an existing cluster is reused (True) or deleted (False)."""
    return lambda c: replace(c, reuse=reuse)


def with_images(*images: str) -> E2eClusterOption:
    """Set the images to pre-load, replacing any previous list."""
    return lambda c: replace(c, images=tuple(images))


def with_env_override(env_override: bool) -> E2eClusterOption:
    """Set whether E2E_* environment variables override the configuration."""
    return lambda c: replace(c, env_override=env_override)


def with_post_install(*hooks: PostInstall) -> E2eClusterOption:
    """Set the post-install hooks, replacing any previous list."""
    return lambda c: replace(c, post_install=tuple(hooks))


def with_version(version: str) -> E2eClusterOption:
    """Set the Kubernetes version of the cluster nodes."""
    return lambda c: replace(c, version=version)


def with_workers(workers: int) -> E2eClusterOption:
    """Set the number of worker nodes."""
    def _apply(c: E2eClusterConfig) -> E2eClusterConfig:
        if workers < 0:
            raise ConfigError(f"number of workers must not be negative: {workers}")
        return replace(c, workers=workers)
    return _apply


def with_etcd_ram_disk(enabled: bool = True) -> E2eClusterOption:
    """Set whether etcd keeps its data on a memory-backed path."""
    return lambda c: replace(c, use_etcd_ram_disk=enabled)


def with_node_ports(*node_ports: NodePort) -> E2eClusterOption:
    """Set node ports to expose in addition to the ingress."""
    return lambda c: replace(c, node_ports=tuple(node_ports))


def apply_options(config: E2eClusterConfig, options: Iterable[E2eClusterOption]) -> E2eClusterConfig:
    """Apply option functions in order."""
    for option in options:
        config = option(config)
    return config


# ============================================================================
# Environment overrides
# ============================================================================

class EnvOverrides(BaseSettings):
    """E2E_* environment overrides, unset fields leave the config untouched.

    Attributes:
        autocleanup: E2E_AUTOCLEANUP, overrides ``auto_cleanup``.
        reuse: E2E_REUSE, overrides ``reuse``.
        cluster_name: E2E_CLUSTER_NAME, overrides ``name``.
        ingress_port: E2E_INGRESS_PORT, overrides ``ingress_port``.
    """

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, extra="ignore", env_ignore_empty=True)

    autocleanup: bool | None = None
    reuse: bool | None = None
    cluster_name: str | None = Field(default=None, min_length=1)
    ingress_port: int | None = Field(default=None, ge=1, le=65535)


def merge_env_overrides(config: E2eClusterConfig) -> E2eClusterConfig:
    """Merge E2E_* environment variables into the configuration.

    Args:
        config: Configuration after option functions were applied.

    Returns:
        The configuration with every set environment variable applied.

    Raises:
        ConfigError: If an environment variable has an invalid value.
    """
    try:
        env = EnvOverrides()
    except ValidationError as err:
        raise ConfigError(f"invalid {ENV_PREFIX}* environment override: {err}") from err

    overrides: dict = {}
    if env.autocleanup is not None:
        overrides["auto_cleanup"] = env.autocleanup
    if env.reuse is not None:
        overrides["reuse"] = env.reuse
    if env.cluster_name is not None:
        overrides["name"] = env.cluster_name
    if env.ingress_port is not None:
        overrides["ingress_port"] = env.ingress_port
    if overrides:
        config = replace(config, **overrides)
    return config


def resolve_e2e_config(config: E2eClusterConfig, options: Iterable[E2eClusterOption] = ()) -> E2eClusterConfig:
    """Resolve the final e2e configuration.

    Resolution priority: environment variables (if enabled) > option functions > config.
    """
    config = apply_options(config, options)
    if config.env_override:
        config = merge_env_overrides(config)
    return config
