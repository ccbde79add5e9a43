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

"""E2E test clusters: reuse/recreate policy, ingress installation, and cleanup ownership."""

from __future__ import annotations

import time

from rich.panel import Panel

from e2e_cluster import console, logger
from e2e_cluster.cluster import Cluster, KindProvider, delete_best_effort, delete_cluster, get_cluster
from e2e_cluster.config import (
    ClusterConfig,
    E2eClusterConfig,
    E2eClusterOption,
    default_e2e_cluster_config,
    resolve_e2e_config,
)
from e2e_cluster.constants import CONTOUR_BASE_URL, CONTOUR_CONFIG, CONTOUR_MANIFESTS
from e2e_cluster.fetch import fetch_url
from e2e_cluster.kubectl import Client


class E2eCluster:
    """A cluster configured for e2e tests.

    A cluster reused from a previous run never deletes itself on cleanup.
    Used as a context manager, the cluster is cleaned up on exit.
    """

    def __init__(self, cluster: Cluster, ingress: str, owns_cleanup: bool) -> None:
        self._cluster = cluster
        self._ingress = ingress
        self._owns_cleanup = owns_cleanup

    @property
    def name(self) -> str:
        return self._cluster.name

    @property
    def ingress(self) -> str:
        """``address:port`` where the ingress controller is reachable from the host."""
        return self._ingress

    @property
    def kubeconfig(self) -> str:
        return self._cluster.kubeconfig

    @property
    def owns_cleanup(self) -> bool:
        return self._owns_cleanup

    def delete(self) -> None:
        """Delete the cluster regardless of cleanup ownership."""
        self._cluster.delete()

    def cleanup(self) -> None:
        """Delete the cluster if this handle owns its cleanup."""
        if not self._owns_cleanup:
            logger.info("Keeping cluster %s: cleanup not owned by this handle", self.name)
            return
        self.delete()

    def __enter__(self) -> E2eCluster:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()

    def __repr__(self) -> str:
        return f"E2eCluster(name={self.name!r}, ingress={self._ingress!r})"


# ============================================================================
# Post-install hooks
# ============================================================================

def install_contour_ingress(cluster: E2eCluster) -> None:
    """Install the Contour ingress controller and its configuration.

    Raises:
        FetchError: If a manifest cannot be downloaded.
        ManifestError: If a manifest cannot be applied.
    """
    console.print(Panel.fit("Installing Contour ingress", style="bold blue"))
    client = Client.from_kubeconfig(cluster.kubeconfig)

    for manifest in CONTOUR_MANIFESTS:
        url = CONTOUR_BASE_URL + manifest
        logger.info("Applying %s", url)
        client.apply(fetch_url(url))

    client.apply(CONTOUR_CONFIG)
    console.print("[green]✅ Contour ingress installed[/green]")


# ============================================================================
# Cluster construction
# ============================================================================

def _create_e2e_cluster(config: E2eClusterConfig, provider: KindProvider) -> E2eCluster:
    cluster = ClusterConfig(config.name, config.cluster_options()).create(provider)
    e2e = E2eCluster(cluster, config.ingress, owns_cleanup=config.auto_cleanup)

    for hook in config.post_install:
        try:
            hook(e2e)
        except Exception:
            delete_best_effort(cluster)
            raise

    if config.wait > 0:
        logger.info("Waiting %gs for cluster %s to settle", config.wait, config.name)
        time.sleep(config.wait)

    return e2e


def build_e2e_cluster(
    config: E2eClusterConfig | None = None,
    *options: E2eClusterOption,
    provider: KindProvider | None = None,
) -> E2eCluster:
    """Build a cluster for e2e tests.

    An existing cluster with the same name is reused if ``reuse`` is set,
    and deleted and created again otherwise.

    Args:
        config: Base configuration, or None for ``default_e2e_cluster_config()``.
        *options: Option functions applied to the configuration in order.
        provider: Backend session, or None for a new one.

    Returns:
        Handle to the cluster.

    Raises:
        ConfigError: If an option or an E2E_* environment variable is invalid.
        E2eClusterError: If creating the cluster fails.
        Exception: Any error raised by a post-install hook, after the cluster is deleted.
    """
    config = resolve_e2e_config(config if config is not None else default_e2e_cluster_config(), options)
    provider = provider if provider is not None else KindProvider()

    existing = get_cluster(config.name, config.kubeconfig, provider)
    if existing is not None:
        if config.reuse:
            console.print(f"[yellow]ℹ️  Reusing existing cluster '{config.name}'[/yellow]")
            return E2eCluster(existing, config.ingress, owns_cleanup=False)
        console.print(f"[yellow]⚠️  Cluster '{config.name}' already exists, recreating it[/yellow]")
        existing.delete()

    return _create_e2e_cluster(config, provider)


def build_default_e2e_cluster(provider: KindProvider | None = None) -> E2eCluster:
    """Build an e2e test cluster with the default configuration."""
    return build_e2e_cluster(default_e2e_cluster_config(), provider=provider)


def delete_e2e_cluster(name: str, quiet: bool = False, provider: KindProvider | None = None) -> None:
    """Delete an e2e cluster given its name.

    Raises:
        ClusterNotFoundError: If the cluster does not exist and quiet is not set.
        ClusterError: If the backend fails to delete the cluster.
    """
    delete_cluster(name, quiet=quiet, provider=provider)
