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

"""Constants, dependency loading, and dep_value helper."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml


def load_dependencies() -> dict:
    """Load image references and manifest URLs from dependencies.yaml.

    Returns:
        Parsed YAML content as a nested dictionary.
    """
    deps_file = Path(__file__).resolve().parent / "dependencies.yaml"
    with open(deps_file) as f:
        return yaml.safe_load(f)


DEPENDENCIES = load_dependencies()


def dep_value(*keys: str, default: Any = None) -> Any:
    """Safely traverse the DEPENDENCIES dict by key path.

    Args:
        *keys: Sequence of dictionary keys to traverse.
        default: Value to return if any key is missing.

    Returns:
        The value at the nested key path, or *default* if not found.
    """
    node = DEPENDENCIES
    for key in keys:
        if not isinstance(node, dict):
            return default
        node = node.get(key)
        if node is None:
            return default
    return node


# -- kind config document --
KIND_CONFIG_HEADER = """kind: Cluster
apiVersion: kind.x-k8s.io/v1alpha4
nodes:
- role: control-plane"""

KIND_PORT_MAPPINGS_HEADER = "\n  extraPortMappings:"

KIND_PORT_MAPPING = """
  - containerPort: {node_port}
    hostPort: {host_port}
    listenAddress: "0.0.0.0"
    protocol: tcp"""

KIND_WORKER_NODE = "\n- role: worker"

KIND_ETCD_RAM_DISK_PATCH = """
kubeadmConfigPatches:
- |
  kind: ClusterConfiguration
  etcd:
    local:
      dataDir: /tmp/etcd"""

KIND_NODE_IMAGE_REPOSITORY = dep_value("kind", "node_image_repository", default="kindest/node")

# -- Cluster defaults --
DEFAULT_CLUSTER_NAME = "test-cluster"

# -- E2E cluster defaults --
DEFAULT_E2E_CLUSTER_NAME = "e2e-test"
DEFAULT_INGRESS_ADDRESS = "localhost"
DEFAULT_INGRESS_PORT = 30080
DEFAULT_INGRESS_NODE_PORT = 80
DEFAULT_E2E_WAIT_SECONDS = 60.0
DEFAULT_AGENT_IMAGE = dep_value("agent", "image", default="ghcr.io/grafana/xk6-disruptor-agent:latest")

# -- Environment overrides --
ENV_PREFIX = "E2E_"

# -- Contour ingress --
CONTOUR_BASE_URL = dep_value("contour", "base_url", default="")
CONTOUR_MANIFESTS: tuple[str, ...] = tuple(dep_value("contour", "manifests", default=[]))
CONTOUR_CONFIG = """
apiVersion: v1
kind: ConfigMap
metadata:
  name: contour
  namespace: projectcontour
data:
  contour.yaml: |
    disablePermitInsecure: false
    ingress-status-address: local.projectcontour.io
"""

# -- Dynamic client --
FIELD_MANAGER = "e2e-cluster"
DEFAULT_NAMESPACE = "default"
MANIFEST_SEPARATOR = "---"

# -- Port forwarding --
PORT_FORWARD_ADDRESS = "127.0.0.1"
PORT_FORWARD_POLL_INTERVAL_SECONDS = 0.1
PORT_FORWARD_STOP_TIMEOUT_SECONDS = 5
PORT_FORWARD_STDERR_LINES = 20

# -- Fetching --
FETCH_TIMEOUT_SECONDS = 30

# -- Parallelism & limits --
DEFAULT_IMAGE_PULL_MAX_WORKERS = 5
