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

"""Tests for manifest apply through the dynamic client."""

import threading
from unittest.mock import MagicMock, patch

import pytest
from kubernetes.client.exceptions import ApiException
from kubernetes.dynamic.exceptions import ResourceNotFoundError
from urllib3.exceptions import MaxRetryError

from e2e_cluster.errors import ApplyError, EmptyManifestError, ManifestDecodeError, ResourceMappingError
from e2e_cluster.kubectl import Client, split_manifests

NAMESPACE_AND_CONFIGMAP = """# test resources
apiVersion: v1
kind: Namespace
metadata:
  name: testing
---

apiVersion: v1
kind: ConfigMap
metadata:
  name: settings
  namespace: testing
data:
  key: value
"""

POD = """apiVersion: v1
kind: Pod
metadata:
  name: busybox
spec:
  containers:
  - name: busybox
    image: busybox
"""


def _resource(namespaced):
    resource = MagicMock()
    resource.namespaced = namespaced
    return resource


@pytest.fixture
def dynamic_client():
    dyn = MagicMock()
    scopes = {"Namespace": False, "ConfigMap": True, "Pod": True}
    dyn.resources.get.side_effect = lambda api_version, kind: _resource(scopes[kind])
    return dyn


class TestSplitManifests:
    """Tests for split_manifests."""

    @pytest.mark.parametrize("text", ["", "# only comments\n\n", "---\n---\n"])
    def test_empty_manifest(self, text):
        with pytest.raises(EmptyManifestError, match="empty manifest"):
            split_manifests(text)

    def test_splits_on_separator_lines_only(self):
        manifests = split_manifests("a: 1\nb: '---'\n---\nc: 2\n")

        assert manifests == ["a: 1\nb: '---'", "c: 2"]


class TestApply:
    """Tests for Client.apply."""

    def test_empty_manifest_makes_no_calls(self, dynamic_client):
        client = Client(dynamic_client=dynamic_client)

        with pytest.raises(EmptyManifestError):
            client.apply("# only comments\n\n")

        dynamic_client.server_side_apply.assert_not_called()

    def test_documents_are_applied_in_order(self, dynamic_client):
        Client(dynamic_client=dynamic_client).apply(NAMESPACE_AND_CONFIGMAP)

        calls = dynamic_client.server_side_apply.call_args_list
        assert [c.kwargs["body"]["kind"] for c in calls] == ["Namespace", "ConfigMap"]
        assert all(c.kwargs["field_manager"] == "e2e-cluster" for c in calls)

    def test_namespace_handling(self, dynamic_client):
        client = Client(dynamic_client=dynamic_client)

        client.apply(NAMESPACE_AND_CONFIGMAP)
        client.apply(POD)

        namespaces = [c.kwargs["namespace"] for c in dynamic_client.server_side_apply.call_args_list]
        assert namespaces == [None, "testing", "default"]

    def test_resource_mapping_is_cached(self, dynamic_client):
        client = Client(dynamic_client=dynamic_client)

        client.apply(POD)
        client.apply(POD)

        dynamic_client.resources.get.assert_called_once_with(api_version="v1", kind="Pod")

    def test_invalid_yaml(self, dynamic_client):
        with pytest.raises(ManifestDecodeError):
            Client(dynamic_client=dynamic_client).apply("kind: [Pod\n")

    def test_missing_kind(self, dynamic_client):
        with pytest.raises(ManifestDecodeError, match="kind"):
            Client(dynamic_client=dynamic_client).apply("apiVersion: v1\nmetadata:\n  name: x\n")

    def test_missing_name(self, dynamic_client):
        with pytest.raises(ManifestDecodeError, match="metadata.name"):
            Client(dynamic_client=dynamic_client).apply("apiVersion: v1\nkind: Pod\n")

    def test_unknown_kind(self, dynamic_client):
        dynamic_client.resources.get.side_effect = ResourceNotFoundError("No matches found for Widget")

        with pytest.raises(ResourceMappingError, match="Widget"):
            Client(dynamic_client=dynamic_client).apply("apiVersion: example.com/v1\nkind: Widget\nmetadata:\n  name: w\n")

        dynamic_client.server_side_apply.assert_not_called()

    def test_rejected_apply_names_document(self, dynamic_client):
        dynamic_client.server_side_apply.side_effect = ApiException(status=422, reason="Unprocessable Entity")

        with pytest.raises(ApplyError, match="Pod/busybox"):
            Client(dynamic_client=dynamic_client).apply(POD)

    def test_first_failure_stops_apply(self, dynamic_client):
        dynamic_client.server_side_apply.side_effect = [ApiException(status=500, reason="boom"), None]

        with pytest.raises(ApplyError, match="Namespace/testing"):
            Client(dynamic_client=dynamic_client).apply(NAMESPACE_AND_CONFIGMAP)

        assert dynamic_client.server_side_apply.call_count == 1


    def test_unreachable_api_server_during_discovery(self):
        with patch("e2e_cluster.kubectl.k8s_config.new_client_from_config"), \
                patch("e2e_cluster.kubectl.DynamicClient", side_effect=MaxRetryError(None, "/version")):
            with pytest.raises(ResourceMappingError, match="API discovery failed"):
                Client("/tmp/kc").apply(POD)

    def test_connection_lost_during_apply(self, dynamic_client):
        dynamic_client.server_side_apply.side_effect = MaxRetryError(None, "/api/v1/namespaces/default/pods/busybox")

        with pytest.raises(ApplyError, match="Pod/busybox"):
            Client(dynamic_client=dynamic_client).apply(POD)


class TestForwardPodPort:
    """Tests for Client.forward_pod_port."""

    def test_delegates_with_kubeconfig(self):
        cancel = threading.Event()
        with patch("e2e_cluster.kubectl.forward_pod_port", return_value=40123) as forward:
            port = Client("/tmp/kc").forward_pod_port("ns", "web", 8080, cancel, local_port=40123)

        assert port == 40123
        forward.assert_called_once_with(
            "/tmp/kc", "ns", "web", 8080, cancel, local_port=40123, stdout=None, stderr=None,
        )
