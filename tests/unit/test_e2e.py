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

"""Tests for the e2e cluster facade."""

import socket
from unittest.mock import MagicMock, call, patch

import pytest

from e2e_cluster.cluster import KindProvider
from e2e_cluster.config import E2eClusterConfig, with_env_override, with_post_install, with_reuse, with_wait
from e2e_cluster.constants import CONTOUR_BASE_URL, CONTOUR_CONFIG, CONTOUR_MANIFESTS
from e2e_cluster.e2e import E2eCluster, build_e2e_cluster, delete_e2e_cluster, install_contour_ingress
from e2e_cluster.errors import ClusterNotFoundError


@pytest.fixture
def provider():
    fake = MagicMock(spec=KindProvider)
    fake.list_clusters.return_value = []
    return fake


@pytest.fixture
def config():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("", 0))
        port = sock.getsockname()[1]
    return E2eClusterConfig(name="e2e", ingress_port=port, env_override=False, kubeconfig="/tmp/e2e-kc")


class TestBuildE2eCluster:
    """Tests for build_e2e_cluster."""

    def test_creates_missing_cluster(self, provider, config):
        cluster = build_e2e_cluster(config, provider=provider)

        provider.create.assert_called_once()
        assert "hostPort: %d" % config.ingress_port in provider.create.call_args.args[1]
        assert "containerPort: 80" in provider.create.call_args.args[1]
        assert cluster.name == "e2e"
        assert cluster.ingress == f"localhost:{config.ingress_port}"
        assert cluster.kubeconfig == "/tmp/e2e-kc"
        assert cluster.owns_cleanup is True

    def test_reuses_existing_cluster(self, provider, config):
        provider.list_clusters.return_value = ["e2e"]

        cluster = build_e2e_cluster(config, with_reuse(True), provider=provider)

        provider.create.assert_not_called()
        assert cluster.owns_cleanup is False
        cluster.cleanup()
        provider.delete.assert_not_called()

    def test_recreates_existing_cluster(self, provider, config):
        provider.list_clusters.return_value = ["e2e"]

        build_e2e_cluster(config, provider=provider)

        names = [c[0] for c in provider.mock_calls if c[0] in ("delete", "create")]
        assert names == ["delete", "create"]

    def test_env_override_enables_reuse(self, provider, config, monkeypatch):
        provider.list_clusters.return_value = ["e2e"]
        monkeypatch.setenv("E2E_REUSE", "true")

        build_e2e_cluster(config, with_env_override(True), provider=provider)
        provider.create.assert_not_called()

        build_e2e_cluster(config, with_env_override(True), with_reuse(False), provider=provider)
        provider.create.assert_not_called()

    def test_post_install_hooks_run_in_order(self, provider, config):
        order = []
        first = MagicMock(side_effect=lambda c: order.append(("first", c.name)))
        second = MagicMock(side_effect=lambda c: order.append(("second", c.name)))

        build_e2e_cluster(config, with_post_install(first, second), provider=provider)

        assert order == [("first", "e2e"), ("second", "e2e")]
        assert isinstance(first.call_args.args[0], E2eCluster)

    def test_failed_hook_deletes_cluster(self, provider, config):
        hook = MagicMock(side_effect=RuntimeError("ingress failed"))
        later = MagicMock()

        with pytest.raises(RuntimeError, match="ingress failed"):
            build_e2e_cluster(config, with_post_install(hook, later), provider=provider)

        provider.delete.assert_called_once_with("e2e", "/tmp/e2e-kc")
        later.assert_not_called()

    def test_settle_wait_after_hooks(self, provider, config):
        steps = MagicMock()
        with patch("e2e_cluster.e2e.time.sleep") as sleep:
            steps.attach_mock(sleep, "sleep")
            build_e2e_cluster(config, with_wait(5), with_post_install(steps.hook), provider=provider)

        assert [c[0] for c in steps.mock_calls] == ["hook", "sleep"]
        sleep.assert_called_once_with(5)

    def test_no_wait_skips_sleep(self, provider, config):
        with patch("e2e_cluster.e2e.time.sleep") as sleep:
            build_e2e_cluster(config, provider=provider)

        sleep.assert_not_called()


class TestE2eCluster:
    """Tests for E2eCluster cleanup ownership."""

    def test_cleanup_deletes_owned_cluster(self):
        cluster = MagicMock()

        E2eCluster(cluster, "localhost:30080", owns_cleanup=True).cleanup()

        cluster.delete.assert_called_once()

    def test_delete_ignores_ownership(self):
        cluster = MagicMock()

        E2eCluster(cluster, "localhost:30080", owns_cleanup=False).delete()

        cluster.delete.assert_called_once()

    def test_context_manager_cleans_up(self):
        cluster = MagicMock()

        with E2eCluster(cluster, "localhost:30080", owns_cleanup=True) as e2e:
            assert e2e.ingress == "localhost:30080"

        cluster.delete.assert_called_once()


class TestInstallContourIngress:
    """Tests for install_contour_ingress."""

    def test_applies_manifests_then_config(self):
        cluster = MagicMock(kubeconfig="/tmp/e2e-kc")
        with patch("e2e_cluster.e2e.fetch_url", side_effect=lambda url: f"# {url}") as fetch, \
                patch("e2e_cluster.e2e.Client") as client_cls:
            install_contour_ingress(cluster)

        client_cls.from_kubeconfig.assert_called_once_with("/tmp/e2e-kc")
        client = client_cls.from_kubeconfig.return_value
        assert fetch.call_args_list == [call(CONTOUR_BASE_URL + m) for m in CONTOUR_MANIFESTS]
        expected = [call(f"# {CONTOUR_BASE_URL}{m}") for m in CONTOUR_MANIFESTS] + [call(CONTOUR_CONFIG)]
        assert client.apply.call_args_list == expected


class TestDeleteE2eCluster:
    """Tests for delete_e2e_cluster."""

    def test_missing_cluster(self, provider):
        with pytest.raises(ClusterNotFoundError):
            delete_e2e_cluster("missing", provider=provider)

        delete_e2e_cluster("missing", quiet=True, provider=provider)
