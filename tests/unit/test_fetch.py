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

"""Tests for URL fetching."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from e2e_cluster.errors import FetchError
from e2e_cluster.fetch import fetch_url


class TestFetchUrl:
    """Tests for fetch_url."""

    def test_file_url(self, tmp_path):
        manifest = tmp_path / "manifest.yaml"
        manifest.write_text("kind: Namespace\n")

        assert fetch_url(manifest.as_uri()) == "kind: Namespace\n"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FetchError):
            fetch_url((tmp_path / "missing.yaml").as_uri())

    def test_http_url(self):
        response = MagicMock(text="kind: Namespace\n")
        with patch("e2e_cluster.fetch.requests.get", return_value=response) as get:
            assert fetch_url("https://example.com/00-common.yaml") == "kind: Namespace\n"

        get.assert_called_once_with("https://example.com/00-common.yaml", timeout=30)
        response.raise_for_status.assert_called_once()

    def test_http_error(self):
        response = MagicMock()
        response.raise_for_status.side_effect = requests.HTTPError("404 Client Error")
        with patch("e2e_cluster.fetch.requests.get", return_value=response):
            with pytest.raises(FetchError, match="404"):
                fetch_url("https://example.com/missing.yaml")

    def test_unsupported_scheme(self):
        with pytest.raises(FetchError, match="ftp"):
            fetch_url("ftp://example.com/manifest.yaml")
