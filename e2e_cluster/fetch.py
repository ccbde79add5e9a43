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

"""Retrieval of manifest content from http(s) and file URLs."""

from __future__ import annotations

from pathlib import Path
from urllib.parse import unquote, urlparse

import requests

from e2e_cluster.constants import FETCH_TIMEOUT_SECONDS
from e2e_cluster.errors import FetchError


def fetch_url(source: str) -> str:
    """Return the content of a URL as text.

    Args:
        source: An ``http``, ``https`` or ``file`` URL.

    Raises:
        FetchError: If the scheme is unsupported or the content cannot be read.
    """
    parsed = urlparse(source)
    if parsed.scheme in ("http", "https"):
        try:
            response = requests.get(source, timeout=FETCH_TIMEOUT_SECONDS)
            response.raise_for_status()
        except requests.RequestException as err:
            raise FetchError(f"failed to fetch {source}: {err}") from err
        return response.text

    if parsed.scheme == "file":
        try:
            return Path(unquote(parsed.path)).read_text()
        except OSError as err:
            raise FetchError(f"failed to read {source}: {err}") from err

    raise FetchError(f"unsupported URL scheme {parsed.scheme!r} in {source}")
