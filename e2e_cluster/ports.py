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

"""Pool arbitrating concurrent use of a fixed set of pre-mapped node ports."""

from __future__ import annotations

import threading
from collections.abc import Iterable

from e2e_cluster import logger
from e2e_cluster.config import NodePort


class NodePortPool:
    """A fixed, ordered set of NodePort mappings shared by concurrent tests.

    Each entry has at most one holder at a time. Allocation hands out the
    first free entry in pool order.
    """

    def __init__(self, ports: Iterable[NodePort]) -> None:
        self._ports = tuple(ports)
        self._in_use = [False] * len(self._ports)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._ports)

    @property
    def available(self) -> int:
        """Number of entries not currently held."""
        with self._lock:
            return self._in_use.count(False)

    def allocate_port(self) -> NodePort | None:
        """Take the first free entry.

        Returns:
            The allocated mapping, or None if every entry is held.
        """
        with self._lock:
            for i, in_use in enumerate(self._in_use):
                if not in_use:
                    self._in_use[i] = True
                    return self._ports[i]
        logger.debug("NodePort pool exhausted (%d entries)", len(self._ports))
        return None

    def release_port(self, port: NodePort) -> None:
        """Return a held entry to the pool. Releasing a free or unknown entry is a no-op."""
        with self._lock:
            for i, candidate in enumerate(self._ports):
                if candidate == port and self._in_use[i]:
                    self._in_use[i] = False
                    return
