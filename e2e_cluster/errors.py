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

"""Exceptions raised by cluster provisioning, image preloading, and the Kubernetes client."""

from __future__ import annotations

from collections.abc import Sequence


class E2eClusterError(RuntimeError):
    """Base class for every error raised by this package."""


class ConfigError(E2eClusterError, ValueError):
    """Invalid configuration, rejected before any external call."""


class CommandNotFoundError(E2eClusterError):
    """A required CLI tool is not on the PATH."""


class PortUnavailableError(E2eClusterError):
    """A host port requested for a NodePort mapping is already bound.

    Attributes:
        port: The host port that could not be bound.
    """

    def __init__(self, port: int) -> None:
        super().__init__(f"host port is not available: {port}")
        self.port = port


class ClusterError(E2eClusterError):
    """A provisioning backend operation failed."""


class ClusterNotFoundError(ClusterError):
    """The named cluster is not registered in the provisioning backend."""

    def __init__(self, name: str) -> None:
        super().__init__(f"cluster '{name}' does not exist")
        self.name = name


class ImageError(E2eClusterError):
    """Base class for image preloading failures."""


class ImagePullError(ImageError):
    """One or more images are absent locally and could not be pulled.

    Attributes:
        images: Images that failed to pull, in request order.
    """

    def __init__(self, images: Sequence[str], detail: str = "") -> None:
        message = f"failed to pull images: {', '.join(images)}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.images = tuple(images)


class ImageSaveError(ImageError):
    """Saving the images into an archive failed."""


class ImageLoadError(ImageError):
    """Loading the image archive into a cluster node failed.

    Attributes:
        node: Name of the node that rejected the archive.
    """

    def __init__(self, node: str, detail: str) -> None:
        super().__init__(f"failed to load images into node '{node}': {detail}")
        self.node = node


class FetchError(E2eClusterError):
    """Content could not be retrieved from a URL."""


class ManifestError(E2eClusterError):
    """Base class for manifest apply failures."""


class EmptyManifestError(ManifestError):
    """The manifest text contains no documents."""

    def __init__(self) -> None:
        super().__init__("empty manifest")


class ManifestDecodeError(ManifestError):
    """A manifest document is not a valid Kubernetes object."""


class ResourceMappingError(ManifestError):
    """A kind could not be resolved to an API resource through discovery."""


class ApplyError(ManifestError):
    """The API server rejected a server-side apply."""


class PortForwardError(E2eClusterError):
    """A port-forward tunnel failed before becoming ready."""


class PortForwardCancelledError(PortForwardError):
    """The cancellation token fired before the tunnel became ready."""
