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

"""Image presence checks, parallel pulls, and archive loading into cluster nodes."""

from __future__ import annotations

import os
import tempfile
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path

import docker
import sh
from docker.utils import parse_repository_tag
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from e2e_cluster import console, logger
from e2e_cluster.constants import DEFAULT_IMAGE_PULL_MAX_WORKERS
from e2e_cluster.errors import (
    ClusterError,
    CommandNotFoundError,
    ImageError,
    ImageLoadError,
    ImagePullError,
    ImageSaveError,
)
from e2e_cluster.utils import command_output


# ============================================================================
# Image pulling
# ============================================================================

def _ensure_image(docker_client: docker.DockerClient, image: str) -> tuple[str, bool, str | None]:
    """Pull a single image unless it is already present locally."""
    try:
        docker_client.images.get(image)
        return (image, True, None)
    except docker.errors.ImageNotFound:
        pass
    except docker.errors.DockerException as e:
        return (image, False, f"Docker API error: {e}")
    except Exception as e:
        return (image, False, str(e))

    repository, tag = parse_repository_tag(image)
    try:
        docker_client.images.pull(repository, tag=tag or "latest")
        return (image, True, None)
    except docker.errors.ImageNotFound:
        return (image, False, "Image not found")
    except docker.errors.DockerException as e:
        return (image, False, f"Docker API error: {e}")
    except Exception as e:
        return (image, False, str(e))


def _run_parallel_pulls(docker_client: docker.DockerClient, images: Sequence[str]) -> list[str]:
    """Ensure images in parallel with progress bar. Returns failed images in request order."""
    failed: set[str] = set()
    with Progress(
        SpinnerColumn(), TextColumn("[progress.description]{task.description}"),
        BarColumn(), TaskProgressColumn(), console=console,
    ) as progress:
        task = progress.add_task("[cyan]Checking images...", total=len(images))
        max_workers = min(len(images), DEFAULT_IMAGE_PULL_MAX_WORKERS)
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = [executor.submit(_ensure_image, docker_client, img) for img in images]
            for future in as_completed(futures):
                image, success, error = future.result()
                progress.advance(task)
                if success:
                    console.print(f"[green]✓ {image}[/green]")
                else:
                    console.print(f"[red]✗ {image} - {error}[/red]")
                    failed.add(image)
    return [img for img in images if img in failed]


def _connect() -> docker.DockerClient:
    try:
        return docker.from_env()
    except docker.errors.DockerException as e:
        raise ImageError(f"Failed to connect to Docker: {e}") from e


def ensure_images(images: Sequence[str], docker_client: docker.DockerClient | None = None) -> None:
    """Make sure every image is present locally, pulling the missing ones.

    Args:
        images: Image references to check.
        docker_client: Docker client to use, or None to connect from the environment.

    Raises:
        ImageError: If Docker is not reachable.
        ImagePullError: If any image is missing and cannot be pulled.
    """
    if not images:
        return

    owned = docker_client is None
    client = _connect() if owned else docker_client
    try:
        failed = _run_parallel_pulls(client, images)
    finally:
        if owned:
            client.close()

    if failed:
        raise ImagePullError(failed)


# ============================================================================
# Archive save and load
# ============================================================================

def _save_images(images: Sequence[str], archive: str) -> None:
    """Save all images into one archive with a single ``docker save``."""
    try:
        sh.docker("save", "-o", archive, *images)
    except sh.CommandNotFound as err:
        raise CommandNotFoundError("Required command 'docker' not found. Please install it first.") from err
    except sh.ErrorReturnCode as err:
        raise ImageSaveError(f"error saving images {', '.join(images)}: {command_output(err.stderr)}") from err


def load_images(
    images: Sequence[str],
    nodes: Sequence[str],
    load_archive: Callable[[str, str], None],
    docker_client: docker.DockerClient | None = None,
) -> None:
    """Load images into the local image store of every node.

    All images are first made present locally, then saved into a single
    archive which is streamed into each node, one node at a time.

    Args:
        images: Image references to pre-load.
        nodes: Names of the cluster nodes.
        load_archive: Callable loading an archive path into a named node.
        docker_client: Docker client to use, or None to connect from the environment.

    Raises:
        ImagePullError: If an image is missing and cannot be pulled.
        ImageSaveError: If the archive cannot be written.
        ImageLoadError: If a node fails to load the archive.
    """
    if not images:
        return

    console.print(Panel.fit("Pre-loading images into cluster nodes", style="bold blue"))
    ensure_images(images, docker_client)

    fd, archive = tempfile.mkstemp(prefix="images", suffix=".tar")
    os.close(fd)
    try:
        _save_images(images, archive)
        for node in nodes:
            logger.info("Loading %d images into node %s", len(images), node)
            try:
                load_archive(archive, node)
            except ClusterError as err:
                raise ImageLoadError(node, str(err)) from err
        console.print(f"[green]✅ Loaded {len(images)} images into {len(nodes)} nodes[/green]")
    finally:
        Path(archive).unlink(missing_ok=True)
