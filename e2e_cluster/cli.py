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

"""
e2e-cluster - Create and delete clusters for e2e tests.

Examples:
    # Create the default e2e cluster with Contour ingress on port 30080
    e2e-cluster setup

    # Custom name and ingress port, with an extra image pre-loaded
    e2e-cluster setup --name my-e2e --port 32080 -i ghcr.io/org/app:dev

    # Delete a cluster, ignoring it if it does not exist
    e2e-cluster cleanup --name my-e2e --quiet

E2E_* environment variables are not applied by the CLI; use the flags instead.
"""

from __future__ import annotations

import logging
import sys

import typer

from e2e_cluster import console
from e2e_cluster.config import (
    default_e2e_cluster_config,
    with_env_override,
    with_images,
    with_ingress_port,
    with_name,
)
from e2e_cluster.constants import DEFAULT_E2E_CLUSTER_NAME, DEFAULT_INGRESS_PORT
from e2e_cluster.e2e import build_e2e_cluster, delete_e2e_cluster
from e2e_cluster.utils import require_command

app = typer.Typer(help="Create and delete clusters for e2e tests.")


@app.callback()
def configure(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Create and delete clusters for e2e tests."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


def _check_prerequisites(*commands: str) -> None:
    """Fail early if a required CLI tool is missing."""
    for cmd in commands:
        require_command(cmd)
    console.print("[green]✅ All required tools are available[/green]")


@app.command()
def setup(
    name: str = typer.Option(DEFAULT_E2E_CLUSTER_NAME, "--name", "-n", help="Name of the cluster"),
    port: int = typer.Option(DEFAULT_INGRESS_PORT, "--port", "-p", help="Ingress port"),
    images: list[str] | None = typer.Option(
        None, "--image", "-i",
        help="Image to pre-load in the cluster. Can be specified multiple times (default: the agent image)"),
) -> None:
    """Create and configure an e2e test cluster with default options."""
    options = [with_env_override(False), with_name(name), with_ingress_port(port)]
    if images:
        options.append(with_images(*images))

    try:
        _check_prerequisites("kind", "docker")
        cluster = build_e2e_cluster(default_e2e_cluster_config(), *options)
    except Exception as e:
        console.print(f"[red]❌ failed to create cluster: {e}[/red]")
        sys.exit(1)

    typer.echo(f'cluster "{cluster.name}" created')


@app.command()
def cleanup(
    name: str = typer.Option(..., "--name", "-n", help="Name of the cluster"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Ignore errors if the cluster does not exist"),
) -> None:
    """Delete an e2e test cluster."""
    try:
        _check_prerequisites("kind")
        delete_e2e_cluster(name, quiet=quiet)
    except Exception as e:
        console.print(f"[red]❌ failed to delete cluster: {e}[/red]")
        sys.exit(1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
