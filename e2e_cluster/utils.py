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

"""Utility functions for command checks, host ports, and command output."""

from __future__ import annotations

import socket

import sh

from e2e_cluster.errors import CommandNotFoundError, PortUnavailableError


def require_command(cmd: str) -> None:
    """Check if a command exists on the system PATH.

    Args:
        cmd: Name of the CLI command to check.

    Raises:
        CommandNotFoundError: If the command is not found.
    """
    try:
        sh.which(cmd)
    except sh.ErrorReturnCode as err:
        raise CommandNotFoundError(f"Required command '{cmd}' not found. Please install it first.") from err


def check_host_port(port: int) -> None:
    """Bind to a host port and release it immediately to check it is free.

    Args:
        port: TCP port on the local machine.

    Raises:
        PortUnavailableError: If the port cannot be bound.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind(("", port))
        except OSError as err:
            raise PortUnavailableError(port) from err


def command_output(output: object) -> str:
    """Decode the stderr/stdout bytes carried by an ``sh`` error, if any."""
    if isinstance(output, bytes):
        return output.decode(errors="replace").strip()
    return str(output or "").strip()
