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

"""Tunnels from a local port to a pod port, backed by ``kubectl port-forward``."""

from __future__ import annotations

import re
import subprocess
import threading
from collections import deque
from typing import IO

from e2e_cluster import logger
from e2e_cluster.constants import (
    PORT_FORWARD_ADDRESS,
    PORT_FORWARD_POLL_INTERVAL_SECONDS,
    PORT_FORWARD_STDERR_LINES,
    PORT_FORWARD_STOP_TIMEOUT_SECONDS,
)
from e2e_cluster.errors import CommandNotFoundError, PortForwardCancelledError, PortForwardError

_READY_PATTERN = re.compile(r"Forwarding from \S+:(\d+) ->")


class PortForwardSession:
    """A live tunnel bound to one local port and one pod port.

    Background threads mirror the process output and stop the process when
    the cancellation event is set.
    """

    def __init__(
        self,
        proc: subprocess.Popen,
        cancel: threading.Event,
        stdout: IO[str] | None = None,
        stderr: IO[str] | None = None,
    ) -> None:
        self._proc = proc
        self._cancel = cancel
        self._stdout = stdout
        self._stderr = stderr
        self._ready = threading.Event()
        self._done = threading.Event()
        self._local_port = 0
        self._errors: deque[str] = deque(maxlen=PORT_FORWARD_STDERR_LINES)
        self._stderr_reader = threading.Thread(target=self._read_stderr, name="port-forward-stderr", daemon=True)
        self._stdout_reader = threading.Thread(target=self._read_stdout, name="port-forward-stdout", daemon=True)
        self._watcher = threading.Thread(target=self._watch_cancel, name="port-forward-cancel", daemon=True)

    @property
    def local_port(self) -> int:
        return self._local_port

    def start(self) -> None:
        self._stderr_reader.start()
        self._stdout_reader.start()
        self._watcher.start()

    def _read_stdout(self) -> None:
        for line in self._proc.stdout:
            if self._stdout is not None:
                self._stdout.write(line)
            if not self._ready.is_set():
                match = _READY_PATTERN.search(line)
                if match:
                    self._local_port = int(match.group(1))
                    self._ready.set()
        self._stderr_reader.join()
        code = self._proc.wait()
        logger.debug("kubectl port-forward exited with code %s", code)
        self._done.set()

    def _read_stderr(self) -> None:
        for line in self._proc.stderr:
            self._errors.append(line.rstrip("\n"))
            if self._stderr is not None:
                self._stderr.write(line)

    def _watch_cancel(self) -> None:
        while not self._cancel.wait(PORT_FORWARD_POLL_INTERVAL_SECONDS):
            if self._done.is_set():
                return
        self.stop()

    def stop(self) -> None:
        """Terminate the tunnel process, killing it if it does not exit in time."""
        if self._proc.poll() is not None:
            return
        self._proc.terminate()
        try:
            self._proc.wait(timeout=PORT_FORWARD_STOP_TIMEOUT_SECONDS)
        except subprocess.TimeoutExpired:
            self._proc.kill()
            self._proc.wait()

    def wait_ready(self) -> int:
        """Block until the tunnel is ready, cancelled, or has failed.

        Returns:
            The local port the tunnel listens on.

        Raises:
            PortForwardCancelledError: If the cancellation event is set first.
            PortForwardError: If the tunnel exits before becoming ready.
        """
        while True:
            if self._ready.is_set():
                return self._local_port
            if self._cancel.is_set():
                self.stop()
                raise PortForwardCancelledError("port forwarding cancelled before it was ready")
            if self._done.is_set():
                detail = "\n".join(self._errors).strip() or f"exit code {self._proc.returncode}"
                raise PortForwardError(f"failed to start port forwarding: {detail}")
            self._ready.wait(PORT_FORWARD_POLL_INTERVAL_SECONDS)


def forward_pod_port(
    kubeconfig: str,
    namespace: str,
    pod: str,
    remote_port: int,
    cancel: threading.Event,
    local_port: int = 0,
    stdout: IO[str] | None = None,
    stderr: IO[str] | None = None,
) -> int:
    """Forward a local port to a pod's port.

    ``kubectl`` upgrades a connection to the pod ``portforward`` subresource
    and listens on the loopback address. A local port of 0 lets it pick a
    free one.

    Args:
        kubeconfig: Path to the kubeconfig of the cluster, or empty for the default.
        namespace: Namespace of the pod.
        pod: Name of the pod.
        remote_port: Port on the pod to forward to.
        cancel: Event that stops the tunnel when set.
        local_port: Local port to listen on, 0 for any free port.
        stdout: Stream receiving the tunnel's output, if any.
        stderr: Stream receiving the tunnel's error output, if any.

    Returns:
        The local port the tunnel listens on.

    Raises:
        CommandNotFoundError: If ``kubectl`` is not installed.
        PortForwardCancelledError: If ``cancel`` is set before the tunnel is ready.
        PortForwardError: If the tunnel fails before it is ready.
    """
    cmd = [
        "kubectl", "port-forward", f"pod/{pod}", f"{local_port}:{remote_port}",
        "-n", namespace,
        "--address", PORT_FORWARD_ADDRESS,
    ]
    if kubeconfig:
        cmd += ["--kubeconfig", kubeconfig]

    try:
        proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True, bufsize=1)
    except FileNotFoundError as err:
        raise CommandNotFoundError("Required command 'kubectl' not found. Please install it first.") from err

    session = PortForwardSession(proc, cancel, stdout=stdout, stderr=stderr)
    session.start()
    port = session.wait_ready()
    logger.info("Tunnel ready: %s:%d -> %s/%s:%d", PORT_FORWARD_ADDRESS, port, namespace, pod, remote_port)
    return port
