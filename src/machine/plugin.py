"""
Driver plugin client.

A driver plugin is an executable started as ``<plugin> serve`` that
answers newline-delimited JSON requests on stdin/stdout:

    -> {"id": 1, "method": "GetState", "params": {}}
    <- {"id": 1, "result": "Running"}
    <- {"id": 1, "error": "Not Implemented"}
"""

from __future__ import annotations

import json
import logging
import subprocess
import threading
from pathlib import Path
from typing import Any, Optional, Union

from common.exceptions import RemoteCallError

logger = logging.getLogger(__name__)


class PluginClient:
    """
    Remote-procedure client for a driver plugin subprocess.

    Calls are serialized; one request is in flight at a time.

    Usage:
        with PluginClient(LIBVIRT_DRIVER_PATH) as client:
            driver = RemoteDriver(client)
            driver.get_state()
    """

    def __init__(self, executable: Union[str, Path]):
        self.executable = str(executable)
        self._proc: Optional[subprocess.Popen] = None
        self._lock = threading.Lock()
        self._next_id = 0

    @staticmethod
    def _close_streams(proc: subprocess.Popen) -> None:
        for stream in (proc.stdin, proc.stdout):
            if stream is not None:
                stream.close()

    def _ensure_started(self) -> subprocess.Popen:
        if self._proc is not None:
            if self._proc.poll() is None:
                return self._proc
            logger.debug(
                f"Driver plugin {self.executable} exited with {self._proc.returncode}, restarting"
            )
            self._close_streams(self._proc)
            self._proc = None
        try:
            self._proc = subprocess.Popen(
                [self.executable, "serve"],
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                text=True,
                bufsize=1,
            )
        except OSError as e:
            raise RemoteCallError(f"cannot start driver plugin {self.executable}: {e}") from e
        logger.debug(f"Started driver plugin {self.executable} (pid {self._proc.pid})")
        return self._proc

    def call(self, method: str, **params: Any) -> Any:
        """
        Invoke ``method`` on the plugin.

        Raises:
            RemoteCallError: On an error response or a broken plugin
        """
        with self._lock:
            proc = self._ensure_started()
            self._next_id += 1
            request_id = self._next_id
            request = json.dumps({"id": request_id, "method": method, "params": params})

            try:
                proc.stdin.write(request + "\n")
                proc.stdin.flush()
                line = proc.stdout.readline()
            except OSError as e:
                raise RemoteCallError(f"driver plugin connection lost: {e}", method) from e

            if not line:
                raise RemoteCallError("driver plugin exited unexpectedly", method)

            try:
                response = json.loads(line)
            except json.JSONDecodeError as e:
                raise RemoteCallError(f"malformed driver plugin response: {e}", method) from e

            if response.get("id") != request_id:
                raise RemoteCallError(
                    f"driver plugin answered request {response.get('id')}, expected {request_id}",
                    method,
                )
            if response.get("error"):
                raise RemoteCallError(str(response["error"]), method)
            return response.get("result")

    def close(self) -> None:
        """Stop the plugin process."""
        with self._lock:
            if self._proc is None:
                return
            if self._proc.poll() is None:
                self._proc.terminate()
                try:
                    self._proc.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    self._proc.kill()
                    self._proc.wait()
            self._close_streams(self._proc)
            self._proc = None

    def __enter__(self) -> "PluginClient":
        return self

    def __exit__(self, *args) -> None:
        self.close()
