"""Kubernetes provider used to inspect the cluster and exec into the Vault pod."""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import urllib3
from kubernetes import client
from kubernetes import config as k8s_config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from kubernetes.stream import stream

from ..errors import RemoteTimeoutError


class ClusterError(RuntimeError):
    """Raised when the Kubernetes API rejects or fails a request."""


@dataclass(slots=True, frozen=True)
class ExecResult:
    """Outcome of a command executed inside a pod."""

    command: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        """Return ``True`` when the command exited with status zero."""
        return self.returncode == 0

    def detail(self) -> str:
        """Return the most useful output line for error messages."""
        return self.stderr.strip() or self.stdout.strip() or "no output"


@dataclass(slots=True)
class ClusterProvider:
    """Thin wrapper around ``CoreV1Api`` with explicit timeouts."""

    kubeconfig: Path | None = None
    context: str | None = None
    request_timeout: float = 10.0
    api: Any = field(default=None, repr=False)

    def core_api(self) -> Any:
        """Return a ``CoreV1Api`` bound to the configured kubeconfig."""
        if self.api is None:
            config_file = str(self.kubeconfig) if self.kubeconfig is not None else None
            try:
                api_client = k8s_config.new_client_from_config(
                    config_file=config_file,
                    context=self.context,
                )
            except (ConfigException, OSError) as exc:
                raise ClusterError(f"Unable to load kubeconfig {config_file}: {exc}") from exc
            self.api = client.CoreV1Api(api_client)
        return self.api

    def namespace_exists(self, name: str) -> bool:
        """Return ``True`` when namespace *name* exists."""
        api = self.core_api()
        try:
            api.read_namespace(name, _request_timeout=self.request_timeout)
        except ApiException as exc:
            if exc.status == 404:
                return False
            raise ClusterError(_api_error(f"read namespace {name}", exc)) from exc
        except (OSError, urllib3.exceptions.HTTPError) as exc:
            raise _transport_error(f"read namespace {name}", exc) from exc
        return True

    def read_pod(self, namespace: str, name: str) -> Any | None:
        """Return the ``V1Pod`` called *name*, or ``None`` when it does not exist."""
        api = self.core_api()
        try:
            return api.read_namespaced_pod(
                name,
                namespace,
                _request_timeout=self.request_timeout,
            )
        except ApiException as exc:
            if exc.status == 404:
                return None
            raise ClusterError(_api_error(f"read pod {namespace}/{name}", exc)) from exc
        except (OSError, urllib3.exceptions.HTTPError) as exc:
            raise _transport_error(f"read pod {namespace}/{name}", exc) from exc

    def exec(
        self,
        namespace: str,
        pod: str,
        command: Sequence[str],
        *,
        container: str | None = None,
        timeout: float = 30.0,
    ) -> ExecResult:
        """Run *command* inside *pod* and wait at most *timeout* seconds for it."""
        argv = tuple(command)
        kwargs: dict[str, Any] = {
            "command": list(argv),
            "stderr": True,
            "stdin": False,
            "stdout": True,
            "tty": False,
            "_preload_content": False,
        }
        if container:
            kwargs["container"] = container
        target = f"{namespace}/{pod}"
        api = self.core_api()
        try:
            resp = stream(
                api.connect_get_namespaced_pod_exec,
                pod,
                namespace,
                **kwargs,
            )
        except ApiException as exc:
            raise ClusterError(_api_error(f"exec into {target}", exc)) from exc
        except (OSError, urllib3.exceptions.HTTPError) as exc:
            raise _transport_error(f"exec into {target}", exc) from exc

        try:
            resp.run_forever(timeout=timeout)
            if resp.is_open():
                raise RemoteTimeoutError(
                    f"Command '{argv[0]}' in {target} did not finish within {timeout:g}s."
                )
            stdout = resp.read_stdout() or ""
            stderr = resp.read_stderr() or ""
            returncode = _returncode(resp)
        finally:
            resp.close()
        if returncode is None:
            raise ClusterError(f"exec into {target} did not report an exit status.")
        return ExecResult(command=argv, returncode=returncode, stdout=stdout, stderr=stderr)


def _returncode(resp: Any) -> int | None:
    try:
        value = resp.returncode
    except (KeyError, IndexError, TypeError, ValueError):
        return None
    return int(value) if value is not None else None


def _api_error(action: str, exc: ApiException) -> str:
    reason = (exc.reason or "").strip() or "unknown error"
    return f"Kubernetes API failed to {action} (status {exc.status}): {reason}"


def _transport_error(action: str, exc: Exception) -> ClusterError:
    return ClusterError(f"Unable to {action}: {exc}")


__all__ = ["ClusterError", "ClusterProvider", "ExecResult"]
