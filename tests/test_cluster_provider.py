"""Tests for the Kubernetes cluster provider."""
from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest
import urllib3
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from vaultpush.errors import RemoteTimeoutError
from vaultpush.providers import cluster as cluster_module
from vaultpush.providers.cluster import ClusterError, ClusterProvider, ExecResult


class FakeCoreApi:
    """Records calls and raises configured errors."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = []

    def read_namespace(self, name: str, **kwargs: Any) -> Any:
        self.calls.append(("read_namespace", (name,), kwargs))
        if self.error is not None:
            raise self.error
        return SimpleNamespace(metadata=SimpleNamespace(name=name))

    def read_namespaced_pod(self, name: str, namespace: str, **kwargs: Any) -> Any:
        self.calls.append(("read_namespaced_pod", (name, namespace), kwargs))
        if self.error is not None:
            raise self.error
        return SimpleNamespace(status=SimpleNamespace(phase="Running"))

    def connect_get_namespaced_pod_exec(self, *args: Any, **kwargs: Any) -> Any:
        raise AssertionError("called through stream() only")


class FakeWSClient:
    """Minimal stand-in for the websocket client returned by ``stream``."""

    def __init__(
        self,
        *,
        returncode: int | None = 0,
        stdout: str = "",
        stderr: str = "",
        hangs: bool = False,
    ) -> None:
        self._returncode = returncode
        self._stdout = stdout
        self._stderr = stderr
        self._hangs = hangs
        self.timeouts: list[float] = []
        self.closed = False

    def run_forever(self, timeout: float | None = None) -> None:
        self.timeouts.append(timeout or 0)

    def is_open(self) -> bool:
        return self._hangs and not self.closed

    def read_stdout(self) -> str:
        return self._stdout

    def read_stderr(self) -> str:
        return self._stderr

    @property
    def returncode(self) -> int | None:
        return self._returncode

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def stream_calls(monkeypatch: pytest.MonkeyPatch) -> dict[str, Any]:
    """Patch ``stream`` and expose the call it received plus the fake client."""
    state: dict[str, Any] = {"client": FakeWSClient(), "calls": []}

    def fake_stream(func: Any, pod: str, namespace: str, **kwargs: Any) -> FakeWSClient:
        state["calls"].append((func, pod, namespace, kwargs))
        error = state.get("error")
        if error is not None:
            raise error
        return state["client"]

    monkeypatch.setattr(cluster_module, "stream", fake_stream)
    return state


def test_namespace_exists_passes_request_timeout() -> None:
    api = FakeCoreApi()
    provider = ClusterProvider(request_timeout=3.0, api=api)

    assert provider.namespace_exists("vault") is True
    assert api.calls == [("read_namespace", ("vault",), {"_request_timeout": 3.0})]


def test_namespace_missing_returns_false() -> None:
    provider = ClusterProvider(api=FakeCoreApi(ApiException(status=404, reason="Not Found")))

    assert provider.namespace_exists("vault") is False


def test_namespace_api_failure_raises_cluster_error() -> None:
    provider = ClusterProvider(api=FakeCoreApi(ApiException(status=403, reason="Forbidden")))

    with pytest.raises(ClusterError, match="status 403"):
        provider.namespace_exists("vault")


def test_transport_failure_raises_cluster_error() -> None:
    error = urllib3.exceptions.MaxRetryError(None, "/api/v1", "connection refused")  # type: ignore[arg-type]
    provider = ClusterProvider(api=FakeCoreApi(error))

    with pytest.raises(ClusterError, match="Unable to read pod vault/vault-0"):
        provider.read_pod("vault", "vault-0")


def test_read_pod_missing_returns_none() -> None:
    provider = ClusterProvider(api=FakeCoreApi(ApiException(status=404, reason="Not Found")))

    assert provider.read_pod("vault", "vault-0") is None


def test_read_pod_returns_object() -> None:
    provider = ClusterProvider(api=FakeCoreApi())

    pod = provider.read_pod("vault", "vault-0")

    assert pod.status.phase == "Running"


def test_exec_returns_result(stream_calls: dict[str, Any]) -> None:
    stream_calls["client"] = FakeWSClient(returncode=0, stdout="Success! Data written\n")
    api = FakeCoreApi()
    provider = ClusterProvider(api=api)

    result = provider.exec("vault", "vault-0", ["sh", "-c", "vault kv put 'a/b' k='v'"], timeout=5)

    assert result == ExecResult(
        command=("sh", "-c", "vault kv put 'a/b' k='v'"),
        returncode=0,
        stdout="Success! Data written\n",
    )
    assert result.ok
    ((func, pod, namespace, kwargs),) = stream_calls["calls"]
    assert func == api.connect_get_namespaced_pod_exec
    assert (pod, namespace) == ("vault-0", "vault")
    assert kwargs["command"] == ["sh", "-c", "vault kv put 'a/b' k='v'"]
    assert kwargs["_preload_content"] is False
    assert "container" not in kwargs
    assert stream_calls["client"].timeouts == [5]
    assert stream_calls["client"].closed is True


def test_exec_passes_container(stream_calls: dict[str, Any]) -> None:
    provider = ClusterProvider(api=FakeCoreApi())

    provider.exec("vault", "vault-0", ["vault", "status"], container="vault")

    assert stream_calls["calls"][0][3]["container"] == "vault"


def test_exec_nonzero_exit_is_reported(stream_calls: dict[str, Any]) -> None:
    stream_calls["client"] = FakeWSClient(returncode=2, stdout="Sealed true")
    provider = ClusterProvider(api=FakeCoreApi())

    result = provider.exec("vault", "vault-0", ["vault", "status"])

    assert result.returncode == 2
    assert not result.ok
    assert result.detail() == "Sealed true"


def test_exec_timeout_raises_and_closes(stream_calls: dict[str, Any]) -> None:
    client = FakeWSClient(hangs=True)
    stream_calls["client"] = client
    provider = ClusterProvider(api=FakeCoreApi())

    with pytest.raises(RemoteTimeoutError, match="did not finish within 0.5s"):
        provider.exec("vault", "vault-0", ["vault", "status"], timeout=0.5)

    assert client.closed is True


def test_exec_without_exit_status_is_cluster_error(stream_calls: dict[str, Any]) -> None:
    stream_calls["client"] = FakeWSClient(returncode=None)
    provider = ClusterProvider(api=FakeCoreApi())

    with pytest.raises(ClusterError, match="did not report an exit status"):
        provider.exec("vault", "vault-0", ["vault", "status"])


def test_exec_api_failure_is_cluster_error(stream_calls: dict[str, Any]) -> None:
    stream_calls["error"] = ApiException(status=404, reason="Not Found")
    provider = ClusterProvider(api=FakeCoreApi())

    with pytest.raises(ClusterError, match="exec into vault/vault-0"):
        provider.exec("vault", "vault-0", ["vault", "status"])


def test_core_api_wraps_kubeconfig_errors(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def fail(**kwargs: Any) -> Any:
        raise ConfigException("Invalid kube-config file. No configuration found.")

    monkeypatch.setattr(cluster_module.k8s_config, "new_client_from_config", fail)
    provider = ClusterProvider(kubeconfig=tmp_path / "kubeconfig")

    with pytest.raises(ClusterError, match="Unable to load kubeconfig"):
        provider.core_api()


def test_core_api_is_built_once(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[dict[str, Any]] = []

    def build(**kwargs: Any) -> Any:
        seen.append(kwargs)
        return object()

    monkeypatch.setattr(cluster_module.k8s_config, "new_client_from_config", build)
    monkeypatch.setattr(cluster_module.client, "CoreV1Api", lambda api_client: FakeCoreApi())
    provider = ClusterProvider(kubeconfig=tmp_path / "kubeconfig", context="hub")

    first = provider.core_api()

    assert provider.core_api() is first
    assert seen == [{"config_file": str(tmp_path / "kubeconfig"), "context": "hub"}]
