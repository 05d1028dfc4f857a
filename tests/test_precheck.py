"""Tests for cluster readiness checks."""
from __future__ import annotations

import pytest

from fakes import FakeProvider
from vaultpush.config import VaultConfig
from vaultpush.errors import PreconditionError
from vaultpush.exit_codes import ExitCode
from vaultpush.precheck import CHECK_ORDER, CheckStatus, run_prechecks, skipped_results
from vaultpush.providers.cluster import ClusterError


def test_all_checks_pass_in_order(fake_provider: FakeProvider) -> None:
    report = run_prechecks(fake_provider, VaultConfig())

    assert [result.id for result in report.results] == list(CHECK_ORDER)
    assert report.passed
    assert report.results[1].data == {"phase": "Running"}
    assert all(result.duration_ms is not None for result in report.results)
    kinds = [kind for kind, _ in fake_provider.calls]
    assert kinds == ["namespace", "pod", "exec"]


def test_missing_namespace_stops_before_pod(fake_provider: FakeProvider) -> None:
    fake_provider.namespaces.clear()

    with pytest.raises(PreconditionError) as excinfo:
        run_prechecks(fake_provider, VaultConfig())

    error = excinfo.value
    assert error.check == "namespace"
    assert error.exit_code is ExitCode.ENVIRONMENT
    assert "Namespace 'vault' was not found." in error.message
    assert [result.id for result in error.results] == ["namespace"]
    assert [kind for kind, _ in fake_provider.calls] == ["namespace"]


def test_missing_pod_fails(fake_provider: FakeProvider) -> None:
    fake_provider.pods.clear()

    with pytest.raises(PreconditionError) as excinfo:
        run_prechecks(fake_provider, VaultConfig())

    assert excinfo.value.check == "pod"
    assert fake_provider.exec_count == 0


def test_sealed_vault_reports_unseal_remediation(fake_provider: FakeProvider) -> None:
    fake_provider.status_rc = 2

    with pytest.raises(PreconditionError, match="still sealed") as excinfo:
        run_prechecks(fake_provider, VaultConfig())

    assert excinfo.value.check == "vault-status"
    assert "unseal" in excinfo.value.message


def test_vault_status_error_includes_exit_code(fake_provider: FakeProvider) -> None:
    fake_provider.status_rc = 1

    with pytest.raises(PreconditionError, match=r"exit 1"):
        run_prechecks(fake_provider, VaultConfig())


def test_status_uses_configured_binary_and_container(fake_provider: FakeProvider) -> None:
    vault = VaultConfig(binary="/bin/vault", container="vault", exec_timeout=7.0)

    run_prechecks(fake_provider, vault)

    _, (namespace, pod, argv, container, timeout) = fake_provider.calls[-1]
    assert (namespace, pod) == ("vault", "vault-0")
    assert argv == ("/bin/vault", "status")
    assert container == "vault"
    assert timeout == 7.0


def test_cluster_errors_become_failures(
    fake_provider: FakeProvider,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def boom(name: str) -> bool:
        raise ClusterError("Unable to read namespace vault: connection refused")

    monkeypatch.setattr(fake_provider, "namespace_exists", boom)

    with pytest.raises(PreconditionError, match="connection refused") as excinfo:
        run_prechecks(fake_provider, VaultConfig())

    (result,) = excinfo.value.results
    assert result.status is CheckStatus.FAIL
    assert result.data == {"exception": "ClusterError"}


def test_skipped_results_cover_remaining_checks() -> None:
    skipped = skipped_results("namespace")

    assert [result.id for result in skipped] == ["pod", "vault-status"]
    assert all(result.status is CheckStatus.SKIPPED for result in skipped)
    assert skipped_results("vault-status") == []
