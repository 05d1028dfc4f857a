"""Cluster readiness checks executed before any secret is written.

Checks run in a fixed order and stop at the first failure:

1. ``namespace``: the Vault namespace exists.
2. ``pod``: the Vault pod exists in that namespace.
3. ``vault-status``: ``vault status`` inside the pod reports an unsealed,
   reachable server. ``vault status`` exits 1 on error and 2 when sealed.
"""
from __future__ import annotations

import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from .commands import build_status_command
from .errors import PreconditionError, RemoteTimeoutError
from .providers.cluster import ClusterError

if TYPE_CHECKING:
    from .config import VaultConfig
    from .providers.cluster import ClusterProvider

VAULT_STATUS_SEALED = 2

CHECK_ORDER: tuple[str, ...] = ("namespace", "pod", "vault-status")


class CheckStatus(str, Enum):
    """Outcome of a single readiness check."""

    PASS = "pass"
    FAIL = "fail"
    SKIPPED = "skipped"


@dataclass(slots=True, frozen=True)
class CheckResult:
    """Outcome of running one readiness check."""

    id: str
    status: CheckStatus
    message: str
    remediation: str | None = None
    duration_ms: int | None = None
    data: Mapping[str, Any] | None = None

    @property
    def is_failure(self) -> bool:
        """Return ``True`` when the check failed."""
        return self.status is CheckStatus.FAIL


@dataclass(slots=True, frozen=True)
class PrecheckReport:
    """Results of a complete, successful precheck run."""

    results: Sequence[CheckResult] = field(default_factory=tuple)

    @property
    def passed(self) -> bool:
        """Return ``True`` when every check passed."""
        return all(result.status is CheckStatus.PASS for result in self.results)


_Check = Callable[["ClusterProvider", "VaultConfig"], CheckResult]


def _duration_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def _check_namespace(provider: ClusterProvider, vault: VaultConfig) -> CheckResult:
    if provider.namespace_exists(vault.namespace):
        return CheckResult(
            id="namespace",
            status=CheckStatus.PASS,
            message=f"Namespace '{vault.namespace}' exists.",
        )
    return CheckResult(
        id="namespace",
        status=CheckStatus.FAIL,
        message=f"Namespace '{vault.namespace}' was not found.",
        remediation="Check that KUBECONFIG points at the hub cluster running Vault.",
    )


def _check_pod(provider: ClusterProvider, vault: VaultConfig) -> CheckResult:
    pod = provider.read_pod(vault.namespace, vault.pod)
    if pod is None:
        return CheckResult(
            id="pod",
            status=CheckStatus.FAIL,
            message=f"Pod '{vault.pod}' was not found in namespace '{vault.namespace}'.",
            remediation="Wait for the Vault deployment to create its pod.",
        )
    phase = getattr(getattr(pod, "status", None), "phase", None)
    return CheckResult(
        id="pod",
        status=CheckStatus.PASS,
        message=f"Pod '{vault.namespace}/{vault.pod}' is present.",
        data={"phase": phase},
    )


def _check_vault_status(provider: ClusterProvider, vault: VaultConfig) -> CheckResult:
    result = provider.exec(
        vault.namespace,
        vault.pod,
        build_status_command(vault.binary),
        container=vault.container,
        timeout=vault.exec_timeout,
    )
    data = {"returncode": result.returncode}
    if result.returncode == 0:
        return CheckResult(
            id="vault-status",
            status=CheckStatus.PASS,
            message="Vault is unsealed and reachable.",
            data=data,
        )
    if result.returncode == VAULT_STATUS_SEALED:
        return CheckResult(
            id="vault-status",
            status=CheckStatus.FAIL,
            message="The vault is still sealed.",
            remediation="Initialise and unseal the vault with KUBECONFIG pointing to the hub cluster.",
            data=data,
        )
    return CheckResult(
        id="vault-status",
        status=CheckStatus.FAIL,
        message=f"'{vault.binary} status' failed (exit {result.returncode}): {result.detail()}",
        data=data,
    )


CHECKS: Mapping[str, _Check] = {
    "namespace": _check_namespace,
    "pod": _check_pod,
    "vault-status": _check_vault_status,
}


def _run_check(check_id: str, provider: ClusterProvider, vault: VaultConfig) -> CheckResult:
    start = time.perf_counter()
    try:
        result = CHECKS[check_id](provider, vault)
    except (ClusterError, RemoteTimeoutError) as exc:
        result = CheckResult(
            id=check_id,
            status=CheckStatus.FAIL,
            message=str(exc),
            data={"exception": type(exc).__name__},
        )
    return CheckResult(
        id=result.id,
        status=result.status,
        message=result.message,
        remediation=result.remediation,
        duration_ms=_duration_ms(start),
        data=result.data,
    )


def skipped_results(after: str) -> list[CheckResult]:
    """Return SKIPPED placeholders for every check ordered after *after*."""
    index = CHECK_ORDER.index(after)
    return [
        CheckResult(
            id=check_id,
            status=CheckStatus.SKIPPED,
            message=f"Not run because '{after}' failed.",
        )
        for check_id in CHECK_ORDER[index + 1 :]
    ]


def run_prechecks(provider: ClusterProvider, vault: VaultConfig) -> PrecheckReport:
    """Run every readiness check in order, raising on the first failure."""
    results: list[CheckResult] = []
    for check_id in CHECK_ORDER:
        result = _run_check(check_id, provider, vault)
        results.append(result)
        if result.is_failure:
            message = result.message
            if result.remediation:
                message = f"{message} {result.remediation}"
            raise PreconditionError(message, check=check_id, results=results)
    return PrecheckReport(results=tuple(results))


__all__ = [
    "CHECK_ORDER",
    "CheckResult",
    "CheckStatus",
    "PrecheckReport",
    "run_prechecks",
    "skipped_results",
]
