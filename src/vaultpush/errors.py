"""Error taxonomy shared by the vaultpush pipeline stages.

Every error carries the exit code the CLI should terminate with and, where
applicable, the secret group and field that triggered it so operators can
locate the offending entry in ``values-secret.yaml``.
"""
from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from .exit_codes import ExitCode

if TYPE_CHECKING:
    from .precheck import CheckResult


class VaultPushError(RuntimeError):
    """Base class for fatal pipeline errors."""

    exit_code: ExitCode = ExitCode.VALIDATION

    def __init__(
        self,
        message: str,
        *,
        group: str | None = None,
        key: str | None = None,
    ) -> None:
        """Store the message and optional group/key labels."""
        super().__init__(message)
        self.message = message
        self.group = group
        self.key = key

    @property
    def label(self) -> str | None:
        """Return ``group`` or ``group.key`` for diagnostics."""
        if self.group is None:
            return None
        if self.key is None:
            return self.group
        return f"{self.group}.{self.key}"

    def __str__(self) -> str:
        """Prefix the message with the group/key label when known."""
        label = self.label
        if label is None:
            return self.message
        return f"[{label}] {self.message}"


class InputNotFoundError(VaultPushError):
    """Raised when a required input file does not exist."""


class CredentialsNotFoundError(InputNotFoundError):
    """Raised when neither KUBECONFIG nor the fallback kubeconfig exists."""

    exit_code = ExitCode.ENVIRONMENT


class ParseError(VaultPushError):
    """Raised when the secrets file cannot be read or parsed."""


class EmptyInputError(VaultPushError):
    """Raised when the secrets file defines no secret groups."""


class SchemaError(VaultPushError):
    """Raised when a secret group violates the expected structure."""


class QuotingError(SchemaError):
    """Raised when a value cannot be quoted under the active quoting policy."""


class PreconditionError(VaultPushError):
    """Raised when a cluster readiness check fails before any write."""

    exit_code = ExitCode.ENVIRONMENT

    def __init__(
        self,
        message: str,
        *,
        check: str,
        results: Sequence[CheckResult] = (),
    ) -> None:
        """Record the failing check id and the results gathered so far."""
        super().__init__(message)
        self.check = check
        self.results = tuple(results)


class ExecutionError(VaultPushError):
    """Raised when a remote command exits non-zero."""

    exit_code = ExitCode.PROVIDER

    def __init__(
        self,
        message: str,
        *,
        group: str | None = None,
        returncode: int | None = None,
        completed: Sequence[str] = (),
    ) -> None:
        """Record the failing group, its exit status and already-written groups."""
        super().__init__(message, group=group)
        self.returncode = returncode
        self.completed = tuple(completed)


class RemoteTimeoutError(ExecutionError, TimeoutError):
    """Raised when a remote command does not finish within the exec timeout."""


__all__ = [
    "CredentialsNotFoundError",
    "EmptyInputError",
    "ExecutionError",
    "InputNotFoundError",
    "ParseError",
    "PreconditionError",
    "QuotingError",
    "RemoteTimeoutError",
    "SchemaError",
    "VaultPushError",
]
