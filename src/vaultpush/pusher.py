"""Write secret groups into Vault, one ``vault kv put`` per group."""
from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .commands import build_put_command, shell_argv
from .errors import ExecutionError, RemoteTimeoutError
from .providers.cluster import ClusterError

if TYPE_CHECKING:
    from .config import VaultConfig
    from .models import SecretSet
    from .providers.cluster import ClusterProvider


@dataclass(slots=True, frozen=True)
class PushCommand:
    """Command line that stores a single group."""

    group: str
    keys: tuple[str, ...]
    command: str


@dataclass(slots=True)
class PushReport:
    """Groups handled by a push run."""

    dry_run: bool
    commands: list[PushCommand] = field(default_factory=list)
    written: list[str] = field(default_factory=list)


class SecretPusher:
    """Serialise each group and execute it inside the Vault pod."""

    def __init__(
        self,
        provider: ClusterProvider | None,
        vault: VaultConfig,
        *,
        echo: Callable[[str], None] | None = None,
    ) -> None:
        """Bind the pusher to a cluster *provider* and Vault settings."""
        self._provider = provider
        self._vault = vault
        self._echo = echo

    def plan(self, secret_set: SecretSet) -> list[PushCommand]:
        """Return the command for every group without executing anything."""
        return [
            PushCommand(
                group=group.name,
                keys=tuple(group.fields),
                command=build_put_command(
                    self._vault.path,
                    group.name,
                    group.fields,
                    vault_bin=self._vault.binary,
                    policy=self._vault.quoting,
                ),
            )
            for group in secret_set.groups()
        ]

    def push(
        self,
        secret_set: SecretSet,
        *,
        dry_run: bool = False,
        plan: Sequence[PushCommand] | None = None,
    ) -> PushReport:
        """Write every group in order; stop at the first failing group.

        Groups written before a failure stay written. In dry-run mode the
        commands are handed to ``echo`` and the provider is never touched.
        A *plan* from :meth:`plan` is executed as given instead of being
        rebuilt.
        """
        commands = list(plan) if plan is not None else self.plan(secret_set)
        report = PushReport(dry_run=dry_run, commands=commands)
        if dry_run:
            if self._echo is not None:
                for item in commands:
                    self._echo(item.command)
            return report

        provider = self._provider
        if provider is None:
            raise ExecutionError("No cluster provider configured for a live push.")
        for item in commands:
            self._execute(provider, item, report.written)
            report.written.append(item.group)
        return report

    def _execute(
        self,
        provider: ClusterProvider,
        item: PushCommand,
        written: Sequence[str],
    ) -> None:
        try:
            result = provider.exec(
                self._vault.namespace,
                self._vault.pod,
                shell_argv(item.command),
                container=self._vault.container,
                timeout=self._vault.exec_timeout,
            )
        except RemoteTimeoutError as exc:
            raise RemoteTimeoutError(
                exc.message,
                group=item.group,
                completed=written,
            ) from exc
        except ClusterError as exc:
            raise ExecutionError(str(exc), group=item.group, completed=written) from exc
        if not result.ok:
            raise ExecutionError(
                f"'{self._vault.binary} kv put' failed (exit {result.returncode}): "
                f"{result.detail()}",
                group=item.group,
                returncode=result.returncode,
                completed=written,
            )


__all__ = ["PushCommand", "PushReport", "SecretPusher"]
