"""Typer-powered command line interface for ``vaultpush``."""
from __future__ import annotations

import textwrap
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .commands import QuotingPolicy
from .config import AppConfig, ConfigError, load_config, resolve_kubeconfig
from .errors import PreconditionError, VaultPushError
from .exit_codes import ExitCode
from .logging import OperationScope, StructuredLogger
from .models import SecretSet
from .pipeline import ProviderFactory, default_provider_factory, prepare_secrets, run_push
from .precheck import CheckResult, CheckStatus, run_prechecks, skipped_results
from .providers.cluster import ClusterError

console = Console()

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to vaultpush's YAML config file.",
)
VALUES_FILE_OPTION = typer.Option(
    None,
    "--values-file",
    "-f",
    dir_okay=False,
    help="Secrets file to push (defaults to ~/values-secret.yaml).",
)
KUBECONFIG_OPTION = typer.Option(
    None,
    "--kubeconfig",
    dir_okay=False,
    help="Kubeconfig to use instead of KUBECONFIG / ~/.kube/config.",
)
NAMESPACE_OPTION = typer.Option(None, "--namespace", "-n", help="Namespace running Vault.")
POD_OPTION = typer.Option(None, "--pod", help="Vault pod name.")
CONTAINER_OPTION = typer.Option(None, "--container", help="Container inside the Vault pod.")
JSON_OPTION = typer.Option(False, "--json", help="Emit machine-readable JSON.")

_CHECK_STATUS_STYLE = {
    CheckStatus.PASS: "[green]PASS[/green]",
    CheckStatus.FAIL: "[red]FAIL[/red]",
    CheckStatus.SKIPPED: "[yellow]SKIP[/yellow]",
}

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Push secrets from values-secret.yaml into a Vault pod running in Kubernetes.

        Each group under 'secrets:' is written with one 'vault kv put' executed
        inside the Vault pod after the namespace, pod and seal status are checked.
        """
    ).strip(),
)
config_app = typer.Typer(help="Inspect vaultpush configuration.")
app.add_typer(config_app, name="config")


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    logger: StructuredLogger
    provider_factory: ProviderFactory


def _ensure_runtime(ctx: typer.Context, config_file: Path | None) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime

    try:
        config = load_config(config_file=config_file)
    except ConfigError as exc:
        console.print(f"[red]Configuration error:[/red] {escape(str(exc))}")
        raise typer.Exit(code=int(ExitCode.VALIDATION)) from exc
    runtime = RuntimeContext(
        config=config,
        logger=StructuredLogger(config.logs_dir),
        provider_factory=default_provider_factory,
    )
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx, None)


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the vaultpush version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Entry point callback invoked for every CLI execution."""
    if version:
        console.print(f"vaultpush {__version__}")
        raise typer.Exit(code=0)

    _ensure_runtime(ctx, config_file)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=0)


def _with_overrides(
    config: AppConfig,
    *,
    values_file: Path | None = None,
    kubeconfig: Path | None = None,
    namespace: str | None = None,
    pod: str | None = None,
    container: str | None = None,
    path: str | None = None,
    timeout: float | None = None,
    quoting: QuotingPolicy | None = None,
) -> AppConfig:
    """Return *config* with CLI flag overrides applied."""
    vault_updates: dict[str, object] = {}
    if namespace:
        vault_updates["namespace"] = namespace
    if pod:
        vault_updates["pod"] = pod
    if container:
        vault_updates["container"] = container
    if path:
        vault_updates["path"] = path.rstrip("/")
    if timeout is not None:
        vault_updates["exec_timeout"] = timeout
    if quoting is not None:
        vault_updates["quoting"] = quoting

    updates: dict[str, object] = {}
    if values_file is not None:
        updates["values_file"] = values_file.expanduser()
    if kubeconfig is not None:
        updates["kubeconfig"] = kubeconfig.expanduser()
    if vault_updates:
        updates["vault"] = replace(config.vault, **vault_updates)
    if not updates:
        return config
    return replace(config, **updates)


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = int(ExitCode.VALIDATION),
    errors: Sequence[str] | None = None,
    context: Mapping[str, object] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    console.print(f"[red]{escape(message)}[/red]", highlight=False)
    op.error(message, errors=list(errors or [message]), rc=rc, context=context)
    raise typer.Exit(code=rc)


def _fail(op: OperationScope, exc: VaultPushError | ClusterError) -> NoReturn:
    if isinstance(exc, VaultPushError):
        context: dict[str, object] = {"error": type(exc).__name__}
        if exc.label:
            context["label"] = exc.label
        completed = getattr(exc, "completed", ())
        if completed:
            context["written"] = list(completed)
            console.print(
                "[yellow]Groups already written before the failure:[/yellow] "
                + escape(", ".join(completed)),
                highlight=False,
            )
        _command_error(op, str(exc), rc=int(exc.exit_code), context=context)
    _command_error(
        op,
        str(exc),
        rc=int(ExitCode.PROVIDER),
        context={"error": type(exc).__name__},
    )


def _render_checks(results: Sequence[CheckResult]) -> None:
    for result in results:
        status_label = _CHECK_STATUS_STYLE[result.status]
        console.print(f"{status_label} {result.id}: {escape(result.message)}", highlight=False)
        if result.remediation and result.status is CheckStatus.FAIL:
            console.print(f"  remediation: {escape(result.remediation)}", highlight=False)
        if result.duration_ms is not None:
            console.print(f"  duration: {result.duration_ms} ms")


def _serialize_checks(results: Sequence[CheckResult]) -> list[dict[str, object]]:
    payload: list[dict[str, object]] = []
    for result in results:
        entry: dict[str, object] = {
            "id": result.id,
            "status": result.status.value,
            "message": result.message,
        }
        if result.remediation:
            entry["remediation"] = result.remediation
        if result.duration_ms is not None:
            entry["duration_ms"] = result.duration_ms
        if result.data:
            entry["data"] = {key: value for key, value in result.data.items()}
        payload.append(entry)
    return payload


def _describe_groups(secret_set: SecretSet, derived: Sequence[str]) -> list[dict[str, object]]:
    derived_set = set(derived)
    return [
        {
            "group": group.name,
            "keys": group.keys(),
            "derived": group.name in derived_set,
        }
        for group in secret_set.groups()
    ]


@app.command()
def push(
    ctx: typer.Context,
    values_file: Path | None = VALUES_FILE_OPTION,
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Print the vault commands instead of executing them.",
    ),
    kubeconfig: Path | None = KUBECONFIG_OPTION,
    namespace: str | None = NAMESPACE_OPTION,
    pod: str | None = POD_OPTION,
    container: str | None = CONTAINER_OPTION,
    path: str | None = typer.Option(
        None,
        "--path",
        help="Vault path prefix groups are written under (e.g. secret/hub).",
    ),
    timeout: float | None = typer.Option(
        None,
        "--timeout",
        min=0.001,
        help="Seconds to wait for each remote command.",
    ),
    quoting: QuotingPolicy | None = typer.Option(
        None,
        "--quoting",
        case_sensitive=False,
        help="How to handle values containing single quotes.",
    ),
) -> None:
    """Validate the secrets file and write every group into Vault."""
    runtime = _get_runtime(ctx)
    config = _with_overrides(
        runtime.config,
        values_file=values_file,
        kubeconfig=kubeconfig,
        namespace=namespace,
        pod=pod,
        container=container,
        path=path,
        timeout=timeout,
        quoting=quoting,
    )
    vault = config.vault
    with runtime.logger.operation(
        "push",
        args={
            "values_file": config.values_file,
            "dry_run": dry_run,
            "quoting": vault.quoting.value,
            "timeout": vault.exec_timeout,
        },
        target={"namespace": vault.namespace, "pod": vault.pod, "path": vault.path},
    ) as op:

        def _echo(command: str) -> None:
            typer.echo(command)

        def _stage(name: str, data: Mapping[str, object]) -> None:
            op.add_step(name, data=data)

        try:
            outcome = run_push(
                config,
                dry_run=dry_run,
                echo=_echo,
                provider_factory=runtime.provider_factory,
                on_stage=_stage,
            )
        except (VaultPushError, ClusterError) as exc:
            _fail(op, exc)

        report = outcome.report
        groups = list(outcome.secret_set)
        if report is None or report.dry_run:
            console.print(
                f"[yellow]Dry run[/yellow]: {len(groups)} command(s) not executed.",
                highlight=False,
            )
            op.success("Dry run complete.", changed=0, context={"groups": groups})
            return

        console.print(
            f"[green]Wrote {len(report.written)} secret group(s) to "
            f"{vault.path}[/green]: {', '.join(report.written)}",
            highlight=False,
        )
        op.success(
            "Secrets pushed.",
            changed=len(report.written),
            context={"groups": report.written, "derived": outcome.derived},
        )


@app.command()
def validate(
    ctx: typer.Context,
    values_file: Path | None = VALUES_FILE_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Check the secrets file and list its groups without contacting the cluster."""
    runtime = _get_runtime(ctx)
    config = _with_overrides(runtime.config, values_file=values_file)
    with runtime.logger.operation(
        "validate",
        args={"values_file": config.values_file, "json": json_output},
        target={"kind": "values"},
    ) as op:
        try:
            secret_set, derived = prepare_secrets(config.values_file)
        except VaultPushError as exc:
            _fail(op, exc)

        groups = _describe_groups(secret_set, derived)
        if json_output:
            console.print_json(data={"values_file": str(config.values_file), "groups": groups})
        else:
            table = Table(show_header=True, header_style="bold magenta")
            table.add_column("Group", style="bold")
            table.add_column("Keys")
            table.add_column("Derived")
            for entry in groups:
                keys = entry["keys"]
                table.add_row(
                    escape(str(entry["group"])),
                    escape(", ".join(keys) if isinstance(keys, list) else str(keys)),
                    "s3Secret" if entry["derived"] else "",
                )
            console.print(table)
            console.print(f"[green]{len(groups)} secret group(s) are valid.[/green]")
        op.success(
            "Secrets file is valid.",
            context={"groups": [entry["group"] for entry in groups], "derived": derived},
        )


@app.command()
def check(
    ctx: typer.Context,
    kubeconfig: Path | None = KUBECONFIG_OPTION,
    namespace: str | None = NAMESPACE_OPTION,
    pod: str | None = POD_OPTION,
    container: str | None = CONTAINER_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Run the cluster readiness checks without writing anything."""
    runtime = _get_runtime(ctx)
    config = _with_overrides(
        runtime.config,
        kubeconfig=kubeconfig,
        namespace=namespace,
        pod=pod,
        container=container,
    )
    vault = config.vault
    with runtime.logger.operation(
        "check",
        args={"json": json_output},
        target={"namespace": vault.namespace, "pod": vault.pod},
    ) as op:
        try:
            kubeconfig_path = resolve_kubeconfig(config)
        except VaultPushError as exc:
            _fail(op, exc)
        provider = runtime.provider_factory(config, kubeconfig_path)

        failure: PreconditionError | None = None
        try:
            results = list(run_prechecks(provider, vault).results)
        except PreconditionError as exc:
            failure = exc
            results = [*exc.results, *skipped_results(exc.check)]

        payload = _serialize_checks(results)
        if json_output:
            console.print_json(data={"ready": failure is None, "checks": payload})
        else:
            _render_checks(results)

        if failure is not None:
            if not json_output:
                console.print(f"[red]Vault is not ready: {failure.check} check failed.[/red]")
            op.error(
                str(failure),
                rc=int(failure.exit_code),
                context={"checks": payload},
            )
            raise typer.Exit(code=int(failure.exit_code))

        if not json_output:
            console.print("[green]Vault is ready to receive secrets.[/green]")
        op.success("All readiness checks passed.", context={"checks": payload})


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Emit configuration as JSON instead of a table.",
    ),
) -> None:
    """Display the effective configuration after merges."""
    runtime = _get_runtime(ctx)
    data = runtime.config.to_dict()

    with runtime.logger.operation(
        "config show",
        args={"json": json_output},
        target={"kind": "config"},
    ) as op:
        if json_output:
            console.print_json(data=data)
            op.success("Rendered configuration as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Key", style="bold")
        table.add_column("Value")
        for key, value in data.items():
            if isinstance(value, dict):
                rendered = "\n".join(f"{sub}: {item}" for sub, item in value.items())
            else:
                rendered = str(value)
            table.add_row(key, escape(rendered))

        console.print(table)
        op.success("Rendered configuration table.", changed=0)


__all__ = ["RuntimeContext", "app"]
