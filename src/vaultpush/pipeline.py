"""End-to-end push pipeline: load, validate, derive, precheck, push."""
from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from .config import AppConfig, resolve_kubeconfig
from .models import SecretSet
from .precheck import PrecheckReport, run_prechecks
from .providers.cluster import ClusterProvider
from .pusher import PushReport, SecretPusher
from .transform import apply_derived_fields
from .values import load_secret_set

ProviderFactory = Callable[[AppConfig, Path], ClusterProvider]
StageHook = Callable[[str, Mapping[str, object]], None]


def default_provider_factory(config: AppConfig, kubeconfig: Path) -> ClusterProvider:
    """Build the Kubernetes provider for *kubeconfig*."""
    return ClusterProvider(
        kubeconfig=kubeconfig,
        context=config.kube_context,
        request_timeout=config.request_timeout,
    )


@dataclass(slots=True)
class PushOutcome:
    """Everything a push run produced."""

    secret_set: SecretSet
    derived: list[str] = field(default_factory=list)
    precheck: PrecheckReport | None = None
    report: PushReport | None = None


def prepare_secrets(values_file: Path) -> tuple[SecretSet, list[str]]:
    """Load and validate *values_file*, then add derived fields."""
    secret_set = load_secret_set(values_file)
    derived = apply_derived_fields(secret_set)
    return secret_set, derived


def run_push(
    config: AppConfig,
    *,
    dry_run: bool = False,
    echo: Callable[[str], None] | None = None,
    provider_factory: ProviderFactory = default_provider_factory,
    on_stage: StageHook | None = None,
) -> PushOutcome:
    """Run the full pipeline for *config*.

    Every stage raises a :class:`~vaultpush.errors.VaultPushError` subclass on
    failure. Dry runs stop after serialisation: no kubeconfig is resolved and
    no cluster call is made.
    """

    def stage(name: str, **data: object) -> None:
        if on_stage is not None:
            on_stage(name, data)

    secret_set, derived = prepare_secrets(config.values_file)
    stage("load", values_file=config.values_file, groups=list(secret_set))
    if derived:
        stage("derive", groups=derived)

    outcome = PushOutcome(secret_set=secret_set, derived=derived)
    if dry_run:
        pusher = SecretPusher(None, config.vault, echo=echo)
        outcome.report = pusher.push(secret_set, dry_run=True)
        stage("dry-run", commands=len(outcome.report.commands))
        return outcome

    kubeconfig = resolve_kubeconfig(config)
    stage("kubeconfig", path=kubeconfig)
    provider = provider_factory(config, kubeconfig)
    pusher = SecretPusher(provider, config.vault, echo=echo)
    plan = pusher.plan(secret_set)
    stage("serialize", groups=len(plan))

    outcome.precheck = run_prechecks(provider, config.vault)
    stage("precheck", checks=[result.id for result in outcome.precheck.results])

    outcome.report = pusher.push(secret_set, plan=plan)
    stage("push", written=outcome.report.written)
    return outcome


__all__ = [
    "ProviderFactory",
    "PushOutcome",
    "default_provider_factory",
    "prepare_secrets",
    "run_push",
]
