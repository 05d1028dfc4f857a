"""Configuration loader for vaultpush.

Configuration values are resolved once at startup from several sources, in
increasing order of precedence:

1. Built-in defaults.
2. ``~/.config/vaultpush/config.yml`` (or an override path).
3. Environment variables prefixed with ``VAULTPUSH_``.
4. Explicit overrides supplied programmatically (CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export VAULTPUSH_VAULT__NAMESPACE=vault-staging
    export VAULTPUSH_VAULT__EXEC_TIMEOUT=60

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. The standard ``KUBECONFIG`` variable is honoured as well and
captured into :attr:`AppConfig.kubeconfig`; components never consult the
environment themselves.
"""
from __future__ import annotations

import os
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass
from pathlib import Path
from typing import cast

import yaml

from .commands import QuotingPolicy
from .errors import CredentialsNotFoundError

ENV_PREFIX = "VAULTPUSH_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
KUBECONFIG_ENV_VAR = "KUBECONFIG"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class VaultConfig:
    """Addressing and behaviour of the Vault server inside the cluster."""

    namespace: str = "vault"
    pod: str = "vault-0"
    container: str | None = None
    path: str = "secret/hub"
    binary: str = "vault"
    exec_timeout: float = 30.0
    quoting: QuotingPolicy = QuotingPolicy.REJECT

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "namespace": self.namespace,
            "pod": self.pod,
            "container": self.container,
            "path": self.path,
            "binary": self.binary,
            "exec_timeout": self.exec_timeout,
            "quoting": self.quoting.value,
        }


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for vaultpush."""

    config_file: Path
    values_file: Path
    kubeconfig: Path | None
    kubeconfig_fallback: Path
    kube_context: str | None
    logs_dir: Path
    request_timeout: float
    vault: VaultConfig

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "values_file": str(self.values_file),
            "kubeconfig": str(self.kubeconfig) if self.kubeconfig is not None else None,
            "kubeconfig_fallback": str(self.kubeconfig_fallback),
            "kube_context": self.kube_context,
            "logs_dir": str(self.logs_dir),
            "request_timeout": self.request_timeout,
            "vault": self.vault.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "~/.config/vaultpush/config.yml",
    "values_file": "~/values-secret.yaml",
    "kubeconfig": None,  # captured from KUBECONFIG when absent
    "kubeconfig_fallback": "~/.kube/config",
    "kube_context": None,
    "logs_dir": "~/.local/state/vaultpush/logs",
    "request_timeout": 10.0,
    "vault": {
        "namespace": "vault",
        "pod": "vault-0",
        "container": None,
        "path": "secret/hub",
        "binary": "vault",
        "exec_timeout": 30.0,
        "quoting": "reject",
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
ALLOWED_VAULT_KEYS = set(cast(Mapping[str, object], DEFAULTS["vault"]).keys())
ALLOWED_QUOTING_POLICIES = {policy.value for policy in QuotingPolicy}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, _drop_none(overrides))

    merged["config_file"] = str(config_path)
    if merged.get("kubeconfig") in (None, ""):
        merged["kubeconfig"] = _kubeconfig_from_env(resolved_env)

    _validate_structure(merged)

    return _build_app_config(merged)


def resolve_kubeconfig(config: AppConfig) -> Path:
    """Return the kubeconfig file to use, preferring KUBECONFIG over the fallback."""
    candidates: list[Path] = []
    if config.kubeconfig is not None:
        candidates.append(config.kubeconfig)
    candidates.append(config.kubeconfig_fallback)
    for candidate in candidates:
        if candidate.is_file():
            return candidate
    tried = ", ".join(str(candidate) for candidate in candidates)
    raise CredentialsNotFoundError(
        f"No kubeconfig found (tried: {tried}). Set KUBECONFIG or create "
        f"{config.kubeconfig_fallback}."
    )


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override).expanduser()
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR]).expanduser()
    return Path(default_path).expanduser()


def _kubeconfig_from_env(env: Mapping[str, str]) -> str | None:
    raw = env.get(KUBECONFIG_ENV_VAR, "").strip()
    if not raw:
        return None
    entries = [entry for entry in raw.split(os.pathsep) if entry.strip()]
    if not entries:
        return None
    for entry in entries:
        if Path(entry).expanduser().is_file():
            return entry
    return entries[0]


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    _expect_positive_float(raw.get("request_timeout"), "request_timeout", default=10.0)

    vault_map = _as_dict(raw.get("vault"), "vault")
    unknown = set(vault_map.keys()) - ALLOWED_VAULT_KEYS
    if unknown:
        joined = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown vault configuration keys: {joined}.")

    for field in ("namespace", "pod", "path", "binary"):
        value = vault_map.get(field)
        if not isinstance(value, str) or not value.strip():
            raise ConfigError(f"vault.{field} must be a non-empty string.")

    container = vault_map.get("container")
    if container is not None and not isinstance(container, str):
        raise ConfigError("vault.container must be a string or null.")

    _expect_positive_float(vault_map.get("exec_timeout"), "vault.exec_timeout", default=30.0)

    quoting = str(vault_map.get("quoting", "reject"))
    if quoting not in ALLOWED_QUOTING_POLICIES:
        allowed = ", ".join(sorted(ALLOWED_QUOTING_POLICIES))
        raise ConfigError(f"Unsupported quoting policy '{quoting}'. Allowed: {allowed}.")

    context = raw.get("kube_context")
    if context is not None and not isinstance(context, str):
        raise ConfigError("kube_context must be a string or null.")


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    vault_map = _as_dict(raw.get("vault"), "vault")
    container_raw = vault_map.get("container")
    container = str(container_raw).strip() if container_raw else None
    vault = VaultConfig(
        namespace=str(vault_map["namespace"]).strip(),
        pod=str(vault_map["pod"]).strip(),
        container=container or None,
        path=str(vault_map["path"]).strip().rstrip("/"),
        binary=str(vault_map["binary"]).strip(),
        exec_timeout=_expect_positive_float(
            vault_map.get("exec_timeout"), "vault.exec_timeout", default=30.0
        ),
        quoting=QuotingPolicy(str(vault_map.get("quoting", "reject"))),
    )

    kubeconfig_raw = raw.get("kubeconfig")
    context_raw = raw.get("kube_context")
    return AppConfig(
        config_file=_to_path(raw.get("config_file")),
        values_file=_to_path(raw.get("values_file")),
        kubeconfig=_to_path(kubeconfig_raw) if kubeconfig_raw else None,
        kubeconfig_fallback=_to_path(raw.get("kubeconfig_fallback")),
        kube_context=str(context_raw) if context_raw else None,
        logs_dir=_to_path(raw.get("logs_dir")),
        request_timeout=_expect_positive_float(
            raw.get("request_timeout"), "request_timeout", default=10.0
        ),
        vault=vault,
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        else:
            result[key] = value
    return result


def _drop_none(source: Mapping[str, object]) -> dict[str, object]:
    """Strip unset CLI overrides so they do not mask file/env values."""
    result: dict[str, object] = {}
    for key, value in source.items():
        if value is None:
            continue
        if isinstance(value, Mapping):
            nested = _drop_none(_as_dict(value, f"override.{key}"))
            if nested:
                result[key] = nested
            continue
        result[key] = value
    return result


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _expect_positive_float(
    value: object | None,
    label: str,
    *,
    default: float,
) -> float:
    if value is None:
        return float(default)
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a number. Got boolean {value!r}.")
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        try:
            numeric = float(value)
        except ValueError as exc:
            raise ConfigError(f"Invalid number for {label}: {value!r}.") from exc
    else:
        raise ConfigError(
            f"Expected {label} to be numeric. Got {type(value).__name__}."
        )
    if numeric <= 0:
        raise ConfigError(f"{label} must be greater than zero. Got {numeric}.")
    return numeric


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AppConfig",
    "ConfigError",
    "VaultConfig",
    "load_config",
    "resolve_kubeconfig",
]
