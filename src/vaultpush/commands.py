"""Serialise secret groups into ``vault`` command lines.

The commands are executed through ``sh -c`` inside the Vault pod, so every
field value is wrapped in single quotes. Newlines inside a single-quoted shell
word are kept literally, which lets multi-line values such as certificates
round-trip unchanged.
"""
from __future__ import annotations

from collections.abc import Mapping
from enum import Enum

from .errors import QuotingError

_ESCAPED_QUOTE = "'\"'\"'"


class QuotingPolicy(str, Enum):
    """How values containing a single quote are handled."""

    REJECT = "reject"
    ESCAPE = "escape"
    LEGACY = "legacy"


def quote_value(
    value: str,
    policy: QuotingPolicy = QuotingPolicy.REJECT,
    *,
    group: str | None = None,
    key: str | None = None,
) -> str:
    """Return *value* wrapped in single quotes according to *policy*.

    ``REJECT`` refuses values containing ``'`` (they would terminate the shell
    word early), ``ESCAPE`` rewrites each quote as ``'"'"'`` and ``LEGACY``
    wraps the value verbatim.
    """
    if "'" in value:
        if policy is QuotingPolicy.REJECT:
            raise QuotingError(
                "Value contains a single quote which cannot be passed safely. "
                "Set vault.quoting to 'escape' to escape it or 'legacy' to send it verbatim.",
                group=group,
                key=key,
            )
        if policy is QuotingPolicy.ESCAPE:
            value = value.replace("'", _ESCAPED_QUOTE)
    return f"'{value}'"


def format_assignment(
    key: str,
    value: str,
    policy: QuotingPolicy = QuotingPolicy.REJECT,
    *,
    group: str | None = None,
) -> str:
    """Return a ``key='value'`` argument for ``vault kv put``."""
    return f"{key}={quote_value(value, policy, group=group, key=key)}"


def build_put_command(
    path: str,
    group: str,
    fields: Mapping[str, str],
    *,
    vault_bin: str = "vault",
    policy: QuotingPolicy = QuotingPolicy.REJECT,
) -> str:
    """Return the ``vault kv put`` command line that stores *fields* under *group*."""
    target = f"{path.rstrip('/')}/{group}"
    assignments = [
        format_assignment(key, value, policy, group=group) for key, value in fields.items()
    ]
    return " ".join([vault_bin, "kv", "put", f"'{target}'", *assignments])


def build_status_command(vault_bin: str = "vault") -> list[str]:
    """Return the argv used to query Vault's seal status."""
    return [vault_bin, "status"]


def shell_argv(command: str) -> list[str]:
    """Wrap *command* so it is interpreted by ``sh`` inside the pod."""
    return ["sh", "-c", command]


__all__ = [
    "QuotingPolicy",
    "build_put_command",
    "build_status_command",
    "format_assignment",
    "quote_value",
    "shell_argv",
]
