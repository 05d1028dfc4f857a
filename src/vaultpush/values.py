"""Load and validate the ``values-secret.yaml`` secrets file.

The file is expected to look like::

    secrets:
      group1:
        key1: value1
        key2: value2
      group2:
        key1: valueA

:func:`load_values_file` reads and parses the document, :func:`validate_secrets`
checks its shape and converts it into a :class:`~vaultpush.models.SecretSet`.
"""
from __future__ import annotations

import os
import re
from collections.abc import Hashable, Mapping, Sequence
from datetime import date, datetime
from pathlib import Path
from typing import Any

import yaml
from yaml.constructor import ConstructorError
from yaml.nodes import MappingNode

from .errors import EmptyInputError, InputNotFoundError, ParseError, SchemaError
from .models import SecretGroup, SecretSet

SECRETS_KEY = "secrets"

_UNSAFE_NAME = re.compile(r"[\s']")
_FIELD_NAME = re.compile(r"[A-Za-z0-9_.][A-Za-z0-9._/-]*")


class _UniqueKeyLoader(yaml.SafeLoader):
    """Safe loader that refuses duplicate mapping keys."""

    def construct_mapping(self, node: MappingNode, deep: bool = False) -> dict[Any, Any]:
        seen: set[Hashable] = set()
        for key_node, _value_node in node.value:
            key = self.construct_object(key_node, deep=deep)
            if not isinstance(key, Hashable):
                continue
            if key in seen:
                raise ConstructorError(
                    "while constructing a mapping",
                    node.start_mark,
                    f"found duplicate key {key!r}",
                    key_node.start_mark,
                )
            seen.add(key)
        return super().construct_mapping(node, deep=deep)


def load_values_file(path: str | os.PathLike[str]) -> dict[str, object]:
    """Return the raw ``secrets`` mapping from the YAML file at *path*."""
    source = Path(path).expanduser()
    if not source.is_file():
        raise InputNotFoundError(f"Secrets file {source} does not exist.")
    try:
        text = source.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ParseError(f"Unable to read secrets file {source}: {exc}") from exc
    try:
        document = yaml.load(text, Loader=_UniqueKeyLoader)  # noqa: S506 - safe loader subclass
    except yaml.YAMLError as exc:
        raise ParseError(f"Failed to parse secrets file {source}: {exc}") from exc

    if document is None:
        raise EmptyInputError(f"Secrets file {source} is empty.")
    if not isinstance(document, Mapping):
        raise ParseError(f"Secrets file {source} must contain a mapping at the top level.")

    secrets = document.get(SECRETS_KEY)
    if secrets is None or (isinstance(secrets, Mapping) and not secrets):
        raise EmptyInputError(
            f"Was not able to parse any secrets from file {source}: "
            f"'{SECRETS_KEY}' is missing or empty."
        )
    if not isinstance(secrets, Mapping):
        raise ParseError(
            f"'{SECRETS_KEY}' in {source} must map group names to key/value pairs. "
            f"Got {type(secrets).__name__}."
        )
    return dict(secrets)


def validate_secrets(raw: Mapping[object, object]) -> SecretSet:
    """Check the structure of *raw* and return a typed :class:`SecretSet`."""
    if not raw:
        raise EmptyInputError("No secret groups were provided.")

    secret_set = SecretSet()
    for group_name, group_value in raw.items():
        name = _validate_group_name(group_name)
        if not isinstance(group_value, Mapping):
            raise SchemaError(
                f"Group is not properly formatted. Each key under '{SECRETS_KEY}:' "
                "needs to point to a mapping of key/value pairs.",
                group=name,
            )
        if not group_value:
            raise SchemaError("Group defines no fields.", group=name)

        fields: dict[str, str] = {}
        for field_name, field_value in group_value.items():
            key = _validate_field_name(name, field_name)
            fields[key] = _coerce_scalar(name, key, field_value)
        secret_set.add(SecretGroup(name=name, fields=fields))
    return secret_set


def load_secret_set(path: str | os.PathLike[str]) -> SecretSet:
    """Load *path* and return the validated :class:`SecretSet`."""
    return validate_secrets(load_values_file(path))


def _validate_group_name(value: object) -> str:
    if not isinstance(value, str) or not value.strip():
        raise SchemaError(f"Secret group names must be non-empty strings. Got {value!r}.")
    if _UNSAFE_NAME.search(value):
        raise SchemaError(
            "Secret group names may not contain whitespace or single quotes.",
            group=value,
        )
    return value


def _validate_field_name(group: str, value: object) -> str:
    if not isinstance(value, str) or not value.strip():
        raise SchemaError(f"Field names must be non-empty strings. Got {value!r}.", group=group)
    if not _FIELD_NAME.fullmatch(value):
        raise SchemaError(
            "Field names may only contain letters, digits, '.', '_', '/' and '-' "
            "and may not start with '-'.",
            group=group,
            key=value,
        )
    return value


def _coerce_scalar(group: str, key: str, value: object) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if value is None:
        raise SchemaError("Field has no value.", group=group, key=key)
    if isinstance(value, (Mapping, Sequence, set)):
        raise SchemaError(
            f"Field values must be scalars. Got nested {type(value).__name__}.",
            group=group,
            key=key,
        )
    raise SchemaError(
        f"Unsupported field value type {type(value).__name__}.",
        group=group,
        key=key,
    )


__all__ = [
    "SECRETS_KEY",
    "load_secret_set",
    "load_values_file",
    "validate_secrets",
]
