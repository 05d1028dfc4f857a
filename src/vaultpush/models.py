"""Typed containers for secret groups parsed from ``values-secret.yaml``."""
from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field


@dataclass(slots=True)
class SecretGroup:
    """A named set of flat key/value pairs destined for one Vault path."""

    name: str
    fields: dict[str, str] = field(default_factory=dict)

    def __contains__(self, key: object) -> bool:
        """Return ``True`` when *key* is one of the group's field names."""
        return key in self.fields

    def keys(self) -> list[str]:
        """Return field names in insertion order."""
        return list(self.fields)


class SecretSet(Mapping[str, SecretGroup]):
    """Collection of secret groups keyed by their unique name."""

    def __init__(self, groups: Mapping[str, SecretGroup] | None = None) -> None:
        """Initialise the set from an optional name to group mapping."""
        self._groups: dict[str, SecretGroup] = {}
        for group in (groups or {}).values():
            self.add(group)

    def add(self, group: SecretGroup) -> None:
        """Add *group*, refusing duplicate names."""
        if group.name in self._groups:
            raise ValueError(f"Duplicate secret group '{group.name}'.")
        self._groups[group.name] = group

    def __getitem__(self, name: str) -> SecretGroup:
        return self._groups[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._groups)

    def __len__(self) -> int:
        return len(self._groups)

    def __repr__(self) -> str:
        return f"SecretSet({list(self._groups)!r})"

    def groups(self) -> list[SecretGroup]:
        """Return the groups in insertion order."""
        return list(self._groups.values())

    def to_dict(self) -> dict[str, dict[str, str]]:
        """Return a plain ``{group: {key: value}}`` copy."""
        return {name: dict(group.fields) for name, group in self._groups.items()}


__all__ = ["SecretGroup", "SecretSet"]
