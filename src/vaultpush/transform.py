"""Derived field synthesis for secret groups.

Groups that carry an S3 access/secret key pair get a combined ``s3Secret``
field: the two keys rendered as a two-line YAML-ish snippet and base64
encoded. Groups that already define ``s3Secret`` are left alone, so applying
the transformation repeatedly is a no-op.
"""
from __future__ import annotations

import base64

from .models import SecretGroup, SecretSet

S3_ACCESS_KEY = "s3.accessKey"
S3_SECRET_KEY = "s3.secretKey"
S3_DERIVED_KEY = "s3Secret"


def render_s3_secret(access_key: str, secret_key: str) -> str:
    """Return the canonical two-line representation of an S3 key pair."""
    return f"{S3_ACCESS_KEY}: {access_key}\n{S3_SECRET_KEY}: {secret_key}"


def encode_s3_secret(access_key: str, secret_key: str) -> str:
    """Return the base64-encoded ``s3Secret`` value for the key pair."""
    payload = render_s3_secret(access_key, secret_key).encode("utf-8")
    return base64.b64encode(payload).decode("ascii")


def derive_s3_secret(group: SecretGroup) -> bool:
    """Add ``s3Secret`` to *group* when applicable; return ``True`` if it changed."""
    fields = group.fields
    if S3_DERIVED_KEY in fields:
        return False
    if S3_ACCESS_KEY not in fields or S3_SECRET_KEY not in fields:
        return False
    fields[S3_DERIVED_KEY] = encode_s3_secret(fields[S3_ACCESS_KEY], fields[S3_SECRET_KEY])
    return True


def apply_derived_fields(secret_set: SecretSet) -> list[str]:
    """Derive fields for every group in place and return the names that changed."""
    return [group.name for group in secret_set.groups() if derive_s3_secret(group)]


__all__ = [
    "S3_ACCESS_KEY",
    "S3_DERIVED_KEY",
    "S3_SECRET_KEY",
    "apply_derived_fields",
    "derive_s3_secret",
    "encode_s3_secret",
    "render_s3_secret",
]
