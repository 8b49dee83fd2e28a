"""Deterministic per-environment resource names.

Turso database names must be 3-32 characters of ``[a-z0-9-]``. The project
name is slugified and cut to 24 characters so the longest environment suffix
(``-staging``) still fits.
"""

from __future__ import annotations

import re

from ..errors import NamingError

MIN_NAME_LENGTH = 3
MAX_NAME_LENGTH = 32
_BASE_NAME_LENGTH = 24
_BLOB_SUFFIX = '-blob'

_INVALID_CHARS_RE = re.compile(r'[^a-z0-9-]')
_DASH_RUN_RE = re.compile(r'-+')
_VALID_NAME_RE = re.compile(r'^[a-z0-9-]+$')
_ENV_SUFFIX_RE = re.compile(r'-(dev|development|stg|staging|prod|production)$')


def sanitize_name(value: str, *, max_length: int = _BASE_NAME_LENGTH) -> str:
    """Lowercase slug of ``value`` limited to ``max_length`` characters."""
    slug = _INVALID_CHARS_RE.sub('-', value.lower())
    slug = _DASH_RUN_RE.sub('-', slug).strip('-')
    return slug[:max_length].rstrip('-')


def database_names(
    project_name: str,
    environments: tuple[str, ...] = ('dev', 'staging', 'prod'),
) -> dict[str, str]:
    """Map each environment to its database name.

    ``prod`` uses the bare base name; every other environment gets a
    ``-<env>`` suffix.

    Raises:
        NamingError: If the base name is too short or a derived name breaks
            the length or character rules.
    """
    base = sanitize_name(project_name)
    if len(base) < MIN_NAME_LENGTH:
        raise NamingError(
            f"Project name '{project_name}' is too short: database names need "
            f'at least {MIN_NAME_LENGTH} characters'
        )

    names = {env: base if env == 'prod' else f'{base}-{env}' for env in environments}
    for env, name in names.items():
        validate_database_name(name, environment=env)
    return names


def validate_database_name(name: str, *, environment: str = '') -> None:
    label = f'{environment} database name' if environment else 'database name'
    if len(name) > MAX_NAME_LENGTH:
        raise NamingError(f"{label} '{name}' is too long (max {MAX_NAME_LENGTH} characters)")
    if len(name) < MIN_NAME_LENGTH:
        raise NamingError(f"{label} '{name}' is too short (min {MIN_NAME_LENGTH} characters)")
    if not _VALID_NAME_RE.match(name):
        raise NamingError(
            f"{label} '{name}' contains invalid characters "
            '(lowercase letters, digits and hyphens only)'
        )


def extract_project_base_name(database_name: str) -> str:
    """Strip an environment suffix: ``shop-staging`` -> ``shop``."""
    return _ENV_SUFFIX_RE.sub('', database_name)


def blob_store_name(project_name: str) -> str:
    """Blob store name ``<base>-blob`` within the 32 character limit."""
    base = sanitize_name(project_name, max_length=MAX_NAME_LENGTH - len(_BLOB_SUFFIX))
    if not base:
        raise NamingError(f"Project name '{project_name}' yields an empty blob store name")
    return f'{base}{_BLOB_SUFFIX}'
