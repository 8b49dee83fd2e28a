"""Unit tests for resource naming rules."""

from __future__ import annotations

import pytest

from flake_provisioner.errors import NamingError
from flake_provisioner.provisioning.naming import (
    blob_store_name,
    database_names,
    extract_project_base_name,
    sanitize_name,
    validate_database_name,
)


@pytest.mark.parametrize(
    ('raw', 'expected'),
    [
        ('My Shop', 'my-shop'),
        ('my__shop!!', 'my-shop'),
        ('--edge--', 'edge'),
        ('a' * 40, 'a' * 24),
    ],
)
def test_sanitize_name(raw, expected):
    assert sanitize_name(raw) == expected


def test_sanitize_name_does_not_end_with_dash_after_cut():
    assert sanitize_name('abcdefghijklmnopqrstuvw-xyz') == 'abcdefghijklmnopqrstuvw'


def test_database_names_prod_uses_bare_base():
    assert database_names('Shop') == {
        'dev': 'shop-dev',
        'staging': 'shop-staging',
        'prod': 'shop',
    }


def test_longest_name_fits_limit():
    names = database_names('x' * 60)

    assert max(len(name) for name in names.values()) <= 32


def test_database_names_rejects_short_base():
    with pytest.raises(NamingError):
        database_names('a!')


def test_naming_error_is_value_error():
    with pytest.raises(ValueError):
        validate_database_name('UPPER')


@pytest.mark.parametrize('name', ['ab', 'x' * 33, 'has space', 'under_score'])
def test_validate_database_name_rejects(name):
    with pytest.raises(NamingError):
        validate_database_name(name, environment='dev')


@pytest.mark.parametrize(
    ('name', 'expected'),
    [('shop-dev', 'shop'), ('shop-staging', 'shop'), ('shop-production', 'shop'), ('shop', 'shop')],
)
def test_extract_project_base_name(name, expected):
    assert extract_project_base_name(name) == expected


def test_blob_store_name():
    assert blob_store_name('My Shop') == 'my-shop-blob'
    assert len(blob_store_name('y' * 80)) == 32
