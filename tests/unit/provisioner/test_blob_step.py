"""Unit tests for the blob storage step."""

from __future__ import annotations

import pytest

from flake_provisioner.provisioning.blob import BlobConfig, BlobStep


@pytest.mark.asyncio
async def test_supplied_token_is_accepted_without_automated_cleanup():
    step = BlobStep(BlobConfig(project_name='Shop', token=' blob_rw_abc123 '))

    result = await step.provision()

    assert result.success is True
    assert result.credentials == {'store_name': 'shop-blob', 'token': 'blob_rw_abc123'}
    assert result.compensation.automated is False
    assert result.compensation.resources == ('shop-blob',)


@pytest.mark.asyncio
async def test_missing_token_fails_with_manual_instructions():
    step = BlobStep(BlobConfig(project_name='Shop'))

    result = await step.provision()

    assert result.success is False
    assert 'shop-blob' in result.error
    assert any("'shop-blob'" in line for line in result.remediation)


@pytest.mark.asyncio
async def test_wrong_token_prefix_is_rejected():
    step = BlobStep(BlobConfig(project_name='Shop', token='vercel_token'))

    result = await step.provision()

    assert result.success is False
    assert 'blob_rw_' in result.error


def test_explicit_store_name_wins():
    assert BlobStep(BlobConfig(project_name='Shop', store_name='assets')).store_name == 'assets'
