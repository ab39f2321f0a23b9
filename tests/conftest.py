"""Shared fixtures for the binlog reader tests."""

from unittest.mock import MagicMock

import pytest

from core.models import BinlogConfig
from tests.fakes import FakeClientFactory, FakeJournalValidator


@pytest.fixture
def binlog_config():
    """Reader configuration for schema shop."""
    return BinlogConfig(
        host="db.internal",
        port=3306,
        username="reader",
        password="s3cret",
        jdbc_url="jdbc:mysql://db.internal:3306/shop?useSSL=false",
        tables=("orders",),
        slave_id=4242,
        buffer_size=8,
        detecting_enable=False,
    )


@pytest.fixture
def client_factory():
    return FakeClientFactory()


@pytest.fixture
def journal_validator():
    return FakeJournalValidator()


@pytest.fixture
def authority_checker():
    """Authority checker that always passes."""
    return MagicMock()
