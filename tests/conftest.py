"""Shared fixtures: every test runs against in-memory local and remote stores."""

import pytest

from microledger.audit import AuditLogger
from microledger.config import AppSettings
from microledger.ledger.service import LedgerService
from microledger.ledger.state import LedgerState
from microledger.services.local import InMemoryLocalStore
from microledger.services.remote import InMemoryRemoteStore
from microledger.sync.ids import IdentifierGenerator
from microledger.sync.queue import SyncQueue


@pytest.fixture
def local_store():
    return InMemoryLocalStore()


@pytest.fixture
def remote():
    return InMemoryRemoteStore()


@pytest.fixture
def audit():
    return AuditLogger()


@pytest.fixture
def ids(local_store):
    return IdentifierGenerator(local_store)


@pytest.fixture
def queue(local_store, ids, audit):
    return SyncQueue(local_store, ids, audit)


@pytest.fixture
def state(local_store, audit):
    return LedgerState(local_store, audit)


@pytest.fixture
def app_settings():
    return AppSettings(default_saver_location="outside", max_transaction_amount=1_000_000_000)


@pytest.fixture
def service(state, queue, ids, audit, app_settings):
    return LedgerService(state, queue, ids, audit, app_settings)
