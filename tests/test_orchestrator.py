"""Tests for the wired application and its connectivity flows."""

import asyncio
from datetime import date
from decimal import Decimal

import pytest
from tenacity import wait_none

from microledger.config import get_settings
from microledger.models.ledger import CustomerStatus, TransactionType
from microledger.models.sync import RemoteCollection, SyncAction
from microledger.orchestrator import LedgerApp, create_app, create_remote_store
from microledger.services.local import InMemoryLocalStore
from microledger.services.remote import InMemoryRemoteStore, PostgrestRemoteStore
from microledger.sync.connectivity import ManualConnectivity, RemoteProbeConnectivity


def _app(remote, connected=True):
    connectivity = ManualConnectivity(connected=connected)
    app = LedgerApp(InMemoryLocalStore(), remote, connectivity, retry_wait=wait_none())
    return app, connectivity


def _rows(remote, collection, customer_id=None):
    rows = remote.rows(collection)
    if customer_id is None:
        return rows
    return [r for r in rows if r["customer_id"] == customer_id]


class TestOfflineRoundTrip:
    """A loan repaid in full while offline, then synced."""

    def test_offline_payoff_reaches_remote(self):
        """Test that every offline mutation lands remotely after reconnecting."""
        remote = InMemoryRemoteStore()
        app, connectivity = _app(remote)

        async def scenario():
            await app.start()
            ani = app.service.add_customer(
                "Ani", "Pasar", date(2024, 1, 1), Decimal("500000"), Decimal("10"), 10
            )
            await app.worker.drain()
            assert remote.get_row(RemoteCollection.CUSTOMERS, ani.id) is not None

            await connectivity.set_connected(False)
            remote.online = False
            for _ in range(10):
                app.service.add_transaction(ani.id, TransactionType.REPAYMENT, Decimal("55000"))

            assert app.state.get_customer(ani.id).status == CustomerStatus.PAID_OFF
            pending = app.queue.peek()
            assert len(pending) == 11
            assert [e.action for e in pending].count(SyncAction.UPDATE) == 1
            status = app.sync_status()
            assert status.connected is False
            assert status.pending == 11
            assert status.is_synced is False

            remote.online = True
            await connectivity.set_connected(True)

            customer_row = remote.get_row(RemoteCollection.CUSTOMERS, ani.id)
            assert customer_row["status"] == "paid-off"
            assert customer_row["loan_amount"] == 500000
            repayments = [
                r for r in _rows(remote, RemoteCollection.TRANSACTIONS, ani.id)
                if r["type"] == "repayment"
            ]
            assert len(repayments) == 10
            assert sum(r["amount"] for r in repayments) == 550000
            assert len(app.queue) == 0
            assert app.sync_status().is_synced is True
            assert app.reconciler.last_report.used_remote is True
            await app.stop()

        asyncio.run(scenario())


class TestReconnect:
    """Tests for the reconnect flow."""

    def test_replay_runs_before_reconcile(self):
        """Test that a pending insert is pushed before the snapshot is fetched."""
        remote = InMemoryRemoteStore()
        app, connectivity = _app(remote, connected=False)

        async def scenario():
            await app.start()
            saver = app.service.add_saver("Budi", Decimal("50000"), date(2024, 1, 3))
            report = await app.on_connected()
            assert report.pending_applied == 0
            assert report.orphans_recovered == []
            assert remote.get_row(RemoteCollection.CUSTOMERS, saver.id) is not None
            await app.stop()

        asyncio.run(scenario())

        ops = [op for op, _, _ in remote.calls]
        assert ops.index("upsert") < ops.index("select_range")

    def test_offline_start_keeps_local_snapshot(self):
        """Test that starting offline falls back without touching the remote."""
        remote = InMemoryRemoteStore()
        app, _ = _app(remote, connected=False)

        async def scenario():
            await app.start()
            await app.stop()

        asyncio.run(scenario())

        assert app.reconciler.last_report.used_remote is False
        assert remote.calls == []

    def test_mutations_offline_do_not_schedule_replay(self):
        """Test that replay requests are ignored while disconnected."""
        remote = InMemoryRemoteStore()
        app, _ = _app(remote, connected=False)

        async def scenario():
            await app.start()
            app.service.add_saver("Budi", Decimal("50000"), date(2024, 1, 3))
            await asyncio.sleep(0.3)
            pending = len(app.queue)
            await app.stop()
            return pending

        assert asyncio.run(scenario()) == 2
        assert remote.calls == []

    def test_mutation_online_replays_after_debounce(self):
        """Test that a mutation reaches the remote without an explicit drain."""
        remote = InMemoryRemoteStore()
        app, _ = _app(remote)

        async def scenario():
            await app.start()
            app.service.add_saver("Budi", Decimal("50000"), date(2024, 1, 3))
            for _ in range(50):
                if not app.queue.peek():
                    break
                await asyncio.sleep(0.05)
            await app.stop()

        asyncio.run(scenario())

        assert len(app.queue) == 0
        assert len(remote.rows(RemoteCollection.CUSTOMERS)) == 1


class TestConnectivity:
    """Tests for the connectivity monitors."""

    def test_manual_listeners_fire_only_on_transition(self):
        """Test that repeating the current state notifies nobody."""
        connectivity = ManualConnectivity(connected=False)
        calls = []

        async def on_connected():
            calls.append("up")

        async def on_disconnected():
            calls.append("down")

        connectivity.subscribe(on_connected, on_disconnected)

        async def scenario():
            await connectivity.set_connected(True)
            await connectivity.set_connected(True)
            await connectivity.set_connected(False)
            await connectivity.set_connected(False)

        asyncio.run(scenario())
        assert calls == ["up", "down"]

    def test_probe_reports_transitions(self):
        """Test that pinging the remote drives the state."""
        remote = InMemoryRemoteStore()
        connectivity = RemoteProbeConnectivity(remote, interval_seconds=60)
        calls = []

        async def on_connected():
            calls.append("up")

        connectivity.subscribe(on_connected=on_connected)

        async def scenario():
            assert await connectivity.probe() is True
            assert await connectivity.probe() is True
            remote.online = False
            assert await connectivity.probe() is False
            assert connectivity.is_connected is False

        asyncio.run(scenario())
        assert calls == ["up"]

    def test_probe_start_syncs_app_once(self):
        """Test that a probe-driven start reconciles exactly once."""
        remote = InMemoryRemoteStore()
        connectivity = RemoteProbeConnectivity(remote, interval_seconds=60)
        app = LedgerApp(InMemoryLocalStore(), remote, connectivity, retry_wait=wait_none())

        async def scenario():
            await app.start()
            await app.stop()

        asyncio.run(scenario())

        assert app.reconciler.last_report.used_remote is True
        # one page per collection
        assert [op for op, _, _ in remote.calls].count("select_range") == 2


class TestFactories:
    """Tests for building the application from configuration."""

    @pytest.fixture(autouse=True)
    def fresh_settings(self):
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()

    def test_default_backend_is_memory(self, monkeypatch):
        """Test the backend with no configuration."""
        monkeypatch.delenv("LEDGER_REMOTE_BACKEND", raising=False)
        assert isinstance(create_remote_store(get_settings()), InMemoryRemoteStore)

    def test_postgrest_backend(self, monkeypatch):
        """Test selecting the REST backend from the environment."""
        monkeypatch.setenv("LEDGER_REMOTE_BACKEND", "postgrest")
        monkeypatch.setenv("POSTGREST_URL", "https://db.example.test/rest/v1")
        monkeypatch.setenv("POSTGREST_API_KEY", "anon-key")
        assert isinstance(create_remote_store(get_settings()), PostgrestRemoteStore)

    def test_create_app_uses_file_store(self, monkeypatch, tmp_path):
        """Test that the built app persists under the configured directory."""
        monkeypatch.setenv("LEDGER_REMOTE_BACKEND", "memory")
        monkeypatch.setenv("LEDGER_LOCAL_DATA_DIR", str(tmp_path))
        app = create_app(connectivity=ManualConnectivity(connected=False))

        app.service.add_saver("Budi", Decimal("50000"), date(2024, 1, 3))

        assert (tmp_path / "customers.json").exists()
        assert (tmp_path / "sync_queue.json").exists()
