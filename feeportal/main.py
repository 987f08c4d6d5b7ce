"""
Main entry point for the Fee Portal.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, Optional

from .config import DEFAULT_CONFIG, load_config, validate_config
from .core.entities import Student
from .core.enums import EventType
from .core.interfaces import PersistentStore, SyncChannel
from .persistence import InMemoryStore, RecordRepository, StoreFactory
from .services import (
    AuthService, FileSyncChannel, InMemorySyncChannel, SessionService,
    SyncBroadcaster, SyncChannelFactory
)

logger = logging.getLogger(__name__)


class FeePortal:
    """One execution context: store, sync, repository, session and operations.

    Pass ``store`` and ``channel`` to share them with other contexts; when
    they are built from configuration the portal owns and closes them.
    ``seed`` replaces the sample students written on first initialization.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None,
                 store: Optional[PersistentStore] = None,
                 channel: Optional[SyncChannel] = None,
                 seed: Optional[Iterable[Student]] = None):
        self._config = dict(DEFAULT_CONFIG)
        self._config.update(config or {})
        validate_config(self._config)

        self._owns_store = store is None
        self._store = store or StoreFactory.create_store(
            self._config['store_type'], **self._config.get('store_config', {})
        )
        self._owns_channel = channel is None
        self._channel = channel or SyncChannelFactory.create_channel(
            self._config['sync_type'], **self._config.get('sync_config', {})
        )

        self._broadcaster = SyncBroadcaster(self._channel, context_id=self._config.get('context_id'))
        self._repository = RecordRepository(self._store, self._broadcaster, seed=seed)
        self._sessions = SessionService(self._store)
        self._auth = AuthService(
            self._repository,
            self._sessions,
            self._broadcaster,
            payment_delay=float(self._config['payment_delay']),
        )
        self._opened = False

    @property
    def context_id(self) -> str:
        return self._broadcaster.context_id

    @property
    def auth(self) -> AuthService:
        return self._auth

    @property
    def repository(self) -> RecordRepository:
        return self._repository

    @property
    def sessions(self) -> SessionService:
        return self._sessions

    @property
    def broadcaster(self) -> SyncBroadcaster:
        return self._broadcaster

    @property
    def store(self) -> PersistentStore:
        return self._store

    @property
    def channel(self) -> SyncChannel:
        return self._channel

    def open(self) -> "FeePortal":
        """Load durable state and start listening to other contexts."""
        if self._opened:
            return self

        self._repository.load()
        self._sessions.load()
        self._sessions.reconcile(self._repository.all())
        self._auth.start()
        self._broadcaster.start()
        if self._owns_channel and isinstance(self._channel, FileSyncChannel):
            self._channel.start_polling()

        self._opened = True
        logger.info("Context %s opened with %d students", self.context_id, self._repository.count())
        return self

    def close(self) -> None:
        """Stop listening and release owned resources."""
        if not self._opened:
            return

        self._auth.close()
        self._broadcaster.close()
        if self._owns_channel:
            self._channel.close()
        if self._owns_store:
            self._store.close()

        self._opened = False
        logger.info("Context %s closed", self.context_id)

    def __enter__(self) -> "FeePortal":
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def _describe(student: Optional[Student]) -> str:
    if student is None:
        return "nobody"
    return f"{student.name} <{student.email}> fees_paid={student.fees_paid}"


async def run_demo(config: Dict[str, Any]) -> None:
    """Two contexts sharing one store and channel, like two browser tabs."""
    store = InMemoryStore()
    channel = InMemorySyncChannel()
    demo_config = dict(config)
    demo_config['payment_delay'] = min(float(config.get('payment_delay', 2.0)), 0.5)

    with FeePortal({**demo_config, 'context_id': 'tab-a'}, store=store, channel=channel) as tab_a, \
            FeePortal({**demo_config, 'context_id': 'tab-b'}, store=store, channel=channel) as tab_b:
        print(f"✓ Opened contexts {tab_a.context_id} and {tab_b.context_id}")

        ok = await tab_a.auth.signup("Zoe Miller", "zoe@student.edu", "secret")
        print(f"✓ Signup in tab-a: {ok}; session: {_describe(tab_a.auth.current_user)}")
        print(f"  tab-b sees {len(tab_b.auth.list_all())} students")

        ok = await tab_a.auth.signup("Zoe Again", "zoe@student.edu", "other")
        print(f"✓ Duplicate signup rejected: {not ok}")

        await tab_b.auth.login("bob@student.edu", "password123")
        print(f"✓ Login in tab-b: {_describe(tab_b.auth.current_user)}")

        await tab_a.auth.update_profile(name="Zoe M.")
        renamed = [s.name for s in tab_b.auth.list_all() if s.email == "zoe@student.edu"]
        print(f"✓ Profile update in tab-a visible in tab-b: {renamed}")

        paid_events = []
        with tab_b.broadcaster.subscribe(
                {EventType.PAYMENT_COMPLETED}, lambda event: paid_events.append(event.payload)):
            print(f"  Paying fees in tab-b ({tab_b.auth.payment_delay:.1f}s)...")
            await tab_b.auth.pay_fees()
        print(f"✓ Payment completed: {_describe(tab_b.auth.current_user)}; notifications: {paid_events}")

        stats = tab_a.auth.payment_statistics()
        print(f"✓ Statistics in tab-a: {stats.paid}/{stats.total} paid ({stats.paid_percent}%)")
        print(f"  Fee total: {tab_a.auth.fee_statement().total}")


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Student Fee Portal")
    parser.add_argument("--config", type=str, help="Configuration file path")
    parser.add_argument("--demo", action="store_true", help="Run a two-context demo")
    parser.add_argument("--serve", action="store_true", help="Serve the REST API")
    parser.add_argument("--host", type=str, help="REST server host")
    parser.add_argument("--port", type=int, help="REST server port")

    args = parser.parse_args()

    overrides = {}
    if args.host:
        overrides['rest_host'] = args.host
    if args.port:
        overrides['rest_port'] = args.port
    config = load_config(args.config, overrides=overrides)

    logging.basicConfig(
        level=config['log_level'].upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.demo:
        asyncio.run(run_demo(config))
        return

    if args.serve:
        import uvicorn
        from .api import FeePortalRestAPI

        with FeePortal(config) as portal:
            api = FeePortalRestAPI(portal.auth)
            print(f"✓ Fee Portal context {portal.context_id} serving on "
                  f"http://{config['rest_host']}:{config['rest_port']}")
            uvicorn.run(api.app, host=config['rest_host'], port=config['rest_port'],
                        log_level=config['log_level'].lower())
        return

    parser.print_help()


if __name__ == "__main__":
    main()
