import threading
import time

import pytest

from feeportal.core.entities import Student, new_student_id
from feeportal.core.enums import EventType
from feeportal.main import FeePortal
from feeportal.persistence import InMemoryStore
from feeportal.services import FileSyncChannel

TIMEOUT = 5


@pytest.fixture
def file_contexts(tmp_path):
    """Two contexts on one store, each with its own channel on a shared log."""
    store = InMemoryStore()
    log_path = str(tmp_path / "sync.jsonl")
    channel_a = FileSyncChannel(log_path=log_path)
    channel_b = FileSyncChannel(log_path=log_path)
    tab_a = FeePortal({'context_id': 'tab-a', 'payment_delay': 0}, store=store, channel=channel_a).open()
    tab_b = FeePortal({'context_id': 'tab-b', 'payment_delay': 0}, store=store, channel=channel_b).open()
    yield tab_a, tab_b
    tab_a.close()
    tab_b.close()
    channel_a.close()
    channel_b.close()


def test_local_update_completes_while_remote_change_is_delivered(file_contexts):
    tab_a, tab_b = file_contexts
    tab_b.repository.update("2", lambda s: s.with_changes(name="Robert"))
    poller = threading.Thread(target=tab_a.channel.poll, daemon=True)

    def rename_while_polling(student):
        # The poller reads tab-b's message and waits for tab-a's record lock.
        poller.start()
        time.sleep(0.2)
        return student.with_changes(name="Caroline")

    writer = threading.Thread(target=tab_a.repository.update, args=("3", rename_while_polling), daemon=True)
    writer.start()
    writer.join(TIMEOUT)
    poller.join(TIMEOUT)

    assert not writer.is_alive()
    assert not poller.is_alive()
    assert tab_a.repository.find_by_id("2").name == "Robert"
    assert tab_b.channel.poll() == 1


def test_publish_is_not_blocked_by_a_slow_handler(file_contexts):
    tab_a, tab_b = file_contexts
    handler_started = threading.Event()
    release_handler = threading.Event()

    def slow_handler(event):
        handler_started.set()
        release_handler.wait(TIMEOUT)

    tab_a.broadcaster.subscribe({EventType.COLLECTION_CHANGED}, slow_handler)
    tab_b.repository.update("2", lambda s: s.with_changes(name="Robert"))
    poller = threading.Thread(target=tab_a.channel.poll, daemon=True)
    poller.start()
    assert handler_started.wait(TIMEOUT)

    writer = threading.Thread(target=tab_a.repository.update,
                              args=("3", lambda s: s.with_changes(name="Caroline")), daemon=True)
    writer.start()
    writer.join(TIMEOUT)
    release_handler.set()
    poller.join(TIMEOUT)

    assert not writer.is_alive()
    assert not poller.is_alive()


def test_polling_threads_keep_contexts_in_sync_during_concurrent_writes(tmp_path):
    def config(context_id):
        return {
            'store_type': 'file',
            'store_config': {'base_path': str(tmp_path / "store")},
            'sync_type': 'file',
            'sync_config': {'log_path': str(tmp_path / "sync.jsonl"), 'poll_interval': 0.01,
                            'max_log_bytes': 8000},
            'payment_delay': 0,
            'context_id': context_id,
        }

    with FeePortal(config("tab-a")) as tab_a, FeePortal(config("tab-b")) as tab_b:
        def sign_up_many(portal, prefix):
            for i in range(20):
                portal.repository.insert(Student(
                    id=new_student_id(), name=f"{prefix} {i}", email=f"{prefix}{i}@x.edu", password="pw",
                ))
                time.sleep(0.005)

        writers = [
            threading.Thread(target=sign_up_many, args=(tab_a, "a"), daemon=True),
            threading.Thread(target=sign_up_many, args=(tab_b, "b"), daemon=True),
        ]
        for writer in writers:
            writer.start()
        for writer in writers:
            writer.join(TIMEOUT)
        assert not any(writer.is_alive() for writer in writers)
        # Let both pollers drain what the writers published.
        time.sleep(0.3)

        tab_a.repository.update("4", lambda s: s.with_changes(fees_paid=True))

        deadline = time.monotonic() + TIMEOUT
        while time.monotonic() < deadline:
            if tab_b.repository.find_by_id("4").fees_paid:
                break
            time.sleep(0.02)
        assert tab_b.repository.find_by_id("4").fees_paid is True
        assert tab_b.repository.all() == tab_a.repository.all()
