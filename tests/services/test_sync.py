import json
from unittest.mock import Mock

import pytest

from feeportal.core.entities import SyncMessage
from feeportal.core.enums import EventType
from feeportal.core.exceptions import ConfigurationError, SyncError
from feeportal.services import (
    FileSyncChannel, InMemorySyncChannel, SyncBroadcaster, SyncChannelFactory
)


def collect(broadcaster, *event_types):
    received = []
    subscription = broadcaster.subscribe(set(event_types), received.append)
    return received, subscription


def test_collection_change_reaches_other_contexts_only(channel, zoe):
    tab_a = SyncBroadcaster(channel, context_id="tab-a")
    tab_b = SyncBroadcaster(channel, context_id="tab-b")
    tab_a.start()
    tab_b.start()
    seen_a, _ = collect(tab_a, EventType.COLLECTION_CHANGED)
    seen_b, _ = collect(tab_b, EventType.COLLECTION_CHANGED)

    tab_a.publish_collection_change([zoe])

    assert seen_a == []
    assert len(seen_b) == 1
    assert seen_b[0].payload["snapshot"] == [zoe.to_dict()]
    assert seen_b[0].payload["origin"] == "tab-a"


def test_payment_completed_stays_in_context(channel):
    tab_a = SyncBroadcaster(channel, context_id="tab-a")
    tab_b = SyncBroadcaster(channel, context_id="tab-b")
    tab_a.start()
    tab_b.start()
    seen_a, _ = collect(tab_a, EventType.PAYMENT_COMPLETED)
    seen_b, _ = collect(tab_b, EventType.PAYMENT_COMPLETED)

    tab_a.publish_payment_completed("z-1")

    assert [event.payload for event in seen_a] == [{"studentId": "z-1"}]
    assert seen_b == []
    assert channel.get_history() == []


def test_unsubscribe_stops_delivery(channel):
    broadcaster = SyncBroadcaster(channel)
    received, subscription = collect(broadcaster, EventType.PAYMENT_COMPLETED)

    subscription.unsubscribe()
    subscription.unsubscribe()
    broadcaster.publish_payment_completed("1")

    assert received == []
    assert not subscription.active


def test_subscription_context_manager_releases_handler(channel):
    broadcaster = SyncBroadcaster(channel)
    received = []
    with broadcaster.subscribe({EventType.PAYMENT_COMPLETED}, received.append):
        broadcaster.publish_payment_completed("1")
    broadcaster.publish_payment_completed("2")

    assert [event.payload["studentId"] for event in received] == ["1"]
    assert broadcaster.get_statistics()["active_subscriptions"] == 0


def test_failing_handler_does_not_block_others(channel):
    broadcaster = SyncBroadcaster(channel)
    broadcaster.subscribe({EventType.PAYMENT_COMPLETED}, Mock(side_effect=RuntimeError("boom")))
    received, _ = collect(broadcaster, EventType.PAYMENT_COMPLETED)

    broadcaster.publish_payment_completed("1")

    assert len(received) == 1


def test_messages_for_other_keys_are_ignored(channel):
    tab_b = SyncBroadcaster(channel, context_id="tab-b")
    tab_b.start()
    received, _ = collect(tab_b, EventType.COLLECTION_CHANGED)

    channel.publish(SyncMessage(key="settings", snapshot=[], origin="tab-a"))

    assert received == []


def test_close_detaches_from_channel(channel):
    broadcaster = SyncBroadcaster(channel, context_id="tab-a")
    broadcaster.start()
    assert channel.get_context_count() == 1

    broadcaster.close()

    assert channel.get_context_count() == 0


def test_channel_publish_failure_is_logged_not_raised(zoe):
    channel = Mock()
    channel.publish.side_effect = SyncError("down")
    broadcaster = SyncBroadcaster(channel, context_id="tab-a")

    broadcaster.publish_collection_change([zoe])

    assert broadcaster.get_statistics()["delivery_failures"] == 1


def test_in_memory_channel_rejects_double_attach(channel):
    channel.attach("tab-a", Mock())
    with pytest.raises(SyncError):
        channel.attach("tab-a", Mock())


def test_in_memory_channel_preserves_publish_order(channel):
    received = []
    channel.attach("tab-b", received.append)

    for origin in ("tab-a", "tab-c", "tab-a"):
        channel.publish(SyncMessage(key="students", snapshot=[], origin=origin))

    assert [message.origin for message in received] == ["tab-a", "tab-c", "tab-a"]


def test_file_channel_delivers_to_other_processes(tmp_path, zoe):
    log_path = str(tmp_path / "sync.jsonl")
    # Two instances on one file stand in for two processes.
    channel_a = FileSyncChannel(log_path=log_path)
    channel_b = FileSyncChannel(log_path=log_path)
    seen_a, seen_b = [], []
    channel_a.attach("tab-a", seen_a.append)
    channel_b.attach("tab-b", seen_b.append)

    channel_a.publish(SyncMessage.for_collection([zoe], origin="tab-a"))

    assert channel_b.poll() == 1
    assert channel_a.poll() == 0
    assert seen_b[0].students() == [zoe]
    assert seen_a == []
    assert channel_b.poll() == 0


def test_file_channel_only_delivers_messages_after_attach(tmp_path):
    log_path = str(tmp_path / "sync.jsonl")
    channel = FileSyncChannel(log_path=log_path)
    channel.publish(SyncMessage(key="students", snapshot=[], origin="tab-a"))
    received = []
    channel.attach("tab-b", received.append)

    assert channel.poll() == 0


def test_file_channel_skips_malformed_and_partial_lines(tmp_path):
    log_path = tmp_path / "sync.jsonl"
    channel = FileSyncChannel(log_path=str(log_path))
    received = []
    channel.attach("tab-b", received.append)
    good = json.dumps(SyncMessage(key="students", snapshot=[], origin="tab-a").to_dict())
    with open(log_path, "a", encoding="utf-8") as f:
        f.write("not json\n")
        f.write("[1, 2]\n")
        f.write(good + "\n")
        f.write(good[:10])

    assert channel.poll() == 1

    with open(log_path, "a", encoding="utf-8") as f:
        f.write(good[10:] + "\n")

    assert channel.poll() == 1
    assert len(received) == 2


def test_file_channel_polling_thread_stops_on_close(tmp_path):
    channel = FileSyncChannel(log_path=str(tmp_path / "sync.jsonl"), poll_interval=0.01)
    channel.start_polling()
    channel.close()

    assert channel._poll_thread is None


def test_file_channel_log_stays_bounded(tmp_path, zoe):
    log_path = str(tmp_path / "sync.jsonl")
    publisher = FileSyncChannel(log_path=log_path, max_log_bytes=2000)
    reader = FileSyncChannel(log_path=log_path)
    received = []
    reader.attach("tab-b", received.append)
    published = []

    for i in range(50):
        message = SyncMessage.for_collection([zoe.with_changes(name=f"Zoe {i}")], origin="tab-a")
        publisher.publish(message)
        published.append(message.message_id)
        assert publisher.get_log_size() <= 2000
        reader.poll()

    assert [message.message_id for message in received] == published


def test_reader_behind_a_compaction_gets_latest_snapshot(tmp_path, zoe):
    log_path = str(tmp_path / "sync.jsonl")
    publisher = FileSyncChannel(log_path=log_path, max_log_bytes=1000)
    reader = FileSyncChannel(log_path=log_path)
    received = []
    reader.attach("tab-b", received.append)

    for i in range(30):
        publisher.publish(SyncMessage.for_collection([zoe.with_changes(name=f"Zoe {i}")], origin="tab-a"))

    assert reader.poll() >= 1
    assert received[-1].students()[0].name == "Zoe 29"
    assert reader.poll() == 0


def test_file_channel_rejects_non_positive_log_limit(tmp_path):
    with pytest.raises(ConfigurationError):
        FileSyncChannel(log_path=str(tmp_path / "sync.jsonl"), max_log_bytes=0)


def test_channel_factory():
    assert isinstance(SyncChannelFactory.create_channel("memory"), InMemorySyncChannel)
    with pytest.raises(ConfigurationError):
        SyncChannelFactory.create_channel("carrier-pigeon")
