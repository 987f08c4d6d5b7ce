import json
from unittest.mock import Mock

import pytest

from feeportal.core.entities import Student
from feeportal.core.exceptions import (
    DuplicateEmailError, NotFoundError, PersistenceError, ValidationError
)
from feeportal.persistence import INITIAL_STUDENTS, InMemoryStore, RecordRepository, decode_students


@pytest.fixture
def broadcaster():
    return Mock()


@pytest.fixture
def repository(store, broadcaster):
    repo = RecordRepository(store, broadcaster)
    repo.load()
    broadcaster.reset_mock()
    return repo


def test_first_load_seeds_and_persists_sample_students(store):
    repo = RecordRepository(store)
    students = repo.load()

    assert [s.id for s in students] == ["1", "2", "3", "4", "5"]
    assert [s.fees_paid for s in students] == [True, False, True, False, True]
    assert decode_students(store.load("students")) == students


def test_load_uses_existing_collection_instead_of_seed(store, zoe):
    store.save("students", json.dumps([zoe.to_dict()]).encode())

    assert RecordRepository(store).load() == [zoe]


def test_load_with_empty_seed(store):
    repo = RecordRepository(store, seed=())
    assert repo.load() == []
    assert store.load("students") == b"[]"


def test_load_rejects_malformed_collection(store):
    store.save("students", b"{not json")
    with pytest.raises(PersistenceError):
        RecordRepository(store).load()


def test_find_by_credentials_requires_exact_match(repository):
    assert repository.find_by_credentials("alice@student.edu", "password123").id == "1"
    assert repository.find_by_credentials("alice@student.edu", "wrong") is None
    assert repository.find_by_credentials("ALICE@student.edu", "password123") is None


def test_email_exists_can_exclude_a_record(repository):
    assert repository.email_exists("bob@student.edu")
    assert not repository.email_exists("bob@student.edu", excluding_id="2")
    assert repository.email_exists("bob@student.edu", excluding_id="1")


def test_insert_persists_and_broadcasts(repository, store, broadcaster, zoe):
    repository.insert(zoe)

    assert repository.all()[-1] == zoe
    assert zoe in decode_students(store.load("students"))
    broadcaster.publish_collection_change.assert_called_once_with(repository.all())


def test_insert_duplicate_email_is_rejected(repository, store, broadcaster):
    before = store.load("students")
    clone = Student(id="99", name="Clone", email="alice@student.edu", password="x")

    with pytest.raises(DuplicateEmailError) as excinfo:
        repository.insert(clone)

    assert excinfo.value.details["existing_id"] == "1"
    assert repository.count() == len(INITIAL_STUDENTS)
    assert store.load("students") == before
    broadcaster.publish_collection_change.assert_not_called()


def test_insert_duplicate_id_is_rejected(repository):
    with pytest.raises(ValidationError):
        repository.insert(Student(id="1", name="Other", email="other@x.edu", password="x"))


def test_update_changes_exactly_one_record(repository, broadcaster):
    updated = repository.update("2", lambda s: s.with_changes(name="Robert Smith"))

    assert updated.name == "Robert Smith"
    assert [s.name for s in repository.all()].count("Robert Smith") == 1
    assert repository.find_by_id("1").name == "Alice Johnson"
    broadcaster.publish_collection_change.assert_called_once()


def test_update_missing_id_raises_not_found(repository):
    with pytest.raises(NotFoundError):
        repository.update("404", lambda s: s.with_changes(name="x"))


def test_update_email_collision_is_rejected(repository):
    with pytest.raises(DuplicateEmailError):
        repository.update("2", lambda s: s.with_changes(email="carol@student.edu"))
    assert repository.find_by_id("2").email == "bob@student.edu"


def test_update_keeping_own_email_is_allowed(repository):
    updated = repository.update("2", lambda s: s.with_changes(email="bob@student.edu", name="B"))
    assert updated.email == "bob@student.edu"


def test_update_cannot_revert_fee_status(repository):
    with pytest.raises(ValidationError):
        repository.update("1", lambda s: s.with_changes(fees_paid=False))
    assert repository.find_by_id("1").fees_paid is True


def test_update_cannot_change_id(repository):
    with pytest.raises(ValidationError):
        repository.update("2", lambda s: s.with_changes(id="22"))


def test_collection_round_trips_through_store(repository, store, zoe):
    repository.insert(zoe)
    repository.update("2", lambda s: s.with_changes(fees_paid=True))

    reloaded = RecordRepository(store).load()

    assert {s.id: s for s in reloaded} == {s.id: s for s in repository.all()}


def test_failed_write_leaves_memory_unchanged(zoe):
    store = Mock(wraps=InMemoryStore())
    repo = RecordRepository(store)
    repo.load()
    store.save.side_effect = PersistenceError("disk full")

    with pytest.raises(PersistenceError):
        repo.insert(zoe)

    assert repo.find_by_id(zoe.id) is None


def test_replace_all_does_not_write_or_broadcast(repository, store, broadcaster, zoe):
    before = store.load("students")

    repository.replace_all([zoe])

    assert repository.all() == [zoe]
    assert store.load("students") == before
    broadcaster.publish_collection_change.assert_not_called()


def test_uniqueness_holds_after_mixed_operations(repository):
    repository.insert(Student(id="a", name="A", email="a@x.edu", password="p"))
    for email in ("a@x.edu", "alice@student.edu"):
        with pytest.raises(DuplicateEmailError):
            repository.insert(Student(id=f"dup-{email}", name="D", email=email, password="p"))
    repository.update("a", lambda s: s.with_changes(email="a2@x.edu"))

    emails = [s.email for s in repository.all()]
    assert len(emails) == len(set(emails))
