import pytest

import auth
import cv_store
from db import verify_connection
from models import CVData, ExperienceEntry


@pytest.fixture
def owners(db):
    alice = auth.create_user("alice", "alice@example.com", "pw")
    bob = auth.create_user("bob", "bob@example.com", "pw")
    return alice["id"], bob["id"]


def test_create_and_get(owners):
    alice, _ = owners
    cv = CVData(summary="Hi", experience=[ExperienceEntry(id="e1", job_title="Dev")])
    record = cv_store.create_cv(alice, cv, template_id="modern", name="Main")

    assert record["name"] == "Main"
    assert record["template_id"] == "modern"
    assert record["cv_data"]["experience"][0]["jobTitle"] == "Dev"
    assert CVData.model_validate(cv_store.get_cv(alice, record["id"])["cv_data"]) == cv


def test_default_name(owners):
    alice, _ = owners
    assert cv_store.create_cv(alice, {"summary": ""}, name="  ")["name"] == "Untitled CV"


def test_other_owner_sees_nothing(owners):
    alice, bob = owners
    cv_id = cv_store.create_cv(alice, CVData())["id"]

    assert cv_store.get_cv(bob, cv_id) is None
    assert cv_store.update_cv(bob, cv_id, name="stolen") is None
    assert cv_store.delete_cv(bob, cv_id) is False
    assert cv_store.list_cvs(bob) == []
    assert cv_store.get_cv(alice, cv_id)["name"] == "Untitled CV"


def test_list_is_newest_first_without_payload(owners):
    alice, _ = owners
    first = cv_store.create_cv(alice, CVData(), name="first")["id"]
    second = cv_store.create_cv(alice, CVData(), name="second")["id"]
    cv_store.update_cv(alice, first, name="first again")

    listed = cv_store.list_cvs(alice)
    assert [r["id"] for r in listed] == [first, second]
    assert "cv_data" not in listed[0]


def test_partial_update(owners):
    alice, _ = owners
    record = cv_store.create_cv(alice, CVData(summary="a"), template_id="classic", name="n")

    updated = cv_store.update_cv(alice, record["id"], cv_data=CVData(summary="b"), template_id=None)
    assert updated["cv_data"]["summary"] == "b"
    assert updated["template_id"] == "classic"
    assert updated["name"] == "n"
    assert updated["updated_at"] >= record["updated_at"]


def test_update_without_fields_raises(owners):
    alice, _ = owners
    record = cv_store.create_cv(alice, CVData())
    with pytest.raises(ValueError):
        cv_store.update_cv(alice, record["id"])


def test_delete_and_count(owners):
    alice, _ = owners
    cv_id = cv_store.create_cv(alice, CVData())["id"]
    assert cv_store.count_cvs() == 1
    assert cv_store.delete_cv(alice, cv_id) is True
    assert cv_store.get_cv(alice, cv_id) is None
    assert cv_store.count_cvs() == 0


def test_connection_probe(db):
    assert verify_connection() is True
