from datetime import datetime, timedelta, timezone

import pytest

from drcrop.models.analysis import Analysis
from drcrop.models.schemas import AnalysisResult
from drcrop.services.storage import AccessDeniedError, DuplicateUsernameError, RecordNotFoundError


def _result(severity="Moderate", percent=50, disease="Late Blight"):
    return AnalysisResult(
        disease=disease,
        severity=severity,
        severity_percent=percent,
        organic_diagnosis="Remove infected leaves\n• Spray neem oil",
        chemical_diagnosis="Apply copper fungicide",
    )


@pytest.fixture
def owner(storage):
    return storage.create_user("owner", "hashed-password")


@pytest.fixture
def other(storage):
    return storage.create_user("other", "hashed-password")


def test_round_trip_keeps_field_values(storage, owner):
    result = _result("Severe", 75)

    created = storage.create_analysis(owner.id, "uploads/leaf.png", result)
    fetched = storage.get_analysis(created.id)

    assert fetched.id == created.id
    assert fetched.created_at is not None
    assert fetched.user_id == owner.id
    assert fetched.image_path == "uploads/leaf.png"
    assert (
        fetched.disease,
        fetched.severity,
        fetched.severity_percent,
        fetched.organic_diagnosis,
        fetched.chemical_diagnosis,
    ) == (
        result.disease,
        result.severity,
        result.severity_percent,
        result.organic_diagnosis,
        result.chemical_diagnosis,
    )


def test_duplicate_username_is_rejected(storage, owner):
    with pytest.raises(DuplicateUsernameError):
        storage.create_user("owner", "another-hash")


def test_ownership_is_distinguished_from_absence(storage, owner, other):
    analysis = storage.create_analysis(owner.id, "a.png", _result())

    assert storage.get_owned_analysis(analysis.id, owner.id).id == analysis.id
    with pytest.raises(AccessDeniedError):
        storage.get_owned_analysis(analysis.id, other.id)
    with pytest.raises(AccessDeniedError):
        storage.delete_analysis(analysis.id, other.id)
    with pytest.raises(RecordNotFoundError):
        storage.delete_analysis("missing-id", owner.id)

    storage.delete_analysis(analysis.id, owner.id)
    assert storage.get_analysis(analysis.id) is None


def test_history_is_per_user_and_newest_first(storage, database, owner, other):
    first = storage.create_analysis(owner.id, "1.png", _result())
    second = storage.create_analysis(owner.id, "2.png", _result())
    storage.create_analysis(other.id, "3.png", _result())
    with database.session() as session:
        session.get(Analysis, first.id).created_at = datetime.now(timezone.utc) - timedelta(hours=1)

    history = storage.get_analyses_by_user_id(owner.id)

    assert [a.id for a in history] == [second.id, first.id]
    assert [a.id for a in storage.get_analyses_by_user_id(owner.id, limit=1, offset=1)] == [first.id]


def test_bulk_delete_is_scoped_to_owner(storage, owner, other):
    mine = [storage.create_analysis(owner.id, f"{i}.png", _result()) for i in range(3)]
    theirs = storage.create_analysis(other.id, "x.png", _result())

    removed = storage.delete_analyses(owner.id, ids=[mine[0].id, theirs.id])

    assert [a.id for a in removed] == [mine[0].id]
    assert storage.get_analysis(theirs.id) is not None
    assert storage.delete_analyses(owner.id, ids=[]) == []

    removed = storage.delete_analyses(owner.id)
    assert {a.id for a in removed} == {mine[1].id, mine[2].id}
    assert storage.get_analyses_by_user_id(owner.id) == []


def test_user_stats(storage, database, owner, other):
    storage.create_analysis(owner.id, "a.png", _result("None", 5))
    storage.create_analysis(owner.id, "b.png", _result("Mild", 25))
    storage.create_analysis(owner.id, "c.png", _result("Moderate", 50))
    old = storage.create_analysis(owner.id, "d.png", _result("Severe", 75))
    storage.create_analysis(other.id, "e.png", _result("Severe", 90))
    with database.session() as session:
        session.get(Analysis, old.id).created_at = datetime.now(timezone.utc) - timedelta(days=2)

    assert storage.get_user_stats(owner.id) == {
        "scansToday": 3,
        "healthyPlants": 1,
        "needTreatment": 2,
        "criticalCases": 1,
    }


def test_deleting_user_cascades_to_analyses(storage, owner, other):
    mine = storage.create_analysis(owner.id, "a.png", _result())
    theirs = storage.create_analysis(other.id, "b.png", _result())

    removed = storage.delete_user(owner.id)

    assert [a.id for a in removed] == [mine.id]
    assert storage.get_user(owner.id) is None
    assert storage.get_analysis(mine.id) is None
    assert storage.get_analyses_by_user_id(owner.id) == []
    assert storage.get_analysis(theirs.id) is not None


def test_deleting_user_twice_reports_missing_user(storage, owner):
    storage.create_analysis(owner.id, "a.png", _result())
    storage.delete_user(owner.id)

    with pytest.raises(RecordNotFoundError):
        storage.delete_user(owner.id)
