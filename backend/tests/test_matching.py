from datetime import date, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from lostfound.errors import NotFoundOrForbidden, PersistenceError
from lostfound.extensions import db
from lostfound.models import Match, Notification
from lostfound.modules.matches import engine
from lostfound.modules.matches.engine import find_matches, get_item_matches, get_user_matches
from lostfound.modules.items.service import resolve_item

D = date(2024, 5, 10)


@pytest.fixture
def owners(make_user):
    return make_user("Alice"), make_user("Bob")


def _notifications(user):
    return Notification.query.filter_by(user_id=user.id).order_by(Notification.id).all()


def test_lost_item_matches_found_item(owners, make_item):
    alice, bob = owners
    found = make_item(bob, type="found", item_name="Backpack", location="Library")
    lost = make_item(alice, type="lost", occurred_on=D + timedelta(days=1))

    results = find_matches(lost)

    assert len(results) == 1
    assert results[0].item.id == found.id
    # 40 + 40 + 8 + 7 (partial location)
    assert results[0].score == 95
    match = Match.query.one()
    assert (match.lost_item_id, match.found_item_id) == (lost.id, found.id)
    assert match.notified is True

    to_bob = _notifications(bob)
    to_alice = _notifications(alice)
    assert [n.type for n in to_bob] == ["match_found"]
    assert to_bob[0].related_item_id == lost.id
    assert "Backpack" in to_bob[0].message
    assert to_alice[0].related_item_id == found.id
    assert to_alice[0].message == "Your lost item might match with: Backpack"


def test_found_item_is_stored_in_found_column(owners, make_item):
    alice, bob = owners
    lost = make_item(alice, type="lost")
    found = make_item(bob, type="found")

    find_matches(found)

    match = Match.query.one()
    assert match.lost_item_id == lost.id
    assert match.found_item_id == found.id


@pytest.mark.parametrize(
    "candidate",
    [
        {"type": "lost"},
        {"status": "resolved"},
        {"color": "Blue"},
        {"category": "Phone"},
        {"occurred_on": D + timedelta(days=4)},
        {"occurred_on": D - timedelta(days=5)},
    ],
    ids=["same-type", "resolved", "other-color", "other-category", "after-window", "before-window"],
)
def test_candidates_outside_the_filter_are_ignored(owners, make_item, candidate):
    alice, bob = owners
    fields = {"type": "found"}
    fields.update(candidate)
    make_item(bob, **fields)
    lost = make_item(alice, type="lost")

    assert find_matches(lost) == []
    assert Match.query.count() == 0


def test_own_items_never_match(owners, make_item):
    alice, _ = owners
    make_item(alice, type="found")
    lost = make_item(alice, type="lost")

    assert find_matches(lost) == []


def test_category_and_color_compare_case_insensitively(owners, make_item):
    alice, bob = owners
    make_item(bob, type="found", category=" bag ", color="BLACK")
    lost = make_item(alice, type="lost")

    assert len(find_matches(lost)) == 1


def test_three_days_apart_is_still_in_window(owners, make_item):
    alice, bob = owners
    make_item(bob, type="found", occurred_on=D + timedelta(days=3))
    lost = make_item(alice, type="lost")

    results = find_matches(lost)

    assert [r.score for r in results] == [93]


def test_threshold_is_inclusive(owners, make_item):
    alice, bob = owners
    # 40 + 40 + 8 + 0
    make_item(bob, type="found", occurred_on=D + timedelta(days=1), location="Gym")
    lost = make_item(alice, type="lost")

    assert find_matches(lost, threshold=89) == []
    assert [r.score for r in find_matches(lost, threshold=88)] == [88]


def test_results_follow_candidate_order(owners, make_user, make_item):
    alice, bob = owners
    carol = make_user("Carol")
    first = make_item(bob, type="found")
    second = make_item(carol, type="found")
    lost = make_item(alice, type="lost")

    assert [r.item.id for r in find_matches(lost)] == [first.id, second.id]


def test_rerun_does_not_duplicate_matches_or_notifications(owners, make_item):
    alice, bob = owners
    make_item(bob, type="found")
    lost = make_item(alice, type="lost")

    find_matches(lost)
    again = find_matches(lost)

    assert len(again) == 1
    assert Match.query.count() == 1
    assert len(_notifications(alice)) == 1
    assert len(_notifications(bob)) == 1


def test_unnotified_pair_is_notified_on_rerun(owners, make_item):
    alice, bob = owners
    found = make_item(bob, type="found")
    lost = make_item(alice, type="lost")
    db.session.add(Match(lost_item_id=lost.id, found_item_id=found.id, score=100))
    db.session.commit()

    find_matches(lost)

    assert Match.query.one().notified is True
    assert len(_notifications(alice)) == 1
    assert len(_notifications(bob)) == 1


def test_rerun_after_partial_notification_only_notifies_the_missing_owner(owners, make_item, monkeypatch):
    alice, bob = owners
    make_item(bob, type="found")
    lost = make_item(alice, type="lost")
    real = engine.create_notification
    calls = []

    def second_call_fails(user_id, *args, **kwargs):
        calls.append(user_id)
        if len(calls) == 2:
            db.session.rollback()
            raise PersistenceError("Error creating notification")
        return real(user_id, *args, **kwargs)

    monkeypatch.setattr(engine, "create_notification", second_call_fails)
    with pytest.raises(PersistenceError):
        find_matches(lost)

    match = Match.query.one()
    assert match.notified_found is True
    assert match.notified_lost is False

    monkeypatch.setattr(engine, "create_notification", real)
    find_matches(lost)

    assert Match.query.one().notified is True
    assert [n.type for n in _notifications(bob)] == ["match_found"]
    assert [n.type for n in _notifications(alice)] == ["match_found"]


def test_datastore_failure_raises_persistence_error(owners, make_item, monkeypatch):
    alice, _ = owners
    lost = make_item(alice, type="lost")

    def broken(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("database is gone"))

    monkeypatch.setattr(engine, "candidate_query", broken)

    with pytest.raises(PersistenceError):
        find_matches(lost)


def test_configured_threshold_and_window(app, owners, make_item):
    alice, bob = owners
    make_item(bob, type="found", occurred_on=D + timedelta(days=5))
    lost = make_item(alice, type="lost")
    app.config["MATCH_DATE_RANGE_DAYS"] = 7
    app.config["MATCH_THRESHOLD_SCORE"] = 90

    # 40 + 40 + 0 + 10
    assert [r.score for r in find_matches(lost)] == [90]


def test_item_matches_are_owner_only_and_best_first(owners, make_user, make_item):
    alice, bob = owners
    carol = make_user("Carol")
    weaker = make_item(bob, type="found", occurred_on=D + timedelta(days=2))
    stronger = make_item(carol, type="found")
    lost = make_item(alice, type="lost")
    find_matches(lost)

    results = get_item_matches(lost.id, alice.id)

    assert [r.item.id for r in results] == [stronger.id, weaker.id]
    assert [r.score for r in results] == [100, 95]
    with pytest.raises(NotFoundOrForbidden):
        get_item_matches(lost.id, bob.id)
    with pytest.raises(NotFoundOrForbidden):
        get_item_matches(9999, alice.id)


def test_resolving_an_item_keeps_its_matches(owners, make_item):
    alice, bob = owners
    found = make_item(bob, type="found")
    lost = make_item(alice, type="lost")
    find_matches(lost)

    resolve_item(lost.id, alice.id)

    assert Match.query.count() == 1
    assert [r.item.id for r in get_item_matches(lost.id, alice.id)] == [found.id]
    # a resolved item is no longer a candidate for new reports
    assert find_matches(make_item(bob, type="found", item_name="Other bag")) == []


def test_user_matches_show_the_other_side(owners, make_item):
    alice, bob = owners
    found = make_item(bob, type="found", item_name="Found bag")
    lost = make_item(alice, type="lost")
    find_matches(lost)

    rows = get_user_matches(bob.id)

    assert len(rows) == 1
    assert rows[0]["myItemType"] == "found"
    assert rows[0]["foundItemId"] == found.id
    assert rows[0]["otherUserId"] == alice.id
    assert rows[0]["otherUserName"] == "Alice"
