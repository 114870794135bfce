"""Rule-based matching between a new item and opposite-type items.

Candidates are pre-filtered in SQL (same category and color, active, another
owner, occurred within the date window); each one is then scored by
``score_items`` and kept when it reaches the threshold.

Points:
    category  40   (case-insensitive equality)
    color     40   (case-insensitive equality)
    date      10 / 8 / 5 / 3 / 0  for 0 / <=1 / <=2 / <=3 / >3 days apart
    location  10 exact, 7 when one contains the other
    brand     10 exact, 5 when one contains the other, 0 if either is missing

The total is capped at 100.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import List, Optional

from flask import current_app
from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError

from ...errors import NotFoundOrForbidden, PersistenceError
from ...extensions import db
from ...models.item import Item
from ...models.match import Match
from ..notifications.service import create_notification

logger = logging.getLogger(__name__)

CATEGORY_POINTS = 40
COLOR_POINTS = 40
LOCATION_EXACT_POINTS = 10
LOCATION_PARTIAL_POINTS = 7
BRAND_EXACT_POINTS = 10
BRAND_PARTIAL_POINTS = 5
# days apart -> points; anything further apart scores 0
DATE_POINTS = ((0, 10), (1, 8), (2, 5), (3, 3))
MAX_SCORE = 100


@dataclass
class MatchResult:
    item: Item
    score: int
    match: Match


def _norm(value: str | None) -> str:
    return (value or "").strip().lower()


def _text_points(a: str | None, b: str | None, exact: int, partial: int) -> int:
    x, y = _norm(a), _norm(b)
    if not x or not y:
        return 0
    if x == y:
        return exact
    if x in y or y in x:
        return partial
    return 0


def date_points(d1: Optional[date], d2: Optional[date]) -> int:
    if d1 is None or d2 is None:
        return 0
    days = abs((d1 - d2).days)
    for limit, points in DATE_POINTS:
        if days <= limit:
            return points
    return 0


def score_items(a, b) -> int:
    """Similarity score 0-100 between two items. Symmetric in its arguments."""
    score = 0
    if _norm(a.category) and _norm(a.category) == _norm(b.category):
        score += CATEGORY_POINTS
    if _norm(a.color) and _norm(a.color) == _norm(b.color):
        score += COLOR_POINTS
    score += date_points(a.occurred_on, b.occurred_on)
    score += _text_points(a.location, b.location, LOCATION_EXACT_POINTS, LOCATION_PARTIAL_POINTS)
    score += _text_points(getattr(a, "brand", None), getattr(b, "brand", None), BRAND_EXACT_POINTS, BRAND_PARTIAL_POINTS)
    return min(score, MAX_SCORE)


def is_accepted(score: int, threshold: int) -> bool:
    return score >= threshold


def candidate_query(item: Item, window_days: int):
    start = item.occurred_on - timedelta(days=window_days)
    end = item.occurred_on + timedelta(days=window_days)
    return (
        Item.query
        .filter(
            Item.type == item.opposite_type,
            Item.status == "active",
            func.lower(func.trim(Item.category)) == _norm(item.category),
            func.lower(func.trim(Item.color)) == _norm(item.color),
            Item.occurred_on.between(start, end),
            Item.user_id != item.user_id,
        )
        .order_by(Item.id)
    )


def _orient(item: Item, candidate: Item) -> tuple[Item, Item]:
    return (item, candidate) if item.type == "lost" else (candidate, item)


def _notify_owners(match: Match, new_item: Item, candidate: Item) -> None:
    """Send each owner their ``match_found`` unless an earlier run already did.

    The owner's flag is set before ``create_notification`` commits, so the flag
    and the notification row land in the same commit (or roll back together).
    """
    notices = (
        (candidate, f"We found a potential match for your {candidate.type} item: {candidate.item_name}", new_item.id),
        (new_item, f"Your {new_item.type} item might match with: {candidate.item_name}", candidate.id),
    )
    for owned, message, related_item_id in notices:
        flag = f"notified_{owned.type}"
        if getattr(match, flag):
            continue
        setattr(match, flag, True)
        create_notification(owned.user_id, "match_found", "Possible Match Found!", message, related_item_id)


def find_matches(item: Item, *, threshold: int | None = None, window_days: int | None = None) -> List[MatchResult]:
    """Score ``item`` against the candidate pool and persist accepted pairs.

    Each pair is stored once. Owners are notified once per pair: a pair whose
    notifications did not go out on an earlier run is notified on the next run,
    and only the owner still missing one gets it. Datastore failures raise
    PersistenceError.
    """
    cfg = current_app.config
    if threshold is None:
        threshold = int(cfg.get("MATCH_THRESHOLD_SCORE", 80))
    if window_days is None:
        window_days = int(cfg.get("MATCH_DATE_RANGE_DAYS", 3))

    try:
        candidates = candidate_query(item, window_days).all()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError("Error finding matches") from e

    results: List[MatchResult] = []
    for cand in candidates:
        score = score_items(item, cand)
        if not is_accepted(score, threshold):
            logger.debug("item %s vs %s: score %d below %d", item.id, cand.id, score, threshold)
            continue
        lost, found = _orient(item, cand)
        try:
            match = Match.query.filter_by(lost_item_id=lost.id, found_item_id=found.id).first()
            if match is None:
                match = Match(lost_item_id=lost.id, found_item_id=found.id, score=score)
                db.session.add(match)
                db.session.commit()
                logger.info("match %s: lost %s <-> found %s (score %d)", match.id, lost.id, found.id, score)
        except SQLAlchemyError as e:
            db.session.rollback()
            raise PersistenceError("Error saving match") from e

        _notify_owners(match, item, cand)
        results.append(MatchResult(item=cand, score=score, match=match))
    return results


def get_item_matches(item_id: int, user_id: int) -> List[MatchResult]:
    """Matches for one of the caller's items, best score first."""
    item = db.session.get(Item, item_id)
    if item is None or int(item.user_id) != int(user_id):
        raise NotFoundOrForbidden("Item not found or unauthorized")
    own_col = Match.lost_item_id if item.type == "lost" else Match.found_item_id
    rows = Match.query.filter(own_col == item.id).order_by(Match.score.desc(), Match.created_at.desc()).all()
    out = []
    for m in rows:
        other = m.found_item if item.type == "lost" else m.lost_item
        if other is not None:
            out.append(MatchResult(item=other, score=m.score, match=m))
    return out


def get_user_matches(user_id: int) -> List[dict]:
    """Every match touching one of the user's items, newest first."""
    own_ids = select(Item.id).where(Item.user_id == user_id)
    rows = (
        Match.query
        .filter(or_(Match.lost_item_id.in_(own_ids), Match.found_item_id.in_(own_ids)))
        .order_by(Match.created_at.desc(), Match.id.desc())
        .all()
    )
    out = []
    for m in rows:
        mine_is_lost = int(m.lost_item.user_id) == int(user_id)
        other = m.found_item if mine_is_lost else m.lost_item
        out.append({
            "matchId": m.id,
            "score": m.score,
            "matchedAt": m.created_at.isoformat() if m.created_at else None,
            "lostItemId": m.lost_item_id,
            "lostItemName": m.lost_item.item_name,
            "foundItemId": m.found_item_id,
            "foundItemName": m.found_item.item_name,
            "myItemType": "lost" if mine_is_lost else "found",
            "otherUserId": other.user_id,
            "otherUserName": other.owner.name if other.owner else None,
        })
    return out
