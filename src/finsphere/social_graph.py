"""Directed follow graph with soft-deleted edges.

An edge row is unique per (follower, following) pair. Unfollowing flips
``is_active`` off and keeps the row; following again reactivates it.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import List, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import aliased

from . import models
from .directory import get_active_user
from .errors import DuplicateError, NotFound, ValidationFailed

logger = logging.getLogger(__name__)

Follow = models.Follow
User = models.UserAccount


def _edge(session, follower_id: int, following_id: int):
    return session.query(Follow).filter(
        Follow.follower_id == follower_id,
        Follow.following_id == following_id
    ).first()


def _followed_ids(session, user_id: int) -> set:
    rows = session.query(Follow.following_id).filter(
        Follow.follower_id == user_id,
        Follow.is_active.is_(True)
    ).all()
    return {row[0] for row in rows}


def is_following(session, follower_id: int, following_id: int) -> bool:
    edge = _edge(session, follower_id, following_id)
    return bool(edge and edge.is_active)


def follow_stats(session, user_id: int) -> dict:
    followers = session.query(func.count(Follow.follow_id)).select_from(Follow).join(
        User, User.user_id == Follow.follower_id
    ).filter(Follow.following_id == user_id, Follow.is_active.is_(True), User.is_active.is_(True)).scalar()
    following = session.query(func.count(Follow.follow_id)).select_from(Follow).join(
        User, User.user_id == Follow.following_id
    ).filter(Follow.follower_id == user_id, Follow.is_active.is_(True), User.is_active.is_(True)).scalar()
    return {"followers_count": followers or 0, "following_count": following or 0}


def follow(session, follower_id: int, following_id: int) -> Tuple[models.UserAccount, dict]:
    if follower_id == following_id:
        raise ValidationFailed("You cannot follow yourself")
    target = get_active_user(session, following_id)

    edge = _edge(session, follower_id, following_id)
    if edge and edge.is_active:
        raise DuplicateError("You are already following this user")
    if edge:
        edge.is_active = True
    else:
        session.add(Follow(follower_id=follower_id, following_id=following_id, is_active=True))
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise DuplicateError("You are already following this user")

    logger.info(f"User {follower_id} followed user {following_id}")
    return target, follow_stats(session, following_id)


def unfollow(session, follower_id: int, following_id: int) -> dict:
    edge = _edge(session, follower_id, following_id)
    if not edge or not edge.is_active:
        raise NotFound("Follow relationship not found")
    edge.is_active = False
    session.commit()
    logger.info(f"User {follower_id} unfollowed user {following_id}")
    return follow_stats(session, following_id)


def remove_follower(session, user_id: int, follower_id: int):
    edge = _edge(session, follower_id, user_id)
    if not edge or not edge.is_active:
        raise NotFound("Follower relationship not found")
    edge.is_active = False
    session.commit()
    logger.info(f"User {user_id} removed follower {follower_id}")


def followers(session, user_id: int, limit: int = 50, offset: int = 0) -> List[Tuple[models.UserAccount, datetime]]:
    rows = session.query(User, Follow.updated_at).join(Follow, Follow.follower_id == User.user_id).filter(
        Follow.following_id == user_id,
        Follow.is_active.is_(True),
        User.is_active.is_(True)
    ).order_by(Follow.updated_at.desc(), Follow.follow_id.desc()).offset(offset).limit(limit).all()
    return [(user, followed_at) for user, followed_at in rows]


def following(session, user_id: int, limit: int = 50, offset: int = 0) -> List[Tuple[models.UserAccount, datetime]]:
    rows = session.query(User, Follow.updated_at).join(Follow, Follow.following_id == User.user_id).filter(
        Follow.follower_id == user_id,
        Follow.is_active.is_(True),
        User.is_active.is_(True)
    ).order_by(Follow.updated_at.desc(), Follow.follow_id.desc()).offset(offset).limit(limit).all()
    return [(user, followed_at) for user, followed_at in rows]


def relationship(session, user_id: int, other_id: int) -> dict:
    if user_id == other_id:
        return {"is_following": False, "is_followed_by": False, "is_mutual": False, "is_self": True}
    outgoing = is_following(session, user_id, other_id)
    incoming = is_following(session, other_id, user_id)
    return {
        "is_following": outgoing,
        "is_followed_by": incoming,
        "is_mutual": outgoing and incoming,
        "is_self": False,
    }


def mutual_follows(session, user_id: int) -> List[Tuple[models.UserAccount, datetime]]:
    """Users u with both user -> u and u -> user active"""
    mine = aliased(Follow)
    back = aliased(Follow)
    rows = session.query(User, mine.updated_at).join(
        mine, mine.following_id == User.user_id
    ).join(
        back, (back.follower_id == mine.following_id) & (back.following_id == mine.follower_id)
    ).filter(
        mine.follower_id == user_id,
        mine.is_active.is_(True),
        back.is_active.is_(True),
        User.is_active.is_(True)
    ).order_by(mine.updated_at.desc(), mine.follow_id.desc()).all()
    return [(user, followed_at) for user, followed_at in rows]


def suggested_follows(session, user_id: int, limit: int = 10) -> List[dict]:
    """People my followers follow, ranked by connecting followers then connecting paths"""
    mine = aliased(Follow)
    theirs = aliased(Follow)
    connections = func.count(func.distinct(mine.follower_id))
    paths = func.count(theirs.follow_id)

    already = _followed_ids(session, user_id)
    rows = session.query(theirs.following_id, connections, paths).select_from(mine).join(
        theirs, theirs.follower_id == mine.follower_id
    ).join(
        User, User.user_id == theirs.following_id
    ).filter(
        mine.following_id == user_id,
        mine.is_active.is_(True),
        theirs.is_active.is_(True),
        theirs.following_id != user_id,
        User.is_active.is_(True)
    ).group_by(theirs.following_id).order_by(
        connections.desc(), paths.desc(), theirs.following_id
    ).all()

    ranked = [row for row in rows if row[0] not in already][:limit]
    users = {u.user_id: u for u in session.query(User).filter(User.user_id.in_([r[0] for r in ranked])).all()}
    return [
        {"user": users[candidate_id], "connection_count": connection_count, "mutual_connections": path_count}
        for candidate_id, connection_count, path_count in ranked
    ]


def interest_recommendations(session, user: models.UserAccount, limit: int = 10) -> List[dict]:
    """Score = 2 x shared interests + 1 for a matching city or state"""
    mine = set(user.interests or [])
    already = _followed_ids(session, user.user_id)

    candidates = session.query(User).filter(
        User.user_id != user.user_id,
        User.is_active.is_(True)
    ).all()

    scored = []
    for candidate in candidates:
        if candidate.user_id in already:
            continue
        shared = sorted(mine.intersection(candidate.interests or []))
        same_city = bool(user.city and candidate.city and user.city.lower() == candidate.city.lower())
        same_state = bool(user.state and candidate.state and user.state.lower() == candidate.state.lower())
        location_match = same_city or same_state
        score = 2 * len(shared) + (1 if location_match else 0)
        if score > 0:
            scored.append({
                "user": candidate,
                "score": score,
                "shared_interests": shared,
                "location_match": location_match,
            })

    scored.sort(key=lambda item: (item["score"], item["user"].created_at, item["user"].user_id), reverse=True)
    return scored[:limit]


def recent_users(session, user_id: int, days: int = 7, limit: int = 10) -> List[models.UserAccount]:
    since = datetime.utcnow() - timedelta(days=days)
    already = _followed_ids(session, user_id)
    query = session.query(User).filter(
        User.user_id != user_id,
        User.is_active.is_(True),
        User.created_at >= since
    )
    if already:
        query = query.filter(~User.user_id.in_(already))
    return query.order_by(User.created_at.desc(), User.user_id.desc()).limit(limit).all()


def combined_recommendations(session, user: models.UserAccount, limit: int = 15) -> dict:
    """Network, interest and recent-user picks merged in a 50/30/20 split of ``limit``.

    Each user appears once, tagged with the first source that produced them.
    """
    sources = [
        ('network', suggested_follows(session, user.user_id, math.ceil(limit * 0.5))),
        ('interests', interest_recommendations(session, user, math.ceil(limit * 0.3))),
        ('recent', [{"user": u} for u in recent_users(session, user.user_id, 7, math.ceil(limit * 0.2))]),
    ]

    merged, seen = [], set()
    for kind, items in sources:
        for item in items:
            if item["user"].user_id in seen:
                continue
            seen.add(item["user"].user_id)
            merged.append({**item, "type": kind})

    breakdown = {kind: len(items) for kind, items in sources}
    breakdown["total"] = len(merged)
    return {"recommendations": merged[:limit], "breakdown": breakdown}
