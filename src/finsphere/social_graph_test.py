import pytest

from finsphere import models, social_graph
from finsphere.errors import DuplicateError, NotFound, ValidationFailed


class TestFollowEdges:
    """Follow / unfollow lifecycle"""

    def test_unfollow_keeps_historical_edge(self, session, make_user):
        a, b = make_user("Ada"), make_user("Bob")

        social_graph.follow(session, a.user_id, b.user_id)
        assert social_graph.is_following(session, a.user_id, b.user_id)

        social_graph.unfollow(session, a.user_id, b.user_id)
        assert not social_graph.is_following(session, a.user_id, b.user_id)

        edges = session.query(models.Follow).filter(
            models.Follow.follower_id == a.user_id,
            models.Follow.following_id == b.user_id
        ).all()
        assert len(edges) == 1
        assert edges[0].is_active is False

    def test_refollow_reactivates_same_row(self, session, make_user):
        a, b = make_user("Ada"), make_user("Bob")
        social_graph.follow(session, a.user_id, b.user_id)
        original = session.query(models.Follow).one()
        social_graph.unfollow(session, a.user_id, b.user_id)

        _, stats = social_graph.follow(session, a.user_id, b.user_id)

        assert session.query(models.Follow).count() == 1
        assert session.query(models.Follow).one().follow_id == original.follow_id
        assert stats == {"followers_count": 1, "following_count": 0}

    def test_cannot_follow_self(self, session, make_user):
        a = make_user("Ada")
        with pytest.raises(ValidationFailed) as exc:
            social_graph.follow(session, a.user_id, a.user_id)
        assert exc.value.message == "You cannot follow yourself"

    def test_duplicate_follow_rejected(self, session, make_user):
        a, b = make_user("Ada"), make_user("Bob")
        social_graph.follow(session, a.user_id, b.user_id)
        with pytest.raises(DuplicateError):
            social_graph.follow(session, a.user_id, b.user_id)

    def test_follow_inactive_user_not_found(self, session, make_user):
        a, b = make_user("Ada"), make_user("Bob", is_active=False)
        with pytest.raises(NotFound):
            social_graph.follow(session, a.user_id, b.user_id)

    def test_unfollow_without_edge_not_found(self, session, make_user):
        a, b = make_user("Ada"), make_user("Bob")
        with pytest.raises(NotFound) as exc:
            social_graph.unfollow(session, a.user_id, b.user_id)
        assert exc.value.message == "Follow relationship not found"

    def test_remove_follower(self, session, make_user):
        me, fan = make_user("Me"), make_user("Fan")
        social_graph.follow(session, fan.user_id, me.user_id)

        social_graph.remove_follower(session, me.user_id, fan.user_id)

        assert not social_graph.is_following(session, fan.user_id, me.user_id)
        with pytest.raises(NotFound):
            social_graph.remove_follower(session, me.user_id, fan.user_id)

    def test_stats_skip_deactivated_users(self, session, make_user):
        me, fan, gone = make_user("Me"), make_user("Fan"), make_user("Gone")
        social_graph.follow(session, fan.user_id, me.user_id)
        social_graph.follow(session, gone.user_id, me.user_id)
        gone.is_active = False
        session.commit()

        assert social_graph.follow_stats(session, me.user_id)["followers_count"] == 1
        assert [u.user_id for u, _ in social_graph.followers(session, me.user_id)] == [fan.user_id]


class TestRelationships:
    """Mutual follows and relationship flags"""

    def test_mutual_follows_symmetric(self, session, make_user):
        u, v, w = make_user("U"), make_user("V"), make_user("W")
        social_graph.follow(session, u.user_id, v.user_id)
        social_graph.follow(session, v.user_id, u.user_id)
        social_graph.follow(session, u.user_id, w.user_id)

        of_u = {user.user_id for user, _ in social_graph.mutual_follows(session, u.user_id)}
        of_v = {user.user_id for user, _ in social_graph.mutual_follows(session, v.user_id)}
        of_w = {user.user_id for user, _ in social_graph.mutual_follows(session, w.user_id)}

        assert of_u == {v.user_id}
        assert of_v == {u.user_id}
        assert of_w == set()

    def test_mutual_ends_after_unfollow(self, session, make_user):
        u, v = make_user("U"), make_user("V")
        social_graph.follow(session, u.user_id, v.user_id)
        social_graph.follow(session, v.user_id, u.user_id)
        social_graph.unfollow(session, v.user_id, u.user_id)

        assert social_graph.mutual_follows(session, u.user_id) == []
        assert social_graph.mutual_follows(session, v.user_id) == []

    def test_relationship_flags(self, session, make_user):
        u, v = make_user("U"), make_user("V")
        social_graph.follow(session, v.user_id, u.user_id)

        flags = social_graph.relationship(session, u.user_id, v.user_id)
        assert flags == {"is_following": False, "is_followed_by": True, "is_mutual": False, "is_self": False}
        assert social_graph.relationship(session, u.user_id, u.user_id)["is_self"] is True

    def test_followers_newest_first(self, session, make_user):
        me = make_user("Me")
        first, second = make_user("First"), make_user("Second")
        social_graph.follow(session, first.user_id, me.user_id)
        social_graph.follow(session, second.user_id, me.user_id)

        ordered = [u.user_id for u, _ in social_graph.followers(session, me.user_id)]
        assert ordered == [second.user_id, first.user_id]


class TestRecommendations:
    """Follow suggestions and interest-based recommendations"""

    def test_suggestions_ranked_by_connecting_followers(self, session, make_user):
        me = make_user("Me")
        b, c = make_user("B"), make_user("C")
        d, e = make_user("D"), make_user("E")
        for fan in (b, c):
            social_graph.follow(session, fan.user_id, me.user_id)
        social_graph.follow(session, b.user_id, d.user_id)
        social_graph.follow(session, c.user_id, d.user_id)
        social_graph.follow(session, b.user_id, e.user_id)

        suggestions = social_graph.suggested_follows(session, me.user_id)

        assert [s["user"].user_id for s in suggestions] == [d.user_id, e.user_id]
        assert suggestions[0]["connection_count"] == 2
        assert suggestions[1]["connection_count"] == 1

    def test_suggestions_exclude_already_followed(self, session, make_user):
        me, fan, target = make_user("Me"), make_user("Fan"), make_user("Target")
        social_graph.follow(session, fan.user_id, me.user_id)
        social_graph.follow(session, fan.user_id, target.user_id)
        social_graph.follow(session, me.user_id, target.user_id)

        assert social_graph.suggested_follows(session, me.user_id) == []

    def test_interest_scoring(self, session, make_user):
        me = make_user("Me", interests=["chess", "investing"], city="Austin", state="TX")
        twin = make_user("Twin", interests=["chess", "investing"], city="Denver", state="CO")
        neighbour = make_user("Neighbour", interests=["chess"], city="austin", state="TX")
        stranger = make_user("Stranger", interests=["surfing"], city="Boston", state="MA")

        recommendations = social_graph.interest_recommendations(session, me)

        ranked = [(r["user"].user_id, r["score"]) for r in recommendations]
        assert ranked == [(twin.user_id, 4), (neighbour.user_id, 3)]
        assert recommendations[1]["location_match"] is True
        assert stranger.user_id not in [uid for uid, _ in ranked]

    def test_interest_recommendations_skip_followed(self, session, make_user):
        me = make_user("Me", interests=["chess"])
        twin = make_user("Twin", interests=["chess"])
        social_graph.follow(session, me.user_id, twin.user_id)

        assert social_graph.interest_recommendations(session, me) == []

    def test_recent_users_exclude_followed(self, session, make_user):
        me, followed, fresh = make_user("Me"), make_user("Followed"), make_user("Fresh")
        social_graph.follow(session, me.user_id, followed.user_id)

        recent = social_graph.recent_users(session, me.user_id, days=7)

        assert [u.user_id for u in recent] == [fresh.user_id]

    def test_combined_recommendations_deduplicate(self, session, make_user):
        me = make_user("Me", interests=["chess"])
        fan = make_user("Fan")
        twin = make_user("Twin", interests=["chess"])
        fresh = make_user("Fresh")
        social_graph.follow(session, fan.user_id, me.user_id)
        social_graph.follow(session, fan.user_id, twin.user_id)

        combined = social_graph.combined_recommendations(session, me)

        tagged = [(r["user"].user_id, r["type"]) for r in combined["recommendations"]]
        assert tagged[0] == (twin.user_id, "network")
        assert sorted(tagged[1:]) == sorted([(fan.user_id, "recent"), (fresh.user_id, "recent")])
        assert combined["breakdown"] == {"network": 1, "interests": 1, "recent": 3, "total": 3}

    def test_combined_recommendations_respect_limit(self, session, make_user):
        me = make_user("Me")
        for n in range(4):
            make_user(f"New{n}")

        combined = social_graph.combined_recommendations(session, me, limit=2)

        assert combined["breakdown"]["recent"] == 1
        assert len(combined["recommendations"]) == 1
