"""
tests/test_badges.py — Threshold Badge Tests
=============================================
"""

from __future__ import annotations

from conftest import make_badge, make_profile
from sqlalchemy import update
from sqlalchemy.orm import Session

from kehila.database.models import Profile
from kehila.services.badge_service import (
    check_and_award_badges,
    create_badge,
    delete_badge,
    get_active_badges,
    get_all_badges,
    get_user_badges,
    get_user_highest_badge,
    update_badge,
)


def _set_points(engine, profile_id: str, points: int) -> None:
    with Session(engine) as session:
        session.execute(update(Profile).where(Profile.id == profile_id).values(points=points))
        session.commit()


class TestCheckAndAward:
    def test_awards_every_reached_threshold(self, db_engine):
        make_profile(db_engine, points=120)
        bronze = make_badge(db_engine, "Bronze", 10)
        silver = make_badge(db_engine, "Silver", 100)
        make_badge(db_engine, "Gold", 1000)

        assert sorted(check_and_award_badges(db_engine, "auth-1")) == sorted([bronze, silver])

    def test_idempotent(self, db_engine):
        make_profile(db_engine, points=50)
        make_badge(db_engine, "Bronze", 10)
        check_and_award_badges(db_engine, "auth-1")
        assert check_and_award_badges(db_engine, "auth-1") == []

    def test_inactive_badges_ignored(self, db_engine):
        make_profile(db_engine, points=50)
        make_badge(db_engine, "Retired", 10, is_active=False)
        assert check_and_award_badges(db_engine, "auth-1") == []

    def test_later_threshold_after_more_points(self, db_engine):
        pid = make_profile(db_engine, points=5)
        make_badge(db_engine, "Bronze", 10)
        assert check_and_award_badges(db_engine, "auth-1") == []
        _set_points(db_engine, pid, 10)
        assert len(check_and_award_badges(db_engine, "auth-1")) == 1

    def test_unknown_profile(self, db_engine):
        assert check_and_award_badges(db_engine, "ghost") == []


class TestReads:
    def test_user_badges_highest_first(self, db_engine):
        make_profile(db_engine, points=500)
        make_badge(db_engine, "Bronze", 10)
        make_badge(db_engine, "Silver", 100)
        check_and_award_badges(db_engine, "auth-1")

        assert [b.name for b in get_user_badges(db_engine, "auth-1")] == ["Silver", "Bronze"]
        assert get_user_highest_badge(db_engine, "auth-1").name == "Silver"

    def test_no_badges(self, db_engine):
        make_profile(db_engine)
        assert get_user_highest_badge(db_engine, "auth-1") is None

    def test_active_badges_in_display_order(self, db_engine):
        make_badge(db_engine, "B", 100, display_order=2)
        make_badge(db_engine, "A", 500, display_order=1)
        make_badge(db_engine, "Hidden", 1, is_active=False)
        assert [b.name for b in get_active_badges(db_engine)] == ["A", "B"]


class TestCatalogue:
    def test_create_then_award(self, db_engine):
        make_profile(db_engine, points=40)
        badge = create_badge(db_engine, name="Regular", points_threshold=25, icon="star")
        assert badge.id is not None
        assert badge.is_active
        assert check_and_award_badges(db_engine, "auth-1") == [badge.id]

    def test_all_badges_include_inactive(self, db_engine):
        make_badge(db_engine, "Live", 10, display_order=2)
        make_badge(db_engine, "Retired", 5, display_order=1, is_active=False)
        assert [b.name for b in get_all_badges(db_engine)] == ["Retired", "Live"]

    def test_update(self, db_engine):
        badge_id = make_badge(db_engine, "Bronze", 10)
        badge = update_badge(db_engine, badge_id, points_threshold=20, id=999)
        assert badge.id == badge_id
        assert badge.points_threshold == 20

    def test_update_missing(self, db_engine):
        assert update_badge(db_engine, 404, name="x") is None

    def test_deactivated_badge_not_awarded(self, db_engine):
        make_profile(db_engine, points=50)
        badge_id = make_badge(db_engine, "Bronze", 10)
        update_badge(db_engine, badge_id, is_active=False)
        assert check_and_award_badges(db_engine, "auth-1") == []

    def test_delete_removes_awards(self, db_engine):
        make_profile(db_engine, points=50)
        badge_id = make_badge(db_engine, "Bronze", 10)
        check_and_award_badges(db_engine, "auth-1")

        assert delete_badge(db_engine, badge_id)
        assert get_user_badges(db_engine, "auth-1") == []
        assert get_all_badges(db_engine) == []
        assert delete_badge(db_engine, badge_id) is False
