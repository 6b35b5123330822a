"""Tests for plan reconciliation and item actions."""

from __future__ import annotations

from datetime import datetime

import pytest
from conftest import make_item, make_plan

from biosync.domains.health.domain_logic.daily_plan import (
    PlanItemNotFoundError,
    adherence_summary,
    complete_category,
    complete_closest_pending,
    complete_item,
    reconcile_plans,
    skip_item,
    snooze_item,
    toggle_item,
)
from biosync.domains.health.domain_logic.models import DailyPlan, PlanItem


class TestReconcilePlans:
    def test_no_existing_plan_returns_incoming_sorted(self):
        incoming = DailyPlan(
            date="2026-03-02",
            items=[make_item("12:00", "Lunch"), make_item("08:00", "Breakfast")],
        )
        merged = reconcile_plans(incoming, None)
        assert [i.time for i in merged.items] == ["08:00", "12:00"]

    def test_history_is_kept_and_pending_discarded(self):
        existing = make_plan(items=[
            make_item("08:00", "Breakfast", completed=True),
            make_item("10:00", "Stretch", "break", skipped=True),
            make_item("12:00", "Old lunch"),
        ])
        incoming = make_plan(items=[make_item("13:00", "New lunch", id="fresh")])
        merged = reconcile_plans(incoming, existing)
        titles = [i.title for i in merged.items]
        assert titles == ["Breakfast", "Stretch", "New lunch"]
        assert merged.find("meal-08:00").completed
        assert merged.find("break-10:00").skipped

    def test_drops_items_matching_history_time_or_title(self):
        existing = make_plan(items=[make_item("08:00", "Breakfast", completed=True)])
        incoming = make_plan(items=[
            make_item("08:00", "Oats", id="a"),
            make_item("09:30", "Breakfast", id="b"),
            make_item("12:00", "Lunch", id="c"),
        ])
        merged = reconcile_plans(incoming, existing)
        assert [i.id for i in merged.items] == ["meal-08:00", "c"]

    def test_never_reverts_completed_items(self):
        existing = make_plan(items=[make_item("08:00", "Breakfast", completed=True)])
        incoming = make_plan(items=[make_item("08:00", "Breakfast", id="meal-08:00")])
        merged = reconcile_plans(incoming, existing)
        assert len(merged.items) == 1
        assert merged.items[0].completed

    def test_duplicate_incoming_pairs_collapse(self):
        incoming = make_plan(items=[
            make_item("12:00", "Lunch", id="a"),
            make_item("12:00", "Lunch", id="b"),
        ])
        existing = make_plan(items=[make_item("07:00", "Water", "hydration", completed=True)])
        merged = reconcile_plans(incoming, existing)
        pairs = [(i.time, i.title) for i in merged.items]
        assert len(pairs) == len(set(pairs))

    def test_colliding_survivor_id_is_reassigned(self):
        existing = make_plan(items=[make_item("08:00", "Breakfast", id="x1", completed=True)])
        incoming = make_plan(items=[make_item("12:00", "Lunch", id="x1")])
        merged = reconcile_plans(incoming, existing)
        ids = [i.id for i in merged.items]
        assert len(set(ids)) == 2
        assert merged.find("x1").title == "Breakfast"

    def test_different_date_is_not_merged(self):
        existing = make_plan(date="2026-03-01", items=[make_item("08:00", "Breakfast", completed=True)])
        incoming = make_plan(items=[make_item("08:00", "Breakfast", id="new")])
        merged = reconcile_plans(incoming, existing)
        assert [i.id for i in merged.items] == ["new"]
        assert not merged.items[0].completed

    def test_reconciling_twice_is_stable(self):
        existing = make_plan(items=[make_item("08:00", "Breakfast", completed=True)])
        first = reconcile_plans(make_plan(items=[make_item("12:00", "Lunch", id="l")]), existing)
        first.find("l").skipped = True
        second = reconcile_plans(make_plan(items=[make_item("12:00", "Lunch", id="l2")]), first)
        assert [(i.title, i.completed, i.skipped) for i in second.items] == [
            ("Breakfast", True, False),
            ("Lunch", False, True),
        ]


class TestItemActions:
    @pytest.fixture
    def plan(self) -> DailyPlan:
        return make_plan(items=[
            make_item("08:00", "Breakfast"),
            make_item("12:00", "Lunch"),
            make_item("19:00", "Dinner"),
            make_item("10:00", "Glass of water", "hydration"),
            make_item("16:00", "Glass of water", "hydration", id="h2"),
        ])

    def test_complete_clears_skip(self, plan):
        skip_item(plan, "meal-08:00")
        item = complete_item(plan, "meal-08:00")
        assert item.completed and not item.skipped

    def test_skip_clears_complete(self, plan):
        complete_item(plan, "meal-12:00")
        item = skip_item(plan, "meal-12:00")
        assert item.skipped and not item.completed

    def test_toggle(self, plan):
        assert toggle_item(plan, "meal-12:00").completed
        assert not toggle_item(plan, "meal-12:00").completed

    def test_snooze_sets_deadline_only(self, plan):
        item = snooze_item(plan, "meal-12:00", 15, now_ms=1_000)
        assert item.snoozed_until == 1_000 + 15 * 60_000
        assert item.pending

    def test_snooze_rejects_non_positive_minutes(self, plan):
        with pytest.raises(ValueError):
            snooze_item(plan, "meal-12:00", 0, now_ms=0)

    def test_unknown_item(self, plan):
        with pytest.raises(PlanItemNotFoundError):
            complete_item(plan, "nope")

    def test_complete_closest_pending_meal(self, plan):
        item = complete_closest_pending(plan, "meal", datetime(2026, 3, 2, 13, 10))
        assert item.title == "Lunch"
        assert complete_closest_pending(plan, "sleep", datetime(2026, 3, 2, 13, 10)) is None

    def test_complete_category(self, plan):
        done = complete_category(plan, "hydration")
        assert {i.id for i in done} == {"hydration-10:00", "h2"}
        assert complete_category(plan, "hydration") == []

    def test_adherence_summary_only_for_today(self, plan):
        complete_item(plan, "meal-08:00")
        skip_item(plan, "meal-12:00")
        assert adherence_summary(plan, "2026-03-02") == {"completed": 1, "skipped": 1, "total": 5}
        assert adherence_summary(plan, "2026-03-03") is None
        assert adherence_summary(None, "2026-03-02") is None


def test_plan_round_trip_preserves_order_and_fields():
    plan = make_plan(items=[
        make_item("19:00", "Dinner", priority="high", linked_action="log_food"),
        make_item("08:00", "Breakfast", completed=True),
    ])
    plan.items[1].snoozed_until = 123
    restored = DailyPlan.from_dict(plan.to_dict())
    assert [i.to_dict() for i in restored.items] == [i.to_dict() for i in plan.items]


def test_loaded_item_is_never_both_completed_and_skipped():
    stored = make_item("08:00", "Breakfast").to_dict()
    stored.update(completed=True, skipped=True)
    item = PlanItem.from_dict(stored)
    assert item.completed is True
    assert item.skipped is False

    stored.update(completed=False, skipped=True)
    assert PlanItem.from_dict(stored).skipped is True
