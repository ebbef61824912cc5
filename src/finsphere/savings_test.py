from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from finsphere import models, savings
from finsphere.errors import NotFound, StateConflict, ValidationFailed


def new_goal(target='1000', status='active'):
    return models.SavingsGoal(
        goal_name="Emergency fund",
        target_amount=Decimal(target),
        current_amount=Decimal('0'),
        status=status,
        category='emergency_fund',
        privacy='private',
        auto_deposit_enabled=False,
        auto_deposit_frequency='monthly',
    )


class TestLedgerMath:
    """Pure ledger helpers"""

    def test_reconcile_sums_ledger(self):
        assert savings.reconcile(['100.10', '0.20'], ['50.05']) == Decimal('50.25')
        assert savings.reconcile([], []) == Decimal('0')

    def test_progress_rounds_and_clamps(self):
        assert savings.progress_percentage(Decimal('333.50'), Decimal('1000')) == 33
        assert savings.progress_percentage(Decimal('335'), Decimal('1000')) == 34
        assert savings.progress_percentage(Decimal('1100'), Decimal('1000')) == 100
        assert savings.progress_percentage(Decimal('10'), Decimal('0')) == 0

    def test_newly_crossed_milestones(self):
        assert savings.newly_crossed_milestones(60, []) == [25, 50]
        assert savings.newly_crossed_milestones(60, [25, 50]) == []
        assert savings.newly_crossed_milestones(100, [25]) == [50, 75, 100]

    def test_suggested_monthly_savings(self):
        now = datetime(2026, 1, 1)
        goal = new_goal('1000')
        goal.target_date = now + timedelta(days=61)

        assert savings.days_remaining(goal, now) == 61
        assert savings.suggested_monthly_savings(goal, now) == 500.0

        goal.target_date = now - timedelta(days=1)
        assert savings.suggested_monthly_savings(goal, now) == 1000.0

    def test_next_auto_deposit(self):
        start = datetime(2026, 1, 31)
        assert savings.next_auto_deposit(start, 'weekly') == datetime(2026, 2, 7)
        assert savings.next_auto_deposit(start, 'biweekly') == datetime(2026, 2, 14)
        assert savings.next_auto_deposit(start, 'monthly') == datetime(2026, 2, 28)


class TestLedgerCommands:
    """Deposits, withdrawals, status flips and milestones"""

    def test_goal_scenario(self):
        goal = new_goal('1000')

        savings.add_deposit(goal, 500)
        assert goal.current_amount == Decimal('500.00')
        assert savings.progress_percentage(goal.current_amount, goal.target_amount) == 50
        assert [m.percentage for m in goal.milestones] == [25, 50]
        assert goal.status == 'active'

        savings.add_deposit(goal, 600)
        assert goal.current_amount == Decimal('1100.00')
        assert savings.progress_percentage(goal.current_amount, goal.target_amount) == 100
        assert goal.status == 'completed'

        savings.add_withdrawal(goal, 200, "Car repair")
        assert goal.current_amount == Decimal('900.00')
        assert goal.status == 'active'

    def test_milestone_recorded_once(self):
        goal = new_goal('1000')
        savings.add_deposit(goal, 500)
        savings.add_withdrawal(goal, 400, "Rent")
        savings.add_deposit(goal, 450)

        percentages = [m.percentage for m in goal.milestones]
        assert percentages.count(50) == 1
        assert percentages.count(25) == 1

    def test_current_amount_matches_ledger(self):
        goal = new_goal('5000')
        for amount in ('10.10', '20.20', '30.30'):
            savings.add_deposit(goal, amount)
        savings.add_withdrawal(goal, '5.05', "Snack")
        savings.add_deposit(goal, '0.01')
        savings.add_withdrawal(goal, '15.56', "Bus")

        ledger = savings.reconcile([d.amount for d in goal.deposits], [w.amount for w in goal.withdrawals])
        assert goal.current_amount == ledger == Decimal('40.00')

    def test_withdrawal_cannot_exceed_balance(self):
        goal = new_goal()
        savings.add_deposit(goal, 100)
        with pytest.raises(StateConflict) as exc:
            savings.add_withdrawal(goal, '100.01', "Too much")
        assert exc.value.message == "Withdrawal amount cannot exceed current savings"
        assert goal.current_amount == Decimal('100.00')
        assert len(goal.withdrawals) == 0

    def test_deposit_rejects_cancelled_goal(self):
        goal = new_goal(status='cancelled')
        with pytest.raises(StateConflict):
            savings.add_deposit(goal, 10)
        assert goal.deposits == []

    def test_invalid_amounts(self):
        goal = new_goal()
        with pytest.raises(ValidationFailed):
            savings.add_deposit(goal, 0)
        with pytest.raises(ValidationFailed):
            savings.add_withdrawal(goal, -5, "Negative")
        with pytest.raises(ValidationFailed):
            savings.add_withdrawal(goal, 5, "  ")

    def test_paused_goal_does_not_complete(self):
        goal = new_goal('100', status='paused')
        savings.add_deposit(goal, 150)
        assert goal.status == 'paused'
        assert [m.percentage for m in goal.milestones] == [25, 50, 75, 100]


class TestGoalPersistence:
    """Goal operations against the database"""

    def test_deposit_reports_new_milestones(self, session, make_user):
        user = make_user("Saver")
        goal = savings.create_goal(session, user, "Trip", 200, category='vacation')

        _, reached = savings.deposit(session, goal.goal_id, user.user_id, 60)
        assert [m.percentage for m in reached] == [25]

        goal, reached = savings.deposit(session, goal.goal_id, user.user_id, 60)
        assert [m.percentage for m in reached] == [50]
        assert goal.current_amount == Decimal('120.00')

    def test_goals_scoped_to_owner(self, session, make_user):
        owner, other = make_user("Owner"), make_user("Other")
        goal = savings.create_goal(session, owner, "House", 50000)

        with pytest.raises(NotFound):
            savings.get_goal(session, goal.goal_id, other.user_id)

    def test_delete_archives_goal(self, session, make_user):
        user = make_user("Saver")
        goal = savings.create_goal(session, user, "House", 50000)
        savings.delete_goal(session, goal.goal_id, user.user_id)

        stored = session.get(models.SavingsGoal, goal.goal_id)
        assert stored.status == 'cancelled'
        assert stored.is_active is False
        goals, total = savings.list_goals(session, user.user_id)
        assert goals == [] and total == 0

    def test_lowering_target_completes_goal(self, session, make_user):
        user = make_user("Saver")
        goal = savings.create_goal(session, user, "Bike", 500)
        savings.deposit(session, goal.goal_id, user.user_id, 300)

        goal = savings.update_goal(session, goal.goal_id, user.user_id, {"target_amount": 250})
        assert goal.status == 'completed'

    def test_lowering_target_records_milestones(self, session, make_user):
        user = make_user("Saver")
        goal = savings.create_goal(session, user, "Laptop", 1000)
        savings.deposit(session, goal.goal_id, user.user_id, 500)

        goal = savings.update_goal(session, goal.goal_id, user.user_id, {"target_amount": 500})

        assert goal.status == 'completed'
        assert sorted(m.percentage for m in goal.milestones) == [25, 50, 75, 100]

    def test_resuming_funded_goal_completes_it(self, session, make_user):
        user = make_user("Saver")
        goal = savings.create_goal(session, user, "Camera", 100)
        savings.update_goal(session, goal.goal_id, user.user_id, {"status": "paused"})
        savings.deposit(session, goal.goal_id, user.user_id, 150)
        assert savings.get_goal(session, goal.goal_id, user.user_id).status == 'paused'

        goal = savings.update_goal(session, goal.goal_id, user.user_id, {"status": "active"})

        assert goal.status == 'completed'
        assert goal.current_amount == Decimal('150.00')

    def test_raising_target_reopens_completed_goal(self, session, make_user):
        user = make_user("Saver")
        goal = savings.create_goal(session, user, "Bike", 100)
        savings.deposit(session, goal.goal_id, user.user_id, 100)

        goal = savings.update_goal(session, goal.goal_id, user.user_id, {"target_amount": 400})

        assert goal.status == 'active'
        assert len(goal.milestones) == 4

    def test_summary_totals(self, session, make_user):
        user = make_user("Saver")
        first = savings.create_goal(session, user, "A", 100)
        savings.create_goal(session, user, "B", 300)
        savings.deposit(session, first.goal_id, user.user_id, 100)

        result = savings.summary(session, user.user_id)
        assert result == {
            "total_goals": 2,
            "active_goals": 1,
            "completed_goals": 1,
            "total_saved": 100.0,
            "total_target_amount": 400.0,
            "overall_progress": 25,
        }

    def test_auto_deposit_requires_amount(self, session, make_user):
        user = make_user("Saver")
        with pytest.raises(ValidationFailed):
            savings.create_goal(session, user, "Auto", 100, auto_deposit={"enabled": True})

    def test_run_due_auto_deposits(self, session, make_user):
        user = make_user("Saver")
        start = datetime(2026, 1, 1)
        goal = savings.create_goal(session, user, "Auto", 1000, auto_deposit={
            "enabled": True, "amount": 50, "frequency": "weekly", "next_deposit": start,
        })
        savings.create_goal(session, user, "Manual", 1000)

        applied = savings.run_due_auto_deposits(session, now=start + timedelta(hours=1))

        assert [g.goal_id for g in applied] == [goal.goal_id]
        session.refresh(goal)
        assert goal.current_amount == Decimal('50.00')
        assert goal.deposits[0].method == 'auto'
        assert goal.auto_deposit_next == start + timedelta(days=7)
        assert savings.run_due_auto_deposits(session, now=start + timedelta(hours=2)) == []
