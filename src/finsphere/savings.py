"""Savings goals backed by a deposit/withdrawal ledger.

The stored ``current_amount`` is never incremented in place: every mutation
appends a ledger entry and then recomputes the balance from the full ledger
with :func:`reconcile`. Milestones (25/50/75/100%) are appended the first time
progress reaches them and never again.
"""

import logging
import math
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional, Tuple

from . import models
from .errors import NotFound, StateConflict, ValidationFailed
from .lending import add_months

logger = logging.getLogger(__name__)

MILESTONES = (25, 50, 75, 100)
DAYS_PER_MONTH = 30.44
CENTS = Decimal('0.01')


def to_amount(value) -> Decimal:
    if isinstance(value, Decimal):
        return value.quantize(CENTS, rounding=ROUND_HALF_UP)
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def reconcile(deposits: Iterable, withdrawals: Iterable) -> Decimal:
    """Balance implied by the ledger: sum of deposits minus sum of withdrawals"""
    total_in = sum((to_amount(amount) for amount in deposits), Decimal('0'))
    total_out = sum((to_amount(amount) for amount in withdrawals), Decimal('0'))
    return total_in - total_out


def progress_percentage(current, target) -> int:
    target = to_amount(target or 0)
    if target <= 0:
        return 0
    percent = (to_amount(current or 0) / target * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP)
    return min(int(percent), 100)


def celebration_text(percentage: int) -> str:
    return f"Reached {percentage}% of your savings goal! 🎉"


def newly_crossed_milestones(progress: int, achieved: Iterable[int]) -> List[int]:
    achieved = set(achieved)
    return [threshold for threshold in MILESTONES if progress >= threshold and threshold not in achieved]


def remaining_amount(goal: models.SavingsGoal) -> Decimal:
    return max(to_amount(goal.target_amount) - to_amount(goal.current_amount or 0), Decimal('0'))


def days_remaining(goal: models.SavingsGoal, now: datetime) -> Optional[int]:
    if not goal.target_date:
        return None
    return math.ceil((goal.target_date - now).total_seconds() / 86400)


def suggested_monthly_savings(goal: models.SavingsGoal, now: datetime) -> Optional[float]:
    days = days_remaining(goal, now)
    if days is None:
        return None
    remaining = float(remaining_amount(goal))
    if days <= 0:
        return remaining
    return float(math.ceil(remaining / (days / DAYS_PER_MONTH)))


def next_auto_deposit(moment: datetime, frequency: str) -> datetime:
    if frequency == 'weekly':
        return moment + timedelta(days=7)
    if frequency == 'biweekly':
        return moment + timedelta(days=14)
    return add_months(moment, 1)


def _apply_target_status(goal: models.SavingsGoal):
    current = to_amount(goal.current_amount or 0)
    target = to_amount(goal.target_amount)
    if goal.status == 'active' and current >= target:
        goal.status = 'completed'
    elif goal.status == 'completed' and current < target:
        goal.status = 'active'


def refresh_derived(goal: models.SavingsGoal, now: Optional[datetime] = None) -> List[int]:
    """Recompute balance, active/completed status and milestones after any change.

    Runs after every mutation of a goal. Paused and cancelled goals keep their
    status. Returns the milestone percentages recorded by this call.
    """
    goal.current_amount = reconcile([d.amount for d in goal.deposits], [w.amount for w in goal.withdrawals])
    _apply_target_status(goal)

    progress = progress_percentage(goal.current_amount, goal.target_amount)
    crossed = newly_crossed_milestones(progress, [m.percentage for m in goal.milestones])
    for threshold in crossed:
        goal.milestones.append(models.SavingsMilestone(
            percentage=threshold,
            achieved_at=now or datetime.utcnow(),
            celebration=celebration_text(threshold),
        ))
    return crossed


# ==================== LEDGER COMMANDS ====================

def add_deposit(goal: models.SavingsGoal, amount, note: str = '', method: str = 'manual',
                now: Optional[datetime] = None) -> models.SavingsGoal:
    amount = to_amount(amount)
    if amount <= 0:
        raise ValidationFailed("Valid amount is required")
    if goal.status == 'cancelled':
        raise StateConflict("Cannot add deposit to cancelled goal")
    now = now or datetime.utcnow()

    goal.deposits.append(models.SavingsDeposit(amount=amount, note=note or '', method=method, deposited_at=now))
    refresh_derived(goal, now)
    return goal


def add_withdrawal(goal: models.SavingsGoal, amount, reason: str,
                   now: Optional[datetime] = None) -> models.SavingsGoal:
    amount = to_amount(amount)
    if amount <= 0:
        raise ValidationFailed("Valid amount is required")
    if not reason or not reason.strip():
        raise ValidationFailed("Withdrawal reason is required")
    if amount > to_amount(goal.current_amount or 0):
        raise StateConflict("Withdrawal amount cannot exceed current savings")

    now = now or datetime.utcnow()
    goal.withdrawals.append(models.SavingsWithdrawal(amount=amount, reason=reason.strip(), withdrawn_at=now))
    refresh_derived(goal, now)
    return goal


def _apply_auto_deposit(goal: models.SavingsGoal, config: dict, now: datetime):
    if config.get('enabled') is not None:
        goal.auto_deposit_enabled = config['enabled']
    if config.get('amount') is not None:
        goal.auto_deposit_amount = to_amount(config['amount'])
    if config.get('frequency'):
        goal.auto_deposit_frequency = config['frequency']
    if config.get('next_deposit'):
        goal.auto_deposit_next = config['next_deposit']
    if goal.auto_deposit_enabled and not goal.auto_deposit_amount:
        raise ValidationFailed("Auto-deposit amount is required when auto-deposit is enabled")
    if goal.auto_deposit_enabled and goal.auto_deposit_next is None:
        goal.auto_deposit_next = next_auto_deposit(now, goal.auto_deposit_frequency or 'monthly')


# ==================== PERSISTENCE ====================

def create_goal(session, user: models.UserAccount, goal_name: str, target_amount, target_date=None,
                category: str = 'other', privacy: str = 'private',
                auto_deposit: Optional[dict] = None) -> models.SavingsGoal:
    if not goal_name or not goal_name.strip():
        raise ValidationFailed("Validation failed", ["goal_name: Goal name is required"])
    target = to_amount(target_amount)
    if target < 1:
        raise ValidationFailed("Validation failed", ["target_amount: must be at least 1"])

    now = datetime.utcnow()
    goal = models.SavingsGoal(
        user_id=user.user_id,
        goal_name=goal_name.strip(),
        target_amount=target,
        current_amount=Decimal('0'),
        target_date=target_date,
        category=category,
        privacy=privacy,
        status='active',
        auto_deposit_enabled=False,
        auto_deposit_frequency='monthly',
    )
    if auto_deposit:
        _apply_auto_deposit(goal, auto_deposit, now)
    session.add(goal)
    session.commit()
    session.refresh(goal)
    logger.info(f"Savings goal {goal.goal_id} created by user {user.user_id} targeting {goal.target_amount}")
    return goal


def get_goal(session, goal_id: int, user_id: int) -> models.SavingsGoal:
    goal = session.query(models.SavingsGoal).filter(
        models.SavingsGoal.goal_id == goal_id,
        models.SavingsGoal.user_id == user_id,
        models.SavingsGoal.is_active.is_(True)
    ).first()
    if not goal:
        raise NotFound("Savings goal not found")
    return goal


def list_goals(session, user_id: int, status: Optional[str] = None, category: Optional[str] = None,
               page: int = 1, limit: int = 10) -> Tuple[List[models.SavingsGoal], int]:
    if page < 1 or not 1 <= limit <= 100:
        raise ValidationFailed("Invalid pagination parameters")
    query = session.query(models.SavingsGoal).filter(
        models.SavingsGoal.user_id == user_id,
        models.SavingsGoal.is_active.is_(True)
    )
    if status:
        query = query.filter(models.SavingsGoal.status == status)
    if category:
        query = query.filter(models.SavingsGoal.category == category)
    total = query.count()
    goals = query.order_by(models.SavingsGoal.created_at.desc(), models.SavingsGoal.goal_id.desc()) \
        .offset((page - 1) * limit).limit(limit).all()
    return goals, total


def update_goal(session, goal_id: int, user_id: int, changes: dict) -> models.SavingsGoal:
    goal = get_goal(session, goal_id, user_id)
    if changes.get('goal_name'):
        goal.goal_name = changes['goal_name'].strip()
    if changes.get('target_amount'):
        goal.target_amount = to_amount(changes['target_amount'])
    if changes.get('target_date'):
        goal.target_date = changes['target_date']
    if changes.get('category'):
        goal.category = changes['category']
    if changes.get('privacy'):
        goal.privacy = changes['privacy']
    if changes.get('auto_deposit'):
        _apply_auto_deposit(goal, changes['auto_deposit'], datetime.utcnow())
    if changes.get('status'):
        goal.status = changes['status']
    refresh_derived(goal)
    session.commit()
    session.refresh(goal)
    return goal


def delete_goal(session, goal_id: int, user_id: int) -> models.SavingsGoal:
    goal = get_goal(session, goal_id, user_id)
    goal.is_active = False
    goal.status = 'cancelled'
    session.commit()
    logger.info(f"Savings goal {goal.goal_id} archived by user {user_id}")
    return goal


def deposit(session, goal_id: int, user_id: int, amount, note: str = '', method: str = 'manual'):
    goal = get_goal(session, goal_id, user_id)
    already = {m.percentage for m in goal.milestones}
    add_deposit(goal, amount, note, method)
    session.commit()
    session.refresh(goal)
    reached = [m for m in goal.milestones if m.percentage not in already]
    logger.info(f"Deposit of {to_amount(amount)} to goal {goal.goal_id}; balance {goal.current_amount}")
    return goal, reached


def withdraw(session, goal_id: int, user_id: int, amount, reason: str) -> models.SavingsGoal:
    goal = get_goal(session, goal_id, user_id)
    add_withdrawal(goal, amount, reason)
    session.commit()
    session.refresh(goal)
    logger.info(f"Withdrawal of {to_amount(amount)} from goal {goal.goal_id}; balance {goal.current_amount}")
    return goal


def summary(session, user_id: int) -> dict:
    goals = session.query(models.SavingsGoal).filter(
        models.SavingsGoal.user_id == user_id,
        models.SavingsGoal.is_active.is_(True)
    ).all()
    total_saved = sum((to_amount(g.current_amount or 0) for g in goals), Decimal('0'))
    total_target = sum((to_amount(g.target_amount) for g in goals), Decimal('0'))
    overall = 0
    if total_target > 0:
        overall = int((total_saved / total_target * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))
    return {
        "total_goals": len(goals),
        "active_goals": sum(1 for g in goals if g.status == 'active'),
        "completed_goals": sum(1 for g in goals if g.status == 'completed'),
        "total_saved": float(total_saved),
        "total_target_amount": float(total_target),
        "overall_progress": overall,
    }


def run_due_auto_deposits(session, now: Optional[datetime] = None) -> List[models.SavingsGoal]:
    """Apply one scheduled deposit to every enabled goal whose next run is due"""
    now = now or datetime.utcnow()
    due = session.query(models.SavingsGoal).filter(
        models.SavingsGoal.auto_deposit_enabled.is_(True),
        models.SavingsGoal.status == 'active',
        models.SavingsGoal.is_active.is_(True),
        models.SavingsGoal.auto_deposit_next <= now
    ).all()

    applied = []
    for goal in due:
        if not goal.auto_deposit_amount:
            continue
        add_deposit(goal, goal.auto_deposit_amount, 'Automatic deposit', 'auto', now)
        goal.auto_deposit_next = next_auto_deposit(goal.auto_deposit_next, goal.auto_deposit_frequency)
        applied.append(goal)
    session.commit()
    if applied:
        logger.info(f"Applied {len(applied)} scheduled savings deposits")
    return applied
