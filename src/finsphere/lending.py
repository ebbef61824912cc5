"""Peer-to-peer loans: amortization math and the requested -> funded -> repaid lifecycle."""

import calendar
import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import or_

from . import models
from .errors import NotFound, PermissionDenied, StateConflict, ValidationFailed

logger = logging.getLogger(__name__)

LOAN_TYPES = ('all', 'borrowed', 'lent')


class LoanStateError(StateConflict):
    """Raised when a lifecycle transition is attempted from the wrong status"""


def monthly_payment(amount, annual_rate, term_months) -> float:
    """Standard amortized monthly payment, rounded to cents"""
    if not term_months:
        return 0.0
    principal = float(amount)
    rate = float(annual_rate or 0) / 100 / 12
    if rate == 0:
        return round(principal / term_months, 2)
    factor = (1 + rate) ** term_months
    return round(principal * rate * factor / (factor - 1), 2)


def total_interest(amount, payment: float, term_months) -> float:
    if not term_months:
        return 0.0
    return round(payment * term_months - float(amount), 2)


def add_months(moment: datetime, months: int) -> datetime:
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


# ==================== STATE TRANSITIONS ====================

def fund(loan: models.Loan, lender_id: int, now: Optional[datetime] = None) -> models.Loan:
    if loan.status != 'requested':
        raise LoanStateError("Loan is not available for funding")
    now = now or datetime.utcnow()
    loan.lender_id = lender_id
    loan.status = 'funded'
    loan.funded_at = now
    if loan.term_months:
        loan.due_date = add_months(now, loan.term_months)
    return loan


def repay(loan: models.Loan, now: Optional[datetime] = None) -> models.Loan:
    if loan.status != 'funded':
        raise LoanStateError("Loan is not in funded status")
    loan.status = 'repaid'
    loan.repaid_at = now or datetime.utcnow()
    return loan


def cancel(loan: models.Loan) -> models.Loan:
    if loan.status != 'requested':
        raise LoanStateError("Cannot cancel loan that is already funded")
    loan.status = 'cancelled'
    loan.is_active = False
    return loan


# ==================== PERSISTENCE ====================

def create_loan(session, borrower: models.UserAccount, amount: float, term_months: int, purpose: str,
                interest_rate: float = 0, description: Optional[str] = None,
                payment_schedule: str = 'monthly') -> models.Loan:
    errors = []
    if amount is None or not 1 <= amount <= 1_000_000:
        errors.append("amount: must be between 1 and 1,000,000")
    if interest_rate is None or not 0 <= interest_rate <= 100:
        errors.append("interest_rate: must be between 0 and 100")
    if term_months is None or not 1 <= term_months <= 360:
        errors.append("term_months: must be between 1 and 360")
    if not purpose or not purpose.strip():
        errors.append("purpose: Loan purpose is required")
    if errors:
        raise ValidationFailed("Validation failed", errors)

    loan = models.Loan(
        borrower_id=borrower.user_id,
        amount=Decimal(str(amount)),
        interest_rate=Decimal(str(interest_rate)),
        term_months=term_months,
        purpose=purpose.strip(),
        description=description,
        payment_schedule=payment_schedule,
        status='requested',
    )
    session.add(loan)
    session.commit()
    session.refresh(loan)
    logger.info(f"Loan {loan.loan_id} requested by user {borrower.user_id} for {loan.amount}",
                extra={"event": "loan_requested"})
    return loan


def get_loan(session, loan_id: int) -> models.Loan:
    loan = session.query(models.Loan).filter(
        models.Loan.loan_id == loan_id,
        models.Loan.is_active.is_(True)
    ).first()
    if not loan:
        raise NotFound("Loan not found")
    return loan


def available_loans(session, page: int = 1, limit: int = 20) -> Tuple[List[models.Loan], int]:
    query = session.query(models.Loan).filter(
        models.Loan.status == 'requested',
        models.Loan.is_active.is_(True)
    )
    total = query.count()
    loans = query.order_by(models.Loan.created_at.desc(), models.Loan.loan_id.desc()) \
        .offset((page - 1) * limit).limit(limit).all()
    return loans, total


def user_loans(session, user_id: int, loan_type: str = 'all') -> List[models.Loan]:
    if loan_type not in LOAN_TYPES:
        raise ValidationFailed("type must be one of: all, borrowed, lent")
    query = session.query(models.Loan).filter(models.Loan.is_active.is_(True))
    if loan_type == 'borrowed':
        query = query.filter(models.Loan.borrower_id == user_id)
    elif loan_type == 'lent':
        query = query.filter(models.Loan.lender_id == user_id)
    else:
        query = query.filter(or_(models.Loan.borrower_id == user_id, models.Loan.lender_id == user_id))
    return query.order_by(models.Loan.created_at.desc(), models.Loan.loan_id.desc()).all()


def fund_loan(session, loan_id: int, lender: models.UserAccount) -> models.Loan:
    loan = get_loan(session, loan_id)
    if loan.borrower_id == lender.user_id:
        raise ValidationFailed("You cannot fund your own loan request")
    fund(loan, lender.user_id)
    session.commit()
    session.refresh(loan)
    logger.info(f"Loan {loan.loan_id} funded by user {lender.user_id}", extra={"event": "loan_funded"})
    return loan


def repay_loan(session, loan_id: int, user: models.UserAccount) -> models.Loan:
    loan = get_loan(session, loan_id)
    if loan.borrower_id != user.user_id:
        raise PermissionDenied("You can only repay your own loans")
    repay(loan)
    session.commit()
    session.refresh(loan)
    logger.info(f"Loan {loan.loan_id} repaid by user {user.user_id}", extra={"event": "loan_repaid"})
    return loan


def cancel_loan(session, loan_id: int, user: models.UserAccount) -> models.Loan:
    loan = get_loan(session, loan_id)
    if loan.borrower_id != user.user_id:
        raise PermissionDenied("You can only cancel your own loan requests")
    cancel(loan)
    session.commit()
    logger.info(f"Loan {loan.loan_id} cancelled by user {user.user_id}", extra={"event": "loan_cancelled"})
    return loan
