# Request / response models
from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from . import models, savings
from .lending import monthly_payment, total_interest

Visibility = Literal['public', 'friends', 'private']
MessageType = Literal['text', 'image', 'file']
PaymentSchedule = Literal['monthly', 'quarterly', 'annually', 'lump-sum']
SavingsCategory = Literal['emergency_fund', 'vacation', 'home_purchase', 'car_purchase', 'education',
                          'retirement', 'wedding', 'business', 'medical', 'other']
SavingsStatus = Literal['active', 'completed', 'paused', 'cancelled']
SavingsPrivacy = Literal['private', 'friends', 'public']
DepositMethod = Literal['manual', 'auto', 'bonus']
AutoDepositFrequency = Literal['weekly', 'biweekly', 'monthly']


def _money(value) -> float:
    return float(value) if value is not None else 0.0


# ==================== AUTH ====================

class RegisterRequest(BaseModel):
    id_token: Optional[str] = Field(None, description="Identity-platform ID token; omit for direct registration")
    email: Optional[EmailStr] = Field(None, description="Email address (direct registration)")
    password: Optional[str] = Field(None, description="Password, at least 6 characters (direct registration)")
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    username: Optional[str] = None
    phone_number: Optional[str] = Field(None, pattern=r'^\+?[\d\s\-\(\)]+$')
    date_of_birth: Optional[date] = None
    interests: List[str] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "email": "ada@example.com",
                "password": "secret123",
                "first_name": "Ada",
                "last_name": "Lovelace",
                "interests": ["investing", "chess"]
            }
        }


class LoginRequest(BaseModel):
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    id_token: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "email": "ada@example.com",
                "password": "secret123"
            }
        }


class RefreshTokenRequest(BaseModel):
    refresh_token: str = Field(..., description="Refresh token issued at login")


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_in: int


# ==================== USERS ====================

class Address(BaseModel):
    street: Optional[str] = Field(None, max_length=120)
    city: Optional[str] = Field(None, max_length=80)
    state: Optional[str] = Field(None, max_length=80)
    zip_code: Optional[str] = Field(None, max_length=20)
    country: Optional[str] = Field(None, max_length=2)


class ProfileUpdateRequest(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, min_length=1, max_length=50)
    username: Optional[str] = None
    bio: Optional[str] = Field(None, max_length=500)
    phone_number: Optional[str] = Field(None, pattern=r'^\+?[\d\s\-\(\)]+$')
    date_of_birth: Optional[date] = None
    address: Optional[Address] = None
    interests: Optional[List[str]] = None
    profile_picture_url: Optional[str] = None
    cover_photo_url: Optional[str] = None

    @field_validator('first_name', 'last_name')
    @classmethod
    def name_not_null(cls, value):
        if value is None or not value.strip():
            raise ValueError("cannot be empty")
        return value

    class Config:
        json_schema_extra = {
            "example": {
                "bio": "Saving for a house",
                "address": {"city": "Austin", "state": "TX"},
                "interests": ["real estate", "budgeting"]
            }
        }


class KycDocumentRequest(BaseModel):
    filename: str = Field(..., min_length=1, max_length=255)
    original_name: Optional[str] = Field(None, max_length=255)
    url: str = Field(..., min_length=1, max_length=512)
    size: Optional[int] = Field(None, ge=0)
    mime_type: Optional[str] = Field(None, max_length=100)


class UserSummary(BaseModel):
    user_id: int
    first_name: str
    last_name: str
    username: Optional[str] = None
    profile_picture_url: Optional[str] = None

    class Config:
        from_attributes = True


class UserResponse(BaseModel):
    user_id: int
    email: str
    first_name: str
    last_name: str
    username: Optional[str] = None
    bio: Optional[str] = None
    phone_number: Optional[str] = None
    date_of_birth: Optional[date] = None
    address: Address
    interests: List[str] = Field(default_factory=list)
    profile_picture_url: Optional[str] = None
    cover_photo_url: Optional[str] = None
    kyc_status: str = "not_started"
    is_active: bool
    last_login_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def build(cls, user: models.UserAccount) -> "UserResponse":
        return cls(
            user_id=user.user_id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            username=user.username,
            bio=user.bio,
            phone_number=user.phone_number,
            date_of_birth=user.date_of_birth,
            address=Address(street=user.street, city=user.city, state=user.state,
                            zip_code=user.zip_code, country=user.country),
            interests=list(user.interests or []),
            profile_picture_url=user.profile_picture_url,
            cover_photo_url=user.cover_photo_url,
            kyc_status=user.kyc.status if user.kyc else "not_started",
            is_active=user.is_active,
            last_login_at=user.last_login_at,
            created_at=user.created_at,
        )


class PublicProfileResponse(BaseModel):
    user_id: int
    first_name: str
    last_name: str
    username: Optional[str] = None
    bio: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    interests: List[str] = Field(default_factory=list)
    profile_picture_url: Optional[str] = None
    cover_photo_url: Optional[str] = None
    created_at: datetime

    @classmethod
    def build(cls, user: models.UserAccount) -> "PublicProfileResponse":
        return cls(
            user_id=user.user_id,
            first_name=user.first_name,
            last_name=user.last_name,
            username=user.username,
            bio=user.bio,
            city=user.city,
            state=user.state,
            interests=list(user.interests or []),
            profile_picture_url=user.profile_picture_url,
            cover_photo_url=user.cover_photo_url,
            created_at=user.created_at,
        )


# ==================== FEED ====================

class PostCreateRequest(BaseModel):
    content: Optional[str] = None
    image_url: Optional[str] = Field(None, max_length=512)
    visibility: Visibility = 'public'

    class Config:
        json_schema_extra = {
            "example": {
                "content": "Just hit 50% on my emergency fund!",
                "visibility": "public"
            }
        }


class CommentRequest(BaseModel):
    text: Optional[str] = None


class CommentResponse(BaseModel):
    comment_id: int
    user: UserSummary
    text: str
    created_at: datetime

    @classmethod
    def build(cls, comment: models.PostComment) -> "CommentResponse":
        return cls(
            comment_id=comment.comment_id,
            user=UserSummary.model_validate(comment.user),
            text=comment.text,
            created_at=comment.created_at,
        )


class PostResponse(BaseModel):
    post_id: int
    author: UserSummary
    content: str
    image_url: Optional[str] = None
    visibility: str
    like_count: int
    comment_count: int
    is_liked: bool = False
    comments: List[CommentResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @classmethod
    def build(cls, post: models.Post, viewer_id: Optional[int] = None) -> "PostResponse":
        return cls(
            post_id=post.post_id,
            author=UserSummary.model_validate(post.author),
            content=post.content,
            image_url=post.image_url,
            visibility=post.visibility,
            like_count=post.like_count,
            comment_count=post.comment_count,
            is_liked=post.is_liked_by(viewer_id) if viewer_id else False,
            comments=[CommentResponse.build(c) for c in post.comments],
            created_at=post.created_at,
            updated_at=post.updated_at,
        )


# ==================== MESSAGES ====================

class MessageCreateRequest(BaseModel):
    recipient_id: Optional[int] = None
    content: Optional[str] = None
    message_type: MessageType = 'text'
    attachment_url: Optional[str] = Field(None, max_length=512)

    class Config:
        json_schema_extra = {
            "example": {
                "recipient_id": 2,
                "content": "Thanks for funding my loan!"
            }
        }


class MessageResponse(BaseModel):
    message_id: int
    sender_id: int
    recipient_id: int
    content: str
    message_type: str
    attachment_url: Optional[str] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


# ==================== LOANS ====================

class LoanCreateRequest(BaseModel):
    amount: float = Field(..., ge=1, le=1_000_000)
    interest_rate: float = Field(0, ge=0, le=100)
    term_months: int = Field(..., ge=1, le=360)
    purpose: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = Field(None, max_length=1000)
    payment_schedule: PaymentSchedule = 'monthly'

    class Config:
        json_schema_extra = {
            "example": {
                "amount": 1000,
                "interest_rate": 12,
                "term_months": 12,
                "purpose": "Laptop for freelance work",
                "payment_schedule": "monthly"
            }
        }


class LoanResponse(BaseModel):
    loan_id: int
    borrower: UserSummary
    lender: Optional[UserSummary] = None
    amount: float
    interest_rate: float
    term_months: Optional[int] = None
    purpose: Optional[str] = None
    description: Optional[str] = None
    payment_schedule: str
    status: str
    monthly_payment: float
    total_interest: float
    funded_at: Optional[datetime] = None
    due_date: Optional[datetime] = None
    repaid_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def build(cls, loan: models.Loan) -> "LoanResponse":
        payment = monthly_payment(loan.amount, loan.interest_rate, loan.term_months)
        return cls(
            loan_id=loan.loan_id,
            borrower=UserSummary.model_validate(loan.borrower),
            lender=UserSummary.model_validate(loan.lender) if loan.lender else None,
            amount=_money(loan.amount),
            interest_rate=float(loan.interest_rate or 0),
            term_months=loan.term_months,
            purpose=loan.purpose,
            description=loan.description,
            payment_schedule=loan.payment_schedule,
            status=loan.status,
            monthly_payment=payment,
            total_interest=total_interest(loan.amount, payment, loan.term_months),
            funded_at=loan.funded_at,
            due_date=loan.due_date,
            repaid_at=loan.repaid_at,
            created_at=loan.created_at,
        )


# ==================== SAVINGS ====================

class AutoDepositConfig(BaseModel):
    enabled: Optional[bool] = None
    amount: Optional[float] = Field(None, gt=0)
    frequency: Optional[AutoDepositFrequency] = None
    next_deposit: Optional[datetime] = None


class SavingsGoalCreateRequest(BaseModel):
    goal_name: str = Field(..., min_length=1, max_length=100)
    target_amount: float = Field(..., ge=1)
    target_date: Optional[datetime] = None
    category: SavingsCategory = 'other'
    privacy: SavingsPrivacy = 'private'
    auto_deposit: Optional[AutoDepositConfig] = None

    class Config:
        json_schema_extra = {
            "example": {
                "goal_name": "Emergency fund",
                "target_amount": 1000,
                "target_date": "2027-06-01T00:00:00",
                "category": "emergency_fund"
            }
        }


class SavingsGoalUpdateRequest(BaseModel):
    goal_name: Optional[str] = Field(None, min_length=1, max_length=100)
    target_amount: Optional[float] = Field(None, ge=1)
    target_date: Optional[datetime] = None
    category: Optional[SavingsCategory] = None
    status: Optional[SavingsStatus] = None
    privacy: Optional[SavingsPrivacy] = None
    auto_deposit: Optional[AutoDepositConfig] = None


class DepositRequest(BaseModel):
    amount: float = Field(..., gt=0)
    note: str = Field('', max_length=200)
    method: DepositMethod = 'manual'


class WithdrawalRequest(BaseModel):
    amount: float = Field(..., gt=0)
    reason: str = Field(..., min_length=1, max_length=200)


class DepositResponse(BaseModel):
    deposit_id: int
    amount: float
    note: Optional[str] = None
    method: str
    deposited_at: datetime


class WithdrawalResponse(BaseModel):
    withdrawal_id: int
    amount: float
    reason: str
    withdrawn_at: datetime


class MilestoneResponse(BaseModel):
    percentage: int
    achieved_at: datetime
    celebration: Optional[str] = None

    class Config:
        from_attributes = True


class SavingsGoalResponse(BaseModel):
    goal_id: int
    goal_name: str
    target_amount: float
    current_amount: float
    remaining_amount: float
    progress_percentage: int
    target_date: Optional[datetime] = None
    days_remaining: Optional[int] = None
    suggested_monthly_savings: Optional[float] = None
    category: str
    status: str
    privacy: str
    auto_deposit: AutoDepositConfig
    deposits: List[DepositResponse] = Field(default_factory=list)
    withdrawals: List[WithdrawalResponse] = Field(default_factory=list)
    milestones: List[MilestoneResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @classmethod
    def build(cls, goal: models.SavingsGoal, now: Optional[datetime] = None) -> "SavingsGoalResponse":
        now = now or datetime.utcnow()
        return cls(
            goal_id=goal.goal_id,
            goal_name=goal.goal_name,
            target_amount=_money(goal.target_amount),
            current_amount=_money(goal.current_amount),
            remaining_amount=_money(savings.remaining_amount(goal)),
            progress_percentage=savings.progress_percentage(goal.current_amount, goal.target_amount),
            target_date=goal.target_date,
            days_remaining=savings.days_remaining(goal, now),
            suggested_monthly_savings=savings.suggested_monthly_savings(goal, now),
            category=goal.category,
            status=goal.status,
            privacy=goal.privacy,
            auto_deposit=AutoDepositConfig(
                enabled=goal.auto_deposit_enabled,
                amount=_money(goal.auto_deposit_amount) if goal.auto_deposit_amount else None,
                frequency=goal.auto_deposit_frequency,
                next_deposit=goal.auto_deposit_next,
            ),
            deposits=[DepositResponse(deposit_id=d.deposit_id, amount=_money(d.amount), note=d.note,
                                      method=d.method, deposited_at=d.deposited_at) for d in goal.deposits],
            withdrawals=[WithdrawalResponse(withdrawal_id=w.withdrawal_id, amount=_money(w.amount),
                                            reason=w.reason, withdrawn_at=w.withdrawn_at)
                         for w in goal.withdrawals],
            milestones=[MilestoneResponse.model_validate(m) for m in goal.milestones],
            created_at=goal.created_at,
            updated_at=goal.updated_at,
        )


class PaginationInfo(BaseModel):
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "PaginationInfo":
        return cls(page=page, limit=limit, total=total, pages=(total + limit - 1) // limit if limit else 0)
