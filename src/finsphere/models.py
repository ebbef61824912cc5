from sqlalchemy import create_engine, Column, Integer, String, DateTime, Boolean, Date, Text, Enum, ForeignKey, UniqueConstraint, Index
from sqlalchemy.types import BIGINT, JSON, Numeric
from sqlalchemy.orm import sessionmaker, declarative_base, relationship
from sqlalchemy.pool import StaticPool
from datetime import datetime
from typing import Optional

from config import get_db_config

# Create declarative base
Base = declarative_base()

# SQLite only autoincrements INTEGER primary keys
IdType = BIGINT().with_variant(Integer, "sqlite")
Money = Numeric(18, 2)


class Database:
    def __init__(self, url: Optional[str] = None):
        settings = get_db_config()
        self.url = url or settings.url

        options = {"echo": settings.echo}
        if self.url.startswith("sqlite"):
            options["connect_args"] = {"check_same_thread": False}
            if self.url in ("sqlite://", "sqlite:///:memory:"):
                options["poolclass"] = StaticPool
        else:
            options["pool_pre_ping"] = True

        self.engine = create_engine(self.url, **options)
        self.SessionLocal = sessionmaker(autoflush=False, bind=self.engine)

    def get_session(self):
        """Open a new database session; the caller owns closing it"""
        return self.SessionLocal()

    def create_all(self):
        Base.metadata.create_all(self.engine)

    def drop_all(self):
        Base.metadata.drop_all(self.engine)


class TimestampMixin:
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


# ==================== USER DIRECTORY ====================

class UserAccount(TimestampMixin, Base):
    __tablename__ = "user_account"

    user_id = Column(IdType, primary_key=True, autoincrement=True)
    auth_id = Column(String(128), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255))
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    username = Column(String(20), unique=True)
    bio = Column(String(500), default='')
    phone_number = Column(String(32))
    date_of_birth = Column(Date)
    street = Column(String(120))
    city = Column(String(80))
    state = Column(String(80))
    zip_code = Column(String(20))
    country = Column(String(2), default='US')
    interests = Column(JSON, default=list)
    profile_picture_url = Column(String(512))
    cover_photo_url = Column(String(512))
    is_active = Column(Boolean, default=True, nullable=False)
    last_login_at = Column(DateTime)

    kyc = relationship("KycRecord", back_populates="user", uselist=False, cascade="all, delete-orphan",
                       foreign_keys="KycRecord.user_id")
    uploads = relationship("UserUpload", back_populates="user", cascade="all, delete-orphan",
                           order_by="UserUpload.upload_id")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class UserFriend(Base):
    __tablename__ = "user_friend"
    __table_args__ = (UniqueConstraint('user_id', 'friend_id', name='uq_user_friend'),)

    user_id = Column(IdType, ForeignKey('user_account.user_id'), primary_key=True)
    friend_id = Column(IdType, ForeignKey('user_account.user_id'), primary_key=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class UserUpload(Base):
    __tablename__ = "user_upload"

    upload_id = Column(IdType, primary_key=True, autoincrement=True)
    user_id = Column(IdType, ForeignKey('user_account.user_id'), nullable=False, index=True)
    upload_type = Column(Enum('avatar', 'cover', 'post', 'kyc', 'message', name='upload_type'), nullable=False)
    url = Column(String(512))
    filename = Column(String(255))
    uploaded_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("UserAccount", back_populates="uploads")


class KycRecord(TimestampMixin, Base):
    __tablename__ = "kyc_record"

    kyc_id = Column(IdType, primary_key=True, autoincrement=True)
    user_id = Column(IdType, ForeignKey('user_account.user_id'), nullable=False, unique=True)
    status = Column(Enum('not_started', 'pending', 'approved', 'rejected', 'requires_resubmission',
                         name='kyc_status'), default='not_started', nullable=False)
    submitted_at = Column(DateTime)
    reviewed_at = Column(DateTime)
    reviewed_by = Column(IdType, ForeignKey('user_account.user_id'))
    notes = Column(Text)

    user = relationship("UserAccount", back_populates="kyc", foreign_keys=[user_id])
    documents = relationship("KycDocument", back_populates="record", cascade="all, delete-orphan",
                             order_by="KycDocument.document_id")


class KycDocument(Base):
    __tablename__ = "kyc_document"
    __table_args__ = (UniqueConstraint('kyc_id', 'slot', name='uq_kyc_document_slot'),)

    document_id = Column(IdType, primary_key=True, autoincrement=True)
    kyc_id = Column(IdType, ForeignKey('kyc_record.kyc_id'), nullable=False)
    slot = Column(Enum('identity', 'address', 'income', name='kyc_slot'), nullable=False)
    filename = Column(String(255))
    original_name = Column(String(255))
    url = Column(String(512))
    size = Column(Integer)
    mime_type = Column(String(100))
    status = Column(Enum('pending', 'approved', 'rejected', name='kyc_document_status'),
                    default='pending', nullable=False)
    rejection_reason = Column(String(255))
    uploaded_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    record = relationship("KycRecord", back_populates="documents")


# ==================== SOCIAL GRAPH ====================

class Follow(TimestampMixin, Base):
    __tablename__ = "follow"
    __table_args__ = (
        UniqueConstraint('follower_id', 'following_id', name='uq_follow_pair'),
        Index('ix_follow_follower_active', 'follower_id', 'is_active'),
        Index('ix_follow_following_active', 'following_id', 'is_active'),
    )

    follow_id = Column(IdType, primary_key=True, autoincrement=True)
    follower_id = Column(IdType, ForeignKey('user_account.user_id'), nullable=False)
    following_id = Column(IdType, ForeignKey('user_account.user_id'), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    follower = relationship("UserAccount", foreign_keys=[follower_id])
    following = relationship("UserAccount", foreign_keys=[following_id])


# ==================== CONTENT FEED ====================

class Post(TimestampMixin, Base):
    __tablename__ = "post"
    __table_args__ = (Index('ix_post_visibility_created', 'visibility', 'created_at'),)

    post_id = Column(IdType, primary_key=True, autoincrement=True)
    author_id = Column(IdType, ForeignKey('user_account.user_id'), nullable=False, index=True)
    content = Column(String(2000), nullable=False)
    image_url = Column(String(512))
    visibility = Column(Enum('public', 'friends', 'private', name='post_visibility'),
                        default='public', nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    author = relationship("UserAccount")
    likes = relationship("PostLike", cascade="all, delete-orphan")
    comments = relationship("PostComment", cascade="all, delete-orphan",
                            order_by="PostComment.comment_id")

    @property
    def like_count(self) -> int:
        return len(self.likes)

    @property
    def comment_count(self) -> int:
        return len(self.comments)

    def is_liked_by(self, user_id: int) -> bool:
        return any(like.user_id == user_id for like in self.likes)


class PostLike(Base):
    __tablename__ = "post_like"
    __table_args__ = (UniqueConstraint('post_id', 'user_id', name='uq_post_like'),)

    like_id = Column(IdType, primary_key=True, autoincrement=True)
    post_id = Column(IdType, ForeignKey('post.post_id'), nullable=False)
    user_id = Column(IdType, ForeignKey('user_account.user_id'), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class PostComment(Base):
    __tablename__ = "post_comment"

    comment_id = Column(IdType, primary_key=True, autoincrement=True)
    post_id = Column(IdType, ForeignKey('post.post_id'), nullable=False, index=True)
    user_id = Column(IdType, ForeignKey('user_account.user_id'), nullable=False)
    text = Column(String(500), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("UserAccount")


# ==================== DIRECT MESSAGING ====================

class Message(TimestampMixin, Base):
    __tablename__ = "message"
    __table_args__ = (
        Index('ix_message_pair_created', 'sender_id', 'recipient_id', 'created_at'),
        Index('ix_message_recipient_read', 'recipient_id', 'is_read'),
    )

    message_id = Column(IdType, primary_key=True, autoincrement=True)
    sender_id = Column(IdType, ForeignKey('user_account.user_id'), nullable=False)
    recipient_id = Column(IdType, ForeignKey('user_account.user_id'), nullable=False)
    content = Column(String(1000), nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime)
    message_type = Column(Enum('text', 'image', 'file', name='message_type'), default='text', nullable=False)
    attachment_url = Column(String(512))
    is_active = Column(Boolean, default=True, nullable=False)

    sender = relationship("UserAccount", foreign_keys=[sender_id])
    recipient = relationship("UserAccount", foreign_keys=[recipient_id])


# ==================== LENDING ====================

class Loan(TimestampMixin, Base):
    __tablename__ = "loan"
    __table_args__ = (
        Index('ix_loan_borrower_status', 'borrower_id', 'status'),
        Index('ix_loan_lender_status', 'lender_id', 'status'),
    )

    loan_id = Column(IdType, primary_key=True, autoincrement=True)
    borrower_id = Column(IdType, ForeignKey('user_account.user_id'), nullable=False)
    lender_id = Column(IdType, ForeignKey('user_account.user_id'))
    amount = Column(Money, nullable=False)
    interest_rate = Column(Numeric(6, 3), default=0, nullable=False)
    status = Column(Enum('requested', 'funded', 'repaid', 'defaulted', 'cancelled', name='loan_status'),
                    default='requested', nullable=False, index=True)
    term_months = Column(Integer)
    purpose = Column(String(500))
    description = Column(String(1000))
    payment_schedule = Column(Enum('monthly', 'quarterly', 'annually', 'lump-sum', name='payment_schedule'),
                              default='monthly', nullable=False)
    funded_at = Column(DateTime)
    due_date = Column(DateTime)
    repaid_at = Column(DateTime)
    is_active = Column(Boolean, default=True, nullable=False)

    borrower = relationship("UserAccount", foreign_keys=[borrower_id])
    lender = relationship("UserAccount", foreign_keys=[lender_id])


# ==================== SAVINGS GOALS ====================

class SavingsGoal(TimestampMixin, Base):
    __tablename__ = "savings_goal"
    __table_args__ = (Index('ix_savings_goal_user_status', 'user_id', 'status'),)

    goal_id = Column(IdType, primary_key=True, autoincrement=True)
    user_id = Column(IdType, ForeignKey('user_account.user_id'), nullable=False)
    goal_name = Column(String(100), nullable=False)
    target_amount = Column(Money, nullable=False)
    current_amount = Column(Money, default=0, nullable=False)
    target_date = Column(DateTime)
    category = Column(Enum('emergency_fund', 'vacation', 'home_purchase', 'car_purchase', 'education',
                           'retirement', 'wedding', 'business', 'medical', 'other', name='savings_category'),
                      default='other', nullable=False)
    status = Column(Enum('active', 'completed', 'paused', 'cancelled', name='savings_status'),
                    default='active', nullable=False)
    privacy = Column(Enum('private', 'friends', 'public', name='savings_privacy'),
                     default='private', nullable=False)
    auto_deposit_enabled = Column(Boolean, default=False, nullable=False)
    auto_deposit_amount = Column(Money)
    auto_deposit_frequency = Column(Enum('weekly', 'biweekly', 'monthly', name='auto_deposit_frequency'),
                                    default='monthly', nullable=False)
    auto_deposit_next = Column(DateTime)
    is_active = Column(Boolean, default=True, nullable=False)

    owner = relationship("UserAccount")
    deposits = relationship("SavingsDeposit", cascade="all, delete-orphan",
                            order_by="SavingsDeposit.deposit_id")
    withdrawals = relationship("SavingsWithdrawal", cascade="all, delete-orphan",
                               order_by="SavingsWithdrawal.withdrawal_id")
    milestones = relationship("SavingsMilestone", cascade="all, delete-orphan",
                              order_by="SavingsMilestone.percentage")


class SavingsDeposit(Base):
    __tablename__ = "savings_deposit"

    deposit_id = Column(IdType, primary_key=True, autoincrement=True)
    goal_id = Column(IdType, ForeignKey('savings_goal.goal_id'), nullable=False, index=True)
    amount = Column(Money, nullable=False)
    note = Column(String(200), default='')
    method = Column(Enum('manual', 'auto', 'bonus', name='deposit_method'), default='manual', nullable=False)
    deposited_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class SavingsWithdrawal(Base):
    __tablename__ = "savings_withdrawal"

    withdrawal_id = Column(IdType, primary_key=True, autoincrement=True)
    goal_id = Column(IdType, ForeignKey('savings_goal.goal_id'), nullable=False, index=True)
    amount = Column(Money, nullable=False)
    reason = Column(String(200), nullable=False)
    withdrawn_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class SavingsMilestone(Base):
    __tablename__ = "savings_milestone"
    __table_args__ = (UniqueConstraint('goal_id', 'percentage', name='uq_savings_milestone'),)

    milestone_id = Column(IdType, primary_key=True, autoincrement=True)
    goal_id = Column(IdType, ForeignKey('savings_goal.goal_id'), nullable=False)
    percentage = Column(Integer, nullable=False)
    achieved_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    celebration = Column(String(255))
