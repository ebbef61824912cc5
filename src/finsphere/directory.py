"""User directory: accounts, profiles, KYC document references and upload history."""

import logging
import re
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from . import auth, models
from .errors import AuthenticationError, DuplicateError, NotFound, ValidationFailed

logger = logging.getLogger(__name__)

USERNAME_PATTERN = re.compile(r'^[A-Za-z0-9_]{3,20}$')
KYC_SLOTS = ('identity', 'address', 'income')
PROFILE_FIELDS = (
    'first_name', 'last_name', 'username', 'bio', 'phone_number', 'date_of_birth',
    'address', 'interests', 'profile_picture_url', 'cover_photo_url',
)
ADDRESS_FIELDS = ('street', 'city', 'state', 'zip_code', 'country')


def _normalize_username(value: Optional[str]) -> Optional[str]:
    if value is None or value == '':
        return None
    if not USERNAME_PATTERN.match(value):
        raise ValidationFailed("Validation failed",
                               ["username: must be 3-20 characters of letters, numbers and underscores"])
    return value.lower()


def _normalize_interests(values) -> List[str]:
    interests = []
    for value in values or []:
        tag = str(value).strip().lower()
        if tag and tag not in interests:
            interests.append(tag)
    return interests


def _ensure_username_free(session, username: str, user_id: Optional[int] = None):
    query = session.query(models.UserAccount).filter(models.UserAccount.username == username)
    if user_id is not None:
        query = query.filter(models.UserAccount.user_id != user_id)
    if query.first():
        raise DuplicateError("Username is already taken")


def get_active_user(session, user_id: int) -> models.UserAccount:
    user = session.query(models.UserAccount).filter(
        models.UserAccount.user_id == user_id,
        models.UserAccount.is_active.is_(True)
    ).first()
    if not user:
        raise NotFound("User not found")
    return user


# ==================== REGISTRATION / LOGIN ====================

def register(session, data: dict, verifier: Optional[auth.IdentityVerifier],
             allow_direct: bool = True) -> Tuple[models.UserAccount, dict]:
    """Create an account from an identity-platform token or, outside production, email/password"""
    id_token = data.get('id_token')
    if id_token:
        if verifier is None:
            raise AuthenticationError("Invalid ID token")
        claims = verifier.verify(id_token)
        auth_id = claims['uid']
        email = claims.get('email') or data.get('email')
        password_hash = None
    else:
        if not allow_direct:
            raise ValidationFailed("Please provide id_token, first_name, and last_name")
        if not data.get('email') or not data.get('password'):
            raise ValidationFailed("Please provide email, password, first_name, and last_name")
        if len(data['password']) < 6:
            raise ValidationFailed("Validation failed", ["password: must be at least 6 characters"])
        auth_id = auth.generate_auth_id()
        email = data['email']
        password_hash = auth.hash_password(data['password'])

    if not email:
        raise ValidationFailed("Validation failed", ["email: Email is required"])
    email = email.strip().lower()

    existing = session.query(models.UserAccount).filter(
        or_(models.UserAccount.email == email, models.UserAccount.auth_id == auth_id)
    ).first()
    if existing:
        raise DuplicateError("User already exists with this email or authId")

    username = _normalize_username(data.get('username'))
    if username:
        _ensure_username_free(session, username)

    user = models.UserAccount(
        auth_id=auth_id,
        email=email,
        password_hash=password_hash,
        first_name=data['first_name'].strip(),
        last_name=data['last_name'].strip(),
        username=username,
        phone_number=data.get('phone_number'),
        date_of_birth=data.get('date_of_birth'),
        interests=_normalize_interests(data.get('interests')),
        last_login_at=datetime.utcnow(),
    )
    session.add(user)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise DuplicateError("User already exists with this email or authId")
    session.refresh(user)

    logger.info(f"Registered user {user.user_id} ({'identity platform' if id_token else 'direct'})")
    return user, auth.issue_token_pair(user)


def login(session, data: dict, verifier: Optional[auth.IdentityVerifier],
          allow_direct: bool = True) -> Tuple[models.UserAccount, dict]:
    email = data.get('email')
    password = data.get('password')
    id_token = data.get('id_token')

    if email and password:
        if not allow_direct:
            raise ValidationFailed("ID token is required for identity-platform authentication")
        user = session.query(models.UserAccount).filter(
            models.UserAccount.email == email.strip().lower()
        ).first()
        if not user or not auth.verify_password(password, user.password_hash):
            raise AuthenticationError("Invalid credentials")
    elif id_token:
        if verifier is None:
            raise AuthenticationError("Invalid ID token")
        claims = verifier.verify(id_token)
        user = session.query(models.UserAccount).filter(
            models.UserAccount.auth_id == claims['uid']
        ).first()
        if not user:
            raise NotFound("User not found. Please register first.")
    else:
        raise ValidationFailed("Please provide email and password or an id_token")

    if not user.is_active:
        raise AuthenticationError("Account is deactivated")

    user.last_login_at = datetime.utcnow()
    session.commit()
    session.refresh(user)
    logger.info(f"User {user.user_id} logged in")
    return user, auth.issue_token_pair(user)


def refresh(session, refresh_token: str) -> dict:
    payload = auth.decode_local_token(refresh_token, expected_type="refresh")
    user = session.query(models.UserAccount).filter(
        models.UserAccount.auth_id == payload.get("sub")
    ).first()
    if not user or not user.is_active:
        raise AuthenticationError("Invalid refresh token")
    tokens = auth.issue_token_pair(user)
    return {
        "access_token": tokens["access_token"],
        "token_type": tokens["token_type"],
        "expires_in": tokens["expires_in"],
    }


# ==================== PROFILE ====================

def update_profile(session, user: models.UserAccount, changes: dict) -> models.UserAccount:
    changes = {key: value for key, value in changes.items() if key in PROFILE_FIELDS}
    if not changes:
        raise ValidationFailed("No valid fields to update")

    blank = [f"{key}: cannot be empty" for key in ('first_name', 'last_name')
             if key in changes and not (changes[key] or '').strip()]
    if blank:
        raise ValidationFailed("Validation failed", blank)

    username = None
    if 'username' in changes:
        username = _normalize_username(changes.pop('username'))
        if username:
            _ensure_username_free(session, username, user.user_id)
        user.username = username

    address = changes.pop('address', None)
    if address:
        for key in ADDRESS_FIELDS:
            if address.get(key) is not None:
                setattr(user, key, address[key])

    if 'interests' in changes:
        user.interests = _normalize_interests(changes.pop('interests'))

    for key in ('profile_picture_url', 'cover_photo_url'):
        url = changes.get(key)
        if url and url != getattr(user, key):
            user.uploads.append(models.UserUpload(
                upload_type='avatar' if key == 'profile_picture_url' else 'cover',
                url=url,
                filename=url.rsplit('/', 1)[-1],
            ))

    for key, value in changes.items():
        if key in ('first_name', 'last_name'):
            value = value.strip()
        setattr(user, key, value)

    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        if username:
            raise DuplicateError("Username is already taken")
        raise
    session.refresh(user)
    return user


def deactivate(session, user: models.UserAccount) -> models.UserAccount:
    user.is_active = False
    session.commit()
    logger.info(f"User {user.user_id} deactivated their account")
    return user


def get_public_profile(session, user_id: int) -> models.UserAccount:
    return get_active_user(session, user_id)


# ==================== KYC ====================

def _derive_kyc_status(record: models.KycRecord) -> str:
    statuses = {doc.slot: doc.status for doc in record.documents}
    if any(status == 'rejected' for status in statuses.values()):
        return 'requires_resubmission'
    if all(statuses.get(slot) == 'approved' for slot in KYC_SLOTS):
        return 'approved'
    if statuses:
        return 'pending'
    return 'not_started'


def submit_kyc_document(session, user: models.UserAccount, slot: str, document: dict) -> models.KycRecord:
    """Record the stored file's reference in a KYC slot; bytes live in the object store"""
    if slot not in KYC_SLOTS:
        raise ValidationFailed(f"Invalid document slot; expected one of: {', '.join(KYC_SLOTS)}")

    now = datetime.utcnow()
    record = user.kyc
    if record is None:
        record = models.KycRecord(status='not_started')
        user.kyc = record

    existing = next((doc for doc in record.documents if doc.slot == slot), None)
    if existing is None:
        existing = models.KycDocument(slot=slot)
        record.documents.append(existing)
    existing.filename = document['filename']
    existing.original_name = document.get('original_name')
    existing.url = document['url']
    existing.size = document.get('size')
    existing.mime_type = document.get('mime_type')
    existing.status = 'pending'
    existing.rejection_reason = None
    existing.uploaded_at = now

    if record.submitted_at is None:
        record.submitted_at = now
    record.status = _derive_kyc_status(record)

    user.uploads.append(models.UserUpload(upload_type='kyc', url=document['url'],
                                          filename=document['filename'], uploaded_at=now))
    session.commit()
    session.refresh(record)
    logger.info(f"User {user.user_id} submitted KYC document for slot {slot}")
    return record


def kyc_status(user: models.UserAccount) -> dict:
    record = user.kyc
    if record is None:
        return {"status": "not_started", "submitted_at": None, "reviewed_at": None, "documents": {}}
    return {
        "status": record.status,
        "submitted_at": record.submitted_at,
        "reviewed_at": record.reviewed_at,
        "documents": {
            doc.slot: {
                "filename": doc.filename,
                "original_name": doc.original_name,
                "url": doc.url,
                "size": doc.size,
                "mime_type": doc.mime_type,
                "status": doc.status,
                "rejection_reason": doc.rejection_reason,
                "uploaded_at": doc.uploaded_at,
            }
            for doc in record.documents
        },
    }


def review_kyc_document(session, user_id: int, slot: str, approved: bool, reason: Optional[str] = None,
                        reviewer_id: Optional[int] = None) -> models.KycRecord:
    record = session.query(models.KycRecord).filter(models.KycRecord.user_id == user_id).first()
    document = None
    if record is not None:
        document = next((doc for doc in record.documents if doc.slot == slot), None)
    if document is None:
        raise NotFound("KYC document not found")

    document.status = 'approved' if approved else 'rejected'
    document.rejection_reason = None if approved else reason
    record.reviewed_at = datetime.utcnow()
    record.reviewed_by = reviewer_id
    record.status = _derive_kyc_status(record)
    session.commit()
    session.refresh(record)
    logger.info(f"KYC {slot} document for user {user_id} {'approved' if approved else 'rejected'}",
                extra={"event": "kyc_reviewed"})
    return record


def upload_history(user: models.UserAccount) -> dict:
    return {
        "uploads": [
            {
                "upload_id": upload.upload_id,
                "type": upload.upload_type,
                "url": upload.url,
                "filename": upload.filename,
                "uploaded_at": upload.uploaded_at,
            }
            for upload in user.uploads
        ],
        "kyc": kyc_status(user),
    }


# ==================== FRIEND RECOMMENDATIONS ====================

def friend_recommendations(session, user: models.UserAccount, limit: int = 10) -> List[Tuple[models.UserAccount, int]]:
    """Rank users outside the friends list by shared interests, 10 points each"""
    friend_ids = {row.friend_id for row in session.query(models.UserFriend).filter(
        models.UserFriend.user_id == user.user_id
    ).all()}
    mine = set(user.interests or [])

    candidates = session.query(models.UserAccount).filter(
        models.UserAccount.user_id != user.user_id,
        models.UserAccount.is_active.is_(True)
    ).order_by(models.UserAccount.user_id).all()

    scored = []
    for candidate in candidates:
        if candidate.user_id in friend_ids:
            continue
        shared = mine.intersection(candidate.interests or [])
        scored.append((candidate, len(shared) * 10))
    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored[:limit]
