from typing import Optional
from fastapi import FastAPI, Depends, Query, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import logging

from config import get_app_config
from . import __version__
from . import auth, directory, feed, lending, messaging, models, savings, schemas, social_graph
from .errors import register_error_handlers
from .logging_config import configure_logging, new_correlation_id
from .presence import build_registry
from .realtime import PresenceRelay, serialize_message

app_config = get_app_config()
configure_logging(app_config.log_level, app_config.log_dir)
logger = logging.getLogger(__name__)

# Create FastAPI instance with metadata
app = FastAPI(
    title="FinSphere API",
    description="Social network with peer-to-peer lending and savings goals",
    version=__version__
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=app_config.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

security = HTTPBearer(auto_error=False)


def init_state(target: FastAPI, database: Optional[models.Database] = None, registry=None, verifier=None):
    """Wire the database, presence registry, relay and identity verifier onto app.state"""
    target.state.db = database or models.Database()
    target.state.presence = registry or build_registry(app_config.presence_backend)
    target.state.identity_verifier = verifier or auth.IdentityPlatformVerifier()
    target.state.relay = PresenceRelay(
        target.state.presence,
        session_factory=lambda: target.state.db.get_session(),
        verifier_provider=lambda: target.state.identity_verifier,
    )


init_state(app)


@app.on_event("startup")
async def startup_event():
    app.state.db.create_all()
    logger.info(f"FinSphere API started ({app_config.environment}, presence={app_config.presence_backend})")


@app.on_event("shutdown")
async def shutdown_event():
    app.state.presence.close()


@app.middleware("http")
async def request_context(request: Request, call_next):
    """Correlation id in, correlation id and security headers out"""
    correlation_id = new_correlation_id(request.headers.get("X-Request-ID"))
    response = await call_next(request)
    response.headers["X-Request-ID"] = correlation_id
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-XSS-Protection"] = "1; mode=block"
    return response


def get_db(request: Request):
    session = request.app.state.db.get_session()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_current_user(request: Request,
                     credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
                     session=Depends(get_db)) -> models.UserAccount:
    """Resolve the bearer token to an active user"""
    token = credentials.credentials if credentials else None
    return auth.authenticate_token(session, token, request.app.state.identity_verifier)


def ok(data=None, message: Optional[str] = None) -> dict:
    body = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body


def summary(user: models.UserAccount) -> schemas.UserSummary:
    return schemas.UserSummary.model_validate(user)


def allow_direct_auth() -> bool:
    return not get_app_config().is_production


@app.get("/")
async def read_root():
    """
    Welcome endpoint
    """
    return {"message": "Welcome to FinSphere API!", "version": __version__}


@app.get("/health")
async def health_check():
    """
    Health check endpoint
    """
    return {
        "status": "healthy",
        "service": "finsphere-api",
        "environment": app_config.environment,
        "realtime_connections": app.state.relay.connection_count,
        "presence": "ok" if app.state.presence.ping() else "unavailable",
    }

# ==================== AUTH ROUTES ====================

@app.post("/api/v1/auth/register", status_code=201)
async def register(request: Request, payload: schemas.RegisterRequest, session=Depends(get_db)):
    """Register with an identity-platform ID token, or email/password outside production"""
    user, tokens = directory.register(session, payload.model_dump(), request.app.state.identity_verifier,
                                      allow_direct=allow_direct_auth())
    return ok({"user": schemas.UserResponse.build(user), **tokens}, "User registered successfully")


@app.post("/api/v1/auth/login")
async def login(request: Request, payload: schemas.LoginRequest, session=Depends(get_db)):
    """User login endpoint"""
    user, tokens = directory.login(session, payload.model_dump(), request.app.state.identity_verifier,
                                   allow_direct=allow_direct_auth())
    return ok({"user": schemas.UserResponse.build(user), **tokens}, "Login successful")


@app.post("/api/v1/auth/refresh")
async def refresh_token(payload: schemas.RefreshTokenRequest, session=Depends(get_db)):
    """Exchange a refresh token for a new access token"""
    return ok(schemas.TokenResponse(**directory.refresh(session, payload.refresh_token)))


@app.get("/api/v1/auth/me")
async def auth_me(current_user: models.UserAccount = Depends(get_current_user)):
    return ok({"user": schemas.UserResponse.build(current_user)})


@app.post("/api/v1/auth/logout")
async def logout(current_user: models.UserAccount = Depends(get_current_user)):
    """Tokens are stateless; the client discards them"""
    logger.info(f"User {current_user.user_id} logged out")
    return ok(message="Logged out successfully")

# ==================== USER ROUTES ====================

@app.get("/api/v1/users/me")
async def get_my_profile(current_user: models.UserAccount = Depends(get_current_user)):
    return ok({"user": schemas.UserResponse.build(current_user)})


@app.put("/api/v1/users/me")
async def update_my_profile(payload: schemas.ProfileUpdateRequest,
                            current_user: models.UserAccount = Depends(get_current_user),
                            session=Depends(get_db)):
    """Update allow-listed profile fields"""
    user = directory.update_profile(session, current_user, payload.model_dump(exclude_unset=True))
    return ok({"user": schemas.UserResponse.build(user)}, "Profile updated successfully")


@app.delete("/api/v1/users/me")
async def deactivate_my_account(current_user: models.UserAccount = Depends(get_current_user),
                                session=Depends(get_db)):
    directory.deactivate(session, current_user)
    return ok(message="Account deactivated successfully")


@app.get("/api/v1/users/me/recommendations")
async def get_friend_recommendations(limit: int = Query(10, ge=1, le=50),
                                     current_user: models.UserAccount = Depends(get_current_user),
                                     session=Depends(get_db)):
    """Friend recommendations by shared interests"""
    ranked = directory.friend_recommendations(session, current_user, limit)
    return ok({
        "recommendations": [{"user": summary(user), "score": score} for user, score in ranked],
        "count": len(ranked),
    })


@app.get("/api/v1/users/me/uploads")
async def get_upload_history(current_user: models.UserAccount = Depends(get_current_user)):
    return ok(directory.upload_history(current_user))


@app.post("/api/v1/users/me/kyc/{slot}", status_code=201)
async def submit_kyc_document(slot: str, payload: schemas.KycDocumentRequest,
                              current_user: models.UserAccount = Depends(get_current_user),
                              session=Depends(get_db)):
    """Record a KYC document already stored in the object store"""
    directory.submit_kyc_document(session, current_user, slot, payload.model_dump())
    return ok({"kyc": directory.kyc_status(current_user)}, "Document submitted for review")


@app.get("/api/v1/users/me/kyc")
async def get_kyc_status(current_user: models.UserAccount = Depends(get_current_user)):
    return ok({"kyc": directory.kyc_status(current_user)})


@app.get("/api/v1/users/{user_id}")
async def get_user_profile(user_id: int, current_user: models.UserAccount = Depends(get_current_user),
                           session=Depends(get_db)):
    """Public profile of another user"""
    user = directory.get_public_profile(session, user_id)
    return ok({"user": schemas.PublicProfileResponse.build(user)})

# ==================== FOLLOW ROUTES ====================

@app.post("/api/v1/follow/{user_id}", status_code=201)
async def follow_user(user_id: int, current_user: models.UserAccount = Depends(get_current_user),
                      session=Depends(get_db)):
    target, stats = social_graph.follow(session, current_user.user_id, user_id)
    return ok({"user": summary(target), "stats": stats},
              f"You are now following {target.first_name} {target.last_name}")


@app.delete("/api/v1/follow/{user_id}")
async def unfollow_user(user_id: int, current_user: models.UserAccount = Depends(get_current_user),
                        session=Depends(get_db)):
    stats = social_graph.unfollow(session, current_user.user_id, user_id)
    return ok({"stats": stats}, "Unfollowed successfully")


def _follow_lists(session, user_id: int, list_type: str, page: int, limit: int) -> dict:
    offset = (page - 1) * limit
    followers, following = [], []
    if list_type in ("followers", "both"):
        followers = social_graph.followers(session, user_id, limit, offset)
    if list_type in ("following", "both"):
        following = social_graph.following(session, user_id, limit, offset)
    return {
        "followers": [{"user": summary(u), "followed_at": at} for u, at in followers],
        "following": [{"user": summary(u), "followed_at": at} for u, at in following],
        "stats": social_graph.follow_stats(session, user_id),
    }


@app.get("/api/v1/follow/me")
async def get_my_follows(type: str = Query("both", pattern="^(followers|following|both)$"),
                         page: int = Query(1, ge=1), limit: int = Query(50, ge=1, le=100),
                         current_user: models.UserAccount = Depends(get_current_user),
                         session=Depends(get_db)):
    return ok(_follow_lists(session, current_user.user_id, type, page, limit))


@app.get("/api/v1/follow/mutual")
async def get_mutual_follows(current_user: models.UserAccount = Depends(get_current_user),
                             session=Depends(get_db)):
    mutual = social_graph.mutual_follows(session, current_user.user_id)
    return ok({
        "mutual_follows": [{"user": summary(u), "followed_at": at} for u, at in mutual],
        "count": len(mutual),
    })


@app.get("/api/v1/follow/suggestions")
async def get_follow_suggestions(limit: int = Query(10, ge=1, le=50),
                                 current_user: models.UserAccount = Depends(get_current_user),
                                 session=Depends(get_db)):
    """People followed by my followers"""
    suggestions = social_graph.suggested_follows(session, current_user.user_id, limit)
    return ok({
        "suggestions": [{**item, "user": summary(item["user"])} for item in suggestions],
        "count": len(suggestions),
    })


@app.get("/api/v1/follow/recommendations/interests")
async def get_interest_recommendations(limit: int = Query(10, ge=1, le=50),
                                       current_user: models.UserAccount = Depends(get_current_user),
                                       session=Depends(get_db)):
    recommendations = social_graph.interest_recommendations(session, current_user, limit)
    return ok({
        "recommendations": [{**item, "user": summary(item["user"])} for item in recommendations],
        "count": len(recommendations),
    })


@app.get("/api/v1/follow/recommendations/recent")
async def get_recent_users(days: int = Query(7, ge=1, le=365), limit: int = Query(10, ge=1, le=50),
                           current_user: models.UserAccount = Depends(get_current_user),
                           session=Depends(get_db)):
    users = social_graph.recent_users(session, current_user.user_id, days, limit)
    return ok({"users": [summary(u) for u in users], "count": len(users)})


@app.get("/api/v1/follow/recommendations/all")
async def get_all_recommendations(limit: int = Query(15, ge=1, le=50),
                                  current_user: models.UserAccount = Depends(get_current_user),
                                  session=Depends(get_db)):
    """Network, interest and recent-user recommendations without duplicates"""
    combined = social_graph.combined_recommendations(session, current_user, limit)
    recommendations = [{**item, "user": summary(item["user"])} for item in combined["recommendations"]]
    return ok({
        "recommendations": recommendations,
        "count": len(recommendations),
        "breakdown": combined["breakdown"],
    })


@app.get("/api/v1/follow/{user_id}/status")
async def get_follow_status(user_id: int, current_user: models.UserAccount = Depends(get_current_user),
                            session=Depends(get_db)):
    if user_id != current_user.user_id:
        directory.get_active_user(session, user_id)
    return ok(social_graph.relationship(session, current_user.user_id, user_id))


@app.delete("/api/v1/follow/followers/{user_id}")
async def remove_follower(user_id: int, current_user: models.UserAccount = Depends(get_current_user),
                          session=Depends(get_db)):
    social_graph.remove_follower(session, current_user.user_id, user_id)
    return ok(message="Follower removed successfully")


@app.get("/api/v1/follow/{user_id}")
async def get_user_follows(user_id: int, type: str = Query("both", pattern="^(followers|following|both)$"),
                           page: int = Query(1, ge=1), limit: int = Query(50, ge=1, le=100),
                           current_user: models.UserAccount = Depends(get_current_user),
                           session=Depends(get_db)):
    user = directory.get_active_user(session, user_id)
    data = _follow_lists(session, user.user_id, type, page, limit)
    data["user"] = summary(user)
    data["relationship"] = social_graph.relationship(session, current_user.user_id, user.user_id)
    return ok(data)

# ==================== FEED ROUTES ====================

@app.post("/api/v1/feed", status_code=201)
async def create_post(payload: schemas.PostCreateRequest,
                      current_user: models.UserAccount = Depends(get_current_user),
                      session=Depends(get_db)):
    post = feed.create_post(session, current_user, payload.content, payload.image_url, payload.visibility)
    return ok({"post": schemas.PostResponse.build(post, current_user.user_id)}, "Post created successfully")


@app.get("/api/v1/feed")
async def get_public_feed(page: int = 1, limit: int = 20,
                          current_user: models.UserAccount = Depends(get_current_user),
                          session=Depends(get_db)):
    posts, total = feed.public_feed(session, page, limit)
    return ok({
        "posts": [schemas.PostResponse.build(p, current_user.user_id) for p in posts],
        "pagination": schemas.PaginationInfo.build(page, limit, total),
    })


@app.get("/api/v1/feed/my-posts")
async def get_my_posts(page: int = 1, limit: int = 20,
                       current_user: models.UserAccount = Depends(get_current_user),
                       session=Depends(get_db)):
    posts, total = feed.my_posts(session, current_user.user_id, page, limit)
    return ok({
        "posts": [schemas.PostResponse.build(p, current_user.user_id) for p in posts],
        "pagination": schemas.PaginationInfo.build(page, limit, total),
    })


@app.post("/api/v1/feed/{post_id}/like")
async def toggle_like(post_id: int, current_user: models.UserAccount = Depends(get_current_user),
                      session=Depends(get_db)):
    result = feed.toggle_like(session, post_id, current_user.user_id)
    return ok(result, "Post liked" if result["is_liked"] else "Post unliked")


@app.post("/api/v1/feed/{post_id}/comment", status_code=201)
async def add_comment(post_id: int, payload: schemas.CommentRequest,
                      current_user: models.UserAccount = Depends(get_current_user),
                      session=Depends(get_db)):
    comment, count = feed.add_comment(session, post_id, current_user, payload.text)
    return ok({"comment": schemas.CommentResponse.build(comment), "comment_count": count},
              "Comment added successfully")


@app.delete("/api/v1/feed/{post_id}")
async def delete_post(post_id: int, current_user: models.UserAccount = Depends(get_current_user),
                      session=Depends(get_db)):
    feed.delete_post(session, post_id, current_user.user_id)
    return ok(message="Post deleted successfully")

# ==================== MESSAGE ROUTES ====================

@app.post("/api/v1/messages", status_code=201)
async def send_message(request: Request, payload: schemas.MessageCreateRequest,
                       current_user: models.UserAccount = Depends(get_current_user),
                       session=Depends(get_db)):
    message = messaging.send_message(session, current_user.user_id, payload.recipient_id, payload.content,
                                     payload.message_type, payload.attachment_url)
    body = serialize_message(message)
    await request.app.state.relay.send_notification(message.recipient_id, {
        "type": "new_message",
        "message": body,
        "sender": summary(current_user).model_dump(mode="json"),
    })
    return ok({"message": body}, "Message sent successfully")


@app.get("/api/v1/messages")
async def get_conversations(current_user: models.UserAccount = Depends(get_current_user),
                            session=Depends(get_db)):
    threads = messaging.conversations(session, current_user.user_id)
    return ok({
        "conversations": [
            {
                "other_user": summary(thread["other_user"]),
                "last_message": schemas.MessageResponse.model_validate(thread["last_message"]),
                "unread_count": thread["unread_count"],
            }
            for thread in threads
        ],
        "count": len(threads),
    })


@app.get("/api/v1/messages/search")
async def search_messages(q: Optional[str] = None, user_id: Optional[int] = Query(None, alias="userId"),
                          page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100),
                          current_user: models.UserAccount = Depends(get_current_user),
                          session=Depends(get_db)):
    messages, total = messaging.search(session, current_user.user_id, q, user_id, page, limit)
    return ok({
        "messages": [schemas.MessageResponse.model_validate(m) for m in messages],
        "search_query": q,
        "pagination": schemas.PaginationInfo.build(page, limit, total),
    })


@app.get("/api/v1/messages/online-users")
async def get_online_users(request: Request, current_user: models.UserAccount = Depends(get_current_user),
                           session=Depends(get_db)):
    users = messaging.online_users(session, request.app.state.presence)
    return ok({"online_users": [summary(u) for u in users], "count": len(users)})


@app.get("/api/v1/messages/user-status/{user_id}")
async def get_user_status(request: Request, user_id: int,
                          current_user: models.UserAccount = Depends(get_current_user)):
    return ok(messaging.user_status(request.app.state.presence, user_id))


@app.get("/api/v1/messages/stats")
async def get_message_stats(current_user: models.UserAccount = Depends(get_current_user),
                            session=Depends(get_db)):
    return ok(messaging.stats(session, current_user.user_id))


@app.get("/api/v1/messages/{user_id}")
async def get_conversation(user_id: int, page: int = Query(1, ge=1), limit: int = Query(50, ge=1, le=100),
                           current_user: models.UserAccount = Depends(get_current_user),
                           session=Depends(get_db)):
    """Chronological conversation page; marks incoming messages read"""
    other, messages, total = messaging.conversation(session, current_user.user_id, user_id, page, limit)
    return ok({
        "messages": [schemas.MessageResponse.model_validate(m) for m in messages],
        "other_user": summary(other),
        "pagination": schemas.PaginationInfo.build(page, limit, total),
    })


@app.put("/api/v1/messages/{message_id}/read")
async def mark_message_read(message_id: int, current_user: models.UserAccount = Depends(get_current_user),
                            session=Depends(get_db)):
    messaging.mark_read(session, message_id, current_user.user_id)
    return ok(message="Message marked as read")


@app.put("/api/v1/messages/{user_id}/read-all")
async def mark_conversation_read(user_id: int, current_user: models.UserAccount = Depends(get_current_user),
                                 session=Depends(get_db)):
    directory.get_active_user(session, user_id)
    count = messaging.mark_conversation_read(session, current_user.user_id, user_id)
    return ok({"count": count}, f"{count} messages marked as read")


@app.delete("/api/v1/messages/{message_id}")
async def delete_message(message_id: int, current_user: models.UserAccount = Depends(get_current_user),
                         session=Depends(get_db)):
    messaging.delete_message(session, message_id, current_user.user_id)
    return ok(message="Message deleted successfully")

# ==================== LOAN ROUTES ====================

@app.post("/api/v1/loans", status_code=201)
async def create_loan(payload: schemas.LoanCreateRequest,
                      current_user: models.UserAccount = Depends(get_current_user),
                      session=Depends(get_db)):
    loan = lending.create_loan(session, current_user, payload.amount, payload.term_months, payload.purpose,
                               payload.interest_rate, payload.description, payload.payment_schedule)
    return ok({"loan": schemas.LoanResponse.build(loan)}, "Loan request created successfully")


@app.get("/api/v1/loans")
async def get_available_loans(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100),
                              current_user: models.UserAccount = Depends(get_current_user),
                              session=Depends(get_db)):
    loans, total = lending.available_loans(session, page, limit)
    return ok({
        "loans": [schemas.LoanResponse.build(loan) for loan in loans],
        "pagination": schemas.PaginationInfo.build(page, limit, total),
    })


@app.get("/api/v1/loans/me")
async def get_my_loans(type: str = "all", current_user: models.UserAccount = Depends(get_current_user),
                       session=Depends(get_db)):
    loans = lending.user_loans(session, current_user.user_id, type)
    return ok({
        "borrowed": [schemas.LoanResponse.build(l) for l in loans if l.borrower_id == current_user.user_id],
        "lent": [schemas.LoanResponse.build(l) for l in loans if l.lender_id == current_user.user_id],
        "total": len(loans),
    })


@app.get("/api/v1/loans/{loan_id}")
async def get_loan(loan_id: int, current_user: models.UserAccount = Depends(get_current_user),
                   session=Depends(get_db)):
    return ok({"loan": schemas.LoanResponse.build(lending.get_loan(session, loan_id))})


@app.post("/api/v1/loans/{loan_id}/fund")
async def fund_loan(loan_id: int, current_user: models.UserAccount = Depends(get_current_user),
                    session=Depends(get_db)):
    loan = lending.fund_loan(session, loan_id, current_user)
    return ok({"loan": schemas.LoanResponse.build(loan)}, "Loan funded successfully")


@app.post("/api/v1/loans/{loan_id}/repay")
async def repay_loan(loan_id: int, current_user: models.UserAccount = Depends(get_current_user),
                     session=Depends(get_db)):
    loan = lending.repay_loan(session, loan_id, current_user)
    return ok({"loan": schemas.LoanResponse.build(loan)}, "Loan repaid successfully")


@app.delete("/api/v1/loans/{loan_id}")
async def cancel_loan(loan_id: int, current_user: models.UserAccount = Depends(get_current_user),
                      session=Depends(get_db)):
    lending.cancel_loan(session, loan_id, current_user)
    return ok(message="Loan request cancelled successfully")

# ==================== SAVINGS ROUTES ====================

@app.post("/api/v1/savings", status_code=201)
async def create_savings_goal(payload: schemas.SavingsGoalCreateRequest,
                              current_user: models.UserAccount = Depends(get_current_user),
                              session=Depends(get_db)):
    auto_deposit = payload.auto_deposit.model_dump(exclude_unset=True) if payload.auto_deposit else None
    goal = savings.create_goal(session, current_user, payload.goal_name, payload.target_amount,
                               payload.target_date, payload.category, payload.privacy, auto_deposit)
    return ok({"savings_goal": schemas.SavingsGoalResponse.build(goal)}, "Savings goal created successfully")


@app.get("/api/v1/savings")
async def list_savings_goals(status: Optional[schemas.SavingsStatus] = None,
                             category: Optional[schemas.SavingsCategory] = None,
                             page: int = 1, limit: int = 10,
                             current_user: models.UserAccount = Depends(get_current_user),
                             session=Depends(get_db)):
    goals, total = savings.list_goals(session, current_user.user_id, status, category, page, limit)
    return ok({
        "savings_goals": [schemas.SavingsGoalResponse.build(goal) for goal in goals],
        "pagination": schemas.PaginationInfo.build(page, limit, total),
    })


@app.get("/api/v1/savings/summary")
async def get_savings_summary(current_user: models.UserAccount = Depends(get_current_user),
                              session=Depends(get_db)):
    return ok({"summary": savings.summary(session, current_user.user_id)})


@app.get("/api/v1/savings/{goal_id}")
async def get_savings_goal(goal_id: int, current_user: models.UserAccount = Depends(get_current_user),
                           session=Depends(get_db)):
    goal = savings.get_goal(session, goal_id, current_user.user_id)
    return ok({"savings_goal": schemas.SavingsGoalResponse.build(goal)})


@app.put("/api/v1/savings/{goal_id}")
async def update_savings_goal(goal_id: int, payload: schemas.SavingsGoalUpdateRequest,
                              current_user: models.UserAccount = Depends(get_current_user),
                              session=Depends(get_db)):
    goal = savings.update_goal(session, goal_id, current_user.user_id, payload.model_dump(exclude_unset=True))
    return ok({"savings_goal": schemas.SavingsGoalResponse.build(goal)}, "Savings goal updated successfully")


@app.delete("/api/v1/savings/{goal_id}")
async def delete_savings_goal(goal_id: int, current_user: models.UserAccount = Depends(get_current_user),
                              session=Depends(get_db)):
    savings.delete_goal(session, goal_id, current_user.user_id)
    return ok(message="Savings goal deleted successfully")


@app.post("/api/v1/savings/{goal_id}/deposit")
async def deposit_to_goal(goal_id: int, payload: schemas.DepositRequest,
                          current_user: models.UserAccount = Depends(get_current_user),
                          session=Depends(get_db)):
    goal, reached = savings.deposit(session, goal_id, current_user.user_id, payload.amount, payload.note,
                                    payload.method)
    return ok({
        "savings_goal": schemas.SavingsGoalResponse.build(goal),
        "new_milestones": [schemas.MilestoneResponse.model_validate(m) for m in reached],
    }, "Deposit added successfully")


@app.post("/api/v1/savings/{goal_id}/withdraw")
async def withdraw_from_goal(goal_id: int, payload: schemas.WithdrawalRequest,
                             current_user: models.UserAccount = Depends(get_current_user),
                             session=Depends(get_db)):
    goal = savings.withdraw(session, goal_id, current_user.user_id, payload.amount, payload.reason)
    return ok({"savings_goal": schemas.SavingsGoalResponse.build(goal)}, "Withdrawal processed successfully")

# ==================== REAL-TIME ====================

@app.websocket("/ws")
async def realtime_endpoint(websocket: WebSocket):
    await websocket.app.state.relay.handle(websocket)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
