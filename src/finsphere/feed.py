"""Author-owned posts with likes and comments."""

import logging
from typing import List, Tuple

from sqlalchemy.orm import selectinload

from . import models
from .errors import NotFound, PermissionDenied, ValidationFailed

logger = logging.getLogger(__name__)

MAX_POST_LENGTH = 2000
MAX_COMMENT_LENGTH = 500
VISIBILITIES = ('public', 'friends', 'private')


def validate_page(page: int, limit: int):
    errors = []
    if page is None or page < 1:
        errors.append("page: must be at least 1")
    if limit is None or not 1 <= limit <= 100:
        errors.append("limit: must be between 1 and 100")
    if errors:
        raise ValidationFailed("Invalid pagination parameters", errors)


def _post_query(session):
    return session.query(models.Post).options(
        selectinload(models.Post.author),
        selectinload(models.Post.likes),
        selectinload(models.Post.comments).selectinload(models.PostComment.user),
    )


def get_post(session, post_id: int) -> models.Post:
    post = _post_query(session).filter(
        models.Post.post_id == post_id,
        models.Post.is_active.is_(True)
    ).first()
    if not post:
        raise NotFound("Post not found")
    return post


def create_post(session, author: models.UserAccount, content, image_url=None,
                visibility: str = 'public') -> models.Post:
    content = (content or '').strip()
    if not content:
        raise ValidationFailed("Post content is required")
    if len(content) > MAX_POST_LENGTH:
        raise ValidationFailed(f"Post content cannot exceed {MAX_POST_LENGTH} characters")
    if visibility not in VISIBILITIES:
        raise ValidationFailed("Invalid post visibility")

    post = models.Post(author_id=author.user_id, content=content, image_url=image_url, visibility=visibility)
    if image_url:
        author.uploads.append(models.UserUpload(upload_type='post', url=image_url,
                                                filename=image_url.rsplit('/', 1)[-1]))
    session.add(post)
    session.commit()
    logger.info(f"User {author.user_id} created post {post.post_id}")
    return get_post(session, post.post_id)


def public_feed(session, page: int = 1, limit: int = 20) -> Tuple[List[models.Post], int]:
    validate_page(page, limit)
    query = _post_query(session).filter(
        models.Post.visibility == 'public',
        models.Post.is_active.is_(True)
    )
    total = query.count()
    posts = query.order_by(models.Post.created_at.desc(), models.Post.post_id.desc()) \
        .offset((page - 1) * limit).limit(limit).all()
    return posts, total


def my_posts(session, author_id: int, page: int = 1, limit: int = 20) -> Tuple[List[models.Post], int]:
    validate_page(page, limit)
    query = _post_query(session).filter(
        models.Post.author_id == author_id,
        models.Post.is_active.is_(True)
    )
    total = query.count()
    posts = query.order_by(models.Post.created_at.desc(), models.Post.post_id.desc()) \
        .offset((page - 1) * limit).limit(limit).all()
    return posts, total


def toggle_like(session, post_id: int, user_id: int) -> dict:
    post = get_post(session, post_id)
    existing = next((like for like in post.likes if like.user_id == user_id), None)
    if existing:
        post.likes.remove(existing)
        is_liked = False
    else:
        post.likes.append(models.PostLike(user_id=user_id))
        is_liked = True
    session.commit()
    session.refresh(post)
    return {"is_liked": is_liked, "like_count": post.like_count}


def add_comment(session, post_id: int, user: models.UserAccount, text) -> Tuple[models.PostComment, int]:
    text = (text or '').strip()
    if not text:
        raise ValidationFailed("Comment text is required")
    if len(text) > MAX_COMMENT_LENGTH:
        raise ValidationFailed(f"Comment cannot exceed {MAX_COMMENT_LENGTH} characters")

    post = get_post(session, post_id)
    comment = models.PostComment(user_id=user.user_id, text=text)
    post.comments.append(comment)
    session.commit()
    session.refresh(comment)
    session.refresh(post)
    return comment, post.comment_count


def delete_post(session, post_id: int, user_id: int):
    post = get_post(session, post_id)
    if post.author_id != user_id:
        raise PermissionDenied("You can only delete your own posts")
    post.is_active = False
    session.commit()
    logger.info(f"User {user_id} deleted post {post_id}")
