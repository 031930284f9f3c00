"""Likes, comments and comment votes keyed by upstream repo id."""
import logging

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from starshelf.config import get_settings
from starshelf.db import dal
from starshelf.db.dal import session_scope
from starshelf.db.models import Comment, CommentVote, Like, User
from starshelf.errors import NotFoundError, UnauthorizedError, ValidationError
from starshelf.schemas import CommentOut, LikeResult, RepoDetail, UserOut, VoteResult

_SETTINGS = get_settings()
logger = logging.getLogger(__name__)

VOTE_VALUES = (1, -1)


def _like_count(session: Session, repo_id: int) -> int:
    stmt = select(func.count()).select_from(Like).where(Like.repo_id == repo_id)
    return session.scalar(stmt) or 0


def like_count(repo_id: int) -> int:
    with session_scope() as s:
        return _like_count(s, repo_id)


def toggle_like(user_id: str, repo_id: int) -> LikeResult:
    """Like or unlike, returning the fresh count in the same call.

    Check-then-flip without a row lock: two racing toggles by the same user
    may leave the count reflecting only one of them.
    """
    with session_scope() as s:
        existing = s.get(Like, (user_id, repo_id))
        if existing is not None:
            s.delete(existing)
        else:
            s.add(Like(user_id=user_id, repo_id=repo_id))
        s.flush()
        return LikeResult(liked=existing is None, count=_like_count(s, repo_id))


def _validate_body(body: object) -> str:
    body = body.strip() if isinstance(body, str) else ""
    if not body:
        raise ValidationError("Body is required")
    if len(body) > _SETTINGS.comment_max_length:
        raise ValidationError(
            f"Body must be {_SETTINGS.comment_max_length} characters or less"
        )
    return body


def _vote_counts(session: Session, comment_ids: list[int]) -> dict[int, tuple[int, int]]:
    if not comment_ids:
        return {}
    stmt = (
        select(
            CommentVote.comment_id,
            func.sum(case((CommentVote.value == 1, 1), else_=0)),
            func.sum(case((CommentVote.value == -1, 1), else_=0)),
        )
        .where(CommentVote.comment_id.in_(comment_ids))
        .group_by(CommentVote.comment_id)
    )
    return {cid: (int(up or 0), int(down or 0)) for cid, up, down in session.execute(stmt)}


def _comment_out(
    comment: Comment, user: User, counts: tuple[int, int], user_vote: int | None
) -> CommentOut:
    return CommentOut(
        id=comment.id,
        body=comment.body,
        created_at=comment.created_at,
        upvotes=counts[0],
        downvotes=counts[1],
        user_vote=user_vote,
        user=UserOut.model_validate(user),
    )


def add_comment(user_id: str, repo_id: int, body: str) -> CommentOut:
    body = _validate_body(body)
    with session_scope() as s:
        user = s.get(User, user_id)
        if user is None:
            raise UnauthorizedError("Sign in before commenting")
        comment = Comment(repo_id=repo_id, user_id=user_id, body=body)
        s.add(comment)
        s.flush()
        return _comment_out(comment, user, (0, 0), None)


def get_comments(repo_id: int, viewer_id: str | None = None) -> list[CommentOut]:
    """Comments on a repo, oldest first, with vote totals and the viewer's vote."""
    stmt = (
        select(Comment, User)
        .join(User, User.id == Comment.user_id)
        .where(Comment.repo_id == repo_id)
        .order_by(Comment.created_at, Comment.id)
    )
    with session_scope() as s:
        rows = s.execute(stmt).all()
        ids = [comment.id for comment, _ in rows]
        counts = _vote_counts(s, ids)
        own_votes: dict[int, int] = {}
        if viewer_id and ids:
            own_votes = dict(
                s.execute(
                    select(CommentVote.comment_id, CommentVote.value).where(
                        CommentVote.user_id == viewer_id,
                        CommentVote.comment_id.in_(ids),
                    )
                ).all()
            )
        return [
            _comment_out(comment, user, counts.get(comment.id, (0, 0)), own_votes.get(comment.id))
            for comment, user in rows
        ]


def comment_count(repo_id: int) -> int:
    stmt = select(func.count()).select_from(Comment).where(Comment.repo_id == repo_id)
    with session_scope() as s:
        return s.scalar(stmt) or 0


def vote_comment(user_id: str, comment_id: int, value: int) -> VoteResult:
    """Cast +1 or -1. Casting the vote you already have clears it."""
    if value not in VOTE_VALUES:
        raise ValidationError("vote must be 1 or -1")

    with session_scope() as s:
        if s.get(Comment, comment_id) is None:
            raise NotFoundError(f"Comment {comment_id} not found")
        vote = s.get(CommentVote, (comment_id, user_id))
        if vote is None:
            s.add(CommentVote(comment_id=comment_id, user_id=user_id, value=value))
            user_vote: int | None = value
        elif vote.value == value:
            s.delete(vote)
            user_vote = None
        else:
            vote.value = value
            user_vote = value
        s.flush()
        up, down = _vote_counts(s, [comment_id]).get(comment_id, (0, 0))
        return VoteResult(comment_id=comment_id, user_vote=user_vote, upvotes=up, downvotes=down)


def get_repo_detail(repo_id: int, viewer_id: str | None = None) -> RepoDetail | None:
    """Cached repo with its social counters; ``None`` when not cached."""
    repo = dal.get_repository(repo_id)
    if repo is None:
        return None
    with session_scope() as s:
        likes = _like_count(s, repo_id)
        comments = s.scalar(
            select(func.count()).select_from(Comment).where(Comment.repo_id == repo_id)
        ) or 0
        liked = bool(viewer_id) and s.get(Like, (viewer_id, repo_id)) is not None
    return RepoDetail(repo=repo, like_count=likes, comment_count=comments, user_liked=liked)
