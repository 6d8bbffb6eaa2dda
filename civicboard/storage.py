"""Data store operations for submissions and users.

Every function takes the request's ``AsyncSession``. Database failures are
logged and re-raised as ``StorageError`` so callers never see driver details.
Functions that write commit their own unit of work unless ``commit=False`` is
passed, which lets the matching pipeline group several writes into one
transaction.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from . import models
from .schemas import SubmissionCreate, SubmissionFilters, SubmissionUpdate

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when a persistence operation fails."""
    pass


class SubmissionNotFoundError(Exception):
    """Raised when a submission id does not resolve to a row."""

    def __init__(self, submission_id: str):
        self.submission_id = submission_id
        super().__init__(f"Submission {submission_id} not found")


async def list_submissions(
    session: AsyncSession,
    filters: SubmissionFilters | None = None,
) -> list[models.Submission]:
    """Return submissions matching every provided filter, newest first."""
    query = select(models.Submission)

    if filters is not None:
        if filters.category is not None:
            query = query.where(models.Submission.category == filters.category.value)
        if filters.neighborhood is not None:
            query = query.where(models.Submission.neighborhood == filters.neighborhood.value)
        if filters.status is not None:
            query = query.where(models.Submission.status == filters.status.value)

    query = query.order_by(models.Submission.created_at.desc())

    try:
        result = await session.execute(query)
        return list(result.scalars().all())
    except SQLAlchemyError as e:
        logger.error(f"Failed to list submissions: {e}", exc_info=True)
        raise StorageError("Failed to fetch submissions") from e


async def list_all(session: AsyncSession) -> list[models.Submission]:
    """Unordered full scan used by statistics."""
    try:
        result = await session.execute(select(models.Submission))
        return list(result.scalars().all())
    except SQLAlchemyError as e:
        logger.error(f"Failed to load submissions: {e}", exc_info=True)
        raise StorageError("Failed to fetch submissions") from e


async def list_open_unmatched(
    session: AsyncSession,
    category: models.SubmissionCategory,
) -> list[models.Submission]:
    """Open submissions of one category without a partner, newest first."""
    query = (
        select(models.Submission)
        .where(
            models.Submission.category == category.value,
            models.Submission.status == models.SubmissionStatus.OPEN.value,
            models.Submission.matched_with_id.is_(None),
        )
        .order_by(models.Submission.created_at.desc())
    )
    try:
        result = await session.execute(query)
        return list(result.scalars().all())
    except SQLAlchemyError as e:
        logger.error(f"Failed to load open {category.value} submissions: {e}", exc_info=True)
        raise StorageError("Failed to fetch submissions") from e


async def get_submission(session: AsyncSession, submission_id: str) -> models.Submission:
    """Load one submission.

    Raises:
        SubmissionNotFoundError: If no row has this id
        StorageError: If the query fails
    """
    try:
        submission = await session.get(models.Submission, submission_id)
    except SQLAlchemyError as e:
        logger.error(f"Failed to load submission {submission_id}: {e}", exc_info=True)
        raise StorageError("Failed to fetch submission") from e

    if submission is None:
        raise SubmissionNotFoundError(submission_id)
    return submission


async def create_submission(
    session: AsyncSession,
    data: SubmissionCreate,
) -> models.Submission:
    """Insert a submission; id, status default and timestamps are server side."""
    values = data.model_dump(mode="json")
    submission = models.Submission(**values)
    session.add(submission)

    try:
        await session.commit()
        await session.refresh(submission)
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Failed to create submission: {e}", exc_info=True)
        raise StorageError("Failed to create submission") from e

    logger.info(f"Created {submission.category} submission {submission.id}")
    return submission


def apply_changes(submission: models.Submission, changes: Mapping[str, Any]) -> models.Submission:
    """Apply a field-by-field patch to a loaded row and refresh ``updated_at``."""
    for field, value in changes.items():
        setattr(submission, field, value)
    submission.updated_at = models.utcnow()
    return submission


async def update_submission(
    session: AsyncSession,
    submission_id: str,
    patch: SubmissionUpdate | Mapping[str, Any],
    *,
    commit: bool = True,
) -> models.Submission:
    """Apply the fields present in ``patch`` to an existing submission.

    Args:
        session: Database session
        submission_id: Submission to update
        patch: Partial update; only explicitly set fields are written
        commit: Commit immediately; pass False to batch inside a caller's transaction

    Raises:
        SubmissionNotFoundError: If the id does not exist
        StorageError: If the write fails
    """
    changes = patch.changes() if isinstance(patch, SubmissionUpdate) else dict(patch)

    submission = await get_submission(session, submission_id)
    apply_changes(submission, changes)

    if not commit:
        return submission

    try:
        await session.commit()
        await session.refresh(submission)
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Failed to update submission {submission_id}: {e}", exc_info=True)
        raise StorageError("Failed to update submission") from e

    logger.info(f"Updated submission {submission_id}: {sorted(changes)}")
    return submission


async def get_user(session: AsyncSession, user_id: str) -> models.User | None:
    try:
        return await session.get(models.User, user_id)
    except SQLAlchemyError as e:
        logger.error(f"Failed to load user {user_id}: {e}", exc_info=True)
        raise StorageError("Failed to fetch user") from e


async def get_user_by_username(session: AsyncSession, username: str) -> models.User | None:
    try:
        result = await session.execute(
            select(models.User).where(models.User.username == username)
        )
        return result.scalar_one_or_none()
    except SQLAlchemyError as e:
        logger.error(f"Failed to load user {username}: {e}", exc_info=True)
        raise StorageError("Failed to fetch user") from e


async def create_user(session: AsyncSession, *, username: str, password: str) -> models.User:
    user = models.User(username=username, password=password)
    session.add(user)
    try:
        await session.commit()
        await session.refresh(user)
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Failed to create user {username}: {e}", exc_info=True)
        raise StorageError("Failed to create user") from e
    return user
