"""Matching pipeline: open needs → candidate offers, and match confirmation.

Suggestions are a neighborhood-aware heuristic over the open, unmatched pools.
Confirmation links one need and one offer in a single transaction.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from civicboard import storage
from civicboard.config import settings
from civicboard.models import Submission, SubmissionCategory, SubmissionStatus

logger = logging.getLogger(__name__)


@dataclass
class MatchSuggestion:
    """An open need and the offers that could serve it."""
    need: Submission
    offers: list[Submission] = field(default_factory=list)


@dataclass
class ConfirmedMatch:
    """Both records after a confirmed match."""
    need: Submission
    offer: Submission


class MatchingError(Exception):
    """Raised when the matching pipeline fails."""
    pass


class InvalidMatchError(MatchingError):
    """Raised when the pair is not a (need, offer)."""
    pass


def offer_qualifies(need: Submission, offer: Submission) -> bool:
    """Neighborhoods must agree only when both sides have one."""
    if need.neighborhood and offer.neighborhood:
        return need.neighborhood == offer.neighborhood
    return True


def suggest_matches(
    needs: Sequence[Submission],
    offers: Sequence[Submission],
    max_offers: int | None = None,
) -> list[MatchSuggestion]:
    """Pair each need with up to ``max_offers`` qualifying offers.

    Both pools are expected newest first; that order is kept for the needs and
    for each need's candidates. Needs without any candidate are left out.
    The same offer may be suggested for several needs.
    """
    if max_offers is None:
        max_offers = settings.matching.max_offers_per_need

    suggestions = []
    for need in needs:
        candidates = [offer for offer in offers if offer_qualifies(need, offer)][:max_offers]
        if candidates:
            suggestions.append(MatchSuggestion(need=need, offers=candidates))

    return suggestions


async def get_match_suggestions(
    session: AsyncSession,
    *,
    max_offers: int | None = None,
) -> list[MatchSuggestion]:
    """Load the open, unmatched pools and build suggestions."""
    needs = await storage.list_open_unmatched(session, SubmissionCategory.NEED)
    offers = await storage.list_open_unmatched(session, SubmissionCategory.OFFER)

    suggestions = suggest_matches(needs, offers, max_offers)

    logger.info(
        f"Suggested offers for {len(suggestions)} of {len(needs)} open needs "
        f"({len(offers)} open offers)"
    )
    return suggestions


def _is_transient(exc: BaseException) -> bool:
    # Loads wrap driver errors in StorageError
    return isinstance(exc, OperationalError) or isinstance(exc.__cause__, OperationalError)


async def _write_match(session: AsyncSession, need_id: str, offer_id: str) -> ConfirmedMatch:
    try:
        need = await storage.get_submission(session, need_id)
        offer = await storage.get_submission(session, offer_id)

        if need.category != SubmissionCategory.NEED.value or offer.category != SubmissionCategory.OFFER.value:
            raise InvalidMatchError("Can only match a need with an offer")

        storage.apply_changes(need, {
            "status": SubmissionStatus.MATCHED.value,
            "matched_with_id": offer.id,
        })
        storage.apply_changes(offer, {
            "status": SubmissionStatus.MATCHED.value,
            "matched_with_id": need.id,
        })

        await session.commit()
    except Exception:
        await session.rollback()
        raise

    await session.refresh(need)
    await session.refresh(offer)
    return ConfirmedMatch(need=need, offer=offer)


async def confirm_match(
    session: AsyncSession,
    need_id: str,
    offer_id: str,
    *,
    attempts: int | None = None,
) -> ConfirmedMatch:
    """Mark a need and an offer as matched with each other.

    Both rows are written in one transaction, so a failure leaves neither side
    matched. Connection-level failures are retried; each attempt re-reads both
    rows.

    Args:
        session: Database session
        need_id: Submission of category need
        offer_id: Submission of category offer
        attempts: Total attempts on transient errors (default from config)

    Returns:
        ConfirmedMatch with both updated records

    Raises:
        SubmissionNotFoundError: If either id does not exist
        InvalidMatchError: If the pair is not (need, offer)
        StorageError: If the transaction cannot be committed
    """
    if attempts is None:
        attempts = settings.matching.confirm_attempts

    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
            retry=retry_if_exception(_is_transient),
            reraise=True,
        ):
            with attempt:
                confirmed = await _write_match(session, need_id, offer_id)
    except SQLAlchemyError as e:
        logger.error(f"Failed to match need {need_id} with offer {offer_id}: {e}", exc_info=True)
        raise storage.StorageError("Failed to match submissions") from e

    logger.info(f"Matched need {need_id} with offer {offer_id}")
    return confirmed
