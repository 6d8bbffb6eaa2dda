"""Dashboard statistics over the full submission set."""
from __future__ import annotations

import logging
import math
from typing import Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from civicboard import storage
from civicboard.config import StatsSettings, settings
from civicboard.models import Submission, SubmissionCategory, SubmissionStatus
from civicboard.schemas import DashboardStats

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up."""
    return math.floor(value + 0.5)


def compute_stats(
    submissions: Iterable[Submission],
    weights: StatsSettings | None = None,
) -> DashboardStats:
    """Aggregate counts, offered hours and the citizen hours estimate.

    ``estimated_citizen_hours`` is an engagement heuristic:
    ``0.6 * hours + 2 * needs + 0.5 * ideas + 3 * resolved`` with the default
    weights, rounded once on the final sum.

    ``total_participants`` counts distinct non-empty contact emails and falls
    back to the number of submissions when nobody left an email.
    """
    weights = weights or settings.stats
    submissions = list(submissions)

    needs = [s for s in submissions if s.category == SubmissionCategory.NEED.value]
    offers = [s for s in submissions if s.category == SubmissionCategory.OFFER.value]
    ideas = [s for s in submissions if s.category == SubmissionCategory.IDEA.value]

    total_hours_offered = sum(s.hours_offered or 0 for s in offers)

    unique_contacts = {s.contact_email for s in submissions if s.contact_email}

    resolved_count = sum(1 for s in submissions if s.status == SubmissionStatus.RESOLVED.value)
    matched_count = sum(1 for s in submissions if s.status == SubmissionStatus.MATCHED.value)

    estimated_citizen_hours = round_half_up(
        total_hours_offered * weights.hours_weight
        + len(needs) * weights.need_weight
        + len(ideas) * weights.idea_weight
        + resolved_count * weights.resolved_weight
    )

    return DashboardStats(
        total_participants=len(unique_contacts) or len(submissions),
        total_needs_reported=len(needs),
        total_volunteers_offered=len(offers),
        total_ideas_shared=len(ideas),
        total_hours_offered=total_hours_offered,
        estimated_citizen_hours=estimated_citizen_hours,
        resolved_count=resolved_count,
        matched_count=matched_count,
    )


async def get_stats(session: AsyncSession) -> DashboardStats:
    """Load every submission and aggregate."""
    submissions = await storage.list_all(session)
    stats = compute_stats(submissions)
    logger.debug(f"Computed stats over {len(submissions)} submissions")
    return stats
