"""
Rating collaborator seam.

Rating aggregation lives outside the engine; the ``refresh_ratings`` sweep
job only hands control to whatever collaborator is installed and records
the row count it reports.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class RatingCollaborator(ABC):
    @abstractmethod
    async def refresh_summaries(self, session: AsyncSession) -> int:
        """Refresh per-user rating summaries; return rows touched."""


class NoopRatingCollaborator(RatingCollaborator):
    async def refresh_summaries(self, session: AsyncSession) -> int:
        logger.info("Rating summaries refresh requested; no collaborator installed")
        return 0


_collaborator: RatingCollaborator = NoopRatingCollaborator()


def get_rating_collaborator() -> RatingCollaborator:
    return _collaborator


def set_rating_collaborator(collaborator: RatingCollaborator) -> None:
    global _collaborator
    _collaborator = collaborator
