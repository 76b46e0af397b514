from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from sqlalchemy import delete
from sqlmodel import col, select

from defence_coach.db import Database
from defence_coach.models import FeedbackRecord, InterviewRecord

LOG = logging.getLogger("defence_coach.store")


class NotFoundError(LookupError):
    pass


class UnauthorizedError(PermissionError):
    pass


class SessionStore:
    """Reads and writes interview sessions and their feedback documents."""

    def __init__(self, database: Database) -> None:
        self.database = database

    # -- interviews ----------------------------------------------------------

    async def create_interview(self, record: InterviewRecord) -> InterviewRecord:
        async with self.database.session() as session:
            session.add(record)
            await session.commit()
        LOG.info("Interview created: id=%s kind=%s user=%s", record.id, record.kind, record.user_id)
        return record

    async def get_interview(self, interview_id: str) -> InterviewRecord:
        async with self.database.session() as session:
            record = await session.get(InterviewRecord, interview_id)
        if record is None:
            raise NotFoundError(f"interview {interview_id} not found")
        return record

    async def list_interviews_by_user(self, user_id: str) -> List[InterviewRecord]:
        async with self.database.session() as session:
            rows = await session.exec(
                select(InterviewRecord)
                .where(InterviewRecord.user_id == user_id)
                .order_by(col(InterviewRecord.created_at).desc())
            )
            return list(rows.all())

    async def list_latest_interviews(self, user_id: str, limit: int = 20) -> List[InterviewRecord]:
        """Finalized sessions created by other users, newest first."""
        async with self.database.session() as session:
            rows = await session.exec(
                select(InterviewRecord)
                .where(InterviewRecord.finalized == True, InterviewRecord.user_id != user_id)  # noqa: E712
                .order_by(col(InterviewRecord.created_at).desc())
                .limit(limit)
            )
            return list(rows.all())

    async def delete_interview(self, interview_id: str, user_id: str) -> int:
        """Delete a session and every feedback linked to it in one transaction.

        Returns the number of feedback documents removed.
        """
        async with self.database.session() as session:
            record = await session.get(InterviewRecord, interview_id)
            if record is None:
                raise NotFoundError(f"interview {interview_id} not found")
            if record.user_id != user_id:
                raise UnauthorizedError("unauthorized")
            result = await session.execute(delete(FeedbackRecord).where(FeedbackRecord.interview_id == interview_id))
            await session.delete(record)
            await session.commit()
        removed = result.rowcount or 0
        LOG.info("Interview deleted: id=%s feedback_removed=%s", interview_id, removed)
        return removed

    # -- feedback ------------------------------------------------------------

    async def get_feedback(self, feedback_id: str) -> FeedbackRecord:
        async with self.database.session() as session:
            record = await session.get(FeedbackRecord, feedback_id)
        if record is None:
            raise NotFoundError(f"feedback {feedback_id} not found")
        return record

    async def get_feedback_by_interview(self, interview_id: str, user_id: str) -> Optional[FeedbackRecord]:
        async with self.database.session() as session:
            rows = await session.exec(
                select(FeedbackRecord)
                .where(FeedbackRecord.interview_id == interview_id, FeedbackRecord.user_id == user_id)
                .limit(1)
            )
            return rows.first()

    async def save_feedback(self, record: FeedbackRecord) -> FeedbackRecord:
        async with self.database.session() as session:
            session.add(record)
            await session.commit()
        LOG.info("Feedback saved: id=%s interview=%s", record.id, record.interview_id)
        return record

    async def merge_transcript(
        self, feedback_id: str, user_id: str, transcript: Sequence[Dict[str, str]]
    ) -> FeedbackRecord:
        async with self.database.session() as session:
            record = await session.get(FeedbackRecord, feedback_id)
            if record is None:
                raise NotFoundError(f"feedback {feedback_id} not found")
            if record.user_id != user_id:
                raise UnauthorizedError("unauthorized")
            # Reassign so the JSON column is flagged dirty.
            record.transcript = [*(record.transcript or []), *transcript]
            session.add(record)
            await session.commit()
        LOG.info("Feedback transcript merged: id=%s entries=%s", feedback_id, len(transcript))
        return record

    async def delete_feedback(self, feedback_id: str, user_id: str) -> None:
        async with self.database.session() as session:
            record = await session.get(FeedbackRecord, feedback_id)
            if record is None:
                raise NotFoundError(f"feedback {feedback_id} not found")
            if record.user_id != user_id:
                raise UnauthorizedError("unauthorized")
            await session.delete(record)
            await session.commit()
        LOG.info("Feedback deleted: id=%s", feedback_id)
