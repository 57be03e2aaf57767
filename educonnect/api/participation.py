from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import date, datetime, timezone
from ..core.config import settings
from ..core.database import get_db
from ..core.auth import require_teacher
from ..models.grade import GradeEntry, PARTICIPATION
from ..utils.access import get_teacher_school, get_school_students
from ..utils.calculations import participation_summary, group_participation_averages, window_for
from ..utils.upserts import upsert_statement, execute_each
from .grades import GRADE_KEY
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


class ParticipationItem(BaseModel):
    student_id: int
    score: float = Field(ge=0, le=10)


class ParticipationBatch(BaseModel):
    school_id: int
    subject: str = Field(min_length=1)
    period: str = Field(min_length=1)
    entries: List[ParticipationItem] = Field(min_length=1)


@router.get("")
async def get_participation(school_id: int, date: date, subject: Optional[str] = None,
                            group: Optional[str] = None,
                            window: str = Query("week", pattern="^(week|month)$"),
                            db: AsyncSession = Depends(get_db), teacher_id: int = Depends(require_teacher)):
    """
    Participation averages over the week (Sunday to Saturday) or month of date.

    Students without scores in the window average 0 and count as low.
    """
    try:
        await get_teacher_school(db, school_id, teacher_id)
        students = await get_school_students(db, school_id, group)
        start, end = window_for(date, window)

        query = select(GradeEntry).filter(
            GradeEntry.student_id.in_([s.id for s in students]),
            GradeEntry.evaluation_type == PARTICIPATION
        )
        if subject:
            query = query.filter(GradeEntry.subject == subject)
        result = await db.execute(query)
        entries = result.scalars().all()

        summary = participation_summary(
            students, entries, start, end, threshold=settings.low_participation_threshold
        )
        summary["window"] = window
        summary["threshold"] = settings.low_participation_threshold
        summary["groups"] = group_participation_averages(students, entries, start, end)
        return summary
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error computing participation: {e}")
        raise HTTPException(status_code=500, detail="Error computing participation")


@router.post("")
async def save_participation(batch: ParticipationBatch, db: AsyncSession = Depends(get_db),
                             teacher_id: int = Depends(require_teacher)):
    await get_teacher_school(db, batch.school_id, teacher_id)
    students = {s.id: s for s in await get_school_students(db, batch.school_id)}

    unknown = sorted({item.student_id for item in batch.entries if item.student_id not in students})
    if unknown:
        raise HTTPException(status_code=400, detail=f"Students not found in this school: {unknown}")

    subject = batch.subject.strip()
    period = batch.period.strip()
    # created_at decides which participation window the score falls in
    now = datetime.now(timezone.utc)
    logger.info(f"Teacher {teacher_id} saving participation for {len(batch.entries)} students in {subject}")

    statements = []
    for item in batch.entries:
        values = {
            "student_id": item.student_id,
            "subject": subject,
            "period": period,
            "evaluation_type": PARTICIPATION,
            "score": item.score,
            "created_at": now,
            "created_by": teacher_id,
        }
        descriptor = {"student_id": item.student_id, "name": students[item.student_id].full_name}
        statements.append((descriptor, upsert_statement(
            db, GradeEntry, values, GRADE_KEY, ["score", "created_at", "created_by"]
        )))

    saved = await execute_each(db, statements, "participation")
    return {"message": "Participation saved", "saved": saved}
