from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, insert
from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from datetime import date
from collections import Counter
from ..core.config import settings
from ..core.database import get_db
from ..core.auth import require_teacher
from ..models.behavior import BehaviorRecord, BehaviorCategory
from ..utils.access import get_teacher_school, get_school_students
from ..utils.calculations import behavior_alerts, behavior_distribution, resolve_behavior_category
from ..utils.upserts import execute_each
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


class BehaviorItem(BaseModel):
    student_id: int
    category: BehaviorCategory
    note: Optional[str] = None


class BehaviorBatch(BaseModel):
    school_id: int
    date: date
    group: Optional[str] = None
    entries: List[BehaviorItem] = Field(min_length=1)


class BehaviorResponse(BaseModel):
    id: int
    student_id: int
    name: str
    date: date
    category: BehaviorCategory
    note: Optional[str] = None


class BehaviorAlert(BaseModel):
    student_id: int
    name: str
    level: str
    message: str


async def _records_for_day(db: AsyncSession, student_ids: List[int], day: date) -> List[BehaviorRecord]:
    result = await db.execute(
        select(BehaviorRecord)
        .filter(BehaviorRecord.student_id.in_(student_ids), BehaviorRecord.date == day)
        .order_by(BehaviorRecord.id)
    )
    return list(result.scalars().all())


@router.get("", response_model=List[BehaviorResponse])
async def get_behavior(school_id: int, date: date, group: Optional[str] = None,
                       db: AsyncSession = Depends(get_db), teacher_id: int = Depends(require_teacher)):
    try:
        await get_teacher_school(db, school_id, teacher_id)
        students = {s.id: s for s in await get_school_students(db, school_id, group)}
        records = await _records_for_day(db, list(students), date)
        return [
            BehaviorResponse(
                id=r.id,
                student_id=r.student_id,
                name=students[r.student_id].full_name,
                date=r.date,
                category=r.category,
                note=r.note
            )
            for r in records
        ]
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting behavior records: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving behavior records")


@router.get("/alerts", response_model=List[BehaviorAlert])
async def get_alerts(school_id: int, date: date, group: Optional[str] = None,
                     db: AsyncSession = Depends(get_db), teacher_id: int = Depends(require_teacher)):
    try:
        await get_teacher_school(db, school_id, teacher_id)
        students = await get_school_students(db, school_id, group)
        records = await _records_for_day(db, [s.id for s in students], date)
        return behavior_alerts(
            students, records, date,
            threshold=settings.escalation_threshold,
            flagged_phrase=settings.flagged_behavior_phrase
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error computing behavior alerts: {e}")
        raise HTTPException(status_code=500, detail="Error computing behavior alerts")


@router.post("")
async def save_behavior(batch: BehaviorBatch, db: AsyncSession = Depends(get_db),
                        teacher_id: int = Depends(require_teacher)):
    """
    Add one behavior entry per item.

    A regular entry that would make the student's third (or later) regular
    entry of the day is stored as bad.
    """
    await get_teacher_school(db, batch.school_id, teacher_id)
    students = {s.id: s for s in await get_school_students(db, batch.school_id, batch.group)}

    unknown = sorted({item.student_id for item in batch.entries if item.student_id not in students})
    if unknown:
        raise HTTPException(status_code=400, detail=f"Students not found in this group: {unknown}")

    existing = await _records_for_day(db, list(students), batch.date)
    regular_today = Counter(r.student_id for r in existing if r.category == BehaviorCategory.REGULAR.value)

    statements = []
    escalated = []
    for item in batch.entries:
        category = resolve_behavior_category(
            item.category.value, regular_today[item.student_id], settings.escalation_threshold
        )
        if item.category == BehaviorCategory.REGULAR:
            regular_today[item.student_id] += 1
        if category != item.category.value:
            escalated.append(item.student_id)
            logger.info(f"Behavior of student {item.student_id} on {batch.date} escalated to {category}")

        values = {
            "student_id": item.student_id,
            "date": batch.date,
            "category": category,
            "note": (item.note or "").strip() or None,
            "created_by": teacher_id,
        }
        descriptor = {"student_id": item.student_id, "name": students[item.student_id].full_name}
        statements.append((descriptor, insert(BehaviorRecord).values(**values)))

    saved = await execute_each(db, statements, "behavior")
    return {"message": "Behavior saved", "saved": saved, "escalated": escalated}


@router.get("/distribution", response_model=Dict[str, int])
async def get_distribution(school_id: int, date: date, group: Optional[str] = None,
                           db: AsyncSession = Depends(get_db), teacher_id: int = Depends(require_teacher)):
    try:
        await get_teacher_school(db, school_id, teacher_id)
        students = await get_school_students(db, school_id, group)
        records = await _records_for_day(db, [s.id for s in students], date)
        return behavior_distribution(students, records, date)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error computing behavior distribution: {e}")
        raise HTTPException(status_code=500, detail="Error computing behavior distribution")
