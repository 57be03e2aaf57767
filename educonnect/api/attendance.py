from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from datetime import date
from ..core.database import get_db
from ..core.auth import require_teacher
from ..models.attendance import AttendanceRecord, AttendanceStatus
from ..utils.access import get_teacher_school, get_school_students
from ..utils.calculations import build_attendance_roster, summarize_attendance, window_for
from ..utils.upserts import upsert_statement, execute_each
from ..utils.local_cache import attendance_history_key, cache_get, cache_set, timestamp
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


class RosterRow(BaseModel):
    student_id: int
    name: str
    enrollment_number: str
    status: AttendanceStatus
    note: str
    record_id: Optional[int] = None


class AttendanceItem(BaseModel):
    student_id: int
    status: AttendanceStatus = AttendanceStatus.ABSENT
    note: Optional[str] = None


class AttendanceBatch(BaseModel):
    school_id: int
    date: date
    group: Optional[str] = None
    records: List[AttendanceItem] = Field(min_length=1)


class AttendanceRecordResponse(BaseModel):
    id: int
    student_id: int
    name: str
    date: date
    status: AttendanceStatus
    note: Optional[str] = None


class AttendanceSummary(BaseModel):
    filter: str
    start: date
    end: date
    counts: Dict[str, int]
    records: List[AttendanceRecordResponse]


@router.get("/roster", response_model=List[RosterRow])
async def get_roster(school_id: int, date: date, group: Optional[str] = None,
                     db: AsyncSession = Depends(get_db), teacher_id: int = Depends(require_teacher)):
    try:
        await get_teacher_school(db, school_id, teacher_id)
        students = await get_school_students(db, school_id, group)

        result = await db.execute(
            select(AttendanceRecord).filter(
                AttendanceRecord.student_id.in_([s.id for s in students]),
                AttendanceRecord.date == date
            )
        )
        return build_attendance_roster(students, result.scalars().all(), date)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting attendance roster: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving attendance roster")


@router.post("")
async def save_attendance(batch: AttendanceBatch, db: AsyncSession = Depends(get_db),
                          teacher_id: int = Depends(require_teacher)):
    """
    Save the roster for one date, one upsert per student on (student, date).

    Records that saved stay saved when others fail; the failure is reported
    with the students that did not save and how many did.
    """
    await get_teacher_school(db, batch.school_id, teacher_id)
    students = {s.id: s for s in await get_school_students(db, batch.school_id, batch.group)}

    unknown = sorted({item.student_id for item in batch.records if item.student_id not in students})
    if unknown:
        raise HTTPException(status_code=400, detail=f"Students not found in this group: {unknown}")

    logger.info(f"Teacher {teacher_id} saving attendance for {len(batch.records)} students on {batch.date}")

    statements = []
    for item in batch.records:
        values = {
            "student_id": item.student_id,
            "date": batch.date,
            "status": item.status.value,
            "note": (item.note or "").strip() or None,
            "created_by": teacher_id,
        }
        descriptor = {"student_id": item.student_id, "name": students[item.student_id].full_name}
        statements.append((descriptor, upsert_statement(
            db, AttendanceRecord, values, ["student_id", "date"], ["status", "note", "created_by"]
        )))

    saved = await execute_each(db, statements, "attendance")

    key = attendance_history_key(teacher_id)
    history = await cache_get(db, key, default=[])
    saved_at = timestamp()
    history.extend(
        {
            "student_id": item.student_id,
            "name": students[item.student_id].full_name,
            "date": batch.date.isoformat(),
            "status": item.status.value,
            "note": item.note or "",
            "timestamp": saved_at,
        }
        for item in batch.records
    )
    await cache_set(db, key, history)

    return {"message": "Attendance saved", "saved": saved}


@router.get("/summary", response_model=AttendanceSummary)
async def get_summary(school_id: int, date: date, group: Optional[str] = None,
                      filter: str = Query("day", pattern="^(day|week|month)$"),
                      db: AsyncSession = Depends(get_db), teacher_id: int = Depends(require_teacher)):
    try:
        await get_teacher_school(db, school_id, teacher_id)
        students = {s.id: s for s in await get_school_students(db, school_id, group)}
        start, end = window_for(date, filter)

        result = await db.execute(
            select(AttendanceRecord)
            .filter(
                AttendanceRecord.student_id.in_(list(students)),
                AttendanceRecord.date >= start,
                AttendanceRecord.date <= end
            )
            .order_by(AttendanceRecord.date.desc(), AttendanceRecord.id)
        )
        records = result.scalars().all()

        return AttendanceSummary(
            filter=filter,
            start=start,
            end=end,
            counts=summarize_attendance(records),
            records=[
                AttendanceRecordResponse(
                    id=r.id,
                    student_id=r.student_id,
                    name=students[r.student_id].full_name,
                    date=r.date,
                    status=r.status,
                    note=r.note
                )
                for r in records
            ]
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting attendance summary: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving attendance summary")


@router.get("/history")
async def get_history(db: AsyncSession = Depends(get_db), teacher_id: int = Depends(require_teacher)):
    """Attendance saved by this teacher, newest first."""
    history = await cache_get(db, attendance_history_key(teacher_id), default=[])
    return list(reversed(history))
