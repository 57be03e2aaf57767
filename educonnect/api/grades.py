from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from ..core.config import settings
from ..core.database import get_db
from ..core.auth import require_teacher
from ..models.grade import GradeEntry, PARTICIPATION
from ..models.student import Student
from ..models.subject import Subject
from ..models.criteria import Criterion
from ..utils.access import get_teacher_school, get_school_students
from ..utils.calculations import student_weighted_averages, validate_weights
from ..utils.upserts import upsert_statement, execute_each
import logging

logger = logging.getLogger(__name__)
router = APIRouter()

GRADE_KEY = ("student_id", "subject", "period", "evaluation_type")


class GradeItem(BaseModel):
    student_id: int
    evaluation_type: str = Field(min_length=1)
    score: float = Field(ge=0, le=10)
    comment: Optional[str] = None


class GradeBatch(BaseModel):
    school_id: int
    subject: str = Field(min_length=1)
    period: str = Field(min_length=1)
    entries: List[GradeItem] = Field(min_length=1)


class GradeResponse(BaseModel):
    id: int
    student_id: int
    student_name: str
    group: Optional[str] = None
    subject: str
    period: str
    evaluation_type: str
    score: float
    comment: Optional[str] = None


class StudentAverage(BaseModel):
    student_id: int
    name: str
    group: Optional[str] = None
    scores: Dict[str, float]
    average: float
    comment: Optional[str] = None


class AveragesResponse(BaseModel):
    subject: str
    period: str
    weights: Dict[str, float]
    students: List[StudentAverage]


async def subject_weights(db: AsyncSession, school_id: int, subject: str) -> Dict[str, float]:
    """Criteria weights of the school's subject, or the configured defaults when it has none."""
    result = await db.execute(
        select(Criterion)
        .join(Subject, Criterion.subject_id == Subject.id)
        .filter(Subject.school_id == school_id, Subject.name == subject)
    )
    criteria = result.scalars().all()
    if not criteria:
        return dict(settings.default_grade_weights)
    return {c.name: c.weight for c in criteria}


@router.post("")
async def save_grades(batch: GradeBatch, db: AsyncSession = Depends(get_db),
                      teacher_id: int = Depends(require_teacher)):
    """
    Save one grade per student and criterion for a subject and period.

    Each entry is an upsert on (student, subject, period, evaluation type) and
    commits on its own.
    """
    await get_teacher_school(db, batch.school_id, teacher_id)
    students = {s.id: s for s in await get_school_students(db, batch.school_id)}

    unknown = sorted({item.student_id for item in batch.entries if item.student_id not in students})
    if unknown:
        raise HTTPException(status_code=400, detail=f"Students not found in this school: {unknown}")

    if any(item.evaluation_type.strip().lower() == PARTICIPATION for item in batch.entries):
        raise HTTPException(status_code=400, detail="Participation scores are saved through /participation")

    subject = batch.subject.strip()
    period = batch.period.strip()
    logger.info(f"Teacher {teacher_id} saving {len(batch.entries)} grades for {subject} / {period}")

    statements = []
    for item in batch.entries:
        values = {
            "student_id": item.student_id,
            "subject": subject,
            "period": period,
            "evaluation_type": item.evaluation_type.strip().lower(),
            "score": item.score,
            "comment": (item.comment or "").strip() or None,
            "created_by": teacher_id,
        }
        descriptor = {
            "student_id": item.student_id,
            "name": students[item.student_id].full_name,
            "evaluation_type": values["evaluation_type"],
        }
        statements.append((descriptor, upsert_statement(
            db, GradeEntry, values, GRADE_KEY, ["score", "comment", "created_by"]
        )))

    saved = await execute_each(db, statements, "grades")
    return {"message": "Grades saved", "saved": saved}


@router.get("", response_model=List[GradeResponse])
async def get_grades(school_id: int, subject: Optional[str] = None, period: Optional[str] = None,
                     group: Optional[str] = None, db: AsyncSession = Depends(get_db),
                     teacher_id: int = Depends(require_teacher)):
    try:
        await get_teacher_school(db, school_id, teacher_id)

        query = (
            select(GradeEntry, Student)
            .join(Student, GradeEntry.student_id == Student.id)
            .filter(Student.school_id == school_id, GradeEntry.evaluation_type != PARTICIPATION)
        )
        if subject:
            query = query.filter(GradeEntry.subject == subject)
        if period:
            query = query.filter(GradeEntry.period == period)
        if group:
            query = query.filter(Student.group_label == group)

        result = await db.execute(query.order_by(GradeEntry.created_at.desc(), GradeEntry.id.desc()))
        return [
            GradeResponse(
                id=entry.id,
                student_id=student.id,
                student_name=student.full_name,
                group=student.group_label,
                subject=entry.subject,
                period=entry.period,
                evaluation_type=entry.evaluation_type,
                score=entry.score,
                comment=entry.comment
            )
            for entry, student in result.all()
        ]
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting grades: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving grades")


@router.get("/averages", response_model=AveragesResponse)
async def get_averages(school_id: int, subject: str, period: str, group: Optional[str] = None,
                       db: AsyncSession = Depends(get_db), teacher_id: int = Depends(require_teacher)):
    try:
        await get_teacher_school(db, school_id, teacher_id)
        students = await get_school_students(db, school_id, group)

        weights = await subject_weights(db, school_id, subject)
        try:
            weights = validate_weights(weights)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

        result = await db.execute(
            select(GradeEntry).filter(
                GradeEntry.student_id.in_([s.id for s in students]),
                GradeEntry.subject == subject,
                GradeEntry.period == period,
                GradeEntry.evaluation_type != PARTICIPATION
            )
        )
        rows = student_weighted_averages(students, result.scalars().all(), weights)
        return AveragesResponse(subject=subject, period=period, weights=weights, students=rows)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error computing grade averages: {e}")
        raise HTTPException(status_code=500, detail="Error computing grade averages")
