from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, insert, or_
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from ..core.database import get_db
from ..core.auth import require_teacher, get_password_hash, verify_password
from ..models.school import School
from ..models.student import Student
from ..models.subject import Subject
from ..models.criteria import Criterion
from ..models.grade import GradeEntry
from ..models.attendance import AttendanceRecord
from ..models.behavior import BehaviorRecord
from ..models.teacher import Teacher, teacher_schools
from ..utils.access import get_teacher_school, get_teacher_student
from ..utils.calculations import validate_weights
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


# Request/Response Models
class SchoolCreate(BaseModel):
    name: str = Field(min_length=1)
    state: str = Field(min_length=1)


class SchoolResponse(BaseModel):
    id: int
    name: str
    state: str


class StudentCreate(BaseModel):
    first_name: str
    paternal_surname: str
    maternal_surname: Optional[str] = None
    enrollment_number: Optional[str] = None
    group_label: Optional[str] = None
    father_name: Optional[str] = None
    mother_name: Optional[str] = None
    phone: Optional[str] = None


class StudentResponse(BaseModel):
    id: int
    first_name: str
    paternal_surname: str
    maternal_surname: Optional[str] = None
    full_name: str
    enrollment_number: Optional[str] = None
    group_label: Optional[str] = None
    father_name: Optional[str] = None
    mother_name: Optional[str] = None
    phone: Optional[str] = None
    school_id: int
    added_at: Optional[datetime] = None


class SubjectCreate(BaseModel):
    name: str


class SubjectResponse(BaseModel):
    id: int
    name: str
    school_id: int


class CriterionCreate(BaseModel):
    name: str
    weight: float = Field(ge=0, le=100)


class CriterionResponse(BaseModel):
    id: int
    name: str
    weight: float
    subject_id: int


class ProfileUpdate(BaseModel):
    first_name: str
    paternal_surname: str
    maternal_surname: Optional[str] = None
    phone: Optional[str] = None


class ProfileResponse(BaseModel):
    id: int
    email: str
    first_name: str
    paternal_surname: str
    maternal_surname: Optional[str] = None
    phone: Optional[str] = None
    full_name: str


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(min_length=6)


def _apply_student_fields(db_student: Student, student: StudentCreate):
    first_name = student.first_name.strip()
    paternal_surname = student.paternal_surname.strip()
    if not first_name or not paternal_surname:
        raise HTTPException(status_code=400, detail="First name and paternal surname are required")

    db_student.first_name = first_name
    db_student.paternal_surname = paternal_surname
    db_student.maternal_surname = (student.maternal_surname or "").strip() or None
    db_student.enrollment_number = (student.enrollment_number or "").strip() or None
    db_student.group_label = (student.group_label or "").strip() or None
    db_student.father_name = (student.father_name or "").strip() or None
    db_student.mother_name = (student.mother_name or "").strip() or None
    db_student.phone = (student.phone or "").strip() or None


async def _get_teacher_subject(db: AsyncSession, subject_id: int, teacher_id: int) -> Subject:
    result = await db.execute(
        select(Subject)
        .join(teacher_schools, teacher_schools.c.school_id == Subject.school_id)
        .filter(Subject.id == subject_id, teacher_schools.c.teacher_id == teacher_id)
    )
    subject = result.scalar_one_or_none()
    if not subject:
        raise HTTPException(status_code=404, detail="Subject not found")
    return subject


async def _get_teacher_criterion(db: AsyncSession, criterion_id: int, teacher_id: int) -> Criterion:
    result = await db.execute(
        select(Criterion)
        .join(Subject, Criterion.subject_id == Subject.id)
        .join(teacher_schools, teacher_schools.c.school_id == Subject.school_id)
        .filter(Criterion.id == criterion_id, teacher_schools.c.teacher_id == teacher_id)
    )
    criterion = result.scalar_one_or_none()
    if not criterion:
        raise HTTPException(status_code=404, detail="Criterion not found")
    return criterion


async def _check_criteria_total(db: AsyncSession, subject_id: int, name: str, weight: float,
                                exclude_id: Optional[int] = None):
    query = select(Criterion).filter(Criterion.subject_id == subject_id)
    if exclude_id is not None:
        query = query.filter(Criterion.id != exclude_id)
    result = await db.execute(query)
    weights = {c.name: c.weight for c in result.scalars().all()}

    if name in weights:
        raise HTTPException(status_code=400, detail=f"Criterion '{name}' already exists for this subject")

    weights[name] = weight
    try:
        validate_weights(weights)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# Schools
@router.get("/schools", response_model=List[SchoolResponse])
async def get_schools(db: AsyncSession = Depends(get_db), teacher_id: int = Depends(require_teacher)):
    try:
        result = await db.execute(
            select(School)
            .join(teacher_schools, teacher_schools.c.school_id == School.id)
            .filter(teacher_schools.c.teacher_id == teacher_id)
            .order_by(School.name)
        )
        return result.scalars().all()
    except Exception as e:
        logger.error(f"Error getting schools: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving schools")


@router.post("/schools", response_model=SchoolResponse)
async def create_school(school: SchoolCreate, db: AsyncSession = Depends(get_db),
                        teacher_id: int = Depends(require_teacher)):
    try:
        name, state = school.name.strip(), school.state.strip()
        if not name or not state:
            raise HTTPException(status_code=400, detail="School name and state are required")

        db_school = School(name=name, state=state)
        db.add(db_school)
        await db.flush()
        await db.execute(insert(teacher_schools).values(teacher_id=teacher_id, school_id=db_school.id))
        await db.commit()
        await db.refresh(db_school)

        logger.info(f"Teacher {teacher_id} created school {db_school.id}")
        return db_school
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating school: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error creating school")


@router.get("/schools/{school_id}/groups", response_model=List[str])
async def get_groups(school_id: int, db: AsyncSession = Depends(get_db),
                     teacher_id: int = Depends(require_teacher)):
    try:
        await get_teacher_school(db, school_id, teacher_id)
        result = await db.execute(
            select(Student.group_label)
            .filter(Student.school_id == school_id, Student.group_label.isnot(None))
            .distinct()
            .order_by(Student.group_label)
        )
        return [row[0] for row in result.all()]
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting groups: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving groups")


# Students
@router.get("/schools/{school_id}/students", response_model=List[StudentResponse])
async def get_students(school_id: int, search: Optional[str] = None, group: Optional[str] = None,
                       db: AsyncSession = Depends(get_db), teacher_id: int = Depends(require_teacher)):
    try:
        await get_teacher_school(db, school_id, teacher_id)

        query = select(Student).filter(Student.school_id == school_id)
        if group:
            query = query.filter(Student.group_label == group)
        if search and search.strip():
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(
                Student.first_name.ilike(pattern),
                Student.paternal_surname.ilike(pattern),
                Student.maternal_surname.ilike(pattern),
                Student.enrollment_number.ilike(pattern)
            ))

        result = await db.execute(query.order_by(Student.first_name, Student.paternal_surname))
        return result.scalars().all()
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting students: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving students")


@router.post("/schools/{school_id}/students", response_model=StudentResponse)
async def create_student(school_id: int, student: StudentCreate, db: AsyncSession = Depends(get_db),
                         teacher_id: int = Depends(require_teacher)):
    try:
        await get_teacher_school(db, school_id, teacher_id)

        db_student = Student(school_id=school_id)
        _apply_student_fields(db_student, student)
        db.add(db_student)
        await db.commit()
        await db.refresh(db_student)

        logger.info(f"Teacher {teacher_id} added student {db_student.id} to school {school_id}")
        return db_student
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating student: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error creating student")


@router.put("/students/{student_id}", response_model=StudentResponse)
async def update_student(student_id: int, student: StudentCreate, db: AsyncSession = Depends(get_db),
                         teacher_id: int = Depends(require_teacher)):
    try:
        db_student = await get_teacher_student(db, student_id, teacher_id)
        _apply_student_fields(db_student, student)
        await db.commit()
        await db.refresh(db_student)
        return db_student
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating student: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error updating student")


@router.delete("/students/{student_id}")
async def delete_student(student_id: int, db: AsyncSession = Depends(get_db),
                         teacher_id: int = Depends(require_teacher)):
    try:
        await get_teacher_student(db, student_id, teacher_id)

        for model in (GradeEntry, AttendanceRecord, BehaviorRecord):
            await db.execute(delete(model).where(model.student_id == student_id))
        await db.execute(delete(Student).where(Student.id == student_id))
        await db.commit()
        return {"message": "Student deleted"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting student: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error deleting student")


# Subjects
@router.get("/schools/{school_id}/subjects", response_model=List[SubjectResponse])
async def get_subjects(school_id: int, db: AsyncSession = Depends(get_db),
                       teacher_id: int = Depends(require_teacher)):
    try:
        await get_teacher_school(db, school_id, teacher_id)
        result = await db.execute(select(Subject).filter(Subject.school_id == school_id).order_by(Subject.name))
        return result.scalars().all()
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting subjects: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving subjects")


@router.post("/schools/{school_id}/subjects", response_model=SubjectResponse)
async def create_subject(school_id: int, subject: SubjectCreate, db: AsyncSession = Depends(get_db),
                         teacher_id: int = Depends(require_teacher)):
    try:
        await get_teacher_school(db, school_id, teacher_id)
        name = subject.name.strip()
        if not name:
            raise HTTPException(status_code=400, detail="Subject name is required")

        db_subject = Subject(name=name, school_id=school_id)
        db.add(db_subject)
        await db.commit()
        await db.refresh(db_subject)
        return db_subject
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating subject: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error creating subject")


@router.delete("/subjects/{subject_id}")
async def delete_subject(subject_id: int, db: AsyncSession = Depends(get_db),
                         teacher_id: int = Depends(require_teacher)):
    try:
        await _get_teacher_subject(db, subject_id, teacher_id)
        await db.execute(delete(Criterion).where(Criterion.subject_id == subject_id))
        await db.execute(delete(Subject).where(Subject.id == subject_id))
        await db.commit()
        return {"message": "Subject deleted"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting subject: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error deleting subject")


# Criteria
@router.get("/subjects/{subject_id}/criteria", response_model=List[CriterionResponse])
async def get_criteria(subject_id: int, db: AsyncSession = Depends(get_db),
                       teacher_id: int = Depends(require_teacher)):
    try:
        await _get_teacher_subject(db, subject_id, teacher_id)
        result = await db.execute(select(Criterion).filter(Criterion.subject_id == subject_id).order_by(Criterion.id))
        return result.scalars().all()
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting criteria: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving criteria")


@router.post("/subjects/{subject_id}/criteria", response_model=CriterionResponse)
async def create_criterion(subject_id: int, criterion: CriterionCreate, db: AsyncSession = Depends(get_db),
                           teacher_id: int = Depends(require_teacher)):
    try:
        await _get_teacher_subject(db, subject_id, teacher_id)
        name = criterion.name.strip().lower()
        if not name:
            raise HTTPException(status_code=400, detail="Criterion name is required")
        await _check_criteria_total(db, subject_id, name, criterion.weight)

        db_criterion = Criterion(name=name, weight=criterion.weight, subject_id=subject_id)
        db.add(db_criterion)
        await db.commit()
        await db.refresh(db_criterion)
        return db_criterion
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating criterion: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error creating criterion")


@router.put("/criteria/{criterion_id}", response_model=CriterionResponse)
async def update_criterion(criterion_id: int, criterion: CriterionCreate, db: AsyncSession = Depends(get_db),
                           teacher_id: int = Depends(require_teacher)):
    try:
        db_criterion = await _get_teacher_criterion(db, criterion_id, teacher_id)
        name = criterion.name.strip().lower()
        if not name:
            raise HTTPException(status_code=400, detail="Criterion name is required")
        await _check_criteria_total(db, db_criterion.subject_id, name, criterion.weight, exclude_id=criterion_id)

        db_criterion.name = name
        db_criterion.weight = criterion.weight
        await db.commit()
        await db.refresh(db_criterion)
        return db_criterion
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating criterion: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error updating criterion")


@router.delete("/criteria/{criterion_id}")
async def delete_criterion(criterion_id: int, db: AsyncSession = Depends(get_db),
                           teacher_id: int = Depends(require_teacher)):
    try:
        db_criterion = await _get_teacher_criterion(db, criterion_id, teacher_id)
        await db.delete(db_criterion)
        await db.commit()
        return {"message": "Criterion deleted"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting criterion: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error deleting criterion")


# Profile
async def _get_teacher(db: AsyncSession, teacher_id: int) -> Teacher:
    result = await db.execute(select(Teacher).filter(Teacher.id == teacher_id))
    teacher = result.scalar_one_or_none()
    if not teacher:
        raise HTTPException(status_code=404, detail="Teacher not found")
    return teacher


@router.get("/profile", response_model=ProfileResponse)
async def get_profile(db: AsyncSession = Depends(get_db), teacher_id: int = Depends(require_teacher)):
    try:
        return await _get_teacher(db, teacher_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting profile: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving profile")


@router.put("/profile", response_model=ProfileResponse)
async def update_profile(profile: ProfileUpdate, db: AsyncSession = Depends(get_db),
                         teacher_id: int = Depends(require_teacher)):
    try:
        teacher = await _get_teacher(db, teacher_id)
        first_name = profile.first_name.strip()
        paternal_surname = profile.paternal_surname.strip()
        if not first_name or not paternal_surname:
            raise HTTPException(status_code=400, detail="First name and paternal surname are required")

        teacher.first_name = first_name
        teacher.paternal_surname = paternal_surname
        teacher.maternal_surname = (profile.maternal_surname or "").strip() or None
        teacher.phone = (profile.phone or "").strip() or None
        await db.commit()
        await db.refresh(teacher)

        logger.info(f"Teacher {teacher_id} updated profile")
        return teacher
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating profile: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error updating profile")


@router.post("/change-password")
async def change_password(password_data: PasswordChange, db: AsyncSession = Depends(get_db),
                          teacher_id: int = Depends(require_teacher)):
    try:
        teacher = await _get_teacher(db, teacher_id)

        if not verify_password(password_data.current_password, teacher.hashed_password):
            raise HTTPException(status_code=400, detail="Current password is incorrect")

        teacher.hashed_password = get_password_hash(password_data.new_password)
        await db.commit()
        return {"message": "Password changed successfully"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error changing password: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error changing password")
