from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, delete, update
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from ..core.database import get_db
from ..core.auth import get_password_hash, require_admin, verify_password
from ..models.admin import Admin
from ..models.teacher import Teacher, teacher_schools
from ..models.school import School
from ..models.student import Student
from ..models.subject import Subject
from ..models.criteria import Criterion
from ..models.grade import GradeEntry
from ..models.attendance import AttendanceRecord
from ..models.behavior import BehaviorRecord
from ..models.registration_code import RegistrationCode
from ..utils.code_generator import generate_unique_registration_code
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


class SchoolCreate(BaseModel):
    name: str = Field(min_length=1)
    state: str = Field(min_length=1)


class SchoolResponse(BaseModel):
    id: int
    name: str
    state: str
    created_at: Optional[datetime] = None


class CodeCreate(BaseModel):
    label: Optional[str] = None


class CodeResponse(BaseModel):
    id: int
    code: str
    label: Optional[str] = None
    is_used: bool
    created_at: Optional[datetime] = None
    used_by: Optional[int] = None
    used_by_name: Optional[str] = None


class CodeStats(BaseModel):
    total: int
    used: int
    unused: int


class TeacherResponse(BaseModel):
    id: int
    full_name: str
    email: str
    phone: Optional[str] = None
    created_at: Optional[datetime] = None


class TeacherStats(BaseModel):
    schools: int
    students: int
    grade_entries: int
    attendance_records: int
    behavior_records: int


class DashboardStats(BaseModel):
    schools: int
    teachers: int
    students: int
    codes: int
    used_codes: int


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(min_length=6)


async def _get_school(db: AsyncSession, school_id: int) -> School:
    result = await db.execute(select(School).filter(School.id == school_id))
    school = result.scalar_one_or_none()
    if not school:
        raise HTTPException(status_code=404, detail="School not found")
    return school


async def _count(db: AsyncSession, query) -> int:
    result = await db.execute(query)
    return result.scalar() or 0


# Schools
@router.get("/schools", response_model=List[SchoolResponse])
async def get_schools(db: AsyncSession = Depends(get_db), admin_id: int = Depends(require_admin)):
    try:
        result = await db.execute(select(School).order_by(School.name))
        return result.scalars().all()
    except Exception as e:
        logger.error(f"Error getting schools: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving schools")


@router.post("/schools", response_model=SchoolResponse)
async def create_school(school: SchoolCreate, db: AsyncSession = Depends(get_db),
                        admin_id: int = Depends(require_admin)):
    try:
        name, state = school.name.strip(), school.state.strip()
        if not name or not state:
            raise HTTPException(status_code=400, detail="School name and state are required")

        db_school = School(name=name, state=state)
        db.add(db_school)
        await db.commit()
        await db.refresh(db_school)
        logger.info(f"Admin {admin_id} created school {db_school.id}")
        return db_school
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating school: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error creating school")


@router.put("/schools/{school_id}", response_model=SchoolResponse)
async def update_school(school_id: int, school: SchoolCreate, db: AsyncSession = Depends(get_db),
                        admin_id: int = Depends(require_admin)):
    try:
        db_school = await _get_school(db, school_id)
        name, state = school.name.strip(), school.state.strip()
        if not name or not state:
            raise HTTPException(status_code=400, detail="School name and state are required")

        db_school.name = name
        db_school.state = state
        await db.commit()
        await db.refresh(db_school)
        return db_school
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating school: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error updating school")


@router.delete("/schools/{school_id}")
async def delete_school(school_id: int, db: AsyncSession = Depends(get_db),
                        admin_id: int = Depends(require_admin)):
    try:
        await _get_school(db, school_id)

        student_ids = select(Student.id).filter(Student.school_id == school_id)
        subject_ids = select(Subject.id).filter(Subject.school_id == school_id)

        await db.execute(delete(GradeEntry).where(GradeEntry.student_id.in_(student_ids)))
        await db.execute(delete(AttendanceRecord).where(AttendanceRecord.student_id.in_(student_ids)))
        await db.execute(delete(BehaviorRecord).where(BehaviorRecord.student_id.in_(student_ids)))
        await db.execute(delete(Criterion).where(Criterion.subject_id.in_(subject_ids)))
        await db.execute(delete(Student).where(Student.school_id == school_id))
        await db.execute(delete(Subject).where(Subject.school_id == school_id))
        await db.execute(delete(teacher_schools).where(teacher_schools.c.school_id == school_id))
        await db.execute(delete(School).where(School.id == school_id))
        await db.commit()

        logger.info(f"Admin {admin_id} deleted school {school_id}")
        return {"message": "School deleted"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting school: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error deleting school")


# Registration codes
@router.get("/codes", response_model=List[CodeResponse])
async def get_codes(status: str = Query("all", pattern="^(all|used|unused)$"),
                    db: AsyncSession = Depends(get_db), admin_id: int = Depends(require_admin)):
    try:
        query = select(RegistrationCode, Teacher).outerjoin(Teacher, Teacher.id == RegistrationCode.used_by)
        if status == "used":
            query = query.filter(RegistrationCode.is_used == True)
        elif status == "unused":
            query = query.filter(RegistrationCode.is_used == False)

        result = await db.execute(query.order_by(RegistrationCode.created_at.desc(), RegistrationCode.id.desc()))
        return [
            CodeResponse(
                id=code.id,
                code=code.code,
                label=code.label,
                is_used=code.is_used,
                created_at=code.created_at,
                used_by=code.used_by,
                used_by_name=teacher.full_name if teacher else None
            )
            for code, teacher in result.all()
        ]
    except Exception as e:
        logger.error(f"Error getting registration codes: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving registration codes")


@router.get("/codes/stats", response_model=CodeStats)
async def get_code_stats(db: AsyncSession = Depends(get_db), admin_id: int = Depends(require_admin)):
    try:
        total = await _count(db, select(func.count(RegistrationCode.id)))
        used = await _count(db, select(func.count(RegistrationCode.id)).filter(RegistrationCode.is_used == True))
        return CodeStats(total=total, used=used, unused=total - used)
    except Exception as e:
        logger.error(f"Error getting code stats: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving code statistics")


@router.post("/codes", response_model=CodeResponse)
async def create_code(request: CodeCreate, db: AsyncSession = Depends(get_db),
                      admin_id: int = Depends(require_admin)):
    try:
        try:
            code = await generate_unique_registration_code(db)
        except RuntimeError as e:
            raise HTTPException(status_code=409, detail=str(e))

        db_code = RegistrationCode(
            code=code,
            label=(request.label or "").strip() or None,
            created_by=admin_id
        )
        db.add(db_code)
        await db.commit()
        await db.refresh(db_code)

        logger.info(f"Admin {admin_id} generated registration code {db_code.code}")
        return CodeResponse(
            id=db_code.id,
            code=db_code.code,
            label=db_code.label,
            is_used=db_code.is_used,
            created_at=db_code.created_at
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating registration code: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error creating registration code")


@router.delete("/codes/{code_id}")
async def delete_code(code_id: int, db: AsyncSession = Depends(get_db),
                      admin_id: int = Depends(require_admin)):
    try:
        result = await db.execute(select(RegistrationCode).filter(RegistrationCode.id == code_id))
        db_code = result.scalar_one_or_none()
        if not db_code:
            raise HTTPException(status_code=404, detail="Registration code not found")

        await db.execute(
            update(Teacher).where(Teacher.registration_code_id == code_id).values(registration_code_id=None)
        )
        await db.delete(db_code)
        await db.commit()
        return {"message": "Registration code deleted"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting registration code: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error deleting registration code")


# Users
@router.get("/teachers", response_model=List[TeacherResponse])
async def get_teachers(db: AsyncSession = Depends(get_db), admin_id: int = Depends(require_admin)):
    try:
        result = await db.execute(select(Teacher).order_by(Teacher.first_name, Teacher.paternal_surname))
        return result.scalars().all()
    except Exception as e:
        logger.error(f"Error getting teachers: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving teachers")


@router.delete("/teachers/{teacher_id}")
async def delete_teacher(teacher_id: int, db: AsyncSession = Depends(get_db),
                         admin_id: int = Depends(require_admin)):
    try:
        result = await db.execute(select(Teacher).filter(Teacher.id == teacher_id))
        if not result.scalar_one_or_none():
            raise HTTPException(status_code=404, detail="Teacher not found")

        await db.execute(delete(teacher_schools).where(teacher_schools.c.teacher_id == teacher_id))
        await db.execute(
            update(RegistrationCode).where(RegistrationCode.used_by == teacher_id).values(used_by=None)
        )
        for model in (GradeEntry, AttendanceRecord, BehaviorRecord):
            await db.execute(update(model).where(model.created_by == teacher_id).values(created_by=None))
        await db.execute(delete(Teacher).where(Teacher.id == teacher_id))
        await db.commit()

        logger.info(f"Admin {admin_id} deleted teacher {teacher_id}")
        return {"message": "Teacher deleted"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting teacher: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error deleting teacher")


@router.get("/teachers/{teacher_id}/stats", response_model=TeacherStats)
async def get_teacher_stats(teacher_id: int, db: AsyncSession = Depends(get_db),
                            admin_id: int = Depends(require_admin)):
    try:
        teacher_result = await db.execute(select(Teacher).filter(Teacher.id == teacher_id))
        if not teacher_result.scalar_one_or_none():
            raise HTTPException(status_code=404, detail="Teacher not found")

        schools_count = await _count(
            db, select(func.count()).select_from(teacher_schools).filter(teacher_schools.c.teacher_id == teacher_id)
        )
        students_count = await _count(
            db,
            select(func.count(Student.id))
            .join(teacher_schools, teacher_schools.c.school_id == Student.school_id)
            .filter(teacher_schools.c.teacher_id == teacher_id)
        )
        grades_count = await _count(
            db, select(func.count(GradeEntry.id)).filter(GradeEntry.created_by == teacher_id)
        )
        attendance_count = await _count(
            db, select(func.count(AttendanceRecord.id)).filter(AttendanceRecord.created_by == teacher_id)
        )
        behavior_count = await _count(
            db, select(func.count(BehaviorRecord.id)).filter(BehaviorRecord.created_by == teacher_id)
        )

        return TeacherStats(
            schools=schools_count,
            students=students_count,
            grade_entries=grades_count,
            attendance_records=attendance_count,
            behavior_records=behavior_count
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting teacher stats: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving teacher statistics")


@router.get("/dashboard", response_model=DashboardStats)
async def get_dashboard(db: AsyncSession = Depends(get_db), admin_id: int = Depends(require_admin)):
    try:
        return DashboardStats(
            schools=await _count(db, select(func.count(School.id))),
            teachers=await _count(db, select(func.count(Teacher.id))),
            students=await _count(db, select(func.count(Student.id))),
            codes=await _count(db, select(func.count(RegistrationCode.id))),
            used_codes=await _count(
                db, select(func.count(RegistrationCode.id)).filter(RegistrationCode.is_used == True)
            )
        )
    except Exception as e:
        logger.error(f"Error getting dashboard stats: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving dashboard")


# Password management
@router.post("/change-password")
async def change_admin_password(password_data: PasswordChange, db: AsyncSession = Depends(get_db),
                                admin_id: int = Depends(require_admin)):
    try:
        result = await db.execute(select(Admin).filter(Admin.id == admin_id))
        admin = result.scalar_one_or_none()
        if not admin:
            raise HTTPException(status_code=404, detail="Admin not found")

        if not verify_password(password_data.current_password, admin.hashed_password):
            raise HTTPException(status_code=400, detail="Current password is incorrect")

        admin.hashed_password = get_password_hash(password_data.new_password)
        await db.commit()
        return {"message": "Admin password changed successfully"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error changing admin password: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error changing admin password")
