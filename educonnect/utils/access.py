from typing import List, Optional
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from ..models.school import School
from ..models.student import Student
from ..models.teacher import teacher_schools


async def get_teacher_school(db: AsyncSession, school_id: int, teacher_id: int) -> School:
    """School linked to the teacher, or 404"""
    result = await db.execute(
        select(School)
        .join(teacher_schools, teacher_schools.c.school_id == School.id)
        .filter(School.id == school_id, teacher_schools.c.teacher_id == teacher_id)
    )
    school = result.scalar_one_or_none()
    if not school:
        raise HTTPException(status_code=404, detail="School not found")
    return school


async def get_teacher_student(db: AsyncSession, student_id: int, teacher_id: int) -> Student:
    result = await db.execute(
        select(Student)
        .join(teacher_schools, teacher_schools.c.school_id == Student.school_id)
        .filter(Student.id == student_id, teacher_schools.c.teacher_id == teacher_id)
    )
    student = result.scalar_one_or_none()
    if not student:
        raise HTTPException(status_code=404, detail="Student not found")
    return student


async def get_school_students(db: AsyncSession, school_id: int, group: Optional[str] = None) -> List[Student]:
    query = select(Student).filter(Student.school_id == school_id)
    if group:
        query = query.filter(Student.group_label == group)
    result = await db.execute(query.order_by(Student.first_name, Student.paternal_surname, Student.id))
    return list(result.scalars().all())
