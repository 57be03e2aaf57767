from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import List, Optional
from datetime import date
from ..core.config import settings
from ..core.database import get_db
from ..core.auth import require_teacher, verify_token, TEACHER
from ..models.grade import GradeEntry, PARTICIPATION
from ..models.attendance import AttendanceRecord
from ..models.behavior import BehaviorRecord
from ..models.student import Student
from ..utils.access import get_teacher_school, get_teacher_student, get_school_students
from ..utils.calculations import (
    behavior_distribution, group_performance, mean, clamp_score, participation_summary,
    report_card, student_weighted_averages, subject_period_averages, summarize_attendance,
    validate_weights, window_for
)
from ..utils.exports import (
    PDF_MEDIA_TYPE, XLSX_MEDIA_TYPE, bar_chart, build_pdf, build_xlsx, export_filename
)
from ..utils.local_cache import cache_delete, cache_get, export_history_key, record_export
from .grades import subject_weights
import logging

logger = logging.getLogger(__name__)
router = APIRouter()

FORMAT_PATTERN = "^(pdf|xlsx)$"


async def _student_entries(db: AsyncSession, student_ids: List[int], period: Optional[str] = None,
                           subject: Optional[str] = None) -> List[GradeEntry]:
    query = select(GradeEntry).filter(GradeEntry.student_id.in_(student_ids))
    if period:
        query = query.filter(GradeEntry.period == period)
    if subject:
        query = query.filter(GradeEntry.subject == subject)
    result = await db.execute(query.order_by(GradeEntry.id))
    return list(result.scalars().all())


def _participation_by_student(students: List[Student], entries: List[GradeEntry]) -> List[dict]:
    return [
        {
            "student_id": s.id,
            "name": s.full_name,
            "group": s.group_label,
            "average": mean(
                clamp_score(e.score) for e in entries
                if e.student_id == s.id and e.evaluation_type == PARTICIPATION
            ) or 0.0,
        }
        for s in students
    ]


async def _export_response(db: AsyncSession, teacher_id: int, kind: str, file_format: str,
                           group: Optional[str], title: str, subtitle: List[str],
                           columns: List[str], rows: List[list], charts: Optional[List[bytes]] = None,
                           details: Optional[dict] = None) -> Response:
    """Render rows as PDF or XLSX and note the download in the teacher's export history."""
    file_name = export_filename(kind, group, file_format)
    if file_format == "pdf":
        content = build_pdf(title, subtitle, columns, rows, charts=charts)
        media_type = PDF_MEDIA_TYPE
    else:
        content = build_xlsx(title, columns, rows)
        media_type = XLSX_MEDIA_TYPE

    await record_export(db, TEACHER, teacher_id, kind, file_name, file_format, details)
    logger.info(f"Teacher {teacher_id} exported {file_name} ({len(content)} bytes)")
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'}
    )


# Reports
@router.get("/group-performance")
async def get_group_performance(school_id: int, period: Optional[str] = None, group: Optional[str] = None,
                                db: AsyncSession = Depends(get_db), teacher_id: int = Depends(require_teacher)):
    """Averages by group and subject, without participation, plus per-student participation."""
    try:
        await get_teacher_school(db, school_id, teacher_id)
        students = await get_school_students(db, school_id, group)
        entries = await _student_entries(db, [s.id for s in students], period=period)

        performance = group_performance(students, entries)
        performance["participation"] = _participation_by_student(students, entries)
        return performance
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error computing group performance: {e}")
        raise HTTPException(status_code=500, detail="Error computing group performance")


@router.get("/students/{student_id}")
async def get_student_report(student_id: int, subject: Optional[str] = None,
                             db: AsyncSession = Depends(get_db), teacher_id: int = Depends(require_teacher)):
    try:
        student = await get_teacher_student(db, student_id, teacher_id)
        entries = await _student_entries(db, [student.id], subject=subject)
        graded = [e for e in entries if e.evaluation_type != PARTICIPATION]
        return {
            "student_id": student.id,
            "name": student.full_name,
            "group": student.group_label,
            "enrollment_number": student.enrollment_number,
            "subjects": subject_period_averages(graded),
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error building student report: {e}")
        raise HTTPException(status_code=500, detail="Error building student report")


@router.get("/report-card/{student_id}")
async def get_report_card(student_id: int, period: Optional[str] = None, subject: Optional[str] = None,
                          db: AsyncSession = Depends(get_db), teacher_id: int = Depends(require_teacher)):
    try:
        student = await get_teacher_student(db, student_id, teacher_id)
        entries = await _student_entries(db, [student.id], subject=subject)
        card = report_card(entries, period)
        card.update({"student_id": student.id, "name": student.full_name, "group": student.group_label})
        return card
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error building report card: {e}")
        raise HTTPException(status_code=500, detail="Error building report card")


# Exports
@router.get("/export/grades")
async def export_grades(school_id: int, subject: str, period: str, group: Optional[str] = None,
                        format: str = Query("pdf", pattern=FORMAT_PATTERN),
                        db: AsyncSession = Depends(get_db), teacher_id: int = Depends(require_teacher)):
    try:
        school = await get_teacher_school(db, school_id, teacher_id)
        students = await get_school_students(db, school_id, group)
        try:
            weights = validate_weights(await subject_weights(db, school_id, subject))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

        entries = [
            e for e in await _student_entries(db, [s.id for s in students], period=period, subject=subject)
            if e.evaluation_type != PARTICIPATION
        ]
        averages = student_weighted_averages(students, entries, weights)

        criteria = list(weights)
        columns = ["Student"] + [f"{c} ({weights[c]:g}%)" for c in criteria] + ["Average", "Comment"]
        rows = [
            [row["name"]] + [row["scores"][c] for c in criteria] + [row["average"], row["comment"]]
            for row in averages
        ]
        charts = []
        if averages:
            charts.append(bar_chart(
                [row["name"] for row in averages], [row["average"] for row in averages],
                f"Averages - {subject}", ylabel="Average", ylim=10
            ))

        return await _export_response(
            db, teacher_id, "grades", format, group,
            title=f"Grades - {subject}",
            subtitle=[f"School: {school.name}", f"Group: {group or 'All'}", f"Period: {period}"],
            columns=columns, rows=rows, charts=charts,
            details={"school_id": school_id, "subject": subject, "period": period, "group": group}
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error exporting grades: {e}")
        raise HTTPException(status_code=500, detail="Error exporting grades")


@router.get("/export/attendance")
async def export_attendance(school_id: int, date: date, group: Optional[str] = None,
                            filter: str = Query("day", pattern="^(day|week|month)$"),
                            format: str = Query("pdf", pattern=FORMAT_PATTERN),
                            db: AsyncSession = Depends(get_db), teacher_id: int = Depends(require_teacher)):
    try:
        school = await get_teacher_school(db, school_id, teacher_id)
        students = {s.id: s for s in await get_school_students(db, school_id, group)}
        start, end = window_for(date, filter)

        result = await db.execute(
            select(AttendanceRecord)
            .filter(
                AttendanceRecord.student_id.in_(list(students)),
                AttendanceRecord.date >= start,
                AttendanceRecord.date <= end
            )
            .order_by(AttendanceRecord.date, AttendanceRecord.id)
        )
        records = result.scalars().all()
        counts = summarize_attendance(records)

        rows = [
            [students[r.student_id].full_name, r.date.isoformat(), r.status, r.note]
            for r in records
        ]
        charts = [bar_chart(list(counts), list(counts.values()), "Attendance", ylabel="Records")] if records else []

        return await _export_response(
            db, teacher_id, "attendance", format, group,
            title="Attendance",
            subtitle=[f"School: {school.name}", f"Group: {group or 'All'}",
                      f"From {start.isoformat()} to {end.isoformat()}"],
            columns=["Student", "Date", "Status", "Note"], rows=rows, charts=charts,
            details={"school_id": school_id, "filter": filter, "start": start, "end": end, "group": group}
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error exporting attendance: {e}")
        raise HTTPException(status_code=500, detail="Error exporting attendance")


@router.get("/export/behavior")
async def export_behavior(school_id: int, date: date, group: Optional[str] = None,
                          format: str = Query("pdf", pattern=FORMAT_PATTERN),
                          db: AsyncSession = Depends(get_db), teacher_id: int = Depends(require_teacher)):
    try:
        school = await get_teacher_school(db, school_id, teacher_id)
        students = await get_school_students(db, school_id, group)
        by_id = {s.id: s for s in students}

        result = await db.execute(
            select(BehaviorRecord)
            .filter(BehaviorRecord.student_id.in_(list(by_id)), BehaviorRecord.date == date)
            .order_by(BehaviorRecord.id)
        )
        records = result.scalars().all()
        distribution = behavior_distribution(students, records, date)

        rows = [[by_id[r.student_id].full_name, r.category, r.note] for r in records]
        charts = [
            bar_chart(list(distribution), list(distribution.values()), "Behavior", ylabel="Students")
        ] if records else []

        return await _export_response(
            db, teacher_id, "behavior", format, group,
            title="Behavior",
            subtitle=[f"School: {school.name}", f"Group: {group or 'All'}", f"Date: {date.isoformat()}"],
            columns=["Student", "Category", "Note"], rows=rows, charts=charts,
            details={"school_id": school_id, "date": date, "group": group}
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error exporting behavior: {e}")
        raise HTTPException(status_code=500, detail="Error exporting behavior")


@router.get("/export/participation")
async def export_participation(school_id: int, date: date, subject: Optional[str] = None,
                               group: Optional[str] = None,
                               window: str = Query("week", pattern="^(week|month)$"),
                               format: str = Query("pdf", pattern=FORMAT_PATTERN),
                               db: AsyncSession = Depends(get_db), teacher_id: int = Depends(require_teacher)):
    try:
        school = await get_teacher_school(db, school_id, teacher_id)
        students = await get_school_students(db, school_id, group)
        start, end = window_for(date, window)

        entries = [
            e for e in await _student_entries(db, [s.id for s in students], subject=subject)
            if e.evaluation_type == PARTICIPATION
        ]
        summary = participation_summary(
            students, entries, start, end, threshold=settings.low_participation_threshold
        )

        ranking = summary["ranking"]
        rows = [[r["position"], r["name"], r["group"], r["average"], r["entries"]] for r in ranking]
        charts = [
            bar_chart([r["name"] for r in ranking], [r["average"] for r in ranking],
                      "Participation", ylabel="Average", ylim=10)
        ] if ranking else []

        return await _export_response(
            db, teacher_id, "participation", format, group,
            title="Participation",
            subtitle=[f"School: {school.name}", f"Group: {group or 'All'}",
                      f"From {start.isoformat()} to {end.isoformat()}",
                      f"Low participation: {len(summary['low_participation'])} students"],
            columns=["Position", "Student", "Group", "Average", "Entries"], rows=rows, charts=charts,
            details={"school_id": school_id, "window": window, "subject": subject, "group": group}
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error exporting participation: {e}")
        raise HTTPException(status_code=500, detail="Error exporting participation")


@router.get("/export/report-card/{student_id}")
async def export_report_card(student_id: int, period: Optional[str] = None, subject: Optional[str] = None,
                             format: str = Query("pdf", pattern=FORMAT_PATTERN),
                             db: AsyncSession = Depends(get_db), teacher_id: int = Depends(require_teacher)):
    try:
        student = await get_teacher_student(db, student_id, teacher_id)
        entries = await _student_entries(db, [student.id], subject=subject)
        card = report_card(entries, period)

        rows = [[c["criterion"], c["average"]] for c in card["criteria"]]
        rows.append(["Final average", card["final_average"]])

        return await _export_response(
            db, teacher_id, "report_card", format, student.group_label,
            title=f"Report card - {student.full_name}",
            subtitle=[f"Group: {student.group_label or 'N/A'}", f"Period: {card['period']}",
                      f"Subject: {subject or 'All'}"],
            columns=["Criterion", "Average"], rows=rows,
            details={"student_id": student.id, "period": period, "subject": subject}
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error exporting report card: {e}")
        raise HTTPException(status_code=500, detail="Error exporting report card")


# Export history
@router.get("/history")
async def get_export_history(db: AsyncSession = Depends(get_db), token_data: dict = Depends(verify_token)):
    """Exports made by the current user, newest first."""
    key = export_history_key(token_data["user_type"], token_data["user_id"])
    history = await cache_get(db, key, default=[])
    return list(reversed(history))


@router.delete("/history")
async def clear_export_history(db: AsyncSession = Depends(get_db), token_data: dict = Depends(verify_token)):
    try:
        await cache_delete(db, export_history_key(token_data["user_type"], token_data["user_id"]))
        return {"message": "Export history cleared"}
    except Exception as e:
        logger.error(f"Error clearing export history: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error clearing export history")
