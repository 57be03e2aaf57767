from datetime import date

import pytest
from sqlalchemy import select

from educonnect.api import attendance as attendance_api
from educonnect.models import AttendanceRecord
from educonnect.utils.upserts import BatchSaveError, execute_each, upsert_statement

DAY = date(2024, 5, 1)


def attendance_upsert(db, student_id, status):
    values = {"student_id": student_id, "date": DAY, "status": status, "note": None}
    return upsert_statement(db, AttendanceRecord, values, ["student_id", "date"], ["status", "note"])


async def test_failed_record_does_not_undo_the_others(db):
    items = [
        ({"student_id": 1}, attendance_upsert(db, 1, "present")),
        ({"student_id": 2}, attendance_upsert(db, 2, None)),
        ({"student_id": 3}, attendance_upsert(db, 3, "late")),
    ]

    with pytest.raises(BatchSaveError) as exc_info:
        await execute_each(db, items, "attendance")

    assert exc_info.value.saved == 2
    assert [f["student_id"] for f in exc_info.value.failed] == [2]
    assert exc_info.value.failed[0]["error"] == "IntegrityError"

    result = await db.execute(select(AttendanceRecord.student_id).order_by(AttendanceRecord.student_id))
    assert result.scalars().all() == [1, 3]


async def test_upsert_updates_existing_row(db):
    await execute_each(db, [({"student_id": 1}, attendance_upsert(db, 1, "present"))], "attendance")
    saved = await execute_each(db, [({"student_id": 1}, attendance_upsert(db, 1, "absent"))], "attendance")

    assert saved == 1
    result = await db.execute(select(AttendanceRecord))
    records = result.scalars().all()
    assert [(r.student_id, r.status) for r in records] == [(1, "absent")]


async def test_partial_failure_response(client, teacher_headers, school_id, students, monkeypatch):
    async def failing_execute_each(db, items, what):
        items = list(items)
        raise BatchSaveError("Error saving attendance: 1 of 2 records failed",
                             failed=[{**items[1][0], "error": "IntegrityError"}], saved=1)

    monkeypatch.setattr(attendance_api, "execute_each", failing_execute_each)

    response = await client.post("/attendance", json={
        "school_id": school_id, "date": "2024-05-01", "group": "3A", "records": [
            {"student_id": students["ana"]["id"], "status": "present"},
            {"student_id": students["bruno"]["id"], "status": "late"},
        ]
    }, headers=teacher_headers)

    assert response.status_code == 500
    detail = response.json()["detail"]
    assert detail["saved"] == 1
    assert detail["failed"][0]["name"] == "Bruno Diaz"
