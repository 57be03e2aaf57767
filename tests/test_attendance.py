from sqlalchemy import select

from educonnect.models import AttendanceRecord


async def save(client, headers, school_id, records, day="2024-05-01", group="3A"):
    return await client.post("/attendance", json={
        "school_id": school_id, "date": day, "group": group, "records": records
    }, headers=headers)


async def test_roster_defaults_to_absent(client, teacher_headers, school_id, students):
    response = await client.get("/attendance/roster", params={
        "school_id": school_id, "group": "3A", "date": "2024-05-01"
    }, headers=teacher_headers)

    assert response.status_code == 200
    roster = response.json()
    assert [row["name"] for row in roster] == ["Ana Lopez", "Bruno Diaz"]
    assert {row["status"] for row in roster} == {"absent"}
    assert all(row["record_id"] is None for row in roster)


async def test_group_save_creates_one_record_per_student(client, db, teacher_headers, school_id, students):
    ana, bruno = students["ana"], students["bruno"]

    response = await save(client, teacher_headers, school_id, [
        {"student_id": ana["id"], "status": "present"},
        {"student_id": bruno["id"], "status": "late", "note": "Bus"},
    ])

    assert response.status_code == 200, response.text
    assert response.json()["saved"] == 2

    result = await db.execute(select(AttendanceRecord))
    records = result.scalars().all()
    assert len(records) == 2
    assert sorted(r.status for r in records) == ["late", "present"]


async def test_saving_twice_keeps_a_single_record(client, db, teacher_headers, school_id, students):
    ana = students["ana"]

    await save(client, teacher_headers, school_id, [{"student_id": ana["id"], "status": "present"}])
    response = await save(client, teacher_headers, school_id, [{"student_id": ana["id"], "status": "late"}])

    assert response.status_code == 200
    result = await db.execute(select(AttendanceRecord).filter(AttendanceRecord.student_id == ana["id"]))
    records = result.scalars().all()
    assert len(records) == 1
    assert records[0].status == "late"

    roster = await client.get("/attendance/roster", params={
        "school_id": school_id, "group": "3A", "date": "2024-05-01"
    }, headers=teacher_headers)
    statuses = {row["student_id"]: row["status"] for row in roster.json()}
    assert statuses[ana["id"]] == "late"


async def test_invalid_status_is_rejected_before_writing(client, db, teacher_headers, school_id, students):
    response = await save(client, teacher_headers, school_id, [
        {"student_id": students["ana"]["id"], "status": "sleeping"}
    ])

    assert response.status_code == 422
    result = await db.execute(select(AttendanceRecord))
    assert result.scalars().all() == []


async def test_student_outside_group_is_rejected(client, teacher_headers, school_id, students):
    response = await save(client, teacher_headers, school_id, [
        {"student_id": students["carla"]["id"], "status": "present"}
    ])

    assert response.status_code == 400


async def test_summary_by_week(client, teacher_headers, school_id, students):
    ana, bruno = students["ana"], students["bruno"]
    await save(client, teacher_headers, school_id, [{"student_id": ana["id"], "status": "present"}],
               day="2024-04-28")
    await save(client, teacher_headers, school_id, [{"student_id": bruno["id"], "status": "late"}],
               day="2024-05-04")
    await save(client, teacher_headers, school_id, [{"student_id": bruno["id"], "status": "absent"}],
               day="2024-05-05")

    response = await client.get("/attendance/summary", params={
        "school_id": school_id, "group": "3A", "date": "2024-05-01", "filter": "week"
    }, headers=teacher_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["start"] == "2024-04-28"
    assert body["end"] == "2024-05-04"
    assert body["counts"] == {"present": 1, "absent": 0, "late": 1}
    assert len(body["records"]) == 2


async def test_save_appends_to_history(client, teacher_headers, school_id, students):
    await save(client, teacher_headers, school_id, [
        {"student_id": students["ana"]["id"], "status": "present"},
        {"student_id": students["bruno"]["id"], "status": "absent"},
    ])

    response = await client.get("/attendance/history", headers=teacher_headers)

    assert response.status_code == 200
    history = response.json()
    assert len(history) == 2
    assert {entry["date"] for entry in history} == {"2024-05-01"}


async def test_admin_cannot_take_attendance(client, admin_headers, teacher_headers, school_id, students):
    response = await save(client, admin_headers, school_id, [
        {"student_id": students["ana"]["id"], "status": "present"}
    ])

    assert response.status_code == 403
