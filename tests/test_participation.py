from datetime import datetime, timezone

from sqlalchemy import select

from educonnect.models import GradeEntry, PARTICIPATION


def today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


async def save(client, headers, school_id, entries, period="P1"):
    return await client.post("/participation", json={
        "school_id": school_id, "subject": "Math", "period": period, "entries": entries
    }, headers=headers)


async def test_low_participation_is_strictly_below_five(client, teacher_headers, school_id, students):
    ana, bruno, carla = students["ana"], students["bruno"], students["carla"]
    response = await save(client, teacher_headers, school_id, [
        {"student_id": ana["id"], "score": 5.0},
        {"student_id": bruno["id"], "score": 4.5},
    ])
    assert response.status_code == 200, response.text

    response = await client.get("/participation", params={
        "school_id": school_id, "date": today(), "window": "week"
    }, headers=teacher_headers)

    assert response.status_code == 200
    body = response.json()
    low = {row["student_id"] for row in body["low_participation"]}
    assert low == {bruno["id"], carla["id"]}
    assert [row["student_id"] for row in body["ranking"]] == [ana["id"], bruno["id"], carla["id"]]
    assert {g["group"]: g["average"] for g in body["groups"]} == {"3A": 4.75, "3B": 0.0}


async def test_saving_again_replaces_the_score(client, db, teacher_headers, school_id, students):
    ana = students["ana"]
    await save(client, teacher_headers, school_id, [{"student_id": ana["id"], "score": 3}])
    await save(client, teacher_headers, school_id, [{"student_id": ana["id"], "score": 9}])

    result = await db.execute(select(GradeEntry).filter(GradeEntry.evaluation_type == PARTICIPATION))
    entries = result.scalars().all()
    assert len(entries) == 1
    assert entries[0].score == 9


async def test_score_out_of_range_is_rejected(client, teacher_headers, school_id, students):
    response = await save(client, teacher_headers, school_id, [{"student_id": students["ana"]["id"], "score": 11}])

    assert response.status_code == 422


async def test_group_filter_limits_students(client, teacher_headers, school_id, students):
    response = await client.get("/participation", params={
        "school_id": school_id, "date": today(), "group": "3B", "window": "month"
    }, headers=teacher_headers)

    body = response.json()
    assert [row["name"] for row in body["students"]] == ["Carla Ruiz"]
    assert body["students"][0]["average"] == 0.0
