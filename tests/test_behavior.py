DAY = "2024-05-01"


async def add_behavior(client, headers, school_id, entries, day=DAY):
    return await client.post("/behavior", json={
        "school_id": school_id, "date": day, "group": "3A", "entries": entries
    }, headers=headers)


async def get_alerts(client, headers, school_id, day=DAY):
    response = await client.get("/behavior/alerts", params={
        "school_id": school_id, "group": "3A", "date": day
    }, headers=headers)
    assert response.status_code == 200
    return response.json()


async def test_two_regular_entries_do_not_escalate(client, teacher_headers, school_id, students):
    ana = students["ana"]
    for _ in range(2):
        response = await add_behavior(client, teacher_headers, school_id,
                                      [{"student_id": ana["id"], "category": "regular"}])
        assert response.json()["escalated"] == []

    assert await get_alerts(client, teacher_headers, school_id) == []


async def test_third_regular_entry_is_stored_as_bad(client, teacher_headers, school_id, students):
    ana = students["ana"]
    await add_behavior(client, teacher_headers, school_id, [
        {"student_id": ana["id"], "category": "regular"},
        {"student_id": ana["id"], "category": "regular"},
    ])

    response = await add_behavior(client, teacher_headers, school_id,
                                  [{"student_id": ana["id"], "category": "regular"}])

    assert response.status_code == 200
    assert response.json()["escalated"] == [ana["id"]]

    records = await client.get("/behavior", params={
        "school_id": school_id, "group": "3A", "date": DAY
    }, headers=teacher_headers)
    assert [r["category"] for r in records.json()] == ["regular", "regular", "bad"]


async def test_three_bad_entries_raise_danger(client, teacher_headers, school_id, students):
    bruno = students["bruno"]
    await add_behavior(client, teacher_headers, school_id,
                       [{"student_id": bruno["id"], "category": "bad"}] * 3)

    alerts = await get_alerts(client, teacher_headers, school_id)

    assert [(a["student_id"], a["level"]) for a in alerts] == [(bruno["id"], "danger")]


async def test_flagged_note_raises_danger(client, teacher_headers, school_id, students):
    ana = students["ana"]
    await add_behavior(client, teacher_headers, school_id,
                       [{"student_id": ana["id"], "category": "good", "note": "Mal portado"}])

    alerts = await get_alerts(client, teacher_headers, school_id)

    assert alerts[0]["level"] == "danger"


async def test_alerts_are_scoped_to_the_date(client, teacher_headers, school_id, students):
    ana = students["ana"]
    await add_behavior(client, teacher_headers, school_id,
                       [{"student_id": ana["id"], "category": "bad"}] * 3, day="2024-04-30")

    assert await get_alerts(client, teacher_headers, school_id) == []


async def test_distribution_counts_first_entry(client, teacher_headers, school_id, students):
    ana, bruno = students["ana"], students["bruno"]
    await add_behavior(client, teacher_headers, school_id, [
        {"student_id": ana["id"], "category": "good"},
        {"student_id": ana["id"], "category": "bad"},
        {"student_id": bruno["id"], "category": "regular"},
    ])

    response = await client.get("/behavior/distribution", params={
        "school_id": school_id, "group": "3A", "date": DAY
    }, headers=teacher_headers)

    assert response.json() == {"good": 1, "regular": 1, "bad": 0}


async def test_unknown_category_is_rejected(client, teacher_headers, school_id, students):
    response = await add_behavior(client, teacher_headers, school_id,
                                  [{"student_id": students["ana"]["id"], "category": "terrible"}])

    assert response.status_code == 422
