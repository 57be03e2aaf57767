async def save_grades(client, headers, school_id, entries, subject="Math", period="P1"):
    return await client.post("/grades", json={
        "school_id": school_id, "subject": subject, "period": period, "entries": entries
    }, headers=headers)


async def test_averages_use_default_weights(client, teacher_headers, school_id, students):
    ana, bruno = students["ana"], students["bruno"]
    response = await save_grades(client, teacher_headers, school_id, [
        {"student_id": ana["id"], "evaluation_type": "examenes", "score": 8},
        {"student_id": ana["id"], "evaluation_type": "tareas", "score": 6},
        {"student_id": ana["id"], "evaluation_type": "proyectos", "score": 10, "comment": "Great project"},
        {"student_id": bruno["id"], "evaluation_type": "examenes", "score": 10},
    ])
    assert response.status_code == 200, response.text
    assert response.json()["saved"] == 4

    response = await client.get("/grades/averages", params={
        "school_id": school_id, "subject": "Math", "period": "P1", "group": "3A"
    }, headers=teacher_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["weights"] == {"examenes": 40, "tareas": 30, "proyectos": 30}
    averages = {row["student_id"]: row for row in body["students"]}
    assert averages[ana["id"]]["average"] == 8.0
    assert averages[ana["id"]]["comment"] == "Great project"
    # missing criteria count as zero
    assert averages[bruno["id"]]["average"] == 4.0


async def test_averages_use_subject_criteria(client, teacher_headers, school_id, students):
    subject = await client.post(f"/schools/{school_id}/subjects", json={"name": "Science"},
                                headers=teacher_headers)
    subject_id = subject.json()["id"]
    for name, weight in (("Exam", 50), ("Lab", 50)):
        response = await client.post(f"/subjects/{subject_id}/criteria", json={"name": name, "weight": weight},
                                     headers=teacher_headers)
        assert response.status_code == 200, response.text

    ana = students["ana"]
    await save_grades(client, teacher_headers, school_id, [
        {"student_id": ana["id"], "evaluation_type": "exam", "score": 9},
        {"student_id": ana["id"], "evaluation_type": "lab", "score": 7},
    ], subject="Science")

    response = await client.get("/grades/averages", params={
        "school_id": school_id, "subject": "Science", "period": "P1"
    }, headers=teacher_headers)

    body = response.json()
    assert body["weights"] == {"exam": 50, "lab": 50}
    assert {row["student_id"]: row["average"] for row in body["students"]}[ana["id"]] == 8.0


async def test_criteria_total_cannot_exceed_100(client, teacher_headers, school_id):
    subject = await client.post(f"/schools/{school_id}/subjects", json={"name": "Art"}, headers=teacher_headers)
    subject_id = subject.json()["id"]
    await client.post(f"/subjects/{subject_id}/criteria", json={"name": "Drawing", "weight": 70},
                      headers=teacher_headers)

    response = await client.post(f"/subjects/{subject_id}/criteria", json={"name": "Painting", "weight": 40},
                                 headers=teacher_headers)

    assert response.status_code == 400


async def test_resaving_a_grade_updates_it(client, teacher_headers, school_id, students):
    ana = students["ana"]
    await save_grades(client, teacher_headers, school_id,
                      [{"student_id": ana["id"], "evaluation_type": "examenes", "score": 4}])
    await save_grades(client, teacher_headers, school_id,
                      [{"student_id": ana["id"], "evaluation_type": "Examenes", "score": 9}])

    response = await client.get("/grades", params={"school_id": school_id, "subject": "Math"},
                                headers=teacher_headers)

    grades = response.json()
    assert len(grades) == 1
    assert grades[0]["score"] == 9
    assert grades[0]["evaluation_type"] == "examenes"


async def test_score_above_ten_is_rejected(client, teacher_headers, school_id, students):
    response = await save_grades(client, teacher_headers, school_id, [
        {"student_id": students["ana"]["id"], "evaluation_type": "examenes", "score": 10.5}
    ])

    assert response.status_code == 422


async def test_other_teachers_school_is_not_found(client, admin_headers, teacher_headers, school_id, students):
    code = await client.post("/admin/codes", json={}, headers=admin_headers)
    other = await client.post("/auth/register", json={
        "code": code.json()["code"], "email": "other@escuela.edu.mx", "password": "secret123",
        "first_name": "Otro", "paternal_surname": "Profe",
    })
    other_headers = {"Authorization": f"Bearer {other.json()['access_token']}"}

    response = await client.get("/grades/averages", params={
        "school_id": school_id, "subject": "Math", "period": "P1"
    }, headers=other_headers)

    assert response.status_code == 404


async def test_participation_is_not_saved_as_a_grade(client, teacher_headers, school_id, students):
    response = await save_grades(client, teacher_headers, school_id, [
        {"student_id": students["ana"]["id"], "evaluation_type": "examenes", "score": 9},
        {"student_id": students["ana"]["id"], "evaluation_type": " Participation ", "score": 9},
    ])

    assert response.status_code == 400
    assert "/participation" in response.json()["detail"]

    history = await client.get("/grades", params={"school_id": school_id}, headers=teacher_headers)
    assert history.json() == []
