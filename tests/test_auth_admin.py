from conftest import ADMIN_EMAIL, PASSWORD, TEACHER_EMAIL, auth_headers


async def test_first_admin_only(client, admin_headers):
    exists = await client.get("/auth/check-admin-exists")
    assert exists.json() == {"admin_exists": True}

    response = await client.post("/auth/register-admin", json={
        "name": "Second", "email": "second@escuela.edu.mx", "password": PASSWORD
    })
    assert response.status_code == 400


async def test_login_returns_role(client, teacher_headers):
    admin = await client.post("/auth/login", json={"email": ADMIN_EMAIL, "password": PASSWORD})
    teacher = await client.post("/auth/login", json={"email": TEACHER_EMAIL, "password": PASSWORD})
    wrong = await client.post("/auth/login", json={"email": TEACHER_EMAIL, "password": "nope"})

    assert admin.json()["user_type"] == "admin"
    assert teacher.json()["user_type"] == "teacher"
    assert teacher.json()["user_name"] == "Laura Mendez"
    assert wrong.status_code == 401


async def test_me_requires_a_valid_token(client, teacher_headers):
    me = await client.get("/auth/me", headers=teacher_headers)
    assert me.json()["email"] == TEACHER_EMAIL

    bad = await client.get("/auth/me", headers=auth_headers("not-a-token"))
    assert bad.status_code == 401


async def test_registration_code_lifecycle(client, admin_headers):
    created = await client.post("/admin/codes", json={"label": "Maestra de 3A"}, headers=admin_headers)
    code = created.json()["code"]
    assert len(code) == 4 and 1000 <= int(code) <= 9999

    verified = await client.post("/auth/verify-code", json={"code": code})
    assert verified.json()["valid"] is True

    register = await client.post("/auth/register", json={
        "code": code, "email": "new@escuela.edu.mx", "password": PASSWORD,
        "first_name": "Nuevo", "paternal_surname": "Maestro",
    })
    assert register.status_code == 200, register.text

    reused = await client.post("/auth/verify-code", json={"code": code})
    assert reused.status_code == 400

    used = await client.get("/admin/codes", params={"status": "used"}, headers=admin_headers)
    assert [c["used_by_name"] for c in used.json()] == ["Nuevo Maestro"]

    stats = await client.get("/admin/codes/stats", headers=admin_headers)
    assert stats.json() == {"total": 1, "used": 1, "unused": 0}


async def test_unknown_code_is_not_found(client, admin_headers):
    response = await client.post("/auth/verify-code", json={"code": "0000"})
    assert response.status_code == 404


async def test_teacher_cannot_use_admin_area(client, teacher_headers):
    response = await client.get("/admin/teachers", headers=teacher_headers)
    assert response.status_code == 403


async def test_admin_dashboard_and_teacher_removal(client, admin_headers, teacher_headers, students):
    dashboard = await client.get("/admin/dashboard", headers=admin_headers)
    assert dashboard.json() == {"schools": 1, "teachers": 1, "students": 3, "codes": 1, "used_codes": 1}

    teachers = await client.get("/admin/teachers", headers=admin_headers)
    teacher_id = teachers.json()[0]["id"]

    stats = await client.get(f"/admin/teachers/{teacher_id}/stats", headers=admin_headers)
    assert stats.json()["schools"] == 1
    assert stats.json()["students"] == 3

    deleted = await client.delete(f"/admin/teachers/{teacher_id}", headers=admin_headers)
    assert deleted.status_code == 200
    assert (await client.get("/admin/teachers", headers=admin_headers)).json() == []


async def test_admin_school_crud(client, admin_headers, teacher_headers, school_id, students):
    created = await client.post("/admin/schools", json={"name": "Secundaria 5", "state": "Oaxaca"},
                                headers=admin_headers)
    assert created.status_code == 200

    updated = await client.put(f"/admin/schools/{created.json()['id']}",
                               json={"name": "Secundaria 5", "state": "Puebla"}, headers=admin_headers)
    assert updated.json()["state"] == "Puebla"

    missing_state = await client.post("/admin/schools", json={"name": "X", "state": " "}, headers=admin_headers)
    assert missing_state.status_code == 400

    deleted = await client.delete(f"/admin/schools/{school_id}", headers=admin_headers)
    assert deleted.status_code == 200
    dashboard = await client.get("/admin/dashboard", headers=admin_headers)
    assert dashboard.json()["students"] == 0


async def test_password_change(client, teacher_headers):
    short = await client.post("/change-password", json={"current_password": PASSWORD, "new_password": "abc"},
                              headers=teacher_headers)
    assert short.status_code == 422

    wrong = await client.post("/change-password", json={"current_password": "bad", "new_password": "abcdef"},
                              headers=teacher_headers)
    assert wrong.status_code == 400

    ok = await client.post("/change-password", json={"current_password": PASSWORD, "new_password": "abcdef"},
                           headers=teacher_headers)
    assert ok.status_code == 200

    login = await client.post("/auth/login", json={"email": TEACHER_EMAIL, "password": "abcdef"})
    assert login.status_code == 200


async def test_students_search_and_sort(client, teacher_headers, school_id, students):
    listed = await client.get(f"/schools/{school_id}/students", headers=teacher_headers)
    assert [s["first_name"] for s in listed.json()] == ["Ana", "Bruno", "Carla"]

    by_enrollment = await client.get(f"/schools/{school_id}/students", params={"search": "a-002"},
                                     headers=teacher_headers)
    assert [s["first_name"] for s in by_enrollment.json()] == ["Bruno"]

    by_group = await client.get(f"/schools/{school_id}/students", params={"group": "3B"},
                                headers=teacher_headers)
    assert [s["first_name"] for s in by_group.json()] == ["Carla"]

    missing_surname = await client.post(f"/schools/{school_id}/students",
                                        json={"first_name": "Dora", "paternal_surname": "  "},
                                        headers=teacher_headers)
    assert missing_surname.status_code == 400


async def test_profile_update(client, teacher_headers, school_id):
    blank = await client.put("/profile", json={"first_name": "", "paternal_surname": "Mendez"},
                             headers=teacher_headers)
    assert blank.status_code == 400

    updated = await client.put("/profile", json={
        "first_name": "Laura", "paternal_surname": "Mendez", "maternal_surname": "Soto", "phone": "555-0101"
    }, headers=teacher_headers)
    assert updated.json()["full_name"] == "Laura Mendez Soto"

    schools = await client.get("/schools", headers=teacher_headers)
    assert [s["id"] for s in schools.json()] == [school_id]
