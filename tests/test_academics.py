"""Academic years, terms, subjects and classes."""

from tests.conftest import add_slot, auth_headers


def test_admin_creates_and_lists_academic_years(client, school):
    headers = auth_headers(school.admin)

    created = client.post("/api/v1/academic-years", json={"name": "2025/2026"}, headers=headers)
    duplicate = client.post("/api/v1/academic-years", json={"name": "2025/2026"}, headers=headers)
    listed = client.get("/api/v1/academic-years", headers=auth_headers(school.principal))

    assert created.status_code == 201
    assert duplicate.status_code == 409
    assert [year["name"] for year in listed.json()] == ["2025/2026", "2024/2025"]


def test_activating_an_academic_year_deactivates_the_others(client, school):
    headers = auth_headers(school.admin)
    year_id = client.post("/api/v1/academic-years", json={"name": "2025/2026"}, headers=headers).json()["id"]

    response = client.put(f"/api/v1/academic-years/{year_id}", json={"is_active": True}, headers=headers)

    assert response.status_code == 200
    assert response.json()["is_active"] is True
    active = [year["name"] for year in client.get("/api/v1/academic-years", headers=headers).json() if year["is_active"]]
    assert active == ["2025/2026"]


def test_renaming_an_academic_year_to_a_taken_name(client, school):
    headers = auth_headers(school.admin)
    year_id = client.post("/api/v1/academic-years", json={"name": "2025/2026"}, headers=headers).json()["id"]

    response = client.put(f"/api/v1/academic-years/{year_id}", json={"name": "2024/2025"}, headers=headers)

    assert response.status_code == 409


def test_delete_academic_year(client, school):
    headers = auth_headers(school.admin)
    year_id = client.post("/api/v1/academic-years", json={"name": "2025/2026"}, headers=headers).json()["id"]

    in_use = client.delete(f"/api/v1/academic-years/{school.year.id}", headers=headers)
    deleted = client.delete(f"/api/v1/academic-years/{year_id}", headers=headers)
    missing = client.delete(f"/api/v1/academic-years/{year_id}", headers=headers)

    assert in_use.status_code == 400
    assert in_use.json()["detail"] == "Academic year is still used by 2 term(s)"
    assert deleted.status_code == 204
    assert missing.status_code == 404


def test_academic_writes_are_admin_only(client, school):
    headers = auth_headers(school.principal)

    assert client.put(f"/api/v1/terms/{school.term.id}", json={"name": "Odd"}, headers=headers).status_code == 403
    assert client.delete(f"/api/v1/subjects/{school.physics.id}", headers=headers).status_code == 403
    assert client.delete(f"/api/v1/classes/{school.class_b.id}", headers=headers).status_code == 403


# ── Terms ────────────────────────────────────────────────────────────


def test_active_term_is_visible_to_every_role(client, school):
    for user in (school.admin, school.teacher.user, school.student.user, school.parent.user):
        response = client.get("/api/v1/terms/active", headers=auth_headers(user))

        assert response.status_code == 200
        assert response.json()["name"] == "Odd"
        assert response.json()["academic_year"] == "2024/2025"


def test_no_active_term(client, db, school):
    school.term.is_active = False
    db.commit()

    response = client.get("/api/v1/terms/active", headers=auth_headers(school.admin))

    assert response.status_code == 404
    assert response.json()["detail"] == "No active term"


def test_activate_term_switches_the_active_one(client, school):
    headers = auth_headers(school.admin)

    response = client.post(f"/api/v1/terms/{school.other_term.id}/activate", headers=headers)

    assert response.json()["is_active"] is True
    assert client.get("/api/v1/terms/active", headers=headers).json()["name"] == "Even"


def test_update_term(client, school):
    headers = auth_headers(school.admin)

    response = client.put(
        f"/api/v1/terms/{school.other_term.id}", json={"name": "Second", "is_active": True}, headers=headers
    )

    assert response.status_code == 200
    assert response.json()["name"] == "Second"
    terms = {term["name"]: term["is_active"] for term in client.get("/api/v1/terms", headers=headers).json()}
    assert terms == {"Odd": False, "Second": True}


def test_delete_term(client, db, school):
    add_slot(db, term=school.term, school_class=school.class_a, teacher=school.teacher, subject=school.math)
    headers = auth_headers(school.admin)

    in_use = client.delete(f"/api/v1/terms/{school.term.id}", headers=headers)
    deleted = client.delete(f"/api/v1/terms/{school.other_term.id}", headers=headers)

    assert in_use.status_code == 400
    assert in_use.json()["detail"] == "Term is still used by 1 schedule slot(s)"
    assert deleted.status_code == 204
    assert [term["name"] for term in client.get("/api/v1/terms", headers=headers).json()] == ["Odd"]


# ── Subjects ─────────────────────────────────────────────────────────


def test_update_subject(client, school):
    headers = auth_headers(school.admin)

    response = client.put(
        f"/api/v1/subjects/{school.physics.id}", json={"code": "phy-1", "passing_grade": 65}, headers=headers
    )

    assert response.status_code == 200
    assert response.json() == {"id": school.physics.id, "code": "PHY-1", "name": "Physics", "passing_grade": 65.0}


def test_subject_code_must_stay_unique(client, school):
    response = client.put(
        f"/api/v1/subjects/{school.physics.id}", json={"code": "mth"}, headers=auth_headers(school.admin)
    )

    assert response.status_code == 409


def test_delete_subject(client, db, school):
    add_slot(db, term=school.term, school_class=school.class_a, teacher=school.teacher, subject=school.math)
    headers = auth_headers(school.admin)

    in_use = client.delete(f"/api/v1/subjects/{school.math.id}", headers=headers)
    deleted = client.delete(f"/api/v1/subjects/{school.physics.id}", headers=headers)

    assert in_use.status_code == 400
    assert deleted.status_code == 204
    assert [subject["code"] for subject in client.get("/api/v1/subjects", headers=headers).json()] == ["MTH"]


# ── Classes ──────────────────────────────────────────────────────────


def test_update_class_assigns_and_clears_homeroom_teacher(client, school):
    headers = auth_headers(school.admin)

    assigned = client.put(
        f"/api/v1/classes/{school.class_b.id}",
        json={"name": "X-2B", "homeroom_teacher_id": school.teacher.id},
        headers=headers,
    )
    renamed = client.put(f"/api/v1/classes/{school.class_b.id}", json={"grade_level": "XI"}, headers=headers)
    cleared = client.put(f"/api/v1/classes/{school.class_b.id}", json={"homeroom_teacher_id": None}, headers=headers)

    assert assigned.json()["name"] == "X-2B"
    assert assigned.json()["homeroom_teacher_id"] == school.teacher.id
    assert renamed.json()["homeroom_teacher_id"] == school.teacher.id
    assert renamed.json()["grade_level"] == "XI"
    assert cleared.json()["homeroom_teacher_id"] is None


def test_update_class_with_unknown_teacher(client, school):
    response = client.put(
        f"/api/v1/classes/{school.class_b.id}", json={"homeroom_teacher_id": 999}, headers=auth_headers(school.admin)
    )

    assert response.status_code == 400


def test_delete_class(client, school):
    headers = auth_headers(school.admin)

    in_use = client.delete(f"/api/v1/classes/{school.class_a.id}", headers=headers)
    deleted = client.delete(f"/api/v1/classes/{school.class_b.id}", headers=headers)

    assert in_use.status_code == 400
    assert in_use.json()["detail"] == "Class is still used by 1 student(s)"
    assert deleted.status_code == 204
    assert client.get(f"/api/v1/classes/{school.class_b.id}", headers=headers).status_code == 404
