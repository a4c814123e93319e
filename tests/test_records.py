"""Attendance, grades and report cards."""

import pytest

from backend.school_module.records import compute_final_score, letter_for

from tests.conftest import add_slot, auth_headers


@pytest.fixture()
def slot(db, school):
    return add_slot(db, term=school.term, school_class=school.class_a, teacher=school.teacher, subject=school.math)


def _grade_payload(school, **overrides):
    payload = {
        "student_id": school.student.id,
        "subject_id": school.math.id,
        "term_id": school.term.id,
        "daily_score": 80,
        "midterm_score": 70,
        "final_exam_score": 90,
    }
    payload.update(overrides)
    return payload


def test_final_score_is_weighted():
    assert compute_final_score(80, 70, 90) == 80.0
    assert compute_final_score(85.5, 77, 91) == 84.6


@pytest.mark.parametrize(
    "score, letter",
    [(100, "A"), (90, "A"), (89.99, "B"), (80, "B"), (70, "C"), (60, "D"), (59.9, "E"), (0, "E")],
)
def test_letter_thresholds(score, letter):
    assert letter_for(score) == letter


# ── Grades ───────────────────────────────────────────────────────────


def test_teacher_records_a_grade(client, school):
    response = client.post("/api/v1/grades", json=_grade_payload(school), headers=auth_headers(school.teacher.user))

    assert response.status_code == 201
    body = response.json()
    assert body["final_score"] == 80.0
    assert body["letter"] == "B"
    assert body["passed"] is True


def test_duplicate_grade_is_rejected(client, school):
    headers = auth_headers(school.teacher.user)
    client.post("/api/v1/grades", json=_grade_payload(school), headers=headers)

    response = client.post("/api/v1/grades", json=_grade_payload(school, daily_score=50), headers=headers)

    assert response.status_code == 409


def test_out_of_range_score_is_rejected(client, school):
    response = client.post(
        "/api/v1/grades", json=_grade_payload(school, midterm_score=101), headers=auth_headers(school.teacher.user)
    )

    assert response.status_code == 422


def test_updating_a_grade_recomputes_final_score(client, school):
    headers = auth_headers(school.teacher.user)
    grade_id = client.post("/api/v1/grades", json=_grade_payload(school), headers=headers).json()["id"]

    response = client.patch(f"/api/v1/grades/{grade_id}", json={"final_exam_score": 40}, headers=headers)

    assert response.status_code == 200
    assert response.json()["final_score"] == 65.0
    assert response.json()["letter"] == "D"
    assert response.json()["passed"] is False


def test_only_admin_deletes_grades(client, school):
    grade_id = client.post(
        "/api/v1/grades", json=_grade_payload(school), headers=auth_headers(school.teacher.user)
    ).json()["id"]

    forbidden = client.delete(f"/api/v1/grades/{grade_id}", headers=auth_headers(school.teacher.user))
    deleted = client.delete(f"/api/v1/grades/{grade_id}", headers=auth_headers(school.admin))

    assert forbidden.status_code == 403
    assert deleted.status_code == 204


def test_grade_summary_for_student_and_parent(client, school):
    headers = auth_headers(school.teacher.user)
    client.post("/api/v1/grades", json=_grade_payload(school), headers=headers)
    client.post(
        "/api/v1/grades",
        json=_grade_payload(school, subject_id=school.physics.id, daily_score=100, midterm_score=90, final_exam_score=95),
        headers=headers,
    )
    params = {"student_id": school.student.id, "term_id": school.term.id}

    as_student = client.get("/api/v1/grades/summary", params=params, headers=auth_headers(school.student.user))
    as_parent = client.get("/api/v1/grades/summary", params=params, headers=auth_headers(school.parent.user))

    assert as_student.status_code == 200
    assert as_student.json()["average_score"] == 87.75
    assert as_student.json()["letter"] == "B"
    assert as_parent.json() == as_student.json()


def test_student_cannot_view_another_student(client, db, school):
    from backend.school_module import services

    other = services.create_student(
        db,
        name="Bima",
        email="bima@school.test",
        raw_password="Student123",
        student_number="S-002",
        class_id=school.class_b.id,
    )

    response = client.get(
        "/api/v1/grades/summary",
        params={"student_id": other.id, "term_id": school.term.id},
        headers=auth_headers(school.student.user),
    )

    assert response.status_code == 403


# ── Attendance ───────────────────────────────────────────────────────


def test_record_attendance_and_reject_duplicates(client, school, slot):
    payload = {
        "slot_id": slot.id,
        "student_id": school.student.id,
        "attended_on": "2024-08-05",
        "status": "present",
    }
    headers = auth_headers(school.teacher.user)

    first = client.post("/api/v1/attendance", json=payload, headers=headers)
    second = client.post("/api/v1/attendance", json=payload, headers=headers)

    assert first.status_code == 201
    assert first.json()["attended_on"] == "2024-08-05"
    assert second.status_code == 409


def test_attendance_for_unknown_slot_is_a_bad_request(client, school):
    response = client.post(
        "/api/v1/attendance",
        json={"slot_id": 999, "student_id": school.student.id, "attended_on": "2024-08-05", "status": "present"},
        headers=auth_headers(school.teacher.user),
    )

    assert response.status_code == 400


def test_bulk_attendance_skips_existing_records(client, school, slot):
    headers = auth_headers(school.teacher.user)
    client.post(
        "/api/v1/attendance",
        json={"slot_id": slot.id, "student_id": school.student.id, "attended_on": "2024-08-05", "status": "sick"},
        headers=headers,
    )

    response = client.post(
        "/api/v1/attendance/bulk",
        json={
            "slot_id": slot.id,
            "attended_on": "2024-08-05",
            "entries": [{"student_id": school.student.id, "status": "present"}],
        },
        headers=headers,
    )

    assert response.status_code == 201
    assert response.json() == {"created": [], "skipped_student_ids": [school.student.id]}


def test_attendance_recap_counts_statuses(client, school, slot):
    headers = auth_headers(school.teacher.user)
    for day, status in (("2024-08-05", "present"), ("2024-08-12", "present"), ("2024-08-19", "sick"),
                        ("2024-08-26", "absent")):
        client.post(
            "/api/v1/attendance",
            json={"slot_id": slot.id, "student_id": school.student.id, "attended_on": day, "status": status},
            headers=headers,
        )

    response = client.get(
        "/api/v1/attendance/recap",
        params={"student_id": school.student.id, "term_id": school.term.id},
        headers=auth_headers(school.parent.user),
    )

    assert response.status_code == 200
    body = response.json()
    assert (body["present"], body["sick"], body["absent"], body["total"]) == (2, 1, 1, 4)
    assert body["presence_percentage"] == 50.0


def test_recap_is_scoped_to_the_term(client, school, slot):
    client.post(
        "/api/v1/attendance",
        json={"slot_id": slot.id, "student_id": school.student.id, "attended_on": "2024-08-05", "status": "present"},
        headers=auth_headers(school.teacher.user),
    )

    response = client.get(
        "/api/v1/attendance/recap",
        params={"student_id": school.student.id, "term_id": school.other_term.id},
        headers=auth_headers(school.admin),
    )

    assert response.json()["total"] == 0
    assert response.json()["presence_percentage"] == 0.0


# ── Report cards ─────────────────────────────────────────────────────


def test_report_card_requires_grades(client, school):
    response = client.post(
        "/api/v1/report-cards",
        json={"student_id": school.student.id, "term_id": school.term.id},
        headers=auth_headers(school.homeroom.user),
    )

    assert response.status_code == 400


def test_homeroom_teacher_generates_report_card(client, school, slot):
    client.post("/api/v1/grades", json=_grade_payload(school), headers=auth_headers(school.teacher.user))
    client.post(
        "/api/v1/attendance",
        json={"slot_id": slot.id, "student_id": school.student.id, "attended_on": "2024-08-05", "status": "present"},
        headers=auth_headers(school.teacher.user),
    )

    response = client.post(
        "/api/v1/report-cards",
        json={"student_id": school.student.id, "term_id": school.term.id},
        headers=auth_headers(school.homeroom.user),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["term_name"] == "Odd 2024/2025"
    assert body["class_name"] == "X-1"
    assert body["status"] == "published"
    assert body["average_score"] == 80.0
    assert body["attendance"]["present"] == 1

    fetched = client.get(f"/api/v1/report-cards/{body['id']}", headers=auth_headers(school.student.user))
    assert fetched.status_code == 200
    assert fetched.json()["letter"] == "B"


def test_plain_teacher_cannot_generate_report_card(client, school):
    response = client.post(
        "/api/v1/report-cards",
        json={"student_id": school.student.id, "term_id": school.term.id},
        headers=auth_headers(school.teacher.user),
    )

    assert response.status_code == 403


def test_report_card_follows_later_grade_changes(client, school):
    headers = auth_headers(school.teacher.user)
    grade_id = client.post("/api/v1/grades", json=_grade_payload(school), headers=headers).json()["id"]
    card_id = client.post(
        "/api/v1/report-cards",
        json={"student_id": school.student.id, "term_id": school.term.id},
        headers=auth_headers(school.homeroom.user),
    ).json()["id"]

    client.patch(f"/api/v1/grades/{grade_id}", json={"final_exam_score": 40}, headers=headers)
    body = client.get(f"/api/v1/report-cards/{card_id}", headers=auth_headers(school.admin)).json()

    assert [grade["final_score"] for grade in body["grades"]] == [65.0]
    assert body["average_score"] == 65.0
    assert body["letter"] == "D"


def test_only_admin_deletes_report_cards(client, school):
    client.post("/api/v1/grades", json=_grade_payload(school), headers=auth_headers(school.teacher.user))
    card_id = client.post(
        "/api/v1/report-cards",
        json={"student_id": school.student.id, "term_id": school.term.id},
        headers=auth_headers(school.homeroom.user),
    ).json()["id"]

    forbidden = client.delete(f"/api/v1/report-cards/{card_id}", headers=auth_headers(school.homeroom.user))
    deleted = client.delete(f"/api/v1/report-cards/{card_id}", headers=auth_headers(school.admin))
    missing = client.get(f"/api/v1/report-cards/{card_id}", headers=auth_headers(school.admin))

    assert forbidden.status_code == 403
    assert deleted.status_code == 204
    assert missing.status_code == 404


# ── Attendance changes and class recap ───────────────────────────────


def _mark(client, school, slot, *, day="2024-08-05", status="present", student=None):
    student = student or school.student
    return client.post(
        "/api/v1/attendance",
        json={"slot_id": slot.id, "student_id": student.id, "attended_on": day, "status": status},
        headers=auth_headers(school.teacher.user),
    ).json()


def test_teacher_corrects_attendance(client, school, slot):
    record = _mark(client, school, slot)

    response = client.patch(
        f"/api/v1/attendance/{record['id']}",
        json={"status": "sick", "note": "Fever"},
        headers=auth_headers(school.teacher.user),
    )

    assert response.status_code == 200
    assert response.json()["status"] == "sick"
    assert response.json()["note"] == "Fever"
    assert response.json()["attended_on"] == "2024-08-05"


def test_attendance_note_only_update_keeps_status(client, school, slot):
    record = _mark(client, school, slot, status="excused")

    response = client.patch(
        f"/api/v1/attendance/{record['id']}", json={"note": "Family event"}, headers=auth_headers(school.admin)
    )

    assert response.json()["status"] == "excused"
    assert response.json()["note"] == "Family event"


def test_delete_attendance(client, school, slot):
    record = _mark(client, school, slot)
    headers = auth_headers(school.teacher.user)

    forbidden = client.delete(f"/api/v1/attendance/{record['id']}", headers=auth_headers(school.principal))
    deleted = client.delete(f"/api/v1/attendance/{record['id']}", headers=headers)
    again = client.delete(f"/api/v1/attendance/{record['id']}", headers=headers)

    assert forbidden.status_code == 403
    assert deleted.status_code == 204
    assert again.status_code == 404
    recap = client.get(
        "/api/v1/attendance/recap",
        params={"student_id": school.student.id, "term_id": school.term.id},
        headers=headers,
    )
    assert recap.json()["total"] == 0


def test_class_attendance_recap(client, db, school, slot):
    from backend.school_module import services

    classmate = services.create_student(
        db,
        name="Bima",
        email="bima@school.test",
        raw_password="Student123",
        student_number="S-002",
        class_id=school.class_a.id,
    )
    _mark(client, school, slot, day="2024-08-05", status="present")
    _mark(client, school, slot, day="2024-08-12", status="absent")
    _mark(client, school, slot, day="2024-08-05", status="sick", student=classmate)

    response = client.get(
        f"/api/v1/attendance/recap/classes/{school.class_a.id}",
        params={"term_id": school.term.id},
        headers=auth_headers(school.homeroom.user),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["class_name"] == "X-1"
    rows = {row["student_name"]: row for row in body["students"]}
    assert list(rows) == ["Andi", "Bima"]
    assert (rows["Andi"]["present"], rows["Andi"]["absent"], rows["Andi"]["total"]) == (1, 1, 2)
    assert rows["Andi"]["presence_percentage"] == 50.0
    assert (rows["Bima"]["sick"], rows["Bima"]["total"]) == (1, 1)


def test_class_recap_lists_students_without_records(client, school):
    response = client.get(
        f"/api/v1/attendance/recap/classes/{school.class_a.id}",
        params={"term_id": school.term.id},
        headers=auth_headers(school.admin),
    )

    assert [(row["student_name"], row["total"]) for row in response.json()["students"]] == [("Andi", 0)]


def test_class_recap_is_staff_only_and_checks_ids(client, school):
    params = {"term_id": school.term.id}

    as_student = client.get(
        f"/api/v1/attendance/recap/classes/{school.class_a.id}", params=params, headers=auth_headers(school.student.user)
    )
    unknown_class = client.get("/api/v1/attendance/recap/classes/999", params=params, headers=auth_headers(school.admin))
    unknown_term = client.get(
        f"/api/v1/attendance/recap/classes/{school.class_a.id}", params={"term_id": 999}, headers=auth_headers(school.admin)
    )

    assert as_student.status_code == 403
    assert unknown_class.status_code == 404
    assert unknown_term.status_code == 404


# ── Student self-service ─────────────────────────────────────────────


def test_student_reads_own_attendance(client, school, slot):
    _mark(client, school, slot)

    response = client.get(
        "/api/v1/attendance/mine", params={"term_id": school.term.id}, headers=auth_headers(school.student.user)
    )

    assert response.status_code == 200
    assert response.json()["student_id"] == school.student.id
    assert response.json()["student_name"] == "Andi"
    assert response.json()["present"] == 1


def test_student_reads_own_grades(client, school):
    client.post("/api/v1/grades", json=_grade_payload(school), headers=auth_headers(school.teacher.user))

    response = client.get(
        "/api/v1/grades/mine", params={"term_id": school.term.id}, headers=auth_headers(school.student.user)
    )

    assert response.status_code == 200
    assert response.json()["average_score"] == 80.0
    assert [grade["subject_name"] for grade in response.json()["grades"]] == ["Mathematics"]


def test_student_reads_own_report_cards(client, school):
    client.post("/api/v1/grades", json=_grade_payload(school), headers=auth_headers(school.teacher.user))
    client.post(
        "/api/v1/report-cards",
        json={"student_id": school.student.id, "term_id": school.term.id},
        headers=auth_headers(school.homeroom.user),
    )
    headers = auth_headers(school.student.user)

    everything = client.get("/api/v1/report-cards/mine", headers=headers)
    other_term = client.get("/api/v1/report-cards/mine", params={"term_id": school.other_term.id}, headers=headers)

    assert everything.status_code == 200
    assert [card["term_name"] for card in everything.json()] == ["Odd 2024/2025"]
    assert other_term.json() == []


@pytest.mark.parametrize(
    "path", ["/api/v1/attendance/mine", "/api/v1/grades/mine", "/api/v1/report-cards/mine"]
)
def test_self_service_views_are_for_students(client, school, path):
    response = client.get(path, params={"term_id": school.term.id}, headers=auth_headers(school.parent.user))

    assert response.status_code == 403
