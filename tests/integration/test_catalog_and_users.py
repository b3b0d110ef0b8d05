"""Integration tests for the competency catalog, staff users, health and email retry."""

from recruit_api.models import Assessment, EmailLog, SpecialisedCompetency


class TestCompetencies:
    def test_create(self, client, admin_headers):
        response = client.post(
            "/api/v1/competencies",
            json={
                "name": "Video Editing",
                "category": "Creative",
                "tallyFormUrl": "https://tally.so/r/video",
                "criterion": "Cut a 60 second reel",
            },
            headers=admin_headers,
        )

        assert response.status_code == 201
        body = response.json()
        assert body["isActive"] is True
        assert body["tallyFormUrl"] == "https://tally.so/r/video"

    def test_create_requires_admin(self, client, staff_headers):
        response = client.post(
            "/api/v1/competencies",
            json={"name": "X", "category": "Creative", "tallyFormUrl": "https://tally.so/r/x"},
            headers=staff_headers,
        )

        assert response.status_code == 403

    def test_invalid_category(self, client, admin_headers):
        response = client.post(
            "/api/v1/competencies",
            json={"name": "X", "category": "Cooking", "tallyFormUrl": "https://tally.so/r/x"},
            headers=admin_headers,
        )

        assert response.status_code == 422
        assert response.json()["error"]["details"]["field"] == "category"

    def test_inactive_hidden_from_staff(self, client, admin_headers, staff_headers, make_competency):
        make_competency(name="Active One")
        make_competency(name="Retired", is_active=False)

        staff_view = client.get("/api/v1/competencies", headers=staff_headers).json()
        admin_view = client.get("/api/v1/competencies", headers=admin_headers).json()

        assert [c["name"] for c in staff_view["data"]] == ["Active One"]
        assert len(admin_view["data"]) == 2
        assert "Technical" in admin_view["categories"]

    def test_update(self, client, admin_headers, make_competency):
        competency = make_competency()

        response = client.patch(
            f"/api/v1/competencies/{competency.id}",
            json={"name": "Python Backend"},
            headers=admin_headers,
        )

        assert response.json()["name"] == "Python Backend"

    def test_deactivate_and_reactivate(self, client, admin_headers, make_competency, db_session):
        competency = make_competency()

        deactivated = client.delete(f"/api/v1/competencies/{competency.id}", headers=admin_headers)
        again = client.delete(f"/api/v1/competencies/{competency.id}", headers=admin_headers)
        reactivated = client.post(f"/api/v1/competencies/{competency.id}/reactivate", headers=admin_headers)

        assert deactivated.json()["message"] == "Competency deactivated"
        assert again.status_code == 400
        assert reactivated.json()["isActive"] is True

    def test_force_delete_unlinks_assessments(
        self, client, admin_headers, make_competency, make_application, make_sc_assessment, db_session,
    ):
        competency = make_competency()
        assessment = make_sc_assessment(make_application(stage="SPECIALIZED_COMPETENCIES"), competency=competency)

        response = client.delete(f"/api/v1/competencies/{competency.id}?force=true", headers=admin_headers)

        assert response.json()["message"] == "Competency deleted"
        db_session.expire_all()
        assert db_session.query(SpecialisedCompetency).count() == 0
        assert db_session.get(Assessment, assessment.id).specialised_competency_id is None

    def test_malformed_and_unknown_ids(self, client, staff_headers):
        malformed = client.get("/api/v1/competencies/nope", headers=staff_headers)
        unknown = client.get("/api/v1/competencies/7a6b5c4d-3e2f-4a1b-9c8d-7e6f5a4b3c2d", headers=staff_headers)

        assert malformed.status_code == 400
        assert unknown.status_code == 404


class TestUsers:
    def test_create_and_list(self, client, admin_headers):
        created = client.post(
            "/api/v1/users",
            json={"email": "New.Interviewer@Example.org", "name": "Nia", "schedulingLink": "https://cal.example.org/nia"},
            headers=admin_headers,
        )
        listing = client.get("/api/v1/users?search=nia", headers=admin_headers).json()

        assert created.status_code == 201
        assert created.json()["email"] == "new.interviewer@example.org"
        assert listing["total"] == 1
        assert listing["stats"]["admins"] == 1

    def test_duplicate_email(self, client, admin_headers, admin_user):
        response = client.post("/api/v1/users", json={"email": admin_user.email}, headers=admin_headers)

        assert response.status_code == 400

    def test_invalid_scheduling_link(self, client, admin_headers, staff_user):
        response = client.patch(
            f"/api/v1/users/{staff_user.id}",
            json={"schedulingLink": "calendar please"},
            headers=admin_headers,
        )

        assert response.status_code == 422

    def test_grant_access(self, client, admin_headers, no_access_headers, db_session):
        users = client.get("/api/v1/users?isAdmin=false", headers=admin_headers).json()["data"]
        viewer = next(u for u in users if u["email"] == "viewer@example.org")

        response = client.patch(f"/api/v1/users/{viewer['id']}", json={"hasAccess": True}, headers=admin_headers)

        assert response.json()["hasAccess"] is True

    def test_empty_update(self, client, admin_headers, staff_user):
        response = client.patch(f"/api/v1/users/{staff_user.id}", json={}, headers=admin_headers)

        assert response.status_code == 400

    def test_unknown_user(self, client, admin_headers):
        response = client.get("/api/v1/users/2b3c4d5e-6f70-4182-93a4-b5c6d7e8f901", headers=admin_headers)

        assert response.status_code == 404

    def test_staff_cannot_manage_users(self, client, staff_headers):
        response = client.get("/api/v1/users", headers=staff_headers)

        assert response.status_code == 403


class TestHealth:
    def test_root_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_detailed_health(self, client):
        body = client.get("/api/v1/health").json()

        assert body["status"] == "healthy"
        assert body["database"] == "connected"


class TestEmailRetry:
    def test_retry_failed(self, client, admin_headers, make_application, email_service, ses_sender, db_session):
        application = make_application()
        ses_sender.fail = True
        email_service.send_rejection(application.person, application, "Closed")
        ses_sender.fail = False

        response = client.post("/api/v1/emails/retry-failed", headers=admin_headers)

        assert response.json() == {"retried": 1, "sent": 1, "failed": 0, "queued": 0}
        assert db_session.query(EmailLog).one().status == "SENT"

    def test_requires_admin(self, client, staff_headers):
        response = client.post("/api/v1/emails/retry-failed", headers=staff_headers)

        assert response.status_code == 403
