"""Integration tests for decisions, offer withdrawal and SC review."""

from recruit_api.models import Decision, EmailLog


def _decide(client, headers, application_id, **body):
    return client.post(f"/api/v1/applications/{application_id}/decision", json=body, headers=headers)


class TestDecision:
    def test_accept_moves_to_agreement_and_sends_offer(
        self, client, admin_headers, make_application, db_session, ses_sender,
    ):
        application = make_application(stage="INTERVIEW")

        response = _decide(client, admin_headers, application.id, decision="ACCEPT", reason="Strong interview")

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Application accepted - offer letter sent"
        assert body["applicationStatus"] == "ACCEPTED"
        assert body["currentStage"] == "AGREEMENT"
        assert body["decision"]["reason"] == "Strong interview"
        assert body["email"]["success"] is True
        assert "applicationId=" in ses_sender.sent[0]["html"]

    def test_accept_sends_offer_even_when_email_disabled(self, client, admin_headers, make_application, ses_sender):
        application = make_application(stage="INTERVIEW")

        _decide(client, admin_headers, application.id, decision="ACCEPT", reason="Great fit", sendEmail=False)

        assert len(ses_sender.sent) == 1

    def test_reject_keeps_stage(self, client, admin_headers, make_application, db_session, ses_sender):
        application = make_application(stage="SPECIALIZED_COMPETENCIES")

        response = _decide(
            client, admin_headers, application.id,
            decision="REJECT", reason="Assessment below bar", sendEmail=False,
        )

        body = response.json()
        assert body["applicationStatus"] == "REJECTED"
        assert body["currentStage"] == "SPECIALIZED_COMPETENCIES"
        assert body["email"] is None
        assert ses_sender.sent == []

    def test_reason_is_required(self, client, admin_headers, make_application, db_session):
        application = make_application()

        response = _decide(client, admin_headers, application.id, decision="REJECT", reason="   ")

        assert response.status_code == 422
        assert response.json()["error"]["details"]["field"] == "reason"
        db_session.refresh(application)
        assert application.status == "ACTIVE"
        assert db_session.query(Decision).count() == 0

    def test_invalid_decision(self, client, admin_headers, make_application):
        application = make_application()

        response = _decide(client, admin_headers, application.id, decision="MAYBE", reason="Unsure")

        assert response.status_code == 422

    def test_second_decision_rejected(self, client, admin_headers, make_application):
        application = make_application(stage="INTERVIEW")
        _decide(client, admin_headers, application.id, decision="REJECT", reason="No", sendEmail=False)

        response = _decide(client, admin_headers, application.id, decision="ACCEPT", reason="Changed mind")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_TRANSITION"

    def test_requires_admin(self, client, staff_headers, make_application):
        application = make_application()

        response = _decide(client, staff_headers, application.id, decision="REJECT", reason="No")

        assert response.status_code == 403

    def test_requires_session(self, client, make_application):
        application = make_application()

        response = client.post(
            f"/api/v1/applications/{application.id}/decision",
            json={"decision": "REJECT", "reason": "No"},
        )

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHORIZED"

    def test_malformed_id(self, client, admin_headers):
        response = _decide(client, admin_headers, "abc", decision="REJECT", reason="No")

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Invalid application ID format"

    def test_unknown_application(self, client, admin_headers):
        response = _decide(
            client, admin_headers, "8b1e4c55-2f0a-4b1d-9c3e-6a7f8e9d0c1b",
            decision="REJECT", reason="No",
        )

        assert response.status_code == 404


class TestWithdrawOffer:
    def test_withdraw_after_accept(self, client, admin_headers, make_application, db_session):
        application = make_application(stage="INTERVIEW")
        _decide(client, admin_headers, application.id, decision="ACCEPT", reason="Good")

        response = client.post(
            f"/api/v1/applications/{application.id}/withdraw-offer",
            json={"reason": "Funding cut", "sendEmail": True},
            headers=admin_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["applicationStatus"] == "REJECTED"
        assert body["currentStage"] == "AGREEMENT"
        decisions = db_session.query(Decision).filter(Decision.application_id == application.id).all()
        assert sorted(d.decision for d in decisions) == ["ACCEPT", "REJECT"]
        templates = [log.template_name for log in db_session.query(EmailLog).all()]
        assert "decision/rejection" in templates

    def test_withdraw_requires_reason(self, client, admin_headers, make_application, db_session):
        application = make_application(stage="INTERVIEW")
        _decide(client, admin_headers, application.id, decision="ACCEPT", reason="Good")

        response = client.post(
            f"/api/v1/applications/{application.id}/withdraw-offer",
            json={"reason": " \t "},
            headers=admin_headers,
        )

        assert response.status_code == 422
        assert response.json()["error"]["details"]["field"] == "reason"
        db_session.refresh(application)
        assert application.status == "ACCEPTED"
        assert db_session.query(Decision).filter(Decision.application_id == application.id).count() == 1

    def test_withdraw_without_offer(self, client, admin_headers, make_application):
        application = make_application(stage="INTERVIEW")

        response = client.post(
            f"/api/v1/applications/{application.id}/withdraw-offer",
            json={"reason": "Funding cut"},
            headers=admin_headers,
        )

        assert response.status_code == 400

    def test_signed_agreement_cannot_be_withdrawn(self, client, admin_headers, make_application):
        application = make_application(stage="SIGNED", status="ACCEPTED")

        response = client.post(
            f"/api/v1/applications/{application.id}/withdraw-offer",
            json={"reason": "Too late"},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"]["details"]["condition"] == "stage"


class TestReviewSC:
    def test_mark_passed(self, client, admin_headers, make_application, make_sc_assessment, db_session):
        application = make_application(stage="SPECIALIZED_COMPETENCIES")
        assessment = make_sc_assessment(application)

        response = client.post(
            f"/api/v1/applications/{application.id}/review-sc",
            json={"assessmentId": assessment.id, "passed": True},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["assessment"]["passed"] is True
        db_session.refresh(assessment)
        assert assessment.reviewed_at is not None
        assert application.current_stage == "SPECIALIZED_COMPETENCIES"

    def test_not_completed(self, client, admin_headers, make_application, make_sc_assessment):
        application = make_application(stage="SPECIALIZED_COMPETENCIES")
        assessment = make_sc_assessment(application, completed=False)

        response = client.post(
            f"/api/v1/applications/{application.id}/review-sc",
            json={"assessmentId": assessment.id, "passed": True},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Assessment has not been completed by the candidate yet"

    def test_assessment_of_another_application(self, client, admin_headers, make_application, make_sc_assessment):
        application = make_application(stage="SPECIALIZED_COMPETENCIES")
        other = make_application(stage="SPECIALIZED_COMPETENCIES")
        assessment = make_sc_assessment(other)

        response = client.post(
            f"/api/v1/applications/{application.id}/review-sc",
            json={"assessmentId": assessment.id, "passed": False},
            headers=admin_headers,
        )

        assert response.status_code == 404
