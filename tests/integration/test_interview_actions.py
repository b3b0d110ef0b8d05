"""Integration tests for interview scheduling, rescheduling and completion."""

import pytest

from recruit_api.models import Interview, User


def _post(client, headers, application_id, action, **body):
    return client.post(f"/api/v1/applications/{application_id}/{action}", json=body, headers=headers)


@pytest.fixture
def reviewed_application(make_application, make_sc_assessment):
    """SC stage application with a passed specialised assessment."""
    application = make_application(stage="SPECIALIZED_COMPETENCIES")
    make_sc_assessment(application, passed=True)
    return application


@pytest.fixture
def second_interviewer(db_session):
    user = User(
        email="second@example.org",
        name="Sasha Second",
        has_access=True,
        scheduling_link="https://cal.example.org/sasha",
    )
    db_session.add(user)
    db_session.commit()
    return user


class TestScheduleInterview:
    def test_schedule_advances_to_interview(
        self, client, staff_headers, reviewed_application, interviewer, ses_sender,
    ):
        response = _post(
            client, staff_headers, reviewed_application.id, "schedule-interview",
            interviewerId=interviewer.id,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["currentStage"] == "INTERVIEW"
        assert body["interview"]["outcome"] == "PENDING"
        assert body["interview"]["schedulingLink"] == "https://cal.example.org/ian"
        assert body["email"]["success"] is True
        assert "Ian Interviewer" in ses_sender.sent[0]["html"]

    def test_requires_passed_assessment(self, client, staff_headers, make_application, make_sc_assessment, interviewer):
        application = make_application(stage="SPECIALIZED_COMPETENCIES")
        make_sc_assessment(application, passed=None)

        response = _post(client, staff_headers, application.id, "schedule-interview", interviewerId=interviewer.id)

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "INVALID_TRANSITION"
        assert error["details"]["condition"] == "assessment"

    def test_interviewer_without_scheduling_link(self, client, staff_headers, reviewed_application, staff_user):
        response = _post(
            client, staff_headers, reviewed_application.id, "schedule-interview",
            interviewerId=staff_user.id,
        )

        assert response.status_code == 400
        assert "scheduling link" in response.json()["error"]["message"]

    def test_unknown_interviewer(self, client, staff_headers, reviewed_application):
        response = _post(
            client, staff_headers, reviewed_application.id, "schedule-interview",
            interviewerId="5f6e7d8c-9b0a-4c1d-8e2f-3a4b5c6d7e8f",
        )

        assert response.status_code == 404

    def test_scheduled_at_must_be_future(self, client, staff_headers, reviewed_application, interviewer):
        response = _post(
            client, staff_headers, reviewed_application.id, "schedule-interview",
            interviewerId=interviewer.id, scheduledAt="2020-01-01T09:00:00Z",
        )

        assert response.status_code == 422
        assert response.json()["error"]["details"]["field"] == "scheduledAt"

    def test_without_email(self, client, staff_headers, reviewed_application, interviewer, ses_sender):
        response = _post(
            client, staff_headers, reviewed_application.id, "schedule-interview",
            interviewerId=interviewer.id, sendEmail=False,
        )

        assert response.json()["email"] is None
        assert response.json()["interview"]["emailSentAt"] is None
        assert ses_sender.sent == []

    def test_rejected_application(self, client, staff_headers, make_application, interviewer):
        application = make_application(stage="INTERVIEW", status="REJECTED")

        response = _post(client, staff_headers, application.id, "schedule-interview", interviewerId=interviewer.id)

        assert response.status_code == 400

    def test_unknown_fields_rejected(self, client, staff_headers, reviewed_application, interviewer):
        response = _post(
            client, staff_headers, reviewed_application.id, "schedule-interview",
            interviewerId=interviewer.id, room="B12",
        )

        assert response.status_code == 422


class TestRescheduleInterview:
    def test_same_interviewer_updates_in_place(
        self, client, staff_headers, reviewed_application, interviewer, db_session,
    ):
        first = _post(client, staff_headers, reviewed_application.id, "schedule-interview", interviewerId=interviewer.id)

        response = _post(
            client, staff_headers, reviewed_application.id, "reschedule-interview",
            interviewerId=interviewer.id, scheduledAt="2030-05-01T15:00:00Z",
        )

        assert response.status_code == 200
        assert response.json()["interview"]["id"] == first.json()["interview"]["id"]
        assert db_session.query(Interview).count() == 1

    def test_new_interviewer_opens_new_interview(
        self, client, staff_headers, reviewed_application, interviewer, second_interviewer, db_session,
    ):
        first = _post(client, staff_headers, reviewed_application.id, "schedule-interview", interviewerId=interviewer.id)
        first_id = first.json()["interview"]["id"]

        response = _post(
            client, staff_headers, reviewed_application.id, "reschedule-interview",
            interviewerId=second_interviewer.id, resendEmail=False,
        )

        body = response.json()
        assert body["interview"]["id"] != first_id
        assert body["interview"]["interviewerId"] == second_interviewer.id
        old = db_session.query(Interview).filter(Interview.id == first_id).one()
        assert old.outcome == "RESCHEDULED"

    def test_nothing_to_reschedule(self, client, staff_headers, make_application, interviewer):
        application = make_application(stage="INTERVIEW")

        response = _post(client, staff_headers, application.id, "reschedule-interview", interviewerId=interviewer.id)

        assert response.status_code == 404


class TestCompleteInterview:
    def test_complete_records_notes(self, client, staff_headers, reviewed_application, interviewer):
        _post(client, staff_headers, reviewed_application.id, "schedule-interview", interviewerId=interviewer.id)

        response = _post(client, staff_headers, reviewed_application.id, "complete-interview", notes="Clear communicator")

        assert response.status_code == 200
        body = response.json()
        assert body["interview"]["notes"] == "Clear communicator"
        assert body["interview"]["completedAt"] is not None
        assert body["currentStage"] == "INTERVIEW"

    def test_notes_required(self, client, staff_headers, reviewed_application, interviewer):
        _post(client, staff_headers, reviewed_application.id, "schedule-interview", interviewerId=interviewer.id)

        response = _post(client, staff_headers, reviewed_application.id, "complete-interview", notes=" \x00 ")

        assert response.status_code == 422

    def test_completed_interview_is_closed(self, client, staff_headers, reviewed_application, interviewer):
        _post(client, staff_headers, reviewed_application.id, "schedule-interview", interviewerId=interviewer.id)
        _post(client, staff_headers, reviewed_application.id, "complete-interview", notes="Done")

        response = _post(client, staff_headers, reviewed_application.id, "complete-interview", notes="Again")

        assert response.status_code == 404
