"""Tests for stage ordering, status moves and transition guards."""

from types import SimpleNamespace

import pytest

from recruit_api.middleware.error_handler import TransitionError, ValidationAPIError
from recruit_api.services.pipeline import (
    DECIDE,
    SEND_EMAIL,
    SOFT_DELETE,
    WITHDRAW_OFFER,
    Stage,
    advance_stage,
    calc_missing_fields,
    can_advance_to_stage,
    gc_fanout_targets,
    get_next_stage,
    set_status,
)


def _app(stage="APPLICATION", status="ACTIVE", **kwargs):
    fields = {
        "current_stage": stage,
        "status": status,
        "has_resume": False,
        "has_academic_bg": False,
        "has_video_intro": False,
        "has_previous_exp": False,
        "has_other_file": False,
        "resume_url": None,
        "academic_background": None,
        "video_link": None,
        "previous_experience": None,
        "other_file_url": None,
    }
    fields.update(kwargs)
    return SimpleNamespace(**fields)


class TestStageOrder:
    def test_next_stage(self):
        assert get_next_stage("APPLICATION") == Stage.GENERAL_COMPETENCIES
        assert get_next_stage("AGREEMENT") == Stage.SIGNED
        assert get_next_stage("SIGNED") is None

    def test_unknown_stage_is_a_validation_error(self):
        with pytest.raises(ValidationAPIError):
            get_next_stage("ONBOARDING")


class TestAdvanceStage:
    def test_forward_move_returns_previous(self):
        application = _app("APPLICATION")
        assert advance_stage(application, "SPECIALIZED_COMPETENCIES") == "APPLICATION"
        assert application.current_stage == "SPECIALIZED_COMPETENCIES"

    def test_same_stage_is_noop(self):
        application = _app("INTERVIEW")
        assert advance_stage(application, "INTERVIEW") is None

    def test_backward_move_rejected(self):
        application = _app("INTERVIEW")
        with pytest.raises(TransitionError) as exc_info:
            advance_stage(application, "APPLICATION")
        assert exc_info.value.code == "INVALID_TRANSITION"
        assert application.current_stage == "INTERVIEW"

    def test_override_allows_backward(self):
        application = _app("INTERVIEW")
        assert advance_stage(application, "APPLICATION", override=True) == "INTERVIEW"


class TestSetStatus:
    def test_active_to_rejected(self):
        application = _app(status="ACTIVE")
        assert set_status(application, "REJECTED") == "ACTIVE"

    def test_withdrawn_is_terminal(self):
        with pytest.raises(TransitionError):
            set_status(_app(status="WITHDRAWN"), "ACTIVE")

    def test_rejected_cannot_reactivate_without_override(self):
        application = _app(status="REJECTED")
        with pytest.raises(TransitionError):
            set_status(application, "ACTIVE")
        assert set_status(application, "ACTIVE", override=True) == "REJECTED"

    def test_invalid_status(self):
        with pytest.raises(ValidationAPIError):
            set_status(_app(), "ARCHIVED")


class TestPreconditions:
    def test_decide_requires_active(self):
        with pytest.raises(TransitionError, match="status is REJECTED"):
            DECIDE.check(_app(status="REJECTED"))

    def test_decide_refuses_second_decision(self):
        with pytest.raises(TransitionError) as exc_info:
            DECIDE.check(_app(), has_decision=True)
        assert exc_info.value.condition == "decision"

    def test_withdraw_offer_needs_agreement_stage(self):
        WITHDRAW_OFFER.check(_app("AGREEMENT", "ACCEPTED"))
        with pytest.raises(TransitionError) as exc_info:
            WITHDRAW_OFFER.check(_app("SIGNED", "ACCEPTED"))
        assert exc_info.value.condition == "stage"

    def test_send_email_allows_accepted(self):
        SEND_EMAIL.check(_app(status="ACCEPTED"))
        with pytest.raises(TransitionError):
            SEND_EMAIL.check(_app(status="WITHDRAWN"))

    def test_soft_delete_twice(self):
        with pytest.raises(TransitionError, match="already WITHDRAWN"):
            SOFT_DELETE.check(_app(status="WITHDRAWN"))


class TestHelpers:
    def test_can_advance_only_when_active(self):
        assert can_advance_to_stage(_app("APPLICATION"), "INTERVIEW")
        assert not can_advance_to_stage(_app("APPLICATION", "REJECTED"), "INTERVIEW")
        assert not can_advance_to_stage(_app("INTERVIEW"), "APPLICATION")

    def test_gc_fanout_targets(self):
        early = _app("APPLICATION")
        gc = _app("GENERAL_COMPETENCIES")
        later = _app("INTERVIEW")
        rejected = _app("APPLICATION", "REJECTED")
        assert gc_fanout_targets([early, gc, later, rejected]) == [early, gc]

    def test_missing_fields(self):
        application = _app(has_resume=True, has_video_intro=True, video_link="https://v.example/1")
        assert calc_missing_fields(application) == ["Resume"]
