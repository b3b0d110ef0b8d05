"""Application pipeline state machine.

Six ordered stages with a status flag orthogonal to stage. Services load
the application, check a declared Precondition, then call advance_stage or
set_status. Both mutate the model only and leave committing and audit
entries to the caller.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from recruit_api.config.recruitment import STAGES
from recruit_api.middleware.error_handler import TransitionError, ValidationAPIError


class Stage(str, Enum):
    APPLICATION = "APPLICATION"
    GENERAL_COMPETENCIES = "GENERAL_COMPETENCIES"
    SPECIALIZED_COMPETENCIES = "SPECIALIZED_COMPETENCIES"
    INTERVIEW = "INTERVIEW"
    AGREEMENT = "AGREEMENT"
    SIGNED = "SIGNED"

    @property
    def order(self) -> int:
        return STAGE_ORDER[self.value]


class Status(str, Enum):
    ACTIVE = "ACTIVE"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    WITHDRAWN = "WITHDRAWN"


STAGE_ORDER = {stage["id"]: stage["order"] for stage in STAGES}

ORDERED_STAGES = sorted(Stage, key=lambda s: s.order)

# Stages a general competencies result fans out to
GC_FANOUT_STAGES = frozenset({Stage.APPLICATION.value, Stage.GENERAL_COMPETENCIES.value})

# Status moves allowed without an admin override. ACCEPTED -> REJECTED is
# the withdraw-offer path and the only backward move.
STATUS_TRANSITIONS = {
    Status.ACTIVE.value: {Status.ACCEPTED.value, Status.REJECTED.value, Status.WITHDRAWN.value},
    Status.ACCEPTED.value: {Status.REJECTED.value, Status.WITHDRAWN.value},
    Status.REJECTED.value: {Status.WITHDRAWN.value},
    Status.WITHDRAWN.value: set(),
}


def parse_stage(value: str) -> Stage:
    try:
        return Stage(value)
    except ValueError:
        raise ValidationAPIError(
            f"Invalid stage: {value}. Allowed: {', '.join(s.value for s in ORDERED_STAGES)}",
            field="currentStage",
        )


def parse_status(value: str) -> Status:
    try:
        return Status(value)
    except ValueError:
        raise ValidationAPIError(
            f"Invalid status: {value}. Allowed: {', '.join(s.value for s in Status)}",
            field="status",
        )


def stage_order(stage: str) -> int:
    return STAGE_ORDER[parse_stage(stage).value]


def is_forward(from_stage: str, to_stage: str) -> bool:
    return stage_order(to_stage) > stage_order(from_stage)


def get_next_stage(current_stage: str) -> Optional[Stage]:
    """Next stage in order, or None at the end of the pipeline."""
    order = stage_order(current_stage)
    for stage in ORDERED_STAGES:
        if stage.order == order + 1:
            return stage
    return None


@dataclass(frozen=True)
class Precondition:
    """Declarative guard: status in set, stage in set, optionally no decision yet."""

    action: str
    statuses: Optional[frozenset] = None
    stages: Optional[frozenset] = None
    forbidden_statuses: Optional[frozenset] = None
    requires_no_decision: bool = False

    def check(self, application, has_decision: bool = False) -> None:
        """Raise TransitionError naming the first unmet condition."""
        if self.statuses is not None and application.status not in self.statuses:
            raise TransitionError(
                "status",
                sorted(self.statuses),
                application.status,
                message=(
                    f"Cannot {self.action}: application status is {application.status}, "
                    f"expected {' or '.join(sorted(self.statuses))}"
                ),
            )

        if self.forbidden_statuses is not None and application.status in self.forbidden_statuses:
            raise TransitionError(
                "status",
                [f"not {s}" for s in sorted(self.forbidden_statuses)],
                application.status,
                message=f"Cannot {self.action}: application is already {application.status}",
            )

        if self.stages is not None and application.current_stage not in self.stages:
            raise TransitionError(
                "stage",
                sorted(self.stages, key=stage_order),
                application.current_stage,
                message=(
                    f"Cannot {self.action}: application is at stage {application.current_stage}, "
                    f"expected {' or '.join(sorted(self.stages, key=stage_order))}"
                ),
            )

        if self.requires_no_decision and has_decision:
            raise TransitionError(
                "decision",
                "none",
                "exists",
                message=f"Cannot {self.action}: a decision has already been made for this application",
            )


def _set(*values: Enum) -> frozenset:
    return frozenset(v.value for v in values)


DECIDE = Precondition(
    "make a decision",
    statuses=_set(Status.ACTIVE),
    requires_no_decision=True,
)
WITHDRAW_OFFER = Precondition(
    "withdraw offer",
    statuses=_set(Status.ACCEPTED),
    stages=_set(Stage.AGREEMENT),
)
SIGN_AGREEMENT = Precondition(
    "sign agreement",
    statuses=_set(Status.ACCEPTED),
    stages=_set(Stage.AGREEMENT),
)
SCHEDULE_INTERVIEW = Precondition("schedule an interview", statuses=_set(Status.ACTIVE))
RESCHEDULE_INTERVIEW = Precondition("reschedule an interview", statuses=_set(Status.ACTIVE))
REVIEW_SC = Precondition("review an assessment", statuses=_set(Status.ACTIVE))
RECEIVE_SC = Precondition("record an assessment", statuses=_set(Status.ACTIVE))
SEND_EMAIL = Precondition("send email", statuses=_set(Status.ACTIVE, Status.ACCEPTED))
SOFT_DELETE = Precondition("withdraw application", forbidden_statuses=_set(Status.WITHDRAWN))


def advance_stage(application, target: str, override: bool = False) -> Optional[str]:
    """Move the application to target stage.

    Only forward moves are allowed unless override is set (admin edit).

    Returns:
        The previous stage if the stage changed, None for a no-op.
    """
    target_stage = parse_stage(target)
    current = application.current_stage

    if current == target_stage.value:
        return None

    if not override and not is_forward(current, target_stage.value):
        raise TransitionError(
            "stage",
            f"a stage after {current}",
            target_stage.value,
            message=f"Cannot move application backwards from {current} to {target_stage.value}",
        )

    application.current_stage = target_stage.value
    return current


def set_status(application, target: str, override: bool = False) -> Optional[str]:
    """Change the application's status.

    Returns:
        The previous status if it changed, None for a no-op.
    """
    target_status = parse_status(target)
    current = application.status

    if current == target_status.value:
        return None

    allowed = STATUS_TRANSITIONS.get(current, set())
    if not override and target_status.value not in allowed:
        raise TransitionError(
            "status",
            sorted(allowed) or "no further change",
            current,
            message=f"Cannot change status from {current} to {target_status.value}",
        )

    application.status = target_status.value
    return current


def can_advance_to_stage(application, target: str) -> bool:
    """True when an ACTIVE application could move forward to target."""
    if application.status != Status.ACTIVE.value:
        return False
    return is_forward(application.current_stage, parse_stage(target).value)


def gc_fanout_targets(applications: Iterable) -> list:
    """Applications a general competencies result applies to."""
    return [
        app for app in applications
        if app.status == Status.ACTIVE.value and app.current_stage in GC_FANOUT_STAGES
    ]


# Application package items: (label, flag attribute, content attribute)
PACKAGE_ITEMS = [
    ("Resume", "has_resume", "resume_url"),
    ("Academic Background", "has_academic_bg", "academic_background"),
    ("Video Introduction", "has_video_intro", "video_link"),
    ("Previous Experience", "has_previous_exp", "previous_experience"),
    ("Other File", "has_other_file", "other_file_url"),
]


def calc_missing_fields(application) -> list[str]:
    """Package items the candidate said they would include but did not."""
    return [
        label
        for label, flag, content in PACKAGE_ITEMS
        if getattr(application, flag) and not getattr(application, content)
    ]
