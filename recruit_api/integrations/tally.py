"""Tally form webhook payloads and field extraction.

Fields are resolved label-first: labels survive form edits better than the
generated question keys. When a field is only found by its key prefix a
warning is logged so the label maps can be updated.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Optional

import humps
import structlog
from pydantic import BaseModel, ConfigDict

logger = structlog.get_logger()


class TallyMappingError(ValueError):
    """Raised when a required field is missing from a submission."""
    pass


# =============================================================================
# Payload models
# =============================================================================


class TallyModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=humps.camelize,
        populate_by_name=True,
        extra="ignore",
    )


class TallyOption(TallyModel):
    id: str
    text: str


class TallyField(TallyModel):
    key: str
    label: Optional[str] = None
    type: Optional[str] = None
    value: Any = None
    options: Optional[list[TallyOption]] = None


class TallyWebhookData(TallyModel):
    submission_id: str
    fields: list[TallyField]
    response_id: Optional[str] = None
    respondent_id: Optional[str] = None
    form_id: Optional[str] = None
    form_name: Optional[str] = None
    created_at: Optional[str] = None


class TallyWebhookPayload(TallyModel):
    data: TallyWebhookData
    event_id: Optional[str] = None
    event_type: Optional[str] = None
    created_at: Optional[str] = None


# =============================================================================
# Field maps (label, key prefix)
# =============================================================================

APPLICATION_FIELDS = {
    "email": ("Email", "question_eaYYNE"),
    "first_name": ("First Name", "question_qRkkYd"),
    "last_name": ("Last Name", "question_Q7OOxA"),
    "phone_number": ("Phone", "question_97oo61"),
    "country": ("Country", "question_o2vAjV"),
    "portfolio_link": ("Portfolio", "question_W8jjeP"),
    "education_level": ("Education", "question_a2aajE"),
    "position": ("Position", "question_KVavqX"),
    "resume_file": ("Resume", "question_7NppJ9"),
    "academic_background": ("Academic Background", "question_bW6622"),
    "previous_experience": ("Previous Experience", "question_kNkk0J"),
    "video_link": ("Video Introduction", "question_Bx22LA"),
    "other_file": ("Other File", "question_97Md1Y"),
    "package_contents": ("Package Contents", "question_6Zpp1O"),
}

# Option ids of the "Package Contents" checkbox group
PACKAGE_CHECKBOX_IDS = {
    "resume": "f0b59c5e-a761-422d-9f4f-b0877d763e31",
    "academic_bg": "3bbe2067-a65b-447d-8dd0-52b6cc2b9c22",
    "video_intro": "08626196-8186-4941-b743-f71b94eaee6f",
    "previous_exp": "5135f2af-01e6-4bb3-b8f5-cc4c534ea572",
    "other_file": "2163f28f-e7c4-47c4-a6df-535153718b44",
}

GC_ASSESSMENT_FIELDS = {
    "person_id": ("who", "question_PzkEpx"),
    "score": ("score", "question_Q7k02g"),
    "culture_score": ("cultureScore", "question_LdPQ1J"),
    "situational_score": ("situationalScore", "question_pLDlxP"),
    "digital_score": ("digitalScore", "question_J2ON0d"),
}

SC_ASSESSMENT_FIELDS = {
    "application_id": ("applicationId", "question_AppId"),
    "person_id": ("who", "question_PzkEpx"),
    "score": ("score", "question_Score"),
    "specialised_competency_id": ("scId", "question_ScId"),
}

AGREEMENT_FIELDS = {
    "application_id": ("applicationId", "question_BGLBxe"),
    "legal_first_name": ("First Legal Name", "question_9Zx9jK"),
    "legal_middle_name": ("Middle Legal Name", "question_eryQWJ"),
    "legal_last_name": ("Last Legal Name", "question_WRQEVL"),
    "preferred_first_name": ("First Preferred Name", "question_a4k5qW"),
    "preferred_last_name": ("Last Preferred Name", "question_6K4jEo"),
    "profile_picture": ("Profile Picture", "question_7KjLr6"),
    "biography": ("Would you like to provide a short biography?", "question_8L2alk"),
    "date_of_birth": ("Date of Birth", "question_DpbkGX"),
    "country": ("Country", "question_Xo9Jbe"),
    "privacy_policy": ("Privacy Policy Acceptance", "question_QRjell"),
    "signature": ("Internship Contract & Agreement Acceptance", "question_P941qP"),
    "entity_represented": ("Entity Represented", "question_po5y2y"),
    "service_hours": ("Service Hours?", "question_LKV72z"),
}


# =============================================================================
# Field lookup
# =============================================================================


def find_field_by_key(fields: list[TallyField], key_prefix: str) -> Optional[TallyField]:
    """Tally appends suffixes to hidden field keys, so match on prefix."""
    return next((f for f in fields if f.key.startswith(key_prefix)), None)


def find_field_by_label(fields: list[TallyField], label: str) -> Optional[TallyField]:
    wanted = label.strip().lower()
    return next(
        (f for f in fields if f.label is not None and f.label.strip().lower() == wanted),
        None,
    )


def find_field(
    fields: list[TallyField],
    label: str,
    key_prefix: str,
    form: str = "",
) -> Optional[TallyField]:
    """Label-first lookup with key prefix fallback."""
    by_label = find_field_by_label(fields, label)
    if by_label is not None:
        return by_label

    by_key = find_field_by_key(fields, key_prefix)
    if by_key is not None:
        logger.warning(
            "Tally field matched by key only, label may have changed",
            form=form,
            expected_label=label,
            key=by_key.key,
            found_label=by_key.label,
        )
    return by_key


def _finder(fields: list[TallyField], field_map: dict, form: str):
    def find(name: str) -> Optional[TallyField]:
        label, key_prefix = field_map[name]
        return find_field(fields, label, key_prefix, form)
    return find


# =============================================================================
# Value helpers
# =============================================================================


def get_string_value(tally_field: Optional[TallyField]) -> Optional[str]:
    if tally_field is None or tally_field.value is None:
        return None
    value = tally_field.value
    # bool is an int subclass; a checkbox is not a string answer
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, (int, float)):
        return str(value)
    return None


def get_number_value(tally_field: Optional[TallyField]) -> Optional[float]:
    if tally_field is None or tally_field.value is None:
        return None
    value = tally_field.value
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def get_file_url(tally_field: Optional[TallyField]) -> Optional[str]:
    """URL of the first uploaded file."""
    if tally_field is None or not isinstance(tally_field.value, list) or not tally_field.value:
        return None
    first = tally_field.value[0]
    if isinstance(first, dict) and first.get("url"):
        return first["url"]
    return None


def is_checkbox_selected(tally_field: Optional[TallyField], option_id: str) -> bool:
    if tally_field is None or not isinstance(tally_field.value, list):
        return False
    for item in tally_field.value:
        if isinstance(item, dict) and item.get("id") == option_id:
            return True
        if item == option_id:
            return True
    return False


def get_dropdown_value(tally_field: Optional[TallyField]) -> Optional[str]:
    """Text of the selected option.

    Dropdowns arrive either as option objects or as a list of option ids
    that have to be resolved against the field's options.
    """
    if tally_field is None or not isinstance(tally_field.value, list) or not tally_field.value:
        return None

    first = tally_field.value[0]
    if isinstance(first, dict) and "text" in first:
        return first["text"]

    for option in tally_field.options or []:
        if option.id in tally_field.value:
            return option.text
    return None


def extract_file_urls(fields: list[TallyField]) -> list[dict]:
    """Every uploaded file across the submission."""
    urls = []
    for tally_field in fields:
        if not isinstance(tally_field.value, list):
            continue
        for item in tally_field.value:
            if isinstance(item, dict) and item.get("url"):
                urls.append({
                    "label": tally_field.label or tally_field.key,
                    "url": item["url"],
                    "type": item.get("mimeType"),
                })
    return urls


def _require(value, message: str):
    if value is None:
        raise TallyMappingError(message)
    return value


# =============================================================================
# Extracted records
# =============================================================================


@dataclass
class PersonData:
    email: str
    first_name: str
    last_name: str
    phone_number: Optional[str] = None
    country: Optional[str] = None
    portfolio_link: Optional[str] = None
    education_level: Optional[str] = None
    tally_respondent_id: Optional[str] = None


@dataclass
class ApplicationData:
    position: str
    tally_submission_id: str
    resume_url: Optional[str] = None
    academic_background: Optional[str] = None
    previous_experience: Optional[str] = None
    video_link: Optional[str] = None
    other_file_url: Optional[str] = None
    has_resume: bool = False
    has_academic_bg: bool = False
    has_video_intro: bool = False
    has_previous_exp: bool = False
    has_other_file: bool = False


@dataclass
class GCAssessmentData:
    person_id: str
    score: float
    tally_submission_id: str
    subscores: dict = field(default_factory=dict)
    raw_data: dict = field(default_factory=dict)


@dataclass
class SCAssessmentData:
    tally_submission_id: str
    application_id: Optional[str] = None
    person_id: Optional[str] = None
    respondent_id: Optional[str] = None
    specialised_competency_id: Optional[str] = None
    score: Optional[float] = None
    submission_urls: list = field(default_factory=list)
    raw_data: dict = field(default_factory=dict)

    @property
    def submission_url(self) -> Optional[str]:
        return self.submission_urls[0]["url"] if self.submission_urls else None


@dataclass
class AgreementDetails:
    application_id: str
    legal_first_name: str
    legal_last_name: str
    legal_middle_name: Optional[str] = None
    preferred_first_name: Optional[str] = None
    preferred_last_name: Optional[str] = None
    profile_picture_url: Optional[str] = None
    biography: Optional[str] = None
    date_of_birth: Optional[str] = None
    country: Optional[str] = None
    privacy_policy_accepted: Optional[bool] = None
    signature_url: Optional[str] = None
    entity_represented: Optional[str] = None
    service_hours: Optional[str] = None

    def to_json_dict(self) -> dict:
        """camelCase dict as stored in applications.agreement_data."""
        return humps.camelize(asdict(self))


@dataclass
class AgreementSigning:
    application_id: str
    details: AgreementDetails
    tally_submission_id: str


# =============================================================================
# Extractors
# =============================================================================


def extract_person_data(payload: TallyWebhookPayload) -> PersonData:
    find = _finder(payload.data.fields, APPLICATION_FIELDS, "application")

    email = _require(
        get_string_value(find("email")),
        "Email is required but missing from webhook payload",
    )
    first_name = _require(
        get_string_value(find("first_name")),
        "First name is required but missing from webhook payload",
    )
    last_name = _require(
        get_string_value(find("last_name")),
        "Last name is required but missing from webhook payload",
    )

    education_field = find("education_level")

    return PersonData(
        email=email.lower(),
        first_name=first_name,
        last_name=last_name,
        phone_number=get_string_value(find("phone_number")),
        country=get_string_value(find("country")),
        portfolio_link=get_string_value(find("portfolio_link")),
        education_level=get_dropdown_value(education_field) or get_string_value(education_field),
        tally_respondent_id=payload.data.respondent_id,
    )


def extract_application_data(payload: TallyWebhookPayload) -> ApplicationData:
    find = _finder(payload.data.fields, APPLICATION_FIELDS, "application")

    position = _require(
        get_string_value(find("position")),
        "Position is required but missing from webhook payload",
    )
    package = find("package_contents")

    return ApplicationData(
        position=position,
        tally_submission_id=payload.data.submission_id,
        resume_url=get_file_url(find("resume_file")),
        academic_background=get_string_value(find("academic_background")),
        previous_experience=get_string_value(find("previous_experience")),
        video_link=get_string_value(find("video_link")),
        other_file_url=get_file_url(find("other_file")),
        has_resume=is_checkbox_selected(package, PACKAGE_CHECKBOX_IDS["resume"]),
        has_academic_bg=is_checkbox_selected(package, PACKAGE_CHECKBOX_IDS["academic_bg"]),
        has_video_intro=is_checkbox_selected(package, PACKAGE_CHECKBOX_IDS["video_intro"]),
        has_previous_exp=is_checkbox_selected(package, PACKAGE_CHECKBOX_IDS["previous_exp"]),
        has_other_file=is_checkbox_selected(package, PACKAGE_CHECKBOX_IDS["other_file"]),
    )


def _raw_fields(payload: TallyWebhookPayload) -> list[dict]:
    return [f.model_dump(by_alias=True, exclude_none=True) for f in payload.data.fields]


def extract_gc_assessment_data(payload: TallyWebhookPayload) -> GCAssessmentData:
    find = _finder(payload.data.fields, GC_ASSESSMENT_FIELDS, "general-competencies")

    person_id = _require(
        get_string_value(find("person_id")),
        "Person ID (who) is required but missing from GC assessment webhook",
    )
    score = _require(
        get_number_value(find("score")),
        "Score is required but missing from GC assessment webhook",
    )

    subscores = {
        "cultureScore": get_number_value(find("culture_score")),
        "situationalScore": get_number_value(find("situational_score")),
        "digitalScore": get_number_value(find("digital_score")),
    }

    return GCAssessmentData(
        person_id=person_id,
        score=score,
        tally_submission_id=payload.data.submission_id,
        subscores=subscores,
        raw_data={"subscores": subscores, "fields": _raw_fields(payload)},
    )


def extract_sc_assessment_data(payload: TallyWebhookPayload) -> SCAssessmentData:
    """Everything is optional here; the caller decides what is enough.

    SC forms often omit the hidden applicationId, in which case the
    application is resolved from the respondent.
    """
    fields = payload.data.fields
    find = _finder(fields, SC_ASSESSMENT_FIELDS, "specialized-competencies")

    return SCAssessmentData(
        tally_submission_id=payload.data.submission_id,
        application_id=get_string_value(find("application_id")),
        person_id=get_string_value(find("person_id")),
        respondent_id=payload.data.respondent_id,
        specialised_competency_id=get_string_value(find("specialised_competency_id")),
        score=get_number_value(find("score")),
        submission_urls=extract_file_urls(fields),
        raw_data={"fields": _raw_fields(payload)},
    )


def extract_agreement_data(payload: TallyWebhookPayload) -> AgreementSigning:
    find = _finder(payload.data.fields, AGREEMENT_FIELDS, "agreement")

    application_id = _require(
        get_string_value(find("application_id")),
        "Application ID is required but missing from agreement webhook",
    )
    legal_first_name = _require(
        get_string_value(find("legal_first_name")),
        "Legal first name is required but missing from agreement webhook",
    )
    legal_last_name = _require(
        get_string_value(find("legal_last_name")),
        "Legal last name is required but missing from agreement webhook",
    )

    privacy_field = find("privacy_policy")
    privacy_accepted = None
    if privacy_field is not None:
        if isinstance(privacy_field.value, bool):
            privacy_accepted = privacy_field.value
        elif isinstance(privacy_field.value, list) and privacy_field.value:
            privacy_accepted = True

    service_hours_field = find("service_hours")

    details = AgreementDetails(
        application_id=application_id,
        legal_first_name=legal_first_name,
        legal_last_name=legal_last_name,
        legal_middle_name=get_string_value(find("legal_middle_name")),
        preferred_first_name=get_string_value(find("preferred_first_name")),
        preferred_last_name=get_string_value(find("preferred_last_name")),
        profile_picture_url=get_file_url(find("profile_picture")),
        biography=get_string_value(find("biography")),
        date_of_birth=get_string_value(find("date_of_birth")),
        country=get_string_value(find("country")),
        privacy_policy_accepted=privacy_accepted,
        signature_url=get_file_url(find("signature")),
        entity_represented=get_string_value(find("entity_represented")),
        service_hours=get_dropdown_value(service_hours_field) or get_string_value(service_hours_field),
    )

    return AgreementSigning(
        application_id=application_id,
        details=details,
        tally_submission_id=payload.data.submission_id,
    )
