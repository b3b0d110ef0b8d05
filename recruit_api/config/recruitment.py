"""Static recruitment pipeline configuration.

Stage ordering, competency categories, text limits and email template
names. Runtime-tunable values (thresholds, rate limits) live in settings.
"""

# Pipeline stages in order
STAGES = [
    {"id": "APPLICATION", "name": "Application", "order": 1},
    {"id": "GENERAL_COMPETENCIES", "name": "General Competencies", "order": 2},
    {"id": "SPECIALIZED_COMPETENCIES", "name": "Specialized Competencies", "order": 3},
    {"id": "INTERVIEW", "name": "Interview", "order": 4},
    {"id": "AGREEMENT", "name": "Agreement", "order": 5},
    {"id": "SIGNED", "name": "Signed", "order": 6},
]

STAGE_NAMES = {stage["id"]: stage["name"] for stage in STAGES}

# Specialised competency categories
SC_CATEGORIES = [
    "Technical",
    "Creative",
    "Educational",
    "Operational",
    "Leadership",
]

# Maximum stored lengths for free text
MAX_REASON_LENGTH = 2000
MAX_NOTES_LENGTH = 5000
MAX_INTERVIEW_NOTES_LENGTH = 2000
MAX_CRITERION_LENGTH = 2000
MAX_COMPETENCY_NAME_LENGTH = 200
MAX_WITHDRAW_REASON_LENGTH = 500
MAX_EMAIL_REASON_LENGTH = 500
MAX_PROFILE_TEXT_LENGTH = 5000

# Default note recorded on the compensating decision
OFFER_WITHDRAWN_NOTE = "Offer withdrawn at agreement stage"

# Email templates, organized into folders by stage
EMAIL_TEMPLATES = {
    "APPLICATION_RECEIVED": "application/application-received",
    "GC_INVITATION": "assessment/general-competencies-invitation",
    "SC_INVITATION": "assessment/specialized-competencies-invitation",
    "INTERVIEW_INVITATION": "interview/interview-invitation",
    "OFFER_LETTER": "decision/offer-letter",
    "REJECTION": "decision/rejection",
}

EMAIL_SUBJECTS = {
    "application/application-received": "Application Received for {{POSITION}}",
    "assessment/general-competencies-invitation": "Complete Your Questionnaire at {{ORGANIZATION_SHORT_NAME}}",
    "assessment/specialized-competencies-invitation": "{{POSITION}} Role-Specific Assessment",
    "interview/interview-invitation": "Interview Invitation for {{POSITION}}",
    "decision/offer-letter": "Application Update at {{ORGANIZATION_SHORT_NAME}}",
    "decision/rejection": "Application Update at {{ORGANIZATION_SHORT_NAME}}",
}

INTERVIEW_DURATION = "25-30 minutes"
