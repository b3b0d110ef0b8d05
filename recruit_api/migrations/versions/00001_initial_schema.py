"""Initial schema - all 9 tables.

Revision ID: 00001
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '00001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # =====================
    # Independent tables (no foreign keys)
    # =====================

    # users
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('okta_id', sa.String(100), nullable=True),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('has_access', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('scheduling_link', sa.String(500), nullable=True),
        sa.Column('last_synced_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
        sa.UniqueConstraint('okta_id'),
    )
    op.create_index('ix_users_is_admin', 'users', ['is_admin'])

    # persons
    op.create_table(
        'persons',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('phone_number', sa.String(50), nullable=True),
        sa.Column('country', sa.String(100), nullable=True),
        sa.Column('portfolio_link', sa.String(500), nullable=True),
        sa.Column('education_level', sa.String(100), nullable=True),
        sa.Column('tally_respondent_id', sa.String(100), nullable=True),
        sa.Column('general_competencies_completed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('general_competencies_score', sa.Integer(), nullable=True),
        sa.Column('general_competencies_passed', sa.Boolean(), nullable=True),
        sa.Column('general_competencies_completed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )
    op.create_index('ix_persons_tally_respondent_id', 'persons', ['tally_respondent_id'])

    # specialised_competencies
    op.create_table(
        'specialised_competencies',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('category', sa.String(100), nullable=False),
        sa.Column('tally_form_url', sa.String(500), nullable=False),
        sa.Column('criterion', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    # audit_logs (no foreign keys so entries outlive deleted records)
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('person_id', sa.String(36), nullable=True),
        sa.Column('application_id', sa.String(36), nullable=True),
        sa.Column('user_id', sa.String(36), nullable=True),
        sa.Column('action', sa.String(255), nullable=False),
        sa.Column('action_type', sa.String(20), nullable=False),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_logs_application', 'audit_logs', ['application_id'])
    op.create_index('ix_audit_logs_person', 'audit_logs', ['person_id'])
    op.create_index('ix_audit_logs_created', 'audit_logs', ['created_at'])

    # email_log
    op.create_table(
        'email_log',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('person_id', sa.String(36), nullable=True),
        sa.Column('application_id', sa.String(36), nullable=True),
        sa.Column('recipient', sa.String(255), nullable=False),
        sa.Column('template_name', sa.String(100), nullable=False),
        sa.Column('subject', sa.String(500), nullable=True),
        sa.Column('variables', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column('message_id', sa.String(255), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('sent_by', sa.String(36), nullable=True),
        sa.Column('sent_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_email_log_status_created', 'email_log', ['status', 'created_at'])
    op.create_index('ix_email_log_application', 'email_log', ['application_id'])

    # =====================
    # Dependent tables
    # =====================

    # applications
    op.create_table(
        'applications',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('person_id', sa.String(36), nullable=False),
        sa.Column('position', sa.String(200), nullable=False),
        sa.Column('current_stage', sa.String(50), nullable=False, server_default='APPLICATION'),
        sa.Column('status', sa.String(20), nullable=False, server_default='ACTIVE'),
        sa.Column('resume_url', sa.String(1000), nullable=True),
        sa.Column('academic_background', sa.Text(), nullable=True),
        sa.Column('previous_experience', sa.Text(), nullable=True),
        sa.Column('video_link', sa.String(1000), nullable=True),
        sa.Column('other_file_url', sa.String(1000), nullable=True),
        sa.Column('has_resume', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('has_academic_bg', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('has_video_intro', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('has_previous_exp', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('has_other_file', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('tally_submission_id', sa.String(100), nullable=False),
        sa.Column('agreement_tally_submission_id', sa.String(100), nullable=True),
        sa.Column('agreement_signed_at', sa.DateTime(), nullable=True),
        sa.Column('agreement_data', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['person_id'], ['persons.id']),
        sa.UniqueConstraint('tally_submission_id'),
        sa.UniqueConstraint('agreement_tally_submission_id'),
    )
    op.create_index('ix_applications_person', 'applications', ['person_id'])
    op.create_index('ix_applications_stage_status', 'applications', ['current_stage', 'status'])
    op.create_index('ix_applications_created', 'applications', ['created_at'])

    # assessments
    op.create_table(
        'assessments',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('assessment_type', sa.String(50), nullable=False),
        sa.Column('person_id', sa.String(36), nullable=True),
        sa.Column('application_id', sa.String(36), nullable=True),
        sa.Column('specialised_competency_id', sa.String(36), nullable=True),
        sa.Column('score', sa.Integer(), nullable=True),
        sa.Column('passed', sa.Boolean(), nullable=True),
        sa.Column('threshold', sa.Integer(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('superseded_at', sa.DateTime(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('reviewed_by', sa.String(36), nullable=True),
        sa.Column('submission_url', sa.String(1000), nullable=True),
        sa.Column('raw_data', sa.Text(), nullable=True),
        sa.Column('tally_submission_id', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['person_id'], ['persons.id']),
        sa.ForeignKeyConstraint(['application_id'], ['applications.id']),
        sa.ForeignKeyConstraint(['specialised_competency_id'], ['specialised_competencies.id']),
        sa.ForeignKeyConstraint(['reviewed_by'], ['users.id']),
    )
    # SQL Server treats NULLs as equal in unique constraints; filter them out
    op.create_index(
        'ux_assessments_tally_submission_id',
        'assessments',
        ['tally_submission_id'],
        unique=True,
        mssql_where=sa.text('tally_submission_id IS NOT NULL'),
    )
    op.create_index('ix_assessments_person_type', 'assessments', ['person_id', 'assessment_type'])
    op.create_index('ix_assessments_application', 'assessments', ['application_id'])

    # interviews
    op.create_table(
        'interviews',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('application_id', sa.String(36), nullable=False),
        sa.Column('interviewer_id', sa.String(36), nullable=True),
        sa.Column('scheduling_link', sa.String(500), nullable=True),
        sa.Column('scheduled_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('outcome', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column('email_sent_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['application_id'], ['applications.id']),
        sa.ForeignKeyConstraint(['interviewer_id'], ['users.id']),
    )
    op.create_index('ix_interviews_application', 'interviews', ['application_id'])
    op.create_index('ix_interviews_interviewer', 'interviews', ['interviewer_id'])

    # decisions
    op.create_table(
        'decisions',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('application_id', sa.String(36), nullable=False),
        sa.Column('decision', sa.String(20), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('decided_by', sa.String(36), nullable=True),
        sa.Column('decided_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['application_id'], ['applications.id']),
        sa.ForeignKeyConstraint(['decided_by'], ['users.id']),
    )
    op.create_index('ix_decisions_application', 'decisions', ['application_id'])
    op.create_index('ix_decisions_decided_at', 'decisions', ['decided_at'])


def downgrade() -> None:
    op.drop_table('decisions')
    op.drop_table('interviews')
    op.drop_table('assessments')
    op.drop_table('applications')
    op.drop_table('email_log')
    op.drop_table('audit_logs')
    op.drop_table('specialised_competencies')
    op.drop_table('persons')
    op.drop_table('users')
