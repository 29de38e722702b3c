"""Initial onboarding schema

Revision ID: 20261018_000001
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '20261018_000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    # === SCHOOLS ===
    op.create_table(
        'schools',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )

    # === USERS ===
    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('school_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('student_code', sa.String(length=50), nullable=True),
        sa.Column('birth_date', sa.Date(), nullable=True),
        sa.Column('grade', sa.String(length=50), nullable=True),
        sa.Column('section', sa.String(length=50), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['school_id'], ['schools.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
        sa.UniqueConstraint('student_code'),
    )
    op.create_index('ix_users_school_id', 'users', ['school_id'])
    op.create_index('idx_users_school_role', 'users', ['school_id', 'role'])

    # === GUARDIAN STUDENTS ===
    op.create_table(
        'guardian_students',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('guardian_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('student_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['guardian_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['student_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('guardian_id', 'student_id', name='uq_guardian_students_pair'),
    )
    op.create_index('ix_guardian_students_guardian_id', 'guardian_students', ['guardian_id'])
    op.create_index('ix_guardian_students_student_id', 'guardian_students', ['student_id'])

    # === COURSES ===
    op.create_table(
        'courses',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('school_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('grade', sa.String(length=50), nullable=False, server_default=''),
        sa.Column('section', sa.String(length=50), nullable=False, server_default=''),
        *_timestamps(),
        sa.ForeignKeyConstraint(['school_id'], ['schools.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_courses_school_id', 'courses', ['school_id'])

    # === COURSE STUDENTS ===
    op.create_table(
        'course_students',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('course_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('student_id', postgresql.UUID(as_uuid=True), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['course_id'], ['courses.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['student_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('course_id', 'student_id', name='uq_course_students_pair'),
    )
    op.create_index('ix_course_students_course_id', 'course_students', ['course_id'])
    op.create_index('ix_course_students_student_id', 'course_students', ['student_id'])

    # === INVITATIONS ===
    op.create_table(
        'invitations',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('school_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('code', sa.String(length=16), nullable=False),
        sa.Column('kind', sa.String(length=30), nullable=False),
        sa.Column('course_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('student_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('state', sa.String(length=20), nullable=False, server_default='ACTIVE'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('consumed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('creator_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('max_uses', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('uses_so_far', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('extra', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('max_uses >= 1', name='ck_invitations_max_uses_positive'),
        sa.CheckConstraint('uses_so_far >= 0', name='ck_invitations_uses_non_negative'),
        sa.CheckConstraint('uses_so_far <= max_uses', name='ck_invitations_uses_within_max'),
        sa.ForeignKeyConstraint(['school_id'], ['schools.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['course_id'], ['courses.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['student_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['creator_id'], ['users.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
    )
    op.create_index('ix_invitations_school_id', 'invitations', ['school_id'])
    op.create_index('idx_invitations_school_state', 'invitations', ['school_id', 'state'])
    op.create_index('idx_invitations_course_state', 'invitations', ['course_id', 'state'])

    # === INVITATION USAGES ===
    op.create_table(
        'invitation_usages',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('invitation_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('account_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('account_role', sa.String(length=20), nullable=False),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['invitation_id'], ['invitations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_invitation_usages_invitation_id', 'invitation_usages', ['invitation_id'])

    # === REGISTRATION REQUESTS ===
    op.create_table(
        'registration_requests',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('school_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('invitation_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('guardian_first_name', sa.String(length=100), nullable=False),
        sa.Column('guardian_last_name', sa.String(length=100), nullable=False),
        sa.Column('guardian_email', sa.String(length=255), nullable=False),
        sa.Column('guardian_phone', sa.String(length=50), nullable=True),
        sa.Column('state', sa.String(length=20), nullable=False, server_default='PENDING'),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reviewer_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('comments', sa.Text(), nullable=True),
        sa.Column(
            'created_account_ids',
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default='[]',
        ),
        *_timestamps(),
        sa.ForeignKeyConstraint(['school_id'], ['schools.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['invitation_id'], ['invitations.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['reviewer_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_registration_requests_school_id', 'registration_requests', ['school_id'])
    op.create_index('ix_registration_requests_invitation_id', 'registration_requests', ['invitation_id'])
    op.create_index(
        'idx_registration_requests_school_state',
        'registration_requests',
        ['school_id', 'state'],
    )
    # At most one pending request per guardian email and school
    op.create_index(
        'uq_registration_requests_pending_email',
        'registration_requests',
        ['guardian_email', 'school_id'],
        unique=True,
        postgresql_where=sa.text("state = 'PENDING'"),
    )

    # === REGISTRATION REQUEST STUDENTS ===
    op.create_table(
        'registration_request_students',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('request_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('birth_date', sa.Date(), nullable=True),
        sa.Column('course_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('student_code', sa.String(length=50), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('is_existing_student', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('existing_student_id', postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['request_id'], ['registration_requests.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_registration_request_students_request_id',
        'registration_request_students',
        ['request_id'],
    )

    # === NOTIFICATIONS ===
    op.create_table(
        'notifications',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('school_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('notification_type', sa.String(length=50), nullable=False),
        sa.Column('reference_type', sa.String(length=50), nullable=True),
        sa.Column('reference_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['school_id'], ['schools.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_notifications_school_id', 'notifications', ['school_id'])
    op.create_index(
        'idx_notifications_user_unread',
        'notifications',
        ['user_id', 'is_read'],
        postgresql_where=sa.text('is_read = false'),
        sqlite_where=sa.text('is_read = 0'),
    )


def downgrade() -> None:
    # Drop tables in reverse order of creation (respecting foreign key dependencies)
    op.drop_table('notifications')
    op.drop_table('registration_request_students')
    op.drop_table('registration_requests')
    op.drop_table('invitation_usages')
    op.drop_table('invitations')
    op.drop_table('course_students')
    op.drop_table('courses')
    op.drop_table('guardian_students')
    op.drop_table('users')
    op.drop_table('schools')
