"""initial_schedule_schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18

Creates the client directory, recurring templates, class occurrences and
enrollments. Template expansion relies on the unique (template_id, start_at)
constraint; the roster relies on the unique (occurrence_id, student_id) one.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from core.db.types import UTCDateTime


# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def timestamps() -> list:
    return [
        sa.Column('created_at', UTCDateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', UTCDateTime(), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Create scheduling tables."""
    op.create_table(
        'students',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column(
            'enrollment_tier',
            sa.Enum(
                'pay_per_session',
                'subsidized_tier_a',
                'subsidized_tier_b',
                name='enrollmenttier',
                native_enum=False,
            ),
            nullable=False,
        ),
        sa.Column('monthly_fee', sa.Numeric(10, 2), nullable=True),
        sa.Column('due_day', sa.Integer(), nullable=False, server_default='5'),
        sa.Column('notes', sa.Text(), nullable=True),
        *timestamps(),
    )

    op.create_table(
        'class_templates',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('title', sa.String(200), nullable=True),
        sa.Column('student_id', sa.String(36), sa.ForeignKey('students.id'), nullable=True),
        sa.Column('start_time_of_day', sa.Time(), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False, server_default='60'),
        sa.Column('weekdays', sa.JSON(), nullable=False),
        sa.Column('recurrence_start_date', sa.Date(), nullable=False),
        sa.Column('recurrence_end_date', sa.Date(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *timestamps(),
    )
    op.create_index('ix_class_templates_student_id', 'class_templates', ['student_id'])

    op.create_table(
        'class_occurrences',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('start_at', UTCDateTime(), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False, server_default='60'),
        sa.Column('student_id', sa.String(36), sa.ForeignKey('students.id'), nullable=True),
        sa.Column(
            'template_id',
            sa.String(36),
            sa.ForeignKey('class_templates.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column('template_slot_at', UTCDateTime(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *timestamps(),
        sa.UniqueConstraint('template_id', 'start_at', name='uq_occurrence_template_start'),
    )
    op.create_index('ix_class_occurrences_start_at', 'class_occurrences', ['start_at'])
    op.create_index('ix_class_occurrences_student_id', 'class_occurrences', ['student_id'])
    op.create_index('ix_class_occurrences_template_id', 'class_occurrences', ['template_id'])

    op.create_table(
        'enrollments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column(
            'occurrence_id',
            sa.String(36),
            sa.ForeignKey('class_occurrences.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('student_id', sa.String(36), sa.ForeignKey('students.id'), nullable=False),
        sa.Column(
            'status',
            sa.Enum('scheduled', 'present', 'absent', name='attendancestatus', native_enum=False),
            nullable=False,
        ),
        sa.Column('enrolled_at', UTCDateTime(), nullable=False),
        *timestamps(),
        sa.UniqueConstraint(
            'occurrence_id', 'student_id', name='uq_enrollment_occurrence_student'
        ),
    )
    op.create_index('ix_enrollments_occurrence_id', 'enrollments', ['occurrence_id'])
    op.create_index('ix_enrollments_student_id', 'enrollments', ['student_id'])


def downgrade() -> None:
    """Drop scheduling tables."""
    op.drop_index('ix_enrollments_student_id', table_name='enrollments')
    op.drop_index('ix_enrollments_occurrence_id', table_name='enrollments')
    op.drop_table('enrollments')
    op.drop_index('ix_class_occurrences_template_id', table_name='class_occurrences')
    op.drop_index('ix_class_occurrences_student_id', table_name='class_occurrences')
    op.drop_index('ix_class_occurrences_start_at', table_name='class_occurrences')
    op.drop_table('class_occurrences')
    op.drop_index('ix_class_templates_student_id', table_name='class_templates')
    op.drop_table('class_templates')
    op.drop_table('students')
