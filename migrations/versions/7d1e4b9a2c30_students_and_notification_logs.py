"""students and notification logs

Revision ID: 7d1e4b9a2c30
Revises:
Create Date: 2024-01-01 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "7d1e4b9a2c30"
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        'students',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('fathers_name', sa.String(length=120), nullable=True),
        sa.Column('registration_no', sa.String(length=50), nullable=True),
        sa.Column('phone_no', sa.String(length=20), nullable=True),
        sa.Column('course_name', sa.String(length=100), nullable=True),
        sa.Column('batch_time', sa.String(length=50), nullable=True),
        sa.Column('course_duration', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('monthly_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('fee_status', sa.String(length=20), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('last_paid', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('registration_no', name='uq_students_registration_no'),
    )
    op.create_index('ix_students_course_name', 'students', ['course_name'])
    op.create_index('ix_students_fee_status', 'students', ['fee_status'])

    op.create_table(
        'notification_logs',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('student_id', sa.String(length=36), nullable=True),
        sa.Column('student_name', sa.String(length=120), nullable=True),
        sa.Column('phone_number', sa.String(length=20), nullable=True),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('type', sa.String(length=50), nullable=True),
        sa.Column('message_id', sa.String(length=100), nullable=True),
        sa.Column('provider', sa.String(length=50), nullable=True),
        sa.Column('template_name', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('response_data', sa.JSON(), nullable=True),
    )
    op.create_index('ix_notification_logs_student_id', 'notification_logs', ['student_id'])
    op.create_index('ix_notification_logs_created_at', 'notification_logs', ['created_at'])


def downgrade():
    op.drop_index('ix_notification_logs_created_at', table_name='notification_logs')
    op.drop_index('ix_notification_logs_student_id', table_name='notification_logs')
    op.drop_table('notification_logs')
    op.drop_index('ix_students_fee_status', table_name='students')
    op.drop_index('ix_students_course_name', table_name='students')
    op.drop_table('students')
