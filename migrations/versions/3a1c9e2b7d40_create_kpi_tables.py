"""create kpi tables

Revision ID: 3a1c9e2b7d40
Revises:
Create Date: 2026-10-18 10:12:04.118520
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = '3a1c9e2b7d40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

FREQUENCIES = ('daily', 'weekly', 'monthly', 'quarterly')


def _base_columns():
    return [
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('updated_by', sa.Integer(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        'departments',
        *_base_columns(),
        sa.Column('name', sa.String(length=150), nullable=False),
        sa.Column('slug', sa.String(length=100), nullable=False),
        sa.Column('logo', sa.String(length=255), nullable=True),
        sa.Column('metadata', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
    )
    op.create_index('ix_departments_id', 'departments', ['id'])
    op.create_index('ix_departments_slug', 'departments', ['slug'], unique=True)

    op.create_table(
        'employees',
        *_base_columns(),
        sa.Column('name', sa.String(length=150), nullable=False),
        sa.Column('email', sa.String(length=150), nullable=True),
        sa.Column('phone', sa.String(length=20), nullable=False),
        sa.Column('department', sa.String(length=100), nullable=True),
        sa.Column('department_role', sa.String(length=100), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
    )
    op.create_index('ix_employees_id', 'employees', ['id'])
    op.create_index('ix_employees_department', 'employees', ['department'])
    op.create_index('ix_employees_department_role', 'employees', ['department_role'])

    op.create_table(
        'kpi_templates',
        *_base_columns(),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('kpi_name', sa.String(length=200), nullable=True),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('role', sa.String(length=100), nullable=False),
        sa.Column('frequency', sa.Enum(*FREQUENCIES, name='templatefrequency'), nullable=False),
        sa.Column('department_slug', sa.String(length=100), nullable=False),
        sa.Column('metrics', sa.JSON(), nullable=False),
    )
    op.create_index('ix_kpi_templates_id', 'kpi_templates', ['id'])
    op.create_index('ix_kpi_templates_role', 'kpi_templates', ['role'])
    op.create_index('ix_kpi_templates_department_slug', 'kpi_templates', ['department_slug'])

    op.create_table(
        'kpi_template_versions',
        *_base_columns(),
        sa.Column('template_id', sa.Integer(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('kpi_name', sa.String(length=200), nullable=True),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('role', sa.String(length=100), nullable=False),
        sa.Column('frequency', sa.Enum(*FREQUENCIES, name='templatefrequency', create_type=False), nullable=False),
        sa.Column('department_slug', sa.String(length=100), nullable=False),
        sa.Column('metrics', sa.JSON(), nullable=False),
        sa.UniqueConstraint('template_id', 'version', name='uq_kpi_template_version'),
    )
    op.create_index('ix_kpi_template_versions_id', 'kpi_template_versions', ['id'])
    op.create_index('ix_kpi_template_versions_template_id', 'kpi_template_versions', ['template_id'])

    op.create_table(
        'kpi_entries',
        *_base_columns(),
        sa.Column('employee_id', sa.Integer(), nullable=False),
        sa.Column('template_id', sa.Integer(), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('metric_labels', sa.JSON(), nullable=False),
        sa.Column('label_signature', sa.String(length=1000), nullable=False),
        sa.Column('metric_values', sa.JSON(), nullable=False),
        sa.Column('total_score', sa.Float(), nullable=False),
        sa.Column('status', sa.Enum('initiated', 'inprogress', 'generated', name='entrystatus'), nullable=False),
        sa.Column('data_source', sa.String(length=50), nullable=True),
        sa.UniqueConstraint('employee_id', 'month', 'year', 'label_signature', name='uq_kpi_entry_employee_period_labels'),
    )
    op.create_index('ix_kpi_entries_id', 'kpi_entries', ['id'])
    op.create_index('ix_kpi_entries_status', 'kpi_entries', ['status'])
    op.create_index('ix_kpi_entries_employee_template', 'kpi_entries', ['employee_id', 'template_id'])
    op.create_index('ix_kpi_entries_period', 'kpi_entries', ['month', 'year'])

    op.create_table(
        'whatsapp_logs',
        *_base_columns(),
        sa.Column('recipient_phone', sa.String(length=20), nullable=False),
        sa.Column('recipient_name', sa.String(length=150), nullable=True),
        sa.Column('campaign_name', sa.String(length=100), nullable=False),
        sa.Column('template_params', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=True),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('provider_response', sa.JSON(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('entry_id', sa.Integer(), nullable=True),
    )
    op.create_index('ix_whatsapp_logs_id', 'whatsapp_logs', ['id'])
    op.create_index('ix_whatsapp_logs_entry_id', 'whatsapp_logs', ['entry_id'])
    print("✓ [3a1c9e2b7d40] Created KPI tables")


def downgrade() -> None:
    op.drop_table('whatsapp_logs')
    op.drop_table('kpi_entries')
    op.drop_table('kpi_template_versions')
    op.drop_table('kpi_templates')
    op.drop_table('employees')
    op.drop_table('departments')
    sa.Enum(name='entrystatus').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='templatefrequency').drop(op.get_bind(), checkfirst=True)
