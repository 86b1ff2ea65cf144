"""create_feedback_loop_tables

Revision ID: 20261019_feedback_loop
Revises:
Create Date: 2026-10-19 00:00:00

Adds: corrections, accuracy_stats, knowledge_candidates, knowledge_entries,
dd_reports, prompt_templates, ai_usage_logs
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision = '20261019_feedback_loop'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Analyst corrections (append-only apart from review fields)
    op.create_table(
        'corrections',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('report_id', sa.String(length=64), nullable=False),
        sa.Column('item_type', sa.String(length=20), nullable=False),
        sa.Column('item_identifier', sa.String(length=255), nullable=False),
        sa.Column('agency', sa.String(length=20), nullable=False),
        sa.Column('original_note', sa.Text(), nullable=True),
        sa.Column('edited_note', sa.Text(), nullable=False),
        sa.Column('error_category', sa.String(length=50), nullable=False),
        sa.Column('batch_id', sa.String(length=36), nullable=True),
        sa.Column('classification_only', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('editor_id', sa.String(length=255), nullable=True),
        sa.Column('reviewer_id', sa.String(length=255), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_corrections_id', 'corrections', ['id'])
    op.create_index('ix_corrections_report_id', 'corrections', ['report_id'])
    op.create_index('ix_corrections_agency', 'corrections', ['agency'])
    op.create_index('ix_corrections_error_category', 'corrections', ['error_category'])
    op.create_index('ix_corrections_batch_id', 'corrections', ['batch_id'])
    op.create_index('ix_corrections_status', 'corrections', ['status'])
    op.create_index('ix_corrections_created_at', 'corrections', ['created_at'])
    op.create_index('idx_corrections_status_created', 'corrections', ['status', 'created_at'])

    # Per-segment edit rates
    op.create_table(
        'accuracy_stats',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('agency', sa.String(length=20), nullable=False),
        sa.Column('item_type', sa.String(length=20), nullable=False),
        sa.Column('violation_type', sa.String(length=50), nullable=True),
        sa.Column('total_notes_generated', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_edits', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('denominator_is_estimated', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('edit_rate', sa.Float(), nullable=False, server_default='0'),
        sa.Column('top_error_category', sa.String(length=50), nullable=True),
        sa.Column('last_updated', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_accuracy_stats_id', 'accuracy_stats', ['id'])
    # NULL violation_type is one segment, not many
    op.create_index(
        'idx_accuracy_stats_segment',
        'accuracy_stats',
        ['agency', 'item_type', 'violation_type'],
        unique=True,
        postgresql_nulls_not_distinct=True
    )

    # Detected knowledge gaps
    op.create_table(
        'knowledge_candidates',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('knowledge_type', sa.String(length=50), nullable=False),
        sa.Column('agency', sa.String(length=20), nullable=False),
        sa.Column('violation_types', JSONB(), nullable=False),
        sa.Column('candidate_key', sa.String(length=255), nullable=False),
        sa.Column('trigger_reason', sa.Text(), nullable=True),
        sa.Column('source_edit_ids', JSONB(), nullable=True),
        sa.Column('demand_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('priority', sa.String(length=20), nullable=False, server_default='medium'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='detected'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_knowledge_candidates_id', 'knowledge_candidates', ['id'])
    op.create_index('ix_knowledge_candidates_agency', 'knowledge_candidates', ['agency'])
    op.create_index('ix_knowledge_candidates_status', 'knowledge_candidates', ['status'])
    # Backstop for concurrent gap detection runs
    op.create_index(
        'idx_knowledge_candidates_open_key',
        'knowledge_candidates',
        ['candidate_key'],
        unique=True,
        postgresql_where=sa.text("status IN ('detected', 'drafted', 'approved', 'active')")
    )

    # Synthesized reference documents
    op.create_table(
        'knowledge_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('candidate_id', sa.Integer(), nullable=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('agency', sa.String(length=20), nullable=False),
        sa.Column('violation_types', JSONB(), nullable=False),
        sa.Column('word_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='draft'),
        sa.Column('usage_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('approved_by', sa.String(length=255), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('generated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['candidate_id'], ['knowledge_candidates.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_knowledge_entries_id', 'knowledge_entries', ['id'])
    op.create_index('ix_knowledge_entries_candidate_id', 'knowledge_entries', ['candidate_id'])
    op.create_index('ix_knowledge_entries_agency', 'knowledge_entries', ['agency'])
    op.create_index('ix_knowledge_entries_status', 'knowledge_entries', ['status'])

    # Reports written by the report generator (read here for note volumes)
    op.create_table(
        'dd_reports',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('address', sa.String(length=500), nullable=True),
        sa.Column('violations_data', JSONB(), nullable=True),
        sa.Column('applications_data', JSONB(), nullable=True),
        sa.Column('line_item_notes', JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    # Versioned prompts
    op.create_table(
        'prompt_templates',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('task_type', sa.String(length=50), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('system_prompt', sa.Text(), nullable=True),
        sa.Column('user_prompt_template', sa.Text(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_by', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('model_name', sa.String(length=50), nullable=True),
        sa.Column('temperature', sa.Float(), nullable=True, server_default='0.2'),
        sa.Column('max_tokens', sa.Integer(), nullable=True, server_default='2048'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('version > 0', name='version_positive'),
    )
    op.create_index('ix_prompt_templates_id', 'prompt_templates', ['id'])
    op.create_index('ix_prompt_templates_task_type', 'prompt_templates', ['task_type'])
    op.create_index(
        'idx_prompt_templates_active',
        'prompt_templates',
        ['task_type', 'name'],
        postgresql_where=sa.text('is_active = TRUE')
    )

    # Language-model usage and cost
    op.create_table(
        'ai_usage_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('feature', sa.String(length=50), nullable=False),
        sa.Column('model', sa.String(length=100), nullable=False),
        sa.Column('prompt_tokens', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('completion_tokens', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_tokens', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('estimated_cost_usd', sa.Numeric(precision=10, scale=6), nullable=False, server_default='0'),
        sa.Column('metadata', JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_ai_usage_logs_feature', 'ai_usage_logs', ['feature'])
    op.create_index('ix_ai_usage_logs_created_at', 'ai_usage_logs', ['created_at'])


def downgrade() -> None:
    op.drop_table('ai_usage_logs')
    op.drop_index('idx_prompt_templates_active', table_name='prompt_templates')
    op.drop_table('prompt_templates')
    op.drop_table('dd_reports')
    op.drop_table('knowledge_entries')
    op.drop_index('idx_knowledge_candidates_open_key', table_name='knowledge_candidates')
    op.drop_table('knowledge_candidates')
    op.drop_index('idx_accuracy_stats_segment', table_name='accuracy_stats')
    op.drop_table('accuracy_stats')
    op.drop_index('idx_corrections_status_created', table_name='corrections')
    op.drop_table('corrections')
