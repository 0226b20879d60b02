"""Create evaluation tables

Revision ID: 001_create_evaluation_tables
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_create_evaluation_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create catalog, assignment, evaluation and response tables."""
    op.create_table(
        'universities',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('city', sa.String(length=120), nullable=True),
        sa.Column('region', sa.String(length=120), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_universities_name', 'universities', ['name'])

    op.create_table(
        'dimensions',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('code', sa.String(length=50), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code', name='uq_dimensions_code'),
    )

    op.create_table(
        'questions',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('dimension_id', sa.BigInteger(), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('order_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('scale_labels', sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['dimension_id'], ['dimensions.id']),
        sa.UniqueConstraint('dimension_id', 'order_index', name='uq_questions_dimension_order'),
    )
    op.create_index('idx_questions_dimension', 'questions', ['dimension_id'])

    op.create_table(
        'rater_assignments',
        sa.Column('rater_id', sa.String(length=64), nullable=False),
        sa.Column('assigned_organization_id', sa.BigInteger(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('rater_id'),
        sa.ForeignKeyConstraint(['assigned_organization_id'], ['universities.id']),
    )

    op.create_table(
        'evaluations',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('rater_id', sa.String(length=64), nullable=False),
        sa.Column('organization_id', sa.BigInteger(), nullable=False),
        sa.Column('dimension_id', sa.BigInteger(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='draft'),
        sa.Column('comments', sa.Text(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['organization_id'], ['universities.id']),
        sa.ForeignKeyConstraint(['dimension_id'], ['dimensions.id']),
        sa.UniqueConstraint(
            'rater_id', 'organization_id', 'dimension_id',
            name='uq_evaluations_rater_organization_dimension',
        ),
        sa.CheckConstraint("status IN ('draft', 'submitted')", name='ck_evaluations_status'),
    )
    op.create_index('idx_evaluations_rater_created', 'evaluations', ['rater_id', 'created_at'])
    op.create_index(
        'idx_evaluations_organization_dimension', 'evaluations', ['organization_id', 'dimension_id']
    )

    op.create_table(
        'evaluation_responses',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('evaluation_id', sa.BigInteger(), nullable=False),
        sa.Column('question_id', sa.BigInteger(), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['evaluation_id'], ['evaluations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['question_id'], ['questions.id']),
        sa.UniqueConstraint('evaluation_id', 'question_id', name='uq_evaluation_responses_question'),
        sa.CheckConstraint('score BETWEEN 1 AND 5', name='ck_evaluation_responses_score'),
    )
    op.create_index('idx_evaluation_responses_evaluation', 'evaluation_responses', ['evaluation_id'])


def downgrade() -> None:
    """Drop every evaluation table."""
    op.drop_index('idx_evaluation_responses_evaluation', table_name='evaluation_responses')
    op.drop_table('evaluation_responses')
    op.drop_index('idx_evaluations_organization_dimension', table_name='evaluations')
    op.drop_index('idx_evaluations_rater_created', table_name='evaluations')
    op.drop_table('evaluations')
    op.drop_table('rater_assignments')
    op.drop_index('idx_questions_dimension', table_name='questions')
    op.drop_table('questions')
    op.drop_table('dimensions')
    op.drop_index('ix_universities_name', table_name='universities')
    op.drop_table('universities')
