"""create projects and waitlist_entries

Revision ID: waitlist_initial
Revises:
Create Date: 2026-10-17

"""
from alembic import op
import sqlalchemy as sa

from app.core.types import GUID

# revision identifiers, used by Alembic.
revision = 'waitlist_initial'
down_revision = None
branch_labels = None
depends_on = None

ranking_mode = sa.Enum('fifo', 'random', 'score_based', 'manual', name='rankingmode')


def upgrade():
    op.create_table(
        'projects',
        sa.Column('id', GUID(), primary_key=True),
        sa.Column('owner_id', sa.String(), nullable=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('slug', sa.String(), nullable=False),
        sa.Column('api_key', sa.String(), nullable=False),
        sa.Column('is_frozen', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('show_position', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('mode', ranking_mode, nullable=False, server_default='fifo'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_projects_owner_id', 'projects', ['owner_id'])
    op.create_index('ix_projects_slug', 'projects', ['slug'], unique=True)
    op.create_index('ix_projects_api_key', 'projects', ['api_key'], unique=True)

    op.create_table(
        'waitlist_entries',
        sa.Column('id', GUID(), primary_key=True),
        sa.Column('project_id', GUID(), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('referral_token', sa.String(), nullable=False),
        sa.Column('referred_by', sa.String(), nullable=True),
        sa.Column('priority_score', sa.Integer(), nullable=False, server_default='0'),
        sa.UniqueConstraint('project_id', 'email', name='uq_waitlist_project_email'),
        sa.UniqueConstraint('project_id', 'referral_token', name='uq_waitlist_project_referral_token'),
    )
    op.create_index('ix_waitlist_entries_project_joined_at', 'waitlist_entries', ['project_id', 'joined_at'])


def downgrade():
    op.drop_index('ix_waitlist_entries_project_joined_at', table_name='waitlist_entries')
    op.drop_table('waitlist_entries')
    op.drop_index('ix_projects_api_key', table_name='projects')
    op.drop_index('ix_projects_slug', table_name='projects')
    op.drop_index('ix_projects_owner_id', table_name='projects')
    op.drop_table('projects')
    ranking_mode.drop(op.get_bind(), checkfirst=True)
