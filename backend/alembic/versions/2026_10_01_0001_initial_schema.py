"""initial schema: videos, upload sessions, encoding jobs, pin observations

Revision ID: 2026_10_01_0001
Revises:
Create Date: 2026-10-01 09:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '2026_10_01_0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'videos',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('owner', sa.String(), nullable=False),
        sa.Column('permlink', sa.String(8), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='uploaded'),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.String(), nullable=False, server_default=''),
        sa.Column('tags', sa.JSON(), nullable=True),
        sa.Column('community', sa.String(), nullable=True),
        sa.Column('decline_rewards', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('thumbnail', sa.String(), nullable=True),
        sa.Column('filename', sa.String(), nullable=True),
        sa.Column('original_filename', sa.String(), nullable=True),
        sa.Column('size', sa.BigInteger(), nullable=True),
        sa.Column('duration', sa.Float(), nullable=True),
        sa.Column('encoding_progress', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('upload_id', sa.String(), nullable=True),
        sa.Column('job_id', sa.String(), nullable=True),
        sa.Column('created', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_videos_owner', 'videos', ['owner'])
    op.create_index('ix_videos_owner_created', 'videos', ['owner', 'created'])
    op.create_index('ix_videos_status', 'videos', ['status'])
    op.create_index('ix_videos_permlink', 'videos', ['permlink'], unique=True)
    op.create_index('ix_videos_created', 'videos', ['created'])
    op.create_index('ix_videos_job_id', 'videos', ['job_id'])
    # at most one video per upload
    op.create_index('ix_videos_upload_id', 'videos', ['upload_id'], unique=True)

    op.create_table(
        'upload_sessions',
        sa.Column('upload_id', sa.String(), primary_key=True),
        sa.Column('owner', sa.String(), nullable=False),
        sa.Column('original_filename', sa.String(), nullable=False),
        sa.Column('declared_size', sa.BigInteger(), nullable=True),
        sa.Column('declared_duration', sa.Float(), nullable=True),
        sa.Column('tus_completed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('tus_upload_id', sa.String(), nullable=True),
        sa.Column('storage_path', sa.String(), nullable=True),
        sa.Column('received_size', sa.BigInteger(), nullable=True),
        sa.Column('finalized', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('abandoned', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('video_id', sa.Uuid(), nullable=True),
        sa.Column('created', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('expires', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_upload_sessions_owner', 'upload_sessions', ['owner'])
    op.create_index('ix_upload_sessions_created', 'upload_sessions', ['created'])
    op.create_index('ix_upload_sessions_tus_completed', 'upload_sessions', ['tus_completed'])
    op.create_index('ix_upload_sessions_finalized', 'upload_sessions', ['finalized'])
    op.create_index('ix_upload_sessions_video_id', 'upload_sessions', ['video_id'])
    op.create_index('ix_upload_sessions_expires', 'upload_sessions', ['expires'])

    op.create_table(
        'encoding_jobs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('video_id', sa.Uuid(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='queued'),
        sa.Column('pct', sa.Float(), nullable=False, server_default='0'),
        sa.Column('download_pct', sa.Float(), nullable=False, server_default='0'),
        sa.Column('input_cid', sa.String(), nullable=True),
        sa.Column('error_message', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_encoding_jobs_video_id', 'encoding_jobs', ['video_id'])
    op.create_index('ix_encoding_jobs_status', 'encoding_jobs', ['status'])
    op.create_index('ix_encoding_jobs_created_at', 'encoding_jobs', ['created_at'])

    op.create_table(
        'pin_observations',
        sa.Column('cid', sa.String(), primary_key=True),
        sa.Column('first_seen_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )


def downgrade():
    op.drop_table('pin_observations')
    op.drop_index('ix_encoding_jobs_created_at', 'encoding_jobs')
    op.drop_index('ix_encoding_jobs_status', 'encoding_jobs')
    op.drop_index('ix_encoding_jobs_video_id', 'encoding_jobs')
    op.drop_table('encoding_jobs')
    op.drop_table('upload_sessions')
    op.drop_table('videos')
