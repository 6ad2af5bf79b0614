"""Brand link index

Revision ID: 001_link_index
Revises:
Create Date: 2026-01-12 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001_link_index'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'brands',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=256), nullable=True),
        sa.Column('domain', sa.String(length=256), nullable=True),
        sa.Column('link_preferences', postgresql.JSONB, nullable=False, server_default='{}'),
        sa.Column('last_ingested_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'brand_link_index',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('brand_id', sa.String(length=36), nullable=False),
        sa.Column('url', sa.Text(), nullable=False),
        sa.Column('link_type', sa.String(length=32), nullable=False, server_default='other'),
        sa.Column('title', sa.Text(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('embedding', postgresql.JSONB, nullable=True),  # Float array, model-dependent length
        sa.Column('is_healthy', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('last_verified_at', sa.DateTime(), nullable=True),
        sa.Column('verification_failures', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('use_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_used_at', sa.DateTime(), nullable=True),
        sa.Column('source', sa.String(length=32), nullable=False, server_default='sitemap'),
        sa.Column('user_confirmed', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['brand_id'], ['brands.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('brand_id', 'url', name='uq_brand_link_url'),
    )
    op.create_index('idx_brand_link_index_healthy', 'brand_link_index', ['brand_id', 'is_healthy'])
    op.create_index('idx_brand_link_index_type', 'brand_link_index', ['brand_id', 'link_type'])

    op.create_table(
        'sitemap_import_jobs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('brand_id', sa.String(length=36), nullable=False),
        sa.Column('sitemap_url', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='pending'),
        sa.Column('urls_found', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('urls_processed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('urls_failed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('product_urls_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('collection_urls_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['brand_id'], ['brands.id'], ondelete='CASCADE'),
    )
    op.create_index('idx_sitemap_jobs_brand', 'sitemap_import_jobs', ['brand_id'])
    op.create_index('idx_sitemap_jobs_status', 'sitemap_import_jobs', ['status'])


def downgrade() -> None:
    op.drop_index('idx_sitemap_jobs_status', table_name='sitemap_import_jobs')
    op.drop_index('idx_sitemap_jobs_brand', table_name='sitemap_import_jobs')
    op.drop_table('sitemap_import_jobs')
    op.drop_index('idx_brand_link_index_type', table_name='brand_link_index')
    op.drop_index('idx_brand_link_index_healthy', table_name='brand_link_index')
    op.drop_table('brand_link_index')
    op.drop_table('brands')
