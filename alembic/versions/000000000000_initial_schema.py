"""initial_schema

Revision ID: 000000000000
Revises: 
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '000000000000'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create properties table
    op.create_table(
        'properties',
        sa.Column('id', sa.String(length=36), nullable=False, comment='Internal opaque identifier'),
        sa.Column('external_id', sa.String(length=100), nullable=False, comment='Source-scoped stable identifier (deduplication key)'),
        sa.Column('source', sa.String(length=50), nullable=False, comment='Feed that produced this record'),
        sa.Column('scraped_at', sa.DateTime(timezone=True), nullable=False, comment='Ingestion timestamp'),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=True, comment='Source-reported transaction date'),
        sa.Column('price', sa.Float(), nullable=True, comment='Price'),
        sa.Column('price_per_sqm', sa.Integer(), nullable=True, comment='round(price / surface), stored for query performance'),
        sa.Column('surface', sa.Float(), nullable=True, comment='Surface in m²'),
        sa.Column('rooms', sa.Integer(), nullable=True),
        sa.Column('bedrooms', sa.Integer(), nullable=True),
        sa.Column('property_type', sa.String(length=20), nullable=False, comment='apartment, house, studio, loft, land, other'),
        sa.Column('transaction_type', sa.String(length=20), nullable=False, comment='sale, rental'),
        sa.Column('city', sa.String(length=100), nullable=True),
        sa.Column('postal_code', sa.String(length=10), nullable=True),
        sa.Column('department', sa.String(length=3), nullable=True),
        sa.Column('region', sa.String(length=100), nullable=True),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('title', sa.String(length=255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('url', sa.String(length=500), nullable=True),
        sa.Column('image_urls', sa.Text(), nullable=True, comment='JSON-serialized list of image URLs'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_properties'),
        sa.UniqueConstraint('external_id', name='uq_properties_external_id'),
        sa.CheckConstraint('price IS NULL OR price > 0', name='check_price_positive'),
        sa.CheckConstraint('surface IS NULL OR surface > 0', name='check_surface_positive'),
        sa.CheckConstraint(
            "property_type IN ('apartment', 'house', 'studio', 'loft', 'land', 'other')",
            name='check_property_type_valid'
        ),
        sa.CheckConstraint("transaction_type IN ('sale', 'rental')", name='check_transaction_type_valid'),
        sa.CheckConstraint('latitude IS NULL OR (latitude >= -90 AND latitude <= 90)', name='check_latitude_range'),
        sa.CheckConstraint('longitude IS NULL OR (longitude >= -180 AND longitude <= 180)', name='check_longitude_range')
    )
    op.create_index('idx_properties_city', 'properties', ['city'], unique=False)
    op.create_index('idx_properties_postal_code', 'properties', ['postal_code'], unique=False)
    op.create_index('idx_properties_department', 'properties', ['department'], unique=False)
    op.create_index('idx_properties_property_type', 'properties', ['property_type'], unique=False)
    op.create_index('idx_properties_transaction_type', 'properties', ['transaction_type'], unique=False)
    op.create_index('idx_properties_scraped_at', 'properties', ['scraped_at'], unique=False)
    op.create_index('idx_properties_lat_lon', 'properties', ['latitude', 'longitude'], unique=False)

    # Create ingestion_runs table
    op.create_table(
        'ingestion_runs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('source', sa.String(length=50), nullable=False, comment='Source feed: dvf, demo'),
        sa.Column('status', sa.String(length=20), nullable=False, comment='Run status: running, success, partial, failure'),
        sa.Column('records_fetched', sa.Integer(), nullable=False, comment='Entities produced by normalization'),
        sa.Column('records_saved', sa.Integer(), nullable=False, comment='Entities upserted'),
        sa.Column('records_failed', sa.Integer(), nullable=False, comment='Entities whose upsert failed'),
        sa.Column('partitions_failed', sa.Integer(), nullable=False, comment='Partition/period fetches that failed'),
        sa.Column('error_message', sa.Text(), nullable=True, comment='Error details if failed'),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False, comment='Run start time'),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True, comment='Run completion time'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_ingestion_runs'),
        sa.CheckConstraint(
            "status IN ('running', 'success', 'partial', 'failure')",
            name='check_run_status_valid'
        )
    )
    op.create_index('idx_ingestion_runs_status', 'ingestion_runs', ['status'], unique=False)
    op.create_index('idx_ingestion_runs_started_at', 'ingestion_runs', ['started_at'], unique=False)


def downgrade() -> None:
    op.drop_index('idx_ingestion_runs_started_at', table_name='ingestion_runs')
    op.drop_index('idx_ingestion_runs_status', table_name='ingestion_runs')
    op.drop_table('ingestion_runs')

    op.drop_index('idx_properties_lat_lon', table_name='properties')
    op.drop_index('idx_properties_scraped_at', table_name='properties')
    op.drop_index('idx_properties_transaction_type', table_name='properties')
    op.drop_index('idx_properties_property_type', table_name='properties')
    op.drop_index('idx_properties_department', table_name='properties')
    op.drop_index('idx_properties_postal_code', table_name='properties')
    op.drop_index('idx_properties_city', table_name='properties')
    op.drop_table('properties')
