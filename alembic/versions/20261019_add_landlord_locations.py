"""add landlord_locations and match responded_at

Revision ID: add_landlord_locations
Revises: create_request_pool
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa

from request_pool.models import normalize_location


# revision identifiers, used by Alembic.
revision = 'add_landlord_locations'
down_revision = 'create_request_pool'
branch_labels = None
depends_on = None


def upgrade():
    locations = op.create_table(
        'landlord_locations',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('landlord_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('location', sa.String(255), nullable=False),
        sa.UniqueConstraint('landlord_id', 'location', name='uq_landlord_location'),
    )
    op.create_index('ix_landlord_locations_landlord_id', 'landlord_locations', ['landlord_id'])
    # Candidate search: landlords by normalized location
    op.create_index('ix_landlord_locations_location', 'landlord_locations', ['location'])

    profiles = sa.table(
        'landlord_profiles',
        sa.column('user_id', sa.Integer()),
        sa.column('preferred_locations', sa.JSON()),
    )
    rows = []
    for user_id, preferred in op.get_bind().execute(sa.select(profiles.c.user_id, profiles.c.preferred_locations)):
        for location in {normalize_location(loc) for loc in (preferred or [])} - {''}:
            rows.append({'landlord_id': user_id, 'location': location})
    if rows:
        op.bulk_insert(locations, rows)

    # Response time metrics: when the landlord answered
    with op.batch_alter_table('landlord_request_matches') as batch_op:
        batch_op.add_column(sa.Column('responded_at', sa.DateTime(), nullable=True))


def downgrade():
    with op.batch_alter_table('landlord_request_matches') as batch_op:
        batch_op.drop_column('responded_at')

    op.drop_table('landlord_locations')
