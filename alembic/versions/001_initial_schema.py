"""initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # SLO configuration documents
    op.create_table(
        'slos',
        sa.Column('id', sa.String(255), primary_key=True),
        sa.Column('team_id', sa.String(255), nullable=False),
        sa.Column('service_name', sa.String(255), nullable=False),
        sa.Column('slo_name', sa.String(255), nullable=False),
        sa.Column('metric_type', sa.String(50), nullable=False, server_default='availability'),
        sa.Column('target_value', sa.Float, nullable=False),  # percentage, e.g. 99.9
        sa.Column('time_window', sa.String(50), nullable=False),  # e.g. "30d"
        sa.Column('source_table', sa.String(50), nullable=False, server_default='otel_logs'),
        sa.Column('filter', sa.Text, nullable=True),
        sa.Column('good_condition', sa.Text, nullable=True),
        sa.Column('numerator_query', sa.Text, nullable=True),
        sa.Column('denominator_query', sa.Text, nullable=True),
        sa.Column('burn_alerts', postgresql.JSONB, nullable=True),
        sa.Column('last_burn_alert_severity', sa.String(20), nullable=True),
        sa.Column('last_burn_alert_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_burn_alert_resolved', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('alert_state_version', sa.Integer, nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('team_id', 'service_name', 'slo_name', name='uq_slos_team_service_name'),
    )
    op.create_index('ix_slos_team_id', 'slos', ['team_id'])

    # Webhook destinations for burn alerts
    op.create_table(
        'webhooks',
        sa.Column('id', sa.String(255), primary_key=True),
        sa.Column('team_id', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=False, server_default=''),
        sa.Column('service', sa.String(50), nullable=False, server_default='generic'),
        sa.Column('url', sa.Text, nullable=False),
        sa.Column('headers', postgresql.JSONB, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_webhooks_team_id', 'webhooks', ['team_id'])

    # Append-only aggregate buckets; no FK so history survives SLO deletion
    op.create_table(
        'slo_aggregates',
        sa.Column('id', sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column('slo_id', sa.String(255), nullable=False),
        sa.Column('bucket_timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('numerator_count', sa.BigInteger, nullable=False, server_default='0'),
        sa.Column('denominator_count', sa.BigInteger, nullable=False, server_default='0'),
        sa.UniqueConstraint('slo_id', 'bucket_timestamp', name='uq_slo_aggregates_bucket'),
    )
    op.create_index('idx_slo_aggregates_slo_bucket', 'slo_aggregates', ['slo_id', 'bucket_timestamp'])


def downgrade() -> None:
    op.drop_index('idx_slo_aggregates_slo_bucket', table_name='slo_aggregates')
    op.drop_table('slo_aggregates')
    op.drop_index('ix_webhooks_team_id', table_name='webhooks')
    op.drop_table('webhooks')
    op.drop_index('ix_slos_team_id', table_name='slos')
    op.drop_table('slos')
