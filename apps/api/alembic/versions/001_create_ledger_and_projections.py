"""Create ledger, monitored entities and projection tables.

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None

DECISION_CHECK = "decision IN ('NORMAL', 'ALERT', 'CRITICAL')"


def upgrade() -> None:
    op.create_table(
        'ledger_events',
        sa.Column('id', sa.BigInteger().with_variant(sa.Integer(), 'sqlite'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('prev_hash', sa.String(length=64), nullable=False),
        sa.Column('event_hash', sa.String(length=64), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('prev_hash'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_ledger_events_created_at', 'ledger_events', ['created_at'])
    op.create_index('ix_ledger_events_event_type', 'ledger_events', ['event_type'])
    op.create_index('ix_ledger_events_event_hash', 'ledger_events', ['event_hash'], unique=True)

    op.create_table(
        'monitored_entities',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=80), nullable=False),
        sa.Column('lat', sa.Float(), nullable=False),
        sa.Column('lon', sa.Float(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_monitored_entities_id', 'monitored_entities', ['id'])
    op.create_index('ix_monitored_entities_is_active', 'monitored_entities', ['is_active'])

    op.create_table(
        'entity_state',
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('decision', sa.String(length=16), nullable=False),
        sa.Column('applied_rule', sa.JSON(), nullable=False),
        sa.Column('raw_input', sa.JSON(), nullable=False),
        sa.Column('ledger_hash', sa.String(length=64), nullable=False),
        sa.Column('ledger_event_id', sa.BigInteger().with_variant(sa.Integer(), 'sqlite'), nullable=False),
        sa.ForeignKeyConstraint(['entity_id'], ['monitored_entities.id']),
        sa.PrimaryKeyConstraint('entity_id'),
        sa.CheckConstraint(DECISION_CHECK, name='ck_entity_state_decision'),
    )

    op.create_table(
        'decision_history',
        sa.Column('ledger_event_id', sa.BigInteger().with_variant(sa.Integer(), 'sqlite'), nullable=False, autoincrement=False),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('decision', sa.String(length=16), nullable=False),
        sa.Column('applied_rule', sa.JSON(), nullable=False),
        sa.Column('raw_input', sa.JSON(), nullable=False),
        sa.Column('ledger_hash', sa.String(length=64), nullable=False),
        sa.ForeignKeyConstraint(['ledger_event_id'], ['ledger_events.id']),
        sa.ForeignKeyConstraint(['entity_id'], ['monitored_entities.id']),
        sa.PrimaryKeyConstraint('ledger_event_id'),
        sa.UniqueConstraint('ledger_hash'),
        sa.CheckConstraint(DECISION_CHECK, name='ck_decision_history_decision'),
    )
    op.create_index('ix_decision_history_entity_time', 'decision_history', ['entity_id', 'created_at'])


def downgrade() -> None:
    op.drop_index('ix_decision_history_entity_time', table_name='decision_history')
    op.drop_table('decision_history')
    op.drop_table('entity_state')
    op.drop_index('ix_monitored_entities_is_active', table_name='monitored_entities')
    op.drop_index('ix_monitored_entities_id', table_name='monitored_entities')
    op.drop_table('monitored_entities')
    op.drop_index('ix_ledger_events_event_hash', table_name='ledger_events')
    op.drop_index('ix_ledger_events_event_type', table_name='ledger_events')
    op.drop_index('ix_ledger_events_created_at', table_name='ledger_events')
    op.drop_table('ledger_events')
