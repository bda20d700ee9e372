"""create tournaments, tournament_participants and tickets tables

Revision ID: 0001_create_tournament_tables
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = '0001_create_tournament_tables'
down_revision = None
branch_labels = None
depends_on = None

tournament_type = postgresql.ENUM('free', 'paid', name='tournament_type', create_type=False)
tournament_status = postgresql.ENUM(
    'draft', 'published', 'in_progress', 'finished', 'cancelled',
    name='tournament_status', create_type=False,
)
participant_status = postgresql.ENUM(
    'registered', 'confirmed', 'cancelled', 'disqualified',
    name='participant_status', create_type=False,
)
ticket_status = postgresql.ENUM(
    'reserved', 'paid', 'used', 'expired', 'cancelled',
    name='ticket_status', create_type=False,
)


def _timestamps() -> list:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Create the three lifecycle tables"""
    bind = op.get_bind()
    for enum in (tournament_type, tournament_status, participant_status, ticket_status):
        enum.create(bind, checkfirst=True)

    op.create_table(
        'tournaments',
        sa.Column('id', postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('type', tournament_type, nullable=False),
        sa.Column('status', tournament_status, nullable=False, index=True),
        sa.Column('organizer_id', sa.String(64), nullable=False, index=True),
        sa.Column('category_id', sa.String(64), nullable=True),
        sa.Column('game_id', sa.String(64), nullable=True),
        sa.Column('max_participants', sa.Integer, nullable=False),
        sa.Column('current_participants', sa.Integer, nullable=False, server_default='0'),
        sa.Column('entry_fee', sa.Numeric(10, 2), nullable=False, server_default='0.00'),
        sa.Column('prize_pool', sa.Numeric(12, 2), nullable=False, server_default='0.00'),
        sa.Column('commission_rate', sa.Numeric(5, 4), nullable=False, server_default='0.0500'),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=True, index=True),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('registration_start', sa.DateTime(timezone=True), nullable=True),
        sa.Column('registration_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('stream_url', sa.String(500), nullable=True),
        sa.Column('stream_platform', sa.String(50), nullable=True),
        sa.Column('rules', sa.Text, nullable=True),
        sa.Column('banner_image_url', sa.String(500), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer, nullable=False, server_default='1'),
        *_timestamps(),
        sa.CheckConstraint('max_participants > 0', name='ck_tournaments_max_positive'),
        sa.CheckConstraint(
            'current_participants >= 0 AND current_participants <= max_participants',
            name='ck_tournaments_capacity',
        ),
        sa.CheckConstraint(
            "(type = 'free' AND entry_fee = 0) OR (type = 'paid' AND entry_fee > 0)",
            name='ck_tournaments_fee_matches_type',
        ),
        sa.CheckConstraint(
            'commission_rate >= 0 AND commission_rate <= 1',
            name='ck_tournaments_commission_rate',
        ),
        sa.CheckConstraint('prize_pool >= 0', name='ck_tournaments_prize_pool'),
        sa.CheckConstraint(
            'end_date IS NULL OR start_date IS NULL OR end_date > start_date',
            name='ck_tournaments_dates',
        ),
        sa.CheckConstraint(
            'registration_end IS NULL OR registration_start IS NULL '
            'OR registration_end > registration_start',
            name='ck_tournaments_registration_window',
        ),
        sa.CheckConstraint(
            'registration_end IS NULL OR start_date IS NULL '
            'OR registration_end <= start_date',
            name='ck_tournaments_registration_before_start',
        ),
    )

    op.create_table(
        'tournament_participants',
        sa.Column('id', postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column(
            'tournament_id', postgresql.UUID(as_uuid=False),
            sa.ForeignKey('tournaments.id', ondelete='CASCADE'), nullable=False, index=True,
        ),
        sa.Column('user_id', sa.String(64), nullable=False, index=True),
        sa.Column('registered_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', participant_status, nullable=False),
        sa.Column('team_name', sa.String(50), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        *_timestamps(),
    )

    # One participant record per user per tournament
    op.create_unique_constraint(
        'uq_participant_user', 'tournament_participants', ['tournament_id', 'user_id']
    )

    op.create_table(
        'tickets',
        sa.Column('id', postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column('ticket_code', sa.String(50), nullable=False),
        sa.Column('qr_payload', sa.Text, nullable=True),
        sa.Column('status', ticket_status, nullable=False),
        sa.Column(
            'tournament_id', postgresql.UUID(as_uuid=False),
            sa.ForeignKey('tournaments.id', ondelete='RESTRICT'), nullable=False, index=True,
        ),
        sa.Column('user_id', sa.String(64), nullable=False, index=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('commission', sa.Numeric(10, 2), nullable=False, server_default='0.00'),
        sa.Column('commission_rate', sa.Numeric(5, 4), nullable=False),
        sa.Column('reserved_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expiration_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('valid_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('purchased_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payment_reference', sa.String(100), nullable=True),
        sa.Column('version', sa.Integer, nullable=False, server_default='1'),
        *_timestamps(),
        sa.CheckConstraint('price >= 0', name='ck_tickets_price'),
        sa.CheckConstraint('commission >= 0', name='ck_tickets_commission'),
        sa.CheckConstraint(
            'commission_rate >= 0 AND commission_rate <= 1',
            name='ck_tickets_commission_rate',
        ),
        sa.CheckConstraint("status <> 'used' OR used_at IS NOT NULL", name='ck_tickets_used_at'),
    )

    op.create_index('ix_tickets_ticket_code', 'tickets', ['ticket_code'], unique=True)
    # Expiration sweep lookup
    op.create_index('ix_tickets_status_expiration', 'tickets', ['status', 'expiration_date'])


def downgrade() -> None:
    """Drop the lifecycle tables"""
    op.drop_index('ix_tickets_status_expiration')
    op.drop_index('ix_tickets_ticket_code')
    op.drop_table('tickets')
    op.drop_constraint('uq_participant_user', 'tournament_participants')
    op.drop_table('tournament_participants')
    op.drop_table('tournaments')

    bind = op.get_bind()
    for enum in (ticket_status, participant_status, tournament_status, tournament_type):
        enum.drop(bind, checkfirst=True)
