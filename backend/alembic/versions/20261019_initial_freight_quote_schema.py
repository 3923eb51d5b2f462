"""
Initial freight quote schema: clients, quote requests, rates, bookings, audit log.

Revision ID: 20261019_initial_freight_quote_schema
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from typing import Union

# revision identifiers, used by Alembic.
revision: str = '20261019_initial_freight_quote_schema'
down_revision: Union[str, None] = None
branch_labels = None
depends_on = None

_BOOKING_STATUS = sa.Enum('pending', 'confirmed', 'cancelled', name='bookingstatus')
_AUDIT_ACTION = sa.Enum('get_rates', 'create_booking', name='auditaction')


def upgrade() -> None:
    op.create_table(
        'clients',
        sa.Column('id', sa.String(length=64), primary_key=True),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('rate_tokens_remaining', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('rate_tokens_used', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.CheckConstraint('rate_tokens_remaining >= 0', name='ck_clients_tokens_remaining'),
        sa.CheckConstraint('rate_tokens_used >= 0', name='ck_clients_tokens_used'),
    )
    op.create_index('ix_clients_id', 'clients', ['id'])

    op.create_table(
        'quote_requests',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('client_id', sa.String(length=64), sa.ForeignKey('clients.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('origin_postal', sa.String(), nullable=True),
        sa.Column('destination_postal', sa.String(), nullable=True),
        sa.Column('ship_date', sa.Date(), nullable=True),
        sa.Column('modes', sa.JSON(), nullable=False),
        sa.Column('request_payload_json', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    )
    op.create_index('ix_quote_requests_client_id', 'quote_requests', ['client_id'])
    op.create_index('ix_quote_requests_user_id', 'quote_requests', ['user_id'])
    op.create_index('ix_quote_requests_origin_postal', 'quote_requests', ['origin_postal'])
    op.create_index('ix_quote_requests_destination_postal', 'quote_requests', ['destination_postal'])

    op.create_table(
        'rates',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('quote_request_id', sa.String(length=36), sa.ForeignKey('quote_requests.id', ondelete='CASCADE'), nullable=False),
        sa.Column('provider_rate_id', sa.String(), nullable=True),
        sa.Column('mode', sa.String(length=16), nullable=True),
        sa.Column('carrier_name', sa.String(), nullable=False),
        sa.Column('service_name', sa.String(), nullable=False),
        sa.Column('transit_days', sa.Integer(), nullable=True),
        sa.Column('total_cost', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('raw_json', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    )
    op.create_index('ix_rates_quote_request_id', 'rates', ['quote_request_id'])

    op.create_table(
        'bookings',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('client_id', sa.String(length=64), sa.ForeignKey('clients.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('quote_request_id', sa.String(length=36), sa.ForeignKey('quote_requests.id', ondelete='CASCADE'), nullable=False),
        sa.Column('rate_id', sa.String(length=36), sa.ForeignKey('rates.id'), nullable=False),
        sa.Column('booking_id_external', sa.String(), nullable=True),
        sa.Column('confirmation_number', sa.String(), nullable=True),
        sa.Column('status', _BOOKING_STATUS, nullable=False, server_default='pending'),
        sa.Column('raw_json', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    )
    op.create_index('ix_bookings_client_id', 'bookings', ['client_id'])
    op.create_index('ix_bookings_user_id', 'bookings', ['user_id'])
    op.create_index('ix_bookings_quote_request_id', 'bookings', ['quote_request_id'])
    op.create_index('ix_bookings_status', 'bookings', ['status'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('client_id', sa.String(length=64), sa.ForeignKey('clients.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=True),
        sa.Column('action', _AUDIT_ACTION, nullable=False),
        sa.Column('metadata_json', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    )
    op.create_index('ix_audit_logs_client_id', 'audit_logs', ['client_id'])
    op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'])


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('bookings')
    op.drop_table('rates')
    op.drop_table('quote_requests')
    op.drop_table('clients')
    bind = op.get_bind()
    _AUDIT_ACTION.drop(bind, checkfirst=True)
    _BOOKING_STATUS.drop(bind, checkfirst=True)
