"""Initial schema: invoices, time entries and exchange rates

Revision ID: 20260316_0900_initial_schema
Revises:
Create Date: 2026-03-16 09:00:00.000000

Tables:
- invoices: line items as JSON, derived totals, account-currency fields
- time_entries: manual and timer entries, linked to an invoice once billed
- exchange_rates: one stored quote per currency pair and date
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '20260316_0900_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


invoice_status = sa.Enum(
    'DRAFT', 'ISSUED', 'PAID', 'CANCELLED', 'OVERDUE',
    name='invoicestatus',
)

time_entry_status = sa.Enum(
    'UNBILLED', 'INVOICED', 'PAID',
    name='timeentrystatus',
)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    """Create invoices, time_entries and exchange_rates."""

    op.create_table(
        'invoices',
        sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('user_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('invoice_number', sa.String(50), nullable=False),
        sa.Column('contact_id', sa.Uuid(as_uuid=True), nullable=True),
        sa.Column('project_id', sa.Uuid(as_uuid=True), nullable=True),
        sa.Column('items', sa.JSON(), nullable=False),
        sa.Column('discount_percent', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('subtotal', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('discount_amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('vat_amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column(
            'vat_rate', sa.Numeric(precision=5, scale=2), nullable=False,
            comment='Average effective VAT rate across items',
        ),
        sa.Column('total', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column(
            'exchange_rate', sa.Numeric(precision=18, scale=6), nullable=True,
            comment='1 invoice currency = rate account currency',
        ),
        sa.Column('amount_in_account_currency', sa.Numeric(precision=15, scale=2), nullable=True),
        sa.Column('account_currency', sa.String(3), nullable=True),
        sa.Column('status', invoice_status, nullable=False),
        sa.Column('issue_date', sa.Date(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('paid_date', sa.Date(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('payment_terms', sa.Text(), nullable=True),
        sa.Column('source_time_entry_ids', sa.JSON(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_invoices')),
    )
    op.create_index(op.f('ix_invoices_user_id'), 'invoices', ['user_id'])
    op.create_index(op.f('ix_invoices_invoice_number'), 'invoices', ['invoice_number'])
    op.create_index(op.f('ix_invoices_status'), 'invoices', ['status'])

    op.create_table(
        'time_entries',
        sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('user_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('project_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('invoice_id', sa.Uuid(as_uuid=True), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('entry_date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_running', sa.Boolean(), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column(
            'hourly_rate', sa.Numeric(precision=10, scale=2), nullable=True,
            comment='Absent rate means the entry cannot be billed',
        ),
        sa.Column('is_billable', sa.Boolean(), nullable=False),
        sa.Column('status', time_entry_status, nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ['invoice_id'], ['invoices.id'],
            name=op.f('fk_time_entries_invoice_id_invoices'),
            ondelete='SET NULL',
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_time_entries')),
    )
    op.create_index(op.f('ix_time_entries_user_id'), 'time_entries', ['user_id'])
    op.create_index(op.f('ix_time_entries_project_id'), 'time_entries', ['project_id'])
    op.create_index(op.f('ix_time_entries_invoice_id'), 'time_entries', ['invoice_id'])
    op.create_index(op.f('ix_time_entries_entry_date'), 'time_entries', ['entry_date'])
    op.create_index(op.f('ix_time_entries_status'), 'time_entries', ['status'])

    op.create_table(
        'exchange_rates',
        sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('base_currency', sa.String(3), nullable=False, comment='Source currency (e.g., USD)'),
        sa.Column('target_currency', sa.String(3), nullable=False, comment='Target currency (e.g., CHF)'),
        sa.Column('rate', sa.Numeric(18, 6), nullable=False),
        sa.Column('rate_date', sa.Date(), nullable=False),
        sa.Column('source', sa.String(50), nullable=True, comment='frankfurter, manual'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_exchange_rates')),
        sa.UniqueConstraint(
            'base_currency', 'target_currency', 'rate_date',
            name=op.f('uq_exchange_rates_base_currency'),
        ),
    )
    op.create_index(op.f('ix_exchange_rates_rate_date'), 'exchange_rates', ['rate_date'])


def downgrade() -> None:
    """Drop all tables and enum types."""
    op.drop_index(op.f('ix_exchange_rates_rate_date'), table_name='exchange_rates')
    op.drop_table('exchange_rates')

    for column in ('status', 'entry_date', 'invoice_id', 'project_id', 'user_id'):
        op.drop_index(op.f(f'ix_time_entries_{column}'), table_name='time_entries')
    op.drop_table('time_entries')

    for column in ('status', 'invoice_number', 'user_id'):
        op.drop_index(op.f(f'ix_invoices_{column}'), table_name='invoices')
    op.drop_table('invoices')

    bind = op.get_bind()
    time_entry_status.drop(bind, checkfirst=True)
    invoice_status.drop(bind, checkfirst=True)
