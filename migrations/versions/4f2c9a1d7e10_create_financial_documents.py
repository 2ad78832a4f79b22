"""Create financial documents, catalogs and delivery logs

Revision ID: 4f2c9a1d7e10
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4f2c9a1d7e10'
down_revision = None
branch_labels = None
depends_on = None


def _money(name):
    return sa.Column(name, sa.Numeric(12, 2), nullable=False, server_default=sa.text('0'))


def _document_columns():
    """Shared shape of estimates / change_orders / invoices / service_calls."""
    return [
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('human_number', sa.String(32), nullable=True, unique=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(32), nullable=False, index=True),
        sa.Column('tax_rate', sa.Numeric(7, 3), nullable=False, server_default=sa.text('0')),
        _money('subtotal'),
        _money('tax_amount'),
        _money('total_amount'),
        sa.Column('manual_total', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('customer_name', sa.String(255), nullable=True),
        sa.Column('customer_email', sa.String(320), nullable=True),
        sa.Column('customer_phone', sa.String(32), nullable=True),
        sa.Column('customer_address', sa.String(500), nullable=True),
        sa.Column('project_id', sa.Integer(), nullable=True, index=True),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def _item_columns(parent_table, fk_name):
    return [
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column(fk_name, sa.Integer(), sa.ForeignKey(f'{parent_table}.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('item_type', sa.String(16), nullable=False, server_default=sa.text("'custom'")),
        sa.Column('catalog_ref', sa.Integer(), nullable=True),
        sa.Column('description', sa.String(500), nullable=False),
        sa.Column('quantity', sa.Numeric(12, 4), nullable=False),
        sa.Column('unit', sa.String(32), nullable=False, server_default=sa.text("'each'")),
        sa.Column('unit_price', sa.Numeric(12, 4), nullable=False),
        sa.Column('markup_percentage', sa.Numeric(7, 3), nullable=False, server_default=sa.text('0')),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('password_hash', sa.String(255), nullable=True),
        sa.Column('role', sa.String(16), nullable=False, server_default=sa.text("'user'")),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('company_name', sa.String(), nullable=True),
        sa.Column('contact_name', sa.String(), nullable=True),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('address1', sa.String(), nullable=True),
        sa.Column('address2', sa.String(), nullable=True),
        sa.Column('city', sa.String(), nullable=True),
        sa.Column('state', sa.String(2), nullable=True),
        sa.Column('zip', sa.String(10), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_customers_company_name', 'customers', ['company_name'])
    op.create_index('ix_customers_lower_email', 'customers', [sa.text('lower(email)')])

    # Catalogs (case-insensitive name uniqueness backs the importer upsert)
    op.create_table(
        'catalog_materials',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(100), nullable=True, index=True),
        sa.Column('unit', sa.String(32), nullable=False, server_default=sa.text("'each'")),
        sa.Column('standard_cost', sa.Numeric(12, 4), nullable=False, server_default=sa.text('0')),
        sa.Column('supplier', sa.String(255), nullable=True),
        sa.Column('part_number', sa.String(100), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ux_catalog_materials_lower_name', 'catalog_materials', [sa.text('lower(name)')], unique=True)

    op.create_table(
        'catalog_services',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(100), nullable=True, index=True),
        sa.Column('unit', sa.String(32), nullable=False, server_default=sa.text("'hour'")),
        sa.Column('standard_rate', sa.Numeric(12, 4), nullable=False, server_default=sa.text('0')),
        sa.Column('cost', sa.Numeric(12, 4), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ux_catalog_services_lower_name', 'catalog_services', [sa.text('lower(name)')], unique=True)

    # Documents
    op.create_table(
        'estimates',
        *_document_columns(),
        sa.Column('converted_percentage', sa.Numeric(7, 3), nullable=False, server_default=sa.text('0')),
    )
    op.create_index('ix_estimates_created_at', 'estimates', ['created_at'])
    op.create_table('estimate_items', *_item_columns('estimates', 'estimate_id'))

    op.create_table(
        'change_orders',
        *_document_columns(),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('justification', sa.Text(), nullable=True),
        sa.Column('requested_date', sa.Date(), nullable=True),
        sa.Column('approved_date', sa.Date(), nullable=True),
        sa.Column('converted_percentage', sa.Numeric(7, 3), nullable=False, server_default=sa.text('0')),
    )
    op.create_index('ix_change_orders_created_at', 'change_orders', ['created_at'])
    op.create_table('change_order_items', *_item_columns('change_orders', 'change_order_id'))

    op.create_table(
        'invoices',
        *_document_columns(),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('paid_date', sa.Date(), nullable=True),
        sa.Column('source_type', sa.String(32), nullable=True),
        sa.Column('source_id', sa.Integer(), nullable=True),
        sa.Column('source_percentage', sa.Numeric(7, 3), nullable=True),
        sa.Column('stripe_session_id', sa.String(255), nullable=True, index=True),
        sa.Column('payment_intent_id', sa.String(255), nullable=True),
        sa.Column('payment_method', sa.String(64), nullable=True),
        sa.Column('payment_status', sa.String(32), nullable=True),
    )
    op.create_index('ix_invoices_source', 'invoices', ['source_type', 'source_id'])
    op.create_index('ix_invoices_created_at', 'invoices', ['created_at'])
    op.create_table('invoice_items', *_item_columns('invoices', 'invoice_id'))

    op.create_table(
        'service_calls',
        *_document_columns(),
        sa.Column('priority', sa.String(16), nullable=False, server_default=sa.text("'medium'")),
        sa.Column('service_type', sa.String(100), nullable=True),
        sa.Column('billing_type', sa.String(32), nullable=False, server_default=sa.text("'time_material'")),
        sa.Column('scheduled_date', sa.Date(), nullable=True),
        sa.Column('completed_date', sa.Date(), nullable=True),
        sa.Column('technician_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('estimated_hours', sa.Numeric(8, 2), nullable=True),
        sa.Column('actual_hours', sa.Numeric(8, 2), nullable=True),
        sa.Column('hourly_rate', sa.Numeric(10, 2), nullable=True),
        sa.Column('materials_cost', sa.Numeric(12, 2), nullable=True),
        sa.Column('total_cost', sa.Numeric(12, 2), nullable=True),
        sa.Column('converted_invoice_id', sa.Integer(), sa.ForeignKey('invoices.id', ondelete='SET NULL'), nullable=True),
    )
    op.create_index('ix_service_calls_scheduled_date', 'service_calls', ['scheduled_date'])
    op.create_index('ix_service_calls_created_at', 'service_calls', ['created_at'])
    op.create_table('service_call_items', *_item_columns('service_calls', 'service_call_id'))

    # Delivery / payment logs
    op.create_table(
        'email_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('to_email', sa.String(320), nullable=False, index=True),
        sa.Column('template', sa.String(64), nullable=False),
        sa.Column('subject', sa.String(200), nullable=False),
        sa.Column('document_type', sa.String(32), nullable=True),
        sa.Column('document_id', sa.Integer(), nullable=True),
        sa.Column('provider_msg_id', sa.String(128), nullable=True, index=True),
        sa.Column('status', sa.String(20), nullable=False, index=True),
        sa.Column('meta', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'payment_event_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('stripe_event_id', sa.String(255), nullable=False, unique=True),
        sa.Column('type', sa.String(80), nullable=False, index=True),
        sa.Column('signature_valid', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('invoice_id', sa.Integer(), sa.ForeignKey('invoices.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('notes', sa.String(255), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )


def downgrade():
    op.drop_table('payment_event_logs')
    op.drop_table('email_logs')
    op.drop_table('service_call_items')
    op.drop_table('service_calls')
    op.drop_table('invoice_items')
    op.drop_table('invoices')
    op.drop_table('change_order_items')
    op.drop_table('change_orders')
    op.drop_table('estimate_items')
    op.drop_table('estimates')
    op.drop_table('catalog_services')
    op.drop_table('catalog_materials')
    op.drop_table('customers')
    op.drop_table('users')
