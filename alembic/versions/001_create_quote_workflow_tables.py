"""Create quote workflow tables

Revision ID: 001_quote_workflow
Revises:
Create Date: 2026-10-18

Note: customers, customer_vehicles, elevators and users mirror directory
records owned by other services; they are created here only when missing.
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_quote_workflow'
down_revision = None
branch_labels = None
depends_on = None


def _existing_tables():
    return set(sa.inspect(op.get_bind()).get_table_names())


def upgrade():
    """Create quote workflow tables."""
    existing = _existing_tables()

    if 'customers' not in existing:
        op.create_table(
            'customers',
            sa.Column('id', sa.String(36), primary_key=True),
            sa.Column('tenant_id', sa.String(36), nullable=False, index=True),
            sa.Column('name', sa.String(200), nullable=False),
            sa.Column('phone', sa.String(20)),
            sa.Column('email', sa.String(255), index=True),
            sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        )

    if 'customer_vehicles' not in existing:
        op.create_table(
            'customer_vehicles',
            sa.Column('id', sa.String(36), primary_key=True),
            sa.Column('customer_id', sa.String(36), sa.ForeignKey('customers.id', ondelete='CASCADE'),
                      nullable=False, index=True),
            sa.Column('placa', sa.String(10), index=True),
            sa.Column('vin', sa.String(17)),
            sa.Column('make', sa.String(50)),
            sa.Column('model', sa.String(50)),
            sa.Column('year', sa.Integer()),
            sa.Column('mileage', sa.Integer()),
            sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        )

    if 'elevators' not in existing:
        op.create_table(
            'elevators',
            sa.Column('id', sa.String(36), primary_key=True),
            sa.Column('tenant_id', sa.String(36), nullable=False, index=True),
            sa.Column('name', sa.String(100), nullable=False),
            sa.Column('number', sa.String(20), nullable=False),
            sa.Column('status', sa.String(20), nullable=False, server_default='free'),
            sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        )

    if 'users' not in existing:
        op.create_table(
            'users',
            sa.Column('id', sa.String(36), primary_key=True),
            sa.Column('tenant_id', sa.String(36), nullable=False, index=True),
            sa.Column('email', sa.String(255), nullable=False, index=True),
            sa.Column('name', sa.String(200)),
            sa.Column('role', sa.String(20), nullable=False, server_default='receptionist'),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        )

    op.create_table(
        'quotes',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('tenant_id', sa.String(36), nullable=False, index=True),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('number', sa.String(20), nullable=False),
        sa.Column('status', sa.String(30), nullable=False, server_default='draft', index=True),
        sa.Column('customer_id', sa.String(36), sa.ForeignKey('customers.id'), nullable=False, index=True),
        sa.Column('vehicle_id', sa.String(36), sa.ForeignKey('customer_vehicles.id'), nullable=False, index=True),
        sa.Column('elevator_id', sa.String(36), sa.ForeignKey('elevators.id')),
        # Assignment
        sa.Column('assigned_mechanic_id', sa.String(36), index=True),
        sa.Column('assigned_at', sa.DateTime()),
        # Reported problem
        sa.Column('reported_problem_category', sa.String(30)),
        sa.Column('reported_problem_description', sa.Text()),
        sa.Column('reported_problem_symptoms', sa.JSON(), nullable=False),
        # Diagnosis
        sa.Column('identified_problem_category', sa.String(30)),
        sa.Column('identified_problem_description', sa.Text()),
        sa.Column('identified_problem_id', sa.String(36)),
        sa.Column('diagnostic_notes', sa.Text()),
        sa.Column('inspection_notes', sa.Text()),
        sa.Column('recommendations', sa.Text()),
        sa.Column('estimated_hours', sa.Float()),
        sa.Column('diagnosed_at', sa.DateTime()),
        # Pricing
        sa.Column('labor_cost', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('parts_cost', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('discount', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('tax_amount', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('total_cost', sa.Numeric(10, 2), nullable=False, server_default='0'),
        # Customer-facing
        sa.Column('valid_until', sa.DateTime()),
        sa.Column('public_token_version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('sent_at', sa.DateTime()),
        sa.Column('viewed_at', sa.DateTime()),
        sa.Column('accepted_at', sa.DateTime()),
        sa.Column('rejected_at', sa.DateTime()),
        sa.Column('rejected_reason', sa.Text()),
        sa.Column('customer_signature', sa.Text()),
        sa.Column('approval_channel', sa.String(20)),
        sa.Column('approval_notes', sa.Text()),
        # Conversion
        sa.Column('service_order_id', sa.String(36)),
        sa.Column('converted_at', sa.DateTime()),
        # Timestamps
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('tenant_id', 'sequence', name='uq_quotes_tenant_sequence'),
        sa.UniqueConstraint('tenant_id', 'number', name='uq_quotes_tenant_number'),
    )
    op.create_index('idx_quotes_tenant_status', 'quotes', ['tenant_id', 'status'])
    op.create_index('idx_quotes_tenant_mechanic', 'quotes', ['tenant_id', 'assigned_mechanic_id'])

    op.create_table(
        'quote_items',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('quote_id', sa.String(36), sa.ForeignKey('quotes.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('type', sa.String(10), nullable=False),
        sa.Column('service_id', sa.String(36)),
        sa.Column('part_id', sa.String(36)),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('unit_cost', sa.Numeric(10, 2), nullable=False),
        sa.Column('total_cost', sa.Numeric(10, 2), nullable=False),
        sa.Column('hours', sa.Float()),
    )

    op.create_table(
        'quote_assignment_history',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('quote_id', sa.String(36), sa.ForeignKey('quotes.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('mechanic_id', sa.String(36)),
        sa.Column('previous_mechanic_id', sa.String(36)),
        sa.Column('action', sa.String(20), nullable=False),
        sa.Column('performed_by', sa.String(36), nullable=False),
        sa.Column('reason', sa.Text()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'service_orders',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('tenant_id', sa.String(36), nullable=False, index=True),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('number', sa.String(20), nullable=False),
        # One service order per quote
        sa.Column('quote_id', sa.String(36), sa.ForeignKey('quotes.id'), nullable=False, unique=True),
        sa.Column('customer_id', sa.String(36), sa.ForeignKey('customers.id'), nullable=False, index=True),
        sa.Column('vehicle_id', sa.String(36), sa.ForeignKey('customer_vehicles.id'), nullable=False),
        sa.Column('technician_id', sa.String(36)),
        sa.Column('elevator_id', sa.String(36)),
        sa.Column('status', sa.String(30), nullable=False, server_default='scheduled'),
        # Vehicle snapshot
        sa.Column('vehicle_placa', sa.String(10)),
        sa.Column('vehicle_vin', sa.String(17)),
        sa.Column('vehicle_make', sa.String(50)),
        sa.Column('vehicle_model', sa.String(50)),
        sa.Column('vehicle_year', sa.Integer()),
        sa.Column('vehicle_mileage', sa.Integer()),
        # Problem snapshot
        sa.Column('reported_problem_category', sa.String(30)),
        sa.Column('reported_problem_description', sa.Text()),
        sa.Column('reported_problem_symptoms', sa.JSON(), nullable=False),
        sa.Column('identified_problem_category', sa.String(30)),
        sa.Column('identified_problem_description', sa.Text()),
        sa.Column('identified_problem_id', sa.String(36)),
        sa.Column('diagnostic_notes', sa.Text()),
        sa.Column('recommendations', sa.Text()),
        sa.Column('inspection_notes', sa.Text()),
        sa.Column('items', sa.JSON(), nullable=False),
        # Costs
        sa.Column('labor_cost', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('parts_cost', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('discount', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('tax_amount', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('total_cost', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('estimated_hours', sa.Float()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('tenant_id', 'sequence', name='uq_service_orders_tenant_sequence'),
    )


def downgrade():
    """Drop quote workflow tables (directory tables are left in place)."""
    op.drop_table('service_orders')
    op.drop_table('quote_assignment_history')
    op.drop_table('quote_items')
    op.drop_index('idx_quotes_tenant_mechanic', table_name='quotes')
    op.drop_index('idx_quotes_tenant_status', table_name='quotes')
    op.drop_table('quotes')
