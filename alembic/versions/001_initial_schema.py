"""Initial schema creation

Revision ID: 001
Revises:
Create Date: 2026-10-17 12:00:00.000000

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
    # Create cars table
    op.create_table(
        'cars',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('brand', sa.String(100), nullable=False),
        sa.Column('model_name', sa.String(100), nullable=False),
        sa.Column('year', sa.Integer(), nullable=True),
        sa.Column('price_per_day', sa.Numeric(10, 2), nullable=False),
        sa.Column('available', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_cars_available', 'cars', ['available'])
    op.create_index('idx_car_brand_model', 'cars', ['brand', 'model_name'])

    # Create leases table
    op.create_table(
        'leases',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('car_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('contact_email', sa.String(255), nullable=True),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=False),
        sa.Column('total_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('status', sa.Enum('PENDING', 'ACTIVE', 'COMPLETED', 'EXPIRED', 'CANCELLED', name='leasestatus'), nullable=False),
        sa.Column('is_returned', sa.Boolean(), nullable=False),
        sa.Column('returned_date', sa.DateTime(), nullable=True),
        sa.Column('payment_id', sa.String(255), nullable=True),
        sa.Column('last_reminder_sent_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['car_id'], ['cars.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_leases_user_id', 'leases', ['user_id'])
    op.create_index('ix_leases_car_id', 'leases', ['car_id'])
    op.create_index('ix_leases_end_date', 'leases', ['end_date'])
    op.create_index('ix_leases_status', 'leases', ['status'])
    op.create_index('ix_leases_payment_id', 'leases', ['payment_id'])
    op.create_index('idx_lease_user_status', 'leases', ['user_id', 'status'])
    op.create_index('idx_lease_car_status', 'leases', ['car_id', 'status'])
    op.create_index('idx_lease_status_end', 'leases', ['status', 'end_date'])

    # Create lease_payments table
    op.create_table(
        'lease_payments',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('lease_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('payment_intent_id', sa.String(255), nullable=False),
        sa.Column('kind', sa.Enum('CREATE', 'EXTEND', name='paymentkind'), nullable=False),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('days', sa.Integer(), nullable=False),
        sa.Column('status', sa.Enum('PENDING', 'SUCCEEDED', 'FAILED', 'CANCELLED', name='paymentstatus'), nullable=False),
        sa.Column('previous_end_date', sa.DateTime(), nullable=True),
        sa.Column('new_end_date', sa.DateTime(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['lease_id'], ['leases.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('payment_intent_id')
    )
    op.create_index('ix_lease_payments_lease_id', 'lease_payments', ['lease_id'])
    op.create_index('ix_lease_payments_status', 'lease_payments', ['status'])
    op.create_index('ix_lease_payments_expires_at', 'lease_payments', ['expires_at'])
    op.create_index('idx_payment_lease_status', 'lease_payments', ['lease_id', 'status'])
    op.create_index('idx_payment_status_expires', 'lease_payments', ['status', 'expires_at'])

    # Create audit_log table
    op.create_table(
        'audit_log',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('lease_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('car_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_audit_log_action', 'audit_log', ['action'])
    op.create_index('ix_audit_log_user_id', 'audit_log', ['user_id'])
    op.create_index('ix_audit_log_lease_id', 'audit_log', ['lease_id'])
    op.create_index('idx_audit_lease_created', 'audit_log', ['lease_id', 'created_at'])
    op.create_index('idx_audit_action_created', 'audit_log', ['action', 'created_at'])

    # Create idempotency_keys table
    op.create_table(
        'idempotency_keys',
        sa.Column('key', sa.String(255), nullable=False),
        sa.Column('operation', sa.String(100), nullable=False),
        sa.Column('result_payload', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('key')
    )
    op.create_index('ix_idempotency_keys_operation', 'idempotency_keys', ['operation'])
    op.create_index('ix_idempotency_keys_expires_at', 'idempotency_keys', ['expires_at'])
    op.create_index('idx_operation_created', 'idempotency_keys', ['operation', 'created_at'])


def downgrade() -> None:
    op.drop_table('idempotency_keys')
    op.drop_table('audit_log')
    op.drop_table('lease_payments')
    op.drop_table('leases')
    op.drop_table('cars')

    op.execute('DROP TYPE IF EXISTS paymentstatus')
    op.execute('DROP TYPE IF EXISTS paymentkind')
    op.execute('DROP TYPE IF EXISTS leasestatus')
