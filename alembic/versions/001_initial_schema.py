"""Initial migration - relationships, consent, documents and access log

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def _document_columns():
    """Columns shared by every document table."""
    return [
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('file_name', sa.String(255)),
        sa.Column('original_file_name', sa.String(255)),
        sa.Column('file_size', sa.Integer()),
        sa.Column('mime_type', sa.String(100)),
        sa.Column('file_hash', sa.String(64)),
        sa.Column('storage_key', sa.String(500)),
        sa.Column('storage_type', sa.String(20)),
        sa.Column('uploaded_by', sa.Integer()),
        sa.Column('uploaded_by_role', sa.String(50)),
        sa.Column('uploaded_at', sa.DateTime(), nullable=False),
        sa.Column('accessible_by_law_firm', sa.Boolean(), nullable=False, server_default=sa.true()),
    ]


def _phi_columns(name, plaintext_type):
    """Encrypted column plus its legacy plaintext twin."""
    return [
        sa.Column(name, plaintext_type),
        sa.Column(f'{name}_encrypted', sa.Text()),
    ]


def upgrade() -> None:
    """
    Create all tables. PHI sub-fields are stored encrypted as
    iv_hex:tag_hex:ciphertext_hex text.
    """

    # Relationships
    op.create_table('law_firm_clients',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('law_firm_id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('law_firm_id', 'client_id', name='uq_law_firm_client'),
    )
    op.create_index('ix_law_firm_clients_law_firm_id', 'law_firm_clients', ['law_firm_id'])
    op.create_index('ix_law_firm_clients_client_id', 'law_firm_clients', ['client_id'])

    op.create_table('medical_provider_patients',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('medical_provider_id', sa.Integer(), nullable=False),
        sa.Column('patient_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(32), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('medical_provider_id', 'patient_id', name='uq_medical_provider_patient'),
    )
    op.create_index('ix_medical_provider_patients_medical_provider_id', 'medical_provider_patients', ['medical_provider_id'])
    op.create_index('ix_medical_provider_patients_patient_id', 'medical_provider_patients', ['patient_id'])

    # Consent
    op.create_table('consent_records',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('patient_id', sa.Integer(), nullable=False),
        sa.Column('granted_to_type', sa.String(32), nullable=False),
        sa.Column('granted_to_id', sa.Integer(), nullable=False),
        sa.Column('consent_type', sa.String(32), nullable=False),
        sa.Column('status', sa.String(32), nullable=False, server_default='active'),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('consent_method', sa.String(50)),
        sa.Column('ip_address', sa.String(45)),
        sa.Column('signature_data', sa.Text()),
        sa.Column('revoked_at', sa.DateTime(), nullable=True),
        sa.Column('revoked_reason', sa.Text()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_consent_records_patient_id', 'consent_records', ['patient_id'])
    op.create_index(
        'idx_consent_grantee',
        'consent_records',
        ['patient_id', 'granted_to_type', 'granted_to_id', 'status'],
    )

    op.create_table('consent_scope',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('consent_id', sa.Integer(), sa.ForeignKey('consent_records.id', ondelete='CASCADE'), nullable=False),
        sa.Column('data_type', sa.String(50), nullable=False),
        sa.Column('can_view', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('can_edit', sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index('ix_consent_scope_consent_id', 'consent_scope', ['consent_id'])

    # Documents
    op.create_table('medical_records',
        *_document_columns(),
        sa.Column('record_type', sa.String(100)),
        sa.Column('date_of_service', sa.Date()),
        *_phi_columns('facility_name', sa.String(255)),
        *_phi_columns('provider_name', sa.String(255)),
        *_phi_columns('diagnosis', sa.Text()),
    )
    op.create_index('ix_medical_records_user_id', 'medical_records', ['user_id'])

    op.create_table('medical_billing',
        *_document_columns(),
        sa.Column('billing_type', sa.String(100)),
        sa.Column('total_amount', sa.Numeric(12, 2)),
        sa.Column('amount_due', sa.Numeric(12, 2)),
        sa.Column('bill_date', sa.Date()),
        *_phi_columns('facility_name', sa.String(255)),
        *_phi_columns('billing_details', sa.Text()),
        *_phi_columns('insurance_info', sa.Text()),
    )
    op.create_index('ix_medical_billing_user_id', 'medical_billing', ['user_id'])

    op.create_table('evidence',
        *_document_columns(),
        sa.Column('evidence_type', sa.String(100)),
        sa.Column('category_code', sa.String(20)),
        sa.Column('date_of_incident', sa.Date()),
        sa.Column('accessible_by_medical_provider', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_phi_columns('title', sa.String(255)),
        *_phi_columns('description', sa.Text()),
        *_phi_columns('location', sa.String(255)),
    )
    op.create_index('ix_evidence_user_id', 'evidence', ['user_id'])

    # Audit - append only
    op.create_table('phi_access_logs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('actor_type', sa.String(50), nullable=False),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('document_type', sa.String(50)),
        sa.Column('document_id', sa.Integer()),
        sa.Column('patient_id', sa.Integer()),
        sa.Column('access_reason', sa.String(255)),
        sa.Column('success', sa.Boolean(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('failure_reason', sa.Text()),
        sa.Column('ip_address', sa.String(45)),
        sa.Column('user_agent', sa.String(500)),
        sa.Column('details', sa.JSON()),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_phi_access_logs_actor_id', 'phi_access_logs', ['actor_id'])
    op.create_index('ix_phi_access_logs_patient_id', 'phi_access_logs', ['patient_id'])
    op.create_index('ix_phi_access_logs_timestamp', 'phi_access_logs', ['timestamp'])
    op.create_index('idx_phi_access_patient_time', 'phi_access_logs', ['patient_id', 'timestamp'])
    op.create_index('idx_phi_access_actor_time', 'phi_access_logs', ['actor_id', 'timestamp'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('phi_access_logs')
    op.drop_table('evidence')
    op.drop_table('medical_billing')
    op.drop_table('medical_records')
    op.drop_table('consent_scope')
    op.drop_table('consent_records')
    op.drop_table('medical_provider_patients')
    op.drop_table('law_firm_clients')
