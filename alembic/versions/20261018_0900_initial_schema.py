"""initial schema: documents, delivery_notes, page_allocations

Revision ID: 20261018_0900
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '20261018_0900'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table('documents',
    sa.Column('id', sa.String(), nullable=False),
    sa.Column('original_filename', sa.String(length=255), nullable=False),
    sa.Column('content_hash', sa.String(length=64), nullable=False),
    sa.Column('page_count', sa.Integer(), nullable=False),
    sa.Column('blob_ref', sa.String(), nullable=False),
    sa.Column('uploaded_at', sa.DateTime(timezone=True), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_documents_content_hash'), 'documents', ['content_hash'], unique=False)

    op.create_table('delivery_notes',
    sa.Column('id', sa.String(), nullable=False),
    sa.Column('document_id', sa.String(), nullable=False),
    sa.Column('display_name', sa.String(length=200), nullable=False),
    sa.Column('company_name', sa.String(length=200), nullable=False),
    sa.Column('delivery_date', sa.String(length=200), nullable=True),
    sa.Column('delivery_note_number', sa.String(length=200), nullable=True),
    sa.Column('shipping_id', sa.String(length=200), nullable=True),
    sa.Column('customer_number', sa.String(length=200), nullable=True),
    sa.Column('page_numbers', sa.JSON(), nullable=False),
    sa.Column('origin', sa.Enum('manual', 'ai', name='noteorigin', native_enum=False, length=16), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    sa.ForeignKeyConstraint(['document_id'], ['documents.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_delivery_notes_document_id'), 'delivery_notes', ['document_id'], unique=False)

    # Composite key: a page belongs to at most one note
    op.create_table('page_allocations',
    sa.Column('document_id', sa.String(), nullable=False),
    sa.Column('page_number', sa.Integer(), nullable=False),
    sa.Column('note_id', sa.String(), nullable=False),
    sa.ForeignKeyConstraint(['document_id'], ['documents.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['note_id'], ['delivery_notes.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('document_id', 'page_number')
    )
    op.create_index(op.f('ix_page_allocations_note_id'), 'page_allocations', ['note_id'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_page_allocations_note_id'), table_name='page_allocations')
    op.drop_table('page_allocations')
    op.drop_index(op.f('ix_delivery_notes_document_id'), table_name='delivery_notes')
    op.drop_table('delivery_notes')
    op.drop_index(op.f('ix_documents_content_hash'), table_name='documents')
    op.drop_table('documents')
