"""contact messages

Revision ID: 0002_contact_messages
Revises: 0001_init
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa

revision = '0002_contact_messages'
down_revision = '0001_init'
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        'contact_messages',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('message', sa.Text, nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False),
    )
    op.create_index('ix_contact_messages_created_at', 'contact_messages', ['created_at'])

def downgrade():
    op.drop_index('ix_contact_messages_created_at', table_name='contact_messages')
    op.drop_table('contact_messages')
