"""Add project invitations

Revision ID: 0002_project_invitations
Revises: 0001_initial_schema
Create Date: 2026-10-18 16:40:05.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0002_project_invitations'
down_revision = '0001_initial_schema'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('project_invitations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('project_id', sa.String(length=36), nullable=False),
        sa.Column('inviter_id', sa.String(length=36), nullable=True),
        sa.Column('invitee_email', sa.String(length=255), nullable=True),
        sa.Column('role', sa.Enum('Owner', 'Admin', 'Collaborator', 'Viewer', name='invitationrole'), nullable=False),
        sa.Column('invite_type', sa.Enum('email', 'link', name='invitetype'), nullable=False),
        sa.Column('status', sa.Enum('pending', 'accepted', 'revoked', name='invitationstatus'), nullable=False),
        sa.Column('token', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('accepted_at', sa.DateTime(), nullable=True),
        sa.Column('accepted_by_id', sa.String(length=36), nullable=True),
        sa.ForeignKeyConstraint(['accepted_by_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['inviter_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('project_invitations', schema=None) as batch_op:
        batch_op.create_index('ix_project_invitations_project_id', ['project_id'], unique=False)
        batch_op.create_index('ix_project_invitations_invitee_email', ['invitee_email'], unique=False)
        batch_op.create_index('ix_project_invitations_status', ['status'], unique=False)
        batch_op.create_index('ix_project_invitations_token', ['token'], unique=True)


def downgrade():
    with op.batch_alter_table('project_invitations', schema=None) as batch_op:
        batch_op.drop_index('ix_project_invitations_token')
        batch_op.drop_index('ix_project_invitations_status')
        batch_op.drop_index('ix_project_invitations_invitee_email')
        batch_op.drop_index('ix_project_invitations_project_id')

    op.drop_table('project_invitations')
    sa.Enum(name='invitationstatus').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='invitetype').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='invitationrole').drop(op.get_bind(), checkfirst=True)
