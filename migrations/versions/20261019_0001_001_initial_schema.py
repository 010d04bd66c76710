"""Initial schema - all Tourney Progression tables

Revision ID: 001
Revises:
Create Date: 2026-10-19

Creates all tables for the tournament progression engine:
- tournaments: Tournaments and their final placings
- stages: League / groups / knockout phases with JSON config
- stage_groups: Groups within a groups stage
- stage_participants: Teams declared in a stage (and group)
- matches: Fixtures with stable (round, bracket_pos) pointers
- stage_standings: Derived standings tables
- stage_slots: Addressable (stage, group, slot) team positions
- intake_mappings: Knockout outcome -> later stage slot routing
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ### Tournaments table ###
    op.create_table(
        'tournaments',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('status', sa.Enum('DRAFT', 'ACTIVE', 'COMPLETED', name='tournamentstatus'),
                  server_default='ACTIVE'),
        sa.Column('winner_team_id', sa.Integer(), nullable=True),
        sa.Column('runner_up_team_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
    )

    # ### Stages table ###
    op.create_table(
        'stages',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('tournament_id', sa.Integer(), sa.ForeignKey('tournaments.id'), nullable=False),
        sa.Column('name', sa.String(200), server_default=''),
        sa.Column('kind', sa.Enum('LEAGUE', 'GROUPS', 'KNOCKOUT', name='stagekind'), nullable=False),
        sa.Column('ordering', sa.Integer(), server_default='0'),
        sa.Column('status', sa.Enum('PENDING', 'ACTIVE', 'COMPLETED', name='stagestatus'),
                  server_default='PENDING'),
        sa.Column('config_json', sa.Text(), nullable=True),
    )

    # ### Stage groups table ###
    op.create_table(
        'stage_groups',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('stage_id', sa.Integer(), sa.ForeignKey('stages.id'), nullable=False),
        sa.Column('ordering', sa.Integer(), server_default='0'),
        sa.Column('label', sa.String(50), server_default=''),
    )

    # ### Stage participants table ###
    op.create_table(
        'stage_participants',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('stage_id', sa.Integer(), sa.ForeignKey('stages.id'), nullable=False),
        sa.Column('team_id', sa.Integer(), nullable=False),
        sa.Column('group_id', sa.Integer(), sa.ForeignKey('stage_groups.id'), nullable=True),
        sa.Column('seed', sa.Integer(), nullable=True),
        sa.UniqueConstraint('stage_id', 'team_id', name='uq_participant_stage_team'),
    )

    # ### Matches table ###
    op.create_table(
        'matches',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('tournament_id', sa.Integer(), sa.ForeignKey('tournaments.id'), nullable=False),
        sa.Column('stage_id', sa.Integer(), sa.ForeignKey('stages.id'), nullable=False),
        sa.Column('group_id', sa.Integer(), sa.ForeignKey('stage_groups.id'), nullable=True),
        sa.Column('status', sa.Enum('SCHEDULED', 'FINISHED', name='matchstatus'),
                  server_default='SCHEDULED'),
        sa.Column('round', sa.Integer(), nullable=True),
        sa.Column('bracket_pos', sa.Integer(), nullable=True),
        sa.Column('matchday', sa.Integer(), nullable=True),
        sa.Column('home_team_id', sa.Integer(), nullable=True),
        sa.Column('away_team_id', sa.Integer(), nullable=True),
        sa.Column('home_score', sa.Integer(), nullable=True),
        sa.Column('away_score', sa.Integer(), nullable=True),
        sa.Column('winner_team_id', sa.Integer(), nullable=True),
        sa.Column('home_source_round', sa.Integer(), nullable=True),
        sa.Column('home_source_bracket_pos', sa.Integer(), nullable=True),
        sa.Column('home_source_outcome', sa.String(1), nullable=True),
        sa.Column('away_source_round', sa.Integer(), nullable=True),
        sa.Column('away_source_bracket_pos', sa.Integer(), nullable=True),
        sa.Column('away_source_outcome', sa.String(1), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
    )

    # ### Standings table ###
    op.create_table(
        'stage_standings',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('stage_id', sa.Integer(), sa.ForeignKey('stages.id'), nullable=False),
        sa.Column('group_id', sa.Integer(), server_default='0'),
        sa.Column('team_id', sa.Integer(), nullable=False),
        sa.Column('played', sa.Integer(), server_default='0'),
        sa.Column('won', sa.Integer(), server_default='0'),
        sa.Column('drawn', sa.Integer(), server_default='0'),
        sa.Column('lost', sa.Integer(), server_default='0'),
        sa.Column('goals_for', sa.Integer(), server_default='0'),
        sa.Column('goals_against', sa.Integer(), server_default='0'),
        sa.Column('points', sa.Integer(), server_default='0'),
        sa.Column('rank', sa.Integer(), nullable=True),
        sa.UniqueConstraint('stage_id', 'group_id', 'team_id', name='uq_standing_team'),
    )

    # ### Stage slots table ###
    op.create_table(
        'stage_slots',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('stage_id', sa.Integer(), sa.ForeignKey('stages.id'), nullable=False),
        sa.Column('group_idx', sa.Integer(), nullable=False),
        sa.Column('slot_idx', sa.Integer(), nullable=False),
        sa.Column('team_id', sa.Integer(), nullable=True),
        sa.Column('source', sa.Enum('INTAKE', 'MANUAL', name='slotsource'), server_default='MANUAL'),
        sa.UniqueConstraint('stage_id', 'group_idx', 'slot_idx', name='uq_stage_slot'),
    )

    # ### Intake mappings table ###
    op.create_table(
        'intake_mappings',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('from_stage_id', sa.Integer(), sa.ForeignKey('stages.id'), nullable=False),
        sa.Column('round', sa.Integer(), nullable=False),
        sa.Column('bracket_pos', sa.Integer(), nullable=False),
        sa.Column('outcome', sa.String(1), nullable=False),
        sa.Column('to_stage_id', sa.Integer(), sa.ForeignKey('stages.id'), nullable=False),
        sa.Column('group_idx', sa.Integer(), nullable=False),
        sa.Column('slot_idx', sa.Integer(), nullable=False),
        sa.UniqueConstraint('from_stage_id', 'round', 'bracket_pos', 'outcome', name='uq_intake_source'),
    )

    # ### Indexes ###
    op.create_index('ix_stages_tournament_id', 'stages', ['tournament_id'])
    op.create_index('ix_matches_stage_id', 'matches', ['stage_id'])
    op.create_index('ix_matches_stage_round_pos', 'matches', ['stage_id', 'round', 'bracket_pos'])
    op.create_index('ix_matches_status', 'matches', ['status'])
    op.create_index('ix_stage_standings_stage_group', 'stage_standings', ['stage_id', 'group_id'])


def downgrade() -> None:
    # Drop indexes
    op.drop_index('ix_stage_standings_stage_group', 'stage_standings')
    op.drop_index('ix_matches_status', 'matches')
    op.drop_index('ix_matches_stage_round_pos', 'matches')
    op.drop_index('ix_matches_stage_id', 'matches')
    op.drop_index('ix_stages_tournament_id', 'stages')

    # Drop tables in reverse order of creation
    op.drop_table('intake_mappings')
    op.drop_table('stage_slots')
    op.drop_table('stage_standings')
    op.drop_table('matches')
    op.drop_table('stage_participants')
    op.drop_table('stage_groups')
    op.drop_table('stages')
    op.drop_table('tournaments')
