"""create midgard history tables

Revision ID: 0001_history
Revises: None
Create Date: 2025-02-14 00:00:00.000000

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_history"
down_revision = None
branch_labels = None
depends_on = None

_SWAP_CATEGORIES = (
    "to_asset",
    "to_rune",
    "to_trade",
    "from_trade",
    "synth_mint",
    "synth_redeem",
)


def _floats(*names: str, nullable: bool = False) -> list:
    return [sa.Column(n, sa.Float(precision=53), nullable=nullable) for n in names]


def _swap_columns() -> list:
    names = []
    for suffix in ("count", "volume", "volume_usd", "fees"):
        names.extend(f"{cat}_{suffix}" for cat in _SWAP_CATEGORIES)
        names.append(f"total_{suffix}")
    names.extend(f"{cat}_average_slip" for cat in _SWAP_CATEGORIES)
    names.extend(["average_slip", "rune_price_usd"])
    return _floats(*names)


def upgrade() -> None:
    op.create_table(
        "depth_price_history",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("pool", sa.String(), nullable=False),
        sa.Column("start_time", sa.BigInteger(), nullable=False),
        sa.Column("end_time", sa.BigInteger(), nullable=False),
        *_floats(
            "asset_depth",
            "rune_depth",
            "asset_price",
            "asset_price_usd",
            "liquidity_units",
            "members_count",
            "synth_units",
            "synth_supply",
            "units",
            "luvi",
        ),
    )
    op.create_index(
        "ix_depth_pool_start_time", "depth_price_history", ["pool", "start_time"]
    )

    op.create_table(
        "swaps_history",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("start_time", sa.BigInteger(), nullable=False),
        sa.Column("end_time", sa.BigInteger(), nullable=False),
        *_swap_columns(),
    )
    op.create_index("ix_swaps_history_start_time", "swaps_history", ["start_time"])

    op.create_table(
        "earnings_history",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("start_time", sa.BigInteger(), nullable=False),
        sa.Column("end_time", sa.BigInteger(), nullable=False),
        *_floats(
            "block_rewards",
            "avg_node_count",
            "bonding_earnings",
            "liquidity_earnings",
            "liquidity_fees",
            "rune_price_usd",
        ),
    )
    op.create_index(
        "ix_earnings_history_start_time", "earnings_history", ["start_time"]
    )

    op.create_table(
        "earnings_history_pools",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "earnings_id",
            sa.Integer(),
            sa.ForeignKey("earnings_history.id"),
            nullable=False,
        ),
        sa.Column("pool", sa.String(), nullable=False),
        sa.Column("start_time", sa.BigInteger(), nullable=False),
        sa.Column("end_time", sa.BigInteger(), nullable=False),
        *_floats(
            "asset_liquidity_fees",
            "rune_liquidity_fees",
            "total_liquidity_fees_rune",
            "saver_earning",
            "rewards",
            "earnings",
        ),
    )
    op.create_index(
        "ix_earnings_history_pools_earnings_id",
        "earnings_history_pools",
        ["earnings_id"],
    )

    op.create_table(
        "runepool_members_units_history",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("start_time", sa.BigInteger(), nullable=False),
        sa.Column("end_time", sa.BigInteger(), nullable=False),
        sa.Column("depth", sa.Float(precision=53), nullable=True),
        *_floats("count", "units"),
    )
    op.create_index(
        "ix_runepool_members_units_history_start_time",
        "runepool_members_units_history",
        ["start_time"],
    )

    op.create_table(
        "ingestion_watermarks",
        sa.Column("name", sa.String(), primary_key=True),
        sa.Column("last_end_time", sa.BigInteger(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )


def downgrade() -> None:
    op.drop_table("ingestion_watermarks")
    op.drop_index(
        "ix_runepool_members_units_history_start_time",
        table_name="runepool_members_units_history",
    )
    op.drop_table("runepool_members_units_history")
    op.drop_index(
        "ix_earnings_history_pools_earnings_id", table_name="earnings_history_pools"
    )
    op.drop_table("earnings_history_pools")
    op.drop_index("ix_earnings_history_start_time", table_name="earnings_history")
    op.drop_table("earnings_history")
    op.drop_index("ix_swaps_history_start_time", table_name="swaps_history")
    op.drop_table("swaps_history")
    op.drop_index("ix_depth_pool_start_time", table_name="depth_price_history")
    op.drop_table("depth_price_history")
