"""ORM models for the mirrored Midgard history families.

Every table carries an auto-increment ``id`` that defines natural storage
order. Rows are append-only: duplicates produced by overlapping walks are
kept and resolved by last-value-wins grouping at query time, so no natural
key uniqueness constraint is declared.
"""

from __future__ import annotations

from sqlalchemy import BigInteger, Column, DateTime, Float, ForeignKey, Index, Integer, String, func

from .base import Base


class DepthPriceHistory(Base):
    __tablename__ = "depth_price_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    pool = Column(String, nullable=False)
    start_time = Column(BigInteger, nullable=False)
    end_time = Column(BigInteger, nullable=False)
    asset_depth = Column(Float(53), nullable=False)
    rune_depth = Column(Float(53), nullable=False)
    asset_price = Column(Float(53), nullable=False)
    asset_price_usd = Column(Float(53), nullable=False)
    liquidity_units = Column(Float(53), nullable=False)
    members_count = Column(Float(53), nullable=False)
    synth_units = Column(Float(53), nullable=False)
    synth_supply = Column(Float(53), nullable=False)
    units = Column(Float(53), nullable=False)
    luvi = Column(Float(53), nullable=False)
    __table_args__ = (Index("ix_depth_pool_start_time", "pool", "start_time"),)


class SwapsHistory(Base):
    __tablename__ = "swaps_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    start_time = Column(BigInteger, nullable=False, index=True)
    end_time = Column(BigInteger, nullable=False)
    # Counts
    to_asset_count = Column(Float(53), nullable=False)
    to_rune_count = Column(Float(53), nullable=False)
    to_trade_count = Column(Float(53), nullable=False)
    from_trade_count = Column(Float(53), nullable=False)
    synth_mint_count = Column(Float(53), nullable=False)
    synth_redeem_count = Column(Float(53), nullable=False)
    total_count = Column(Float(53), nullable=False)
    # Volumes (RUNE)
    to_asset_volume = Column(Float(53), nullable=False)
    to_rune_volume = Column(Float(53), nullable=False)
    to_trade_volume = Column(Float(53), nullable=False)
    from_trade_volume = Column(Float(53), nullable=False)
    synth_mint_volume = Column(Float(53), nullable=False)
    synth_redeem_volume = Column(Float(53), nullable=False)
    total_volume = Column(Float(53), nullable=False)
    # Volumes (USD)
    to_asset_volume_usd = Column(Float(53), nullable=False)
    to_rune_volume_usd = Column(Float(53), nullable=False)
    to_trade_volume_usd = Column(Float(53), nullable=False)
    from_trade_volume_usd = Column(Float(53), nullable=False)
    synth_mint_volume_usd = Column(Float(53), nullable=False)
    synth_redeem_volume_usd = Column(Float(53), nullable=False)
    total_volume_usd = Column(Float(53), nullable=False)
    # Fees
    to_asset_fees = Column(Float(53), nullable=False)
    to_rune_fees = Column(Float(53), nullable=False)
    to_trade_fees = Column(Float(53), nullable=False)
    from_trade_fees = Column(Float(53), nullable=False)
    synth_mint_fees = Column(Float(53), nullable=False)
    synth_redeem_fees = Column(Float(53), nullable=False)
    total_fees = Column(Float(53), nullable=False)
    # Slippage
    to_asset_average_slip = Column(Float(53), nullable=False)
    to_rune_average_slip = Column(Float(53), nullable=False)
    to_trade_average_slip = Column(Float(53), nullable=False)
    from_trade_average_slip = Column(Float(53), nullable=False)
    synth_mint_average_slip = Column(Float(53), nullable=False)
    synth_redeem_average_slip = Column(Float(53), nullable=False)
    average_slip = Column(Float(53), nullable=False)
    rune_price_usd = Column(Float(53), nullable=False)


class EarningsHistory(Base):
    __tablename__ = "earnings_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    start_time = Column(BigInteger, nullable=False, index=True)
    end_time = Column(BigInteger, nullable=False)
    block_rewards = Column(Float(53), nullable=False)
    avg_node_count = Column(Float(53), nullable=False)
    bonding_earnings = Column(Float(53), nullable=False)
    liquidity_earnings = Column(Float(53), nullable=False)
    liquidity_fees = Column(Float(53), nullable=False)
    rune_price_usd = Column(Float(53), nullable=False)


class EarningsHistoryPool(Base):
    """Per-pool breakdown of one earnings interval."""

    __tablename__ = "earnings_history_pools"

    id = Column(Integer, primary_key=True, autoincrement=True)
    earnings_id = Column(
        Integer, ForeignKey("earnings_history.id"), nullable=False, index=True
    )
    pool = Column(String, nullable=False)
    start_time = Column(BigInteger, nullable=False)
    end_time = Column(BigInteger, nullable=False)
    asset_liquidity_fees = Column(Float(53), nullable=False)
    rune_liquidity_fees = Column(Float(53), nullable=False)
    total_liquidity_fees_rune = Column(Float(53), nullable=False)
    saver_earning = Column(Float(53), nullable=False)
    rewards = Column(Float(53), nullable=False)
    earnings = Column(Float(53), nullable=False)


class RunePoolMembersUnitsHistory(Base):
    __tablename__ = "runepool_members_units_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    start_time = Column(BigInteger, nullable=False, index=True)
    end_time = Column(BigInteger, nullable=False)
    depth = Column(Float(53), nullable=True)
    count = Column(Float(53), nullable=False)
    units = Column(Float(53), nullable=False)


class IngestionWatermark(Base):
    """Last end_time covered by a successful walk of one ingestion job."""

    __tablename__ = "ingestion_watermarks"

    name = Column(String, primary_key=True)
    last_end_time = Column(BigInteger, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
