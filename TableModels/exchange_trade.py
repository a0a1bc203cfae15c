from sqlalchemy import CheckConstraint, Column, DateTime, Index, Integer, String
from sqlalchemy.orm import relationship

from TableModels.base import Base
from TableModels.types import ExactDecimal


class ExchangeTrade(Base):
    """One filled exchange trade. The traded currency is the pair's base."""
    __tablename__ = 'exchange_trades'

    id = Column(Integer, primary_key=True, autoincrement=True)
    exchange = Column(String(100), nullable=False)
    account = Column(String(100), nullable=False, index=True)
    txid = Column(String(100), nullable=False, unique=True)
    pair = Column(String(20), nullable=False)
    base_currency = Column(String(20), nullable=False)
    quote_currency = Column(String(20), nullable=False)
    time = Column(DateTime(timezone=True), nullable=False)
    side = Column(String(4), nullable=False)  # 'buy' or 'sell'
    price = Column(ExactDecimal, nullable=False)
    cost = Column(ExactDecimal, nullable=False)
    vol = Column(ExactDecimal, nullable=False)
    base_fee = Column(ExactDecimal, nullable=False, default=0)
    quote_fee = Column(ExactDecimal, nullable=False, default=0)
    withdrawal_fee = Column(ExactDecimal, nullable=False, default=0)

    acquisition_links = relationship(
        'CostBasisLinkRecord',
        foreign_keys='CostBasisLinkRecord.acquisition_exchange_event_id',
        back_populates='acquisition_exchange_event',
    )
    disposal_links = relationship(
        'CostBasisLinkRecord',
        foreign_keys='CostBasisLinkRecord.disposal_exchange_event_id',
        back_populates='disposal_exchange_event',
    )

    __table_args__ = (
        CheckConstraint("side IN ('buy', 'sell')", name='valid_side'),
        Index('idx_exchange_trades_base_time', 'base_currency', 'time'),
    )
