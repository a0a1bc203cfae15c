from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import relationship

from Config.constants_core import COST_BASIS_METHOD_FIFO
from TableModels.base import Base
from TableModels.types import ExactDecimal


class CostBasisLinkRecord(Base):
    """Persisted pairing of (part of) one disposal with (part of) one acquisition."""
    __tablename__ = 'cost_basis_links'

    id = Column(Integer, primary_key=True, autoincrement=True)

    # The acquisition side (buy / inbound transfer)
    acquisition_chain_event_id = Column(Integer, ForeignKey('chain_transfers.id'), nullable=True)
    acquisition_exchange_event_id = Column(Integer, ForeignKey('exchange_trades.id'), nullable=True)

    # The disposal side (sell / outbound transfer)
    disposal_chain_event_id = Column(Integer, ForeignKey('chain_transfers.id'), nullable=True)
    disposal_exchange_event_id = Column(Integer, ForeignKey('exchange_trades.id'), nullable=True)

    quantity = Column(ExactDecimal, nullable=False)
    method = Column(String(16), nullable=False, default=COST_BASIS_METHOD_FIFO)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    acquisition_chain_event = relationship(
        'ChainTransfer', foreign_keys=[acquisition_chain_event_id], back_populates='acquisition_links')
    acquisition_exchange_event = relationship(
        'ExchangeTrade', foreign_keys=[acquisition_exchange_event_id], back_populates='acquisition_links')
    disposal_chain_event = relationship(
        'ChainTransfer', foreign_keys=[disposal_chain_event_id], back_populates='disposal_links')
    disposal_exchange_event = relationship(
        'ExchangeTrade', foreign_keys=[disposal_exchange_event_id], back_populates='disposal_links')

    __table_args__ = (
        CheckConstraint(
            '(acquisition_chain_event_id IS NULL) <> (acquisition_exchange_event_id IS NULL)',
            name='one_acquisition_ref'),
        CheckConstraint(
            '(disposal_chain_event_id IS NULL) <> (disposal_exchange_event_id IS NULL)',
            name='one_disposal_ref'),
        CheckConstraint('CAST(quantity AS NUMERIC) > 0', name='positive_quantity'),
        Index('idx_cost_basis_links_acq_chain', 'acquisition_chain_event_id'),
        Index('idx_cost_basis_links_acq_exchange', 'acquisition_exchange_event_id'),
        Index('idx_cost_basis_links_disp_chain', 'disposal_chain_event_id'),
        Index('idx_cost_basis_links_disp_exchange', 'disposal_exchange_event_id'),
    )
