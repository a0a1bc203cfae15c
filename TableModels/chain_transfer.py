from sqlalchemy import BigInteger, Column, DateTime, Index, Integer, SmallInteger, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from TableModels.base import Base


class ChainTransfer(Base):
    """One ERC-20 style token transfer pulled from a block explorer."""
    __tablename__ = 'chain_transfers'

    id = Column(Integer, primary_key=True, autoincrement=True)
    block_number = Column(BigInteger, nullable=False)
    time_stamp = Column(DateTime(timezone=True), nullable=False)
    transaction_hash = Column(String(66), nullable=False)
    from_address = Column(String(42), nullable=False)
    to_address = Column(String(42), nullable=False)
    contract_address = Column(String(42), nullable=False)
    value = Column(Text, nullable=False)  # raw integer amount, e.g. wei
    value_adjustment = Column(Text, nullable=False, default='0', server_default='0')  # signed correction, same unit as value
    token_name = Column(String(100), nullable=False)
    token_symbol = Column(String(100), nullable=False)
    token_decimal = Column(SmallInteger, nullable=False)

    acquisition_links = relationship(
        'CostBasisLinkRecord',
        foreign_keys='CostBasisLinkRecord.acquisition_chain_event_id',
        back_populates='acquisition_chain_event',
    )
    disposal_links = relationship(
        'CostBasisLinkRecord',
        foreign_keys='CostBasisLinkRecord.disposal_chain_event_id',
        back_populates='disposal_chain_event',
    )

    __table_args__ = (
        UniqueConstraint('transaction_hash', 'from_address', 'to_address', 'contract_address',
                         name='uq_chain_transfers_unique_id'),
        Index('idx_chain_transfers_symbol_time', 'token_symbol', 'time_stamp'),
    )
