from .base import Base
from .chain_transfer import ChainTransfer
from .exchange_trade import ExchangeTrade
from .cost_basis_link import CostBasisLinkRecord
