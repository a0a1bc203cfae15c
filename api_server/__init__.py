from .server import CostBasisApiServer

__all__ = ['CostBasisApiServer']
