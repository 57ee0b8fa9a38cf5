"""
chain package

Chain client contract, web3.py implementation and the chain session that
binds a network to a signing identity.
"""
from .client import BlockRef, ChainClient
from .session import ChainSession, open_session

__all__ = [
    'BlockRef',
    'ChainClient',
    'ChainSession',
    'open_session',
]
