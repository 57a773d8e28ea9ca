"""
Ledger transports for Melfina.

The web3 transport talks to a JSON-RPC endpoint; the in-memory ledger
simulates one locally for tests and offline development.
"""
from .transport import LedgerTransport, get_transport
from .memory import InMemoryLedger
from .web3_transport import Web3Transport

__all__ = ['LedgerTransport', 'InMemoryLedger', 'Web3Transport', 'get_transport']
