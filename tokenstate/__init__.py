"""State layout, balance bookkeeping, address encoding and JSON-RPC queries for a token ledger."""

__version__ = "0.0.1"
__all__ = ["encoding", "storage", "rpc_server", "rpc_client"]