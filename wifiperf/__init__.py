"""TCP/UDP throughput testing with periodic reporting, plus small periodic traffic clients."""

__version__ = "0.1.0"
__all__ = ["config", "report", "engine", "cli", "tcp_payload", "udp_client"]