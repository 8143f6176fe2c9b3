"""Server-side VPN building blocks: IP pools and managers, connection maps, session statistics, metrics and cmsg buffers."""

__version__ = "0.1.0"
__all__ = ["cmsg", "connection_map", "ip_manager", "ip_pool", "metrics", "statistics"]