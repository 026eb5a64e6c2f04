"""OptionSentinel: unusual options flow scanner with a live WebSocket feed."""

__version__ = "0.1.0"
