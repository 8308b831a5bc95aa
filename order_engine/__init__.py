"""
Order Engine Package

Asynchronous order execution engine: routes market, limit and sniper swap
orders to the best liquidity source through a rate-limited priority dispatch
queue and streams every status change to per-order subscribers.
"""

__version__ = "1.0.0"
__author__ = "Order Engine Team"
