"""
GoldWatch - Gold Price Broadcaster
==================================

Watches the Treasury gold price and promo feeds and pushes changes
to subscribed chats.
"""

__version__ = "0.1.0"
__author__ = "GoldWatch"

__all__ = ["GoldWatchOrchestrator", "main"]


def __getattr__(name: str):
    if name in __all__:
        from .orchestrator import GoldWatchOrchestrator, main
        return {"GoldWatchOrchestrator": GoldWatchOrchestrator, "main": main}[name]
    raise AttributeError(f"module 'goldwatch' has no attribute {name}")
