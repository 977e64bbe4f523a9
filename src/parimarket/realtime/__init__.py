"""Real-time odds feed."""

from parimarket.realtime.broadcaster import (
    Broadcaster,
    Subscriber,
    SubscriptionRegistry,
    bet_message,
    snapshot_message,
)

__all__ = ["Broadcaster", "Subscriber", "SubscriptionRegistry", "bet_message", "snapshot_message"]
