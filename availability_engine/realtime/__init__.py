from availability_engine.realtime.broadcaster import (
    EventHandler,
    RealtimeChangeBroadcaster,
    SubscriptionToken,
)

__all__ = ["EventHandler", "RealtimeChangeBroadcaster", "SubscriptionToken"]
