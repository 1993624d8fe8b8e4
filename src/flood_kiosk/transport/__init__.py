from .bus import DEFAULT_CHANNEL, Transport
from .channel import ChannelClosedError, LiveChannel, LocalBroadcastChannel

__all__ = ["DEFAULT_CHANNEL", "Transport", "ChannelClosedError", "LiveChannel",
           "LocalBroadcastChannel"]
