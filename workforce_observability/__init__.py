from .broadcast import BroadcastGate
from .channels import BroadcastMessage, ChannelError, FanoutChannel, WebhookChannel
from .logs import configure_logging
from .models import DeliberationRequest, DeliberationResponse, StreamEnvelope

__all__ = [
    "BroadcastGate",
    "BroadcastMessage",
    "ChannelError",
    "DeliberationRequest",
    "DeliberationResponse",
    "FanoutChannel",
    "StreamEnvelope",
    "WebhookChannel",
    "configure_logging",
]
