"""Session tracking for the push-stream and polling transports."""

from toolgate.session.outbound import OfferOutcome, OutboundQueue, OverflowPolicy
from toolgate.session.registry import Session, SessionRegistry

__all__ = ["OfferOutcome", "OutboundQueue", "OverflowPolicy", "Session", "SessionRegistry"]
