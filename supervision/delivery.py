"""
Delivery adapters - how a decided response reaches the monitored session
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional
import asyncio
import logging

from .events import EventChannel, EventType
from .models import Decision


logger = logging.getLogger(__name__)


class DeliveryCapability(Enum):
    DIRECT_INPUT = "direct-input"
    EMIT_ONLY = "emit-only"


class DeliveryAdapter(ABC):
    """Base class for response delivery"""

    capability: DeliveryCapability

    @abstractmethod
    async def deliver(self, session_id: str, decision: Decision) -> bool:
        """Deliver the response; True when it was handed off"""
        pass


class DirectInputDelivery(DeliveryAdapter):
    """Writes responses to the stdin or terminal of a process the session owns"""

    capability = DeliveryCapability.DIRECT_INPUT

    def __init__(self, writer: Optional[asyncio.StreamWriter] = None):
        self.writer = writer

    def bind(self, writer: asyncio.StreamWriter):
        self.writer = writer

    async def deliver(self, session_id: str, decision: Decision) -> bool:
        if self.writer is None or self.writer.is_closing():
            logger.warning("No open input channel for session %s", session_id)
            return False

        # Interactive CLIs submit on newline, so send a single line
        message = " ".join(decision.response_text.split())
        try:
            self.writer.write((message + "\n").encode("utf-8"))
            await self.writer.drain()
        except OSError as e:
            logger.error("Failed to write response for session %s: %s", session_id, e)
            return False

        logger.info("Sent response to session %s: %s", session_id, message[:100])
        return True


class EmitOnlyDelivery(DeliveryAdapter):
    """Publishes responses for an external input mechanism to type in"""

    capability = DeliveryCapability.EMIT_ONLY

    def __init__(self, channel: EventChannel):
        self.channel = channel

    async def deliver(self, session_id: str, decision: Decision) -> bool:
        await self.channel.publish(
            EventType.RESPONSE_READY,
            session_id,
            response=decision.response_text,
            kind=decision.kind.value,
            confidence=decision.confidence,
        )
        return True
