# queue_poller.py

from dataclasses import dataclass, field
from typing import Dict, Optional

from google.api_core.exceptions import DeadlineExceeded
from google.cloud import pubsub_v1

from .config import ListenerConfig
from .log import get_logger

logger = get_logger(__name__)

# Seconds the synchronous pull waits for the server before giving up for this iteration.
PULL_TIMEOUT_SECONDS = 5.0


@dataclass
class ReceivedMessage:
    message_id: str
    data: bytes
    attributes: Dict[str, str] = field(default_factory=dict)


class QueuePoller:
    """Pulls at most one build request per call from the request subscription.

    Messages are acknowledged right after the pull, before any processing,
    so a request is never redelivered even if its build later fails.
    """

    def __init__(self, config: ListenerConfig, subscriber: Optional[pubsub_v1.SubscriberClient] = None):
        self.config = config
        self.subscriber = subscriber or pubsub_v1.SubscriberClient()
        self.subscription_path = self.subscriber.subscription_path(config.project_id, config.subscription_id)

    def poll_once(self) -> Optional[ReceivedMessage]:
        try:
            response = self.subscriber.pull(
                request={
                    "subscription": self.subscription_path,
                    "max_messages": 1,
                },
                timeout=PULL_TIMEOUT_SECONDS,
            )
        except DeadlineExceeded:
            # The server timed out waiting for messages; nothing to do this round.
            return None
        except Exception as e:
            logger.error(f"[PubSub] Pull from {self.subscription_path} failed: {e}")
            return None

        if not response.received_messages:
            return None

        received = response.received_messages[0]
        try:
            self.subscriber.acknowledge(
                request={
                    "subscription": self.subscription_path,
                    "ack_ids": [received.ack_id],
                }
            )
        except Exception as e:
            # Still process it: the request was delivered, only the ack is in doubt.
            logger.warning(f"[PubSub] Could not acknowledge message {received.message.message_id}: {e}")

        message = received.message
        logger.info(f"[PubSub] Received message ID: {message.message_id}")
        return ReceivedMessage(
            message_id=message.message_id,
            data=bytes(message.data),
            attributes=dict(message.attributes),
        )

    def close(self) -> None:
        self.subscriber.close()
