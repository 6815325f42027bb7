# publisher.py

import json
from typing import Optional

from google.cloud import pubsub_v1

from .config import ListenerConfig
from .log import get_logger
from .messages import BuildResult, completion_attributes, encode_completion

logger = get_logger(__name__)


class CompletionPublisher:
    """Publishes build results to the completion topic the orchestrator listens on."""

    def __init__(self, config: ListenerConfig, publisher: Optional[pubsub_v1.PublisherClient] = None):
        self.config = config
        self.publisher = publisher or pubsub_v1.PublisherClient()
        self.topic_path = self.publisher.topic_path(config.project_id, config.completion_topic_id)

    def publish(self, result: BuildResult) -> bool:
        """Publishes one completion message.

        The body is the base64-encoded JSON of the result; ``build_id``,
        ``status`` and ``session_id`` are also attached as attributes.

        Returns:
            bool: True once Pub/Sub returned a message ID. Failures are logged, never raised.
        """
        try:
            data_bytes = encode_completion(result)
            attributes = completion_attributes(result)
            logger.info(f"[PubSub] Publishing completion for build_id '{result.build_id}': {json.dumps(result.to_dict())}")
            future = self.publisher.publish(self.topic_path, data=data_bytes, **attributes)
            message_id = future.result(timeout=self.config.publish_timeout)
        except Exception as e:
            logger.error(f"[PubSub] Failed to publish completion for build_id '{result.build_id}': {e}")
            return False

        logger.info(f"[PubSub] Published completion with message ID: {message_id}")
        return True
