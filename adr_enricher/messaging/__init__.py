from adr_enricher.messaging.queue_client import QueueClient

__all__ = ["QueueClient"]
