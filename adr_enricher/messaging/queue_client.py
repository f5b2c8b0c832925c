"""
RabbitMQ client for durable work queues.

This module wraps a single aio_pika connection and channel with fixed-delay
reconnection, persistent publishing, and explicit settlement of consumed
messages. Handlers report how a message must be settled by returning a
``HandlerOutcome``; an exception raised by a handler dead-letters the message.
"""

import asyncio
import functools
import json
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

import aio_pika
import structlog
from aio_pika import DeliveryMode
from aio_pika.abc import AbstractIncomingMessage

from adr_enricher.models.message import HandlerOutcome
from adr_enricher.utils.logging import mask_url

logger = structlog.get_logger(__name__)

Handler = Callable[[Dict[str, Any]], Awaitable[Any]]


class QueueClient:
    """Connection to RabbitMQ owned by one consumer process."""

    def __init__(
            self,
            url: str,
            prefetch_count: int = 1,
            reconnect_delay: float = 5.0,
            max_reconnect_attempts: int = 10,
    ) -> None:
        """
        Initialize the queue client.

        Args:
            url: AMQP connection URL
            prefetch_count: Unacknowledged deliveries allowed per consumer
            reconnect_delay: Seconds to wait before each reconnection attempt
            max_reconnect_attempts: Attempts before reconnection is given up
        """
        self.url = url
        self.prefetch_count = prefetch_count
        self.reconnect_delay = reconnect_delay
        self.max_reconnect_attempts = max_reconnect_attempts

        self.connection: Optional[aio_pika.abc.AbstractConnection] = None
        self.channel: Optional[aio_pika.abc.AbstractChannel] = None
        self.state = "disconnected"

        self._handlers: Dict[str, Handler] = {}
        self._shutting_down = False
        self._reconnecting = False
        self._reconnect_task: Optional[asyncio.Task] = None
        self._closed = asyncio.Event()
        self._fatal_error: Optional[BaseException] = None

    @property
    def is_connected(self) -> bool:
        return self.state == "connected"

    async def connect(self) -> None:
        """
        Connect to RabbitMQ and open a channel.

        A failed first attempt falls back to ``reconnect``, so the broker may
        come up after the client starts.

        Raises:
            ConnectionError: If every reconnection attempt fails
        """
        try:
            await self._open()
        except ConnectionError:
            await self.reconnect()
            if not self.is_connected:
                raise ConnectionError("RabbitMQ connection was not established")

    async def _open(self) -> None:
        """
        Make a single connection attempt.

        Raises:
            ConnectionError: If connection fails
        """
        self.state = "connecting"
        try:
            self.connection = await aio_pika.connect(self.url)
            self.connection.close_callbacks.add(self._on_connection_closed)

            self.channel = await self.connection.channel()
            await self.channel.set_qos(prefetch_count=self.prefetch_count)

        except Exception as e:
            await self._discard_connection()
            self.state = "disconnected"
            logger.error("Failed to connect to RabbitMQ", url=mask_url(self.url), error=str(e))
            raise ConnectionError(f"Failed to connect to RabbitMQ: {str(e)}") from e

        self.state = "connected"
        self._closed.clear()
        logger.info("Connected to RabbitMQ", url=mask_url(self.url), prefetch=self.prefetch_count)

    async def _discard_connection(self) -> None:
        """Close a half-open connection without triggering a reconnect."""
        connection = self.connection
        self.channel = None
        self.connection = None
        if connection is None:
            return

        connection.close_callbacks.discard(self._on_connection_closed)
        if connection.is_closed:
            return
        try:
            await connection.close()
        except Exception as e:
            logger.warning("Error closing stale RabbitMQ connection", error=str(e))

    def _on_connection_closed(self, sender: Any, exc: Optional[BaseException] = None) -> None:
        if self._shutting_down:
            return

        logger.warning("RabbitMQ connection closed unexpectedly", error=str(exc) if exc else None)
        self.channel = None
        self.connection = None
        self._reconnect_task = asyncio.ensure_future(self.reconnect())
        self._reconnect_task.add_done_callback(self._on_reconnect_done)

    def _on_reconnect_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.critical("Giving up on RabbitMQ", error=str(error))

    async def reconnect(self) -> None:
        """
        Reconnect with a fixed delay and restore registered consumers.

        Raises:
            ConnectionError: If every attempt fails
        """
        if self._shutting_down or self._reconnecting:
            return

        self._reconnecting = True
        self.state = "reconnecting"
        try:
            for attempt in range(1, self.max_reconnect_attempts + 1):
                await asyncio.sleep(self.reconnect_delay)
                if self._shutting_down:
                    return

                logger.info("Reconnecting to RabbitMQ", attempt=attempt,
                            max_attempts=self.max_reconnect_attempts)
                try:
                    await self._open()
                    for queue_name, handler in self._handlers.items():
                        await self._start_consumer(queue_name, handler)
                    logger.info("Reconnected to RabbitMQ", attempt=attempt)
                    return
                except Exception as e:
                    logger.error("Reconnection attempt failed", attempt=attempt, error=str(e))
                    await self._discard_connection()
                    self.state = "reconnecting"

            self.state = "disconnected"
            self._fatal_error = ConnectionError(
                f"Could not reconnect to RabbitMQ after {self.max_reconnect_attempts} attempts"
            )
            self._closed.set()
            raise self._fatal_error

        finally:
            self._reconnecting = False

    async def publish(
            self,
            queue_name: str,
            message: Dict[str, Any],
            persistent: bool = True,
            headers: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Publish a JSON message to a durable queue.

        Args:
            queue_name: Target queue, used as routing key on the default exchange
            message: Message to publish (will be converted to JSON)
            persistent: Whether the message must survive a broker restart
            headers: Optional AMQP headers

        Raises:
            RuntimeError: If not connected to RabbitMQ
            ValueError: If message serialization fails
        """
        if not self.channel:
            raise RuntimeError("Not connected to RabbitMQ. Call connect() first.")

        try:
            body = json.dumps(message).encode("utf-8")
        except (TypeError, ValueError) as e:
            logger.error("Failed to serialize message", queue=queue_name, error=str(e))
            raise ValueError(f"Failed to serialize message: {str(e)}") from e

        await self.channel.declare_queue(queue_name, durable=True)
        await self.channel.default_exchange.publish(
            aio_pika.Message(
                body=body,
                delivery_mode=DeliveryMode.PERSISTENT if persistent else DeliveryMode.NOT_PERSISTENT,
                content_type="application/json",
                timestamp=datetime.now(timezone.utc),
                headers=headers,
            ),
            routing_key=queue_name,
        )
        logger.debug("Published message", queue=queue_name)

    async def consume(self, queue_name: str, handler: Handler) -> None:
        """
        Start consuming a durable queue.

        The handler is re-registered automatically after a reconnect.

        Args:
            queue_name: Queue to consume
            handler: Coroutine called with the decoded JSON payload
        """
        if not self.channel:
            raise RuntimeError("Not connected to RabbitMQ. Call connect() first.")

        self._handlers[queue_name] = handler
        await self._start_consumer(queue_name, handler)

    async def _start_consumer(self, queue_name: str, handler: Handler) -> None:
        queue = await self.channel.declare_queue(queue_name, durable=True)
        await queue.consume(functools.partial(self._on_message, handler))
        logger.info("Consuming queue", queue=queue_name)

    async def _on_message(self, handler: Handler, message: AbstractIncomingMessage) -> None:
        """Decode a delivery, run the handler and settle the message."""
        try:
            content = json.loads(message.body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error("Rejecting message with invalid JSON payload", error=str(e))
            await message.nack(requeue=False)
            return

        try:
            outcome = await handler(content)
        except Exception as e:
            logger.exception("Message handler failed, rejecting message", error=str(e))
            await message.nack(requeue=False)
            return

        if outcome is False or outcome == HandlerOutcome.REQUEUE:
            await message.nack(requeue=True)
        elif outcome == HandlerOutcome.REJECT:
            await message.nack(requeue=False)
        else:
            await message.ack()

    async def wait_closed(self) -> None:
        """
        Wait until the client is closed.

        Raises:
            ConnectionError: If the client closed because reconnection failed
        """
        await self._closed.wait()
        if self._fatal_error is not None:
            raise self._fatal_error

    async def close(self) -> None:
        """
        Close the channel and then the connection.

        No reconnection is attempted after this is called.
        """
        self._shutting_down = True
        self.state = "closing"

        if self._reconnect_task and not self._reconnect_task.done():
            self._reconnect_task.cancel()

        try:
            if self.channel and not self.channel.is_closed:
                await self.channel.close()
            if self.connection and not self.connection.is_closed:
                await self.connection.close()
            logger.info("Closed RabbitMQ connection")
        except Exception as e:
            logger.error("Error closing RabbitMQ connection", error=str(e))
        finally:
            self.channel = None
            self.connection = None
            self.state = "disconnected"
            self._closed.set()
