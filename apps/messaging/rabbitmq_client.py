import json
import logging
import threading
import time

import pika
from django.conf import settings

logger = logging.getLogger(__name__)


class RabbitMQClient:
    """
    Publishes upload pipeline jobs to the broker.

    Request threads (complete_upload) and worker threads (retries, next
    stage) both publish, so each thread owns its connection and every job
    goes out on a short-lived channel. A job that fails to publish because
    the broker dropped the connection is re-sent on a new connection, up to
    max_retries times.
    """
    _thread_local = threading.local()

    def __init__(self, max_retries=3, retry_delay=2):
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    def _get_connection(self):
        if not hasattr(self._thread_local, 'connection') or self._thread_local.connection.is_closed:
            logger.info(f"Opening broker connection for upload jobs in thread {threading.get_ident()}")
            try:
                params = pika.URLParameters(settings.RABBITMQ_URL)
                self._thread_local.connection = pika.BlockingConnection(params)
            except pika.exceptions.AMQPConnectionError as e:
                logger.critical(f"Cannot reach the broker, upload jobs will not be dispatched: {e}", exc_info=True)
                raise
        return self._thread_local.connection

    def _invalidate_connection(self):
        """Drops this thread's connection so the next job opens a new one."""
        connection = getattr(self._thread_local, 'connection', None)
        if connection is None:
            return
        if connection.is_open:
            try:
                connection.close()
            except pika.exceptions.AMQPError as e:
                logger.debug(f"Ignoring error while closing broker connection: {e}")
        del self._thread_local.connection

    def publish(self, exchange_name, routing_key, body, exchange_type='direct', expiration=None, topology=None):
        """
        Sends one job message as persistent JSON.

        Args:
            exchange_name: The job exchange, or '' to address a queue directly
                (delayed retries go straight to the retry queue).
            routing_key: Job routing key, or the queue name when exchange_name is ''.
            body: The job payload (job name, session id, attempt).
            exchange_type: Used to declare exchange_name when no topology is given.
            expiration: Message TTL in milliseconds, as a string. A retry waits
                this long before it is dead-lettered back to the work queue.
            topology: Optional callable(channel) that declares the job queues first.
        """
        job = body.get('job') if isinstance(body, dict) else None
        for attempt in range(1, self.max_retries + 1):
            try:
                connection = self._get_connection()
                with connection.channel() as channel:
                    if topology is not None:
                        topology(channel)
                    elif exchange_name:
                        channel.exchange_declare(exchange=exchange_name, exchange_type=exchange_type, durable=True)

                    channel.basic_publish(
                        exchange=exchange_name,
                        routing_key=routing_key,
                        body=json.dumps(body, default=str),
                        properties=pika.BasicProperties(
                            content_type='application/json',
                            delivery_mode=pika.DeliveryMode.Persistent,
                            expiration=expiration,
                        )
                    )
                logger.debug(f"Published job {job} via '{exchange_name or routing_key}'")
                return
            except (pika.exceptions.AMQPError, OSError) as e:
                self._invalidate_connection()
                if attempt >= self.max_retries:
                    logger.critical(f"Giving up on job {job} after {attempt} publish attempts: {e}")
                    raise
                logger.warning(f"Publishing job {job} failed on attempt {attempt}: {e}. Reconnecting in {self.retry_delay}s")
                time.sleep(self.retry_delay)


rabbitmq_client = RabbitMQClient()
