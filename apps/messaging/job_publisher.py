import logging
import time

from django.conf import settings

from .rabbitmq_client import rabbitmq_client

logger = logging.getLogger(__name__)

UPLOAD_JOBS_EXCHANGE = 'upload_jobs'
UPLOAD_JOBS_QUEUE = 'upload_jobs_queue'
UPLOAD_JOB_ROUTING_KEY = 'upload.job'
# Delayed retries wait here until their TTL expires, then dead-letter back to the work queue
UPLOAD_JOBS_RETRY_QUEUE = 'upload_jobs_retry_queue'


def declare_upload_job_topology(channel):
    channel.exchange_declare(exchange=UPLOAD_JOBS_EXCHANGE, exchange_type='direct', durable=True)
    channel.queue_declare(queue=UPLOAD_JOBS_QUEUE, durable=True)
    channel.queue_bind(exchange=UPLOAD_JOBS_EXCHANGE, queue=UPLOAD_JOBS_QUEUE, routing_key=UPLOAD_JOB_ROUTING_KEY)
    channel.queue_declare(
        queue=UPLOAD_JOBS_RETRY_QUEUE,
        durable=True,
        arguments={
            'x-dead-letter-exchange': UPLOAD_JOBS_EXCHANGE,
            'x-dead-letter-routing-key': UPLOAD_JOB_ROUTING_KEY,
        },
    )


class UploadJobPublisher:
    """
    Dispatches upload pipeline jobs. With settings.UPLOAD_JOBS_EAGER the job
    runs inline in the calling thread; otherwise it is published to RabbitMQ
    for the run_upload_worker command.
    """

    def __init__(self, client=None):
        self.client = client or rabbitmq_client

    def enqueue(self, job_name, session_id, attempt=1, delay=0):
        if settings.UPLOAD_JOBS_EAGER:
            if delay:
                logger.debug(f"Waiting {delay}s before running {job_name} for session {session_id} inline")
                time.sleep(delay)
            from apps.uploads.jobs import run_job
            return run_job(job_name, session_id, attempt=attempt)

        payload = {
            'job': job_name,
            'session_id': str(session_id),
            'attempt': attempt,
        }
        logger.info(f"Enqueuing {job_name} for session {session_id} (attempt {attempt}, delay {delay}s)")

        if delay and delay > 0:
            self.client.publish(
                exchange_name='',
                routing_key=UPLOAD_JOBS_RETRY_QUEUE,
                body=payload,
                expiration=str(int(delay * 1000)),
                topology=declare_upload_job_topology,
            )
        else:
            self.client.publish(
                exchange_name=UPLOAD_JOBS_EXCHANGE,
                routing_key=UPLOAD_JOB_ROUTING_KEY,
                body=payload,
                topology=declare_upload_job_topology,
            )


# Create a single instance for the application to use
upload_job_publisher = UploadJobPublisher()
