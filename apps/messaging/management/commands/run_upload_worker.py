import json
import logging
import time

import pika
from django.conf import settings
from django.core.management.base import BaseCommand

from apps.messaging.job_publisher import UPLOAD_JOBS_QUEUE, declare_upload_job_topology
from apps.uploads.jobs import run_job

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """
    Django management command to run a RabbitMQ worker. This worker consumes
    upload pipeline jobs (assemble, virus scan, finalize) and executes them.
    Retries are re-published by run_job itself, so every message is acked.
    """
    help = 'Runs the upload pipeline job worker.'

    def add_arguments(self, parser):
        parser.add_argument('--prefetch', type=int, default=1, help='Number of unacknowledged jobs per worker')

    def handle(self, *args, **options):
        rabbitmq_url = settings.RABBITMQ_URL
        self.stdout.write(self.style.SUCCESS("--- Upload Pipeline Worker ---"))
        self.stdout.write(f"Connecting to RabbitMQ at {rabbitmq_url}...")

        while True:
            try:
                connection = pika.BlockingConnection(pika.URLParameters(rabbitmq_url))
                channel = connection.channel()
                declare_upload_job_topology(channel)
                channel.basic_qos(prefetch_count=options['prefetch'])

                self.stdout.write(self.style.SUCCESS('\n [*] Worker is now waiting for upload jobs.'))
                channel.basic_consume(queue=UPLOAD_JOBS_QUEUE, on_message_callback=self.callback)
                channel.start_consuming()

            except pika.exceptions.AMQPConnectionError as e:
                self.stderr.write(self.style.ERROR(f'Connection to RabbitMQ failed: {e}. Retrying in 5 seconds...'))
                time.sleep(5)
            except KeyboardInterrupt:
                self.stdout.write(self.style.WARNING('\nWorker stopped by user.'))
                break

    def callback(self, ch, method, properties, body):
        logger.info("Received an upload job from the queue.")
        try:
            payload = json.loads(body)
            job_name = payload.get('job')
            session_id = payload.get('session_id')

            if job_name and session_id:
                run_job(job_name, session_id, attempt=int(payload.get('attempt', 1)))
            else:
                logger.warning(f"Received job without a name or session_id. Discarding: {body}")

        except json.JSONDecodeError:
            logger.error(f"Could not decode message body. Discarding: {body}", exc_info=True)
        except Exception as e:
            logger.error(f"An unexpected error occurred while running an upload job: {e}", exc_info=True)

        ch.basic_ack(delivery_tag=method.delivery_tag)
