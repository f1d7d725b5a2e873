import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='UploadSession',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('workspace_id', models.UUIDField(db_index=True)),
                ('container_id', models.UUIDField(blank=True, db_index=True, null=True)),
                ('user_id', models.UUIDField(db_index=True)),
                ('filename', models.CharField(max_length=255)),
                ('total_size', models.BigIntegerField()),
                ('chunks_count', models.PositiveIntegerField()),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('uploading', 'Uploading'), ('assembling', 'Assembling'), ('virus_scanning', 'Virus scanning'), ('finalizing', 'Finalizing'), ('completed', 'Completed'), ('failed', 'Failed'), ('finalization_failed', 'Finalization failed'), ('virus_scan_failed', 'Virus scan failed'), ('cancelled', 'Cancelled')], db_index=True, default='pending', max_length=32)),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('assembled_file_path', models.CharField(blank=True, default='', max_length=1024)),
                ('virus_scan_queued_at', models.DateTimeField(blank=True, null=True)),
                ('virus_scan_completed_at', models.DateTimeField(blank=True, null=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True, db_index=True)),
            ],
            options={
                'verbose_name': 'Upload session',
                'verbose_name_plural': 'Upload sessions',
                'ordering': ['-created_at'],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('status__in', ['pending', 'uploading', 'assembling']), ('container_id__isnull', False)), fields=('workspace_id', 'container_id', 'filename'), name='unique_active_upload_in_container'),
                    models.UniqueConstraint(condition=models.Q(('status__in', ['pending', 'uploading', 'assembling']), ('container_id__isnull', True)), fields=('workspace_id', 'filename'), name='unique_active_upload_at_root'),
                    models.CheckConstraint(condition=models.Q(('total_size__gt', 0)), name='upload_total_size_positive'),
                    models.CheckConstraint(condition=models.Q(('chunks_count__gt', 0)), name='upload_chunks_count_positive'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Chunk',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('chunk_number', models.PositiveIntegerField()),
                ('size', models.BigIntegerField()),
                ('checksum', models.CharField(blank=True, default='', max_length=64)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('completed', 'Completed'), ('failed', 'Failed')], default='pending', max_length=16)),
                ('storage_key', models.CharField(blank=True, default='', max_length=512)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('upload_session', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='chunks', to='uploads.uploadsession')),
            ],
            options={
                'verbose_name': 'Chunk',
                'verbose_name_plural': 'Chunks',
                'ordering': ['upload_session', 'chunk_number'],
                'constraints': [
                    models.UniqueConstraint(fields=('upload_session', 'chunk_number'), name='unique_chunk_number_per_session'),
                ],
            },
        ),
        migrations.CreateModel(
            name='UploadEvent',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('stage', models.CharField(max_length=32)),
                ('from_status', models.CharField(blank=True, default='', max_length=32)),
                ('to_status', models.CharField(blank=True, default='', max_length=32)),
                ('data', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('upload_session', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='events', to='uploads.uploadsession')),
            ],
            options={
                'verbose_name': 'Upload event',
                'verbose_name_plural': 'Upload events',
                'ordering': ['upload_session', 'created_at', 'id'],
            },
        ),
    ]
