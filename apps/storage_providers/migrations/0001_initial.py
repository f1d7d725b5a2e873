from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='StorageProvider',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=100, unique=True)),
                ('platform', models.CharField(choices=[('Filesystem', 'Local filesystem'), ('DefaultStorage', 'Django default storage')], max_length=100)),
                ('config', models.JSONField(blank=True, default=dict)),
            ],
            options={
                'verbose_name': 'Storage provider',
                'verbose_name_plural': 'Storage providers',
                'ordering': ['name'],
            },
        ),
    ]
