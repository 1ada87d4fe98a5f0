from django.db import migrations, models
import uuid


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='Document',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('project_id', models.CharField(max_length=64)),
                ('collection', models.CharField(max_length=128)),
                ('uid', models.CharField(max_length=255)),
                ('data', models.JSONField(blank=True, default=dict)),
                ('permissions', models.JSONField(blank=True, default=list)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
        ),
        migrations.AddConstraint(
            model_name='document',
            constraint=models.UniqueConstraint(fields=('project_id', 'collection', 'uid'), name='renditions_document_uid_unique'),
        ),
        migrations.AddIndex(
            model_name='document',
            index=models.Index(fields=['project_id', 'collection'], name='renditions_doc_coll_idx'),
        ),
    ]
