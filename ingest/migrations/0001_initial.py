from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="ProcessingState",
            fields=[
                ("id", models.CharField(max_length=255, primary_key=True, serialize=False)),
                ("blob_name", models.CharField(max_length=1024)),
                ("custom_properties", models.JSONField(blank=True, default=dict)),
                ("asset_id", models.CharField(blank=True, default="", max_length=255)),
                ("job_id", models.CharField(blank=True, default="", max_length=255)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
        ),
    ]
