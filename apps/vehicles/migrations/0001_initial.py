from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Vehicle",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("make", models.CharField(max_length=50)),
                ("model", models.CharField(max_length=100)),
                ("year", models.PositiveIntegerField()),
                ("price", models.PositiveIntegerField(default=0)),
                ("mileage", models.CharField(max_length=50)),
                (
                    "category",
                    models.CharField(
                        choices=[
                            ("Sedan", "Sedan"),
                            ("Hatchback", "Hatchback"),
                            ("SUV", "SUV"),
                            ("Van", "Van"),
                            ("Pick up", "Pick up"),
                        ],
                        default="Sedan",
                        max_length=20,
                    ),
                ),
                (
                    "transmission",
                    models.CharField(
                        choices=[("Automatic", "Automatic"), ("Manual", "Manual")],
                        default="Automatic",
                        max_length=20,
                    ),
                ),
                (
                    "fuel_type",
                    models.CharField(
                        choices=[
                            ("Petrol", "Petrol"),
                            ("Diesel", "Diesel"),
                            ("Hybrid", "Hybrid"),
                            ("Electric", "Electric"),
                        ],
                        default="Petrol",
                        max_length=20,
                    ),
                ),
                ("image_url", models.CharField(blank=True, default="", max_length=500)),
                (
                    "status",
                    models.CharField(
                        choices=[("available", "Available"), ("sold", "Sold")],
                        default="available",
                        max_length=20,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
    ]
