from django.db import models

# 1台あたりの画像上限
VEHICLE_MAX_IMAGES = 1

MAKES = [
    "Toyota",
    "Honda",
    "Ford",
    "Hyundai",
    "Mitsubishi",
    "Suzuki",
    "Nissan",
    "Mazda",
    "Chevrolet",
]


class Category(models.TextChoices):
    SEDAN = "Sedan", "Sedan"
    HATCHBACK = "Hatchback", "Hatchback"
    SUV = "SUV", "SUV"
    VAN = "Van", "Van"
    PICK_UP = "Pick up", "Pick up"


class Transmission(models.TextChoices):
    AUTOMATIC = "Automatic", "Automatic"
    MANUAL = "Manual", "Manual"


class FuelType(models.TextChoices):
    PETROL = "Petrol", "Petrol"
    DIESEL = "Diesel", "Diesel"
    HYBRID = "Hybrid", "Hybrid"
    ELECTRIC = "Electric", "Electric"


class VehicleStatus(models.TextChoices):
    AVAILABLE = "available", "Available"
    SOLD = "sold", "Sold"


class Vehicle(models.Model):
    make = models.CharField(max_length=50)       # Toyota
    model = models.CharField(max_length=100)     # Camry
    year = models.PositiveIntegerField()
    price = models.PositiveIntegerField(default=0)  # ₱
    mileage = models.CharField(max_length=50)    # 例: "5,000 km"

    category = models.CharField(max_length=20, choices=Category.choices, default=Category.SEDAN)
    transmission = models.CharField(max_length=20, choices=Transmission.choices, default=Transmission.AUTOMATIC)
    fuel_type = models.CharField(max_length=20, choices=FuelType.choices, default=FuelType.PETROL)

    # アップロード済み画像の公開URL（1枚）
    image_url = models.CharField(max_length=500, blank=True, default="")

    status = models.CharField(max_length=20, choices=VehicleStatus.choices, default=VehicleStatus.AVAILABLE)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.make} {self.model} ({self.year})"

    @property
    def is_available(self) -> bool:
        return self.status == VehicleStatus.AVAILABLE

    @property
    def image_urls(self) -> list:
        return [self.image_url] if self.image_url else []

    def next_status(self) -> str:
        return VehicleStatus.AVAILABLE if self.status == VehicleStatus.SOLD else VehicleStatus.SOLD
