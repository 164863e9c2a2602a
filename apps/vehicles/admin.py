from django.contrib import admin

from .models import Vehicle


@admin.register(Vehicle)
class VehicleAdmin(admin.ModelAdmin):
    list_display = ("make", "model", "year", "price", "category", "status", "created_at")
    list_editable = ("status",)
    list_filter = ("status", "category", "make")
    search_fields = ("make", "model")
