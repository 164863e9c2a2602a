# apps/vehicles/urls.py

from django.urls import path
from . import views

urlpatterns = [
    # showroom（公開）
    path("", views.showroom, name="showroom"),
    path("<int:pk>/", views.vehicle_detail, name="vehicle_detail"),

    # inventory（staff）
    path("inventory/", views.inventory, name="inventory"),
    path("new/", views.vehicle_create, name="vehicle_create"),
    path("<int:pk>/edit/", views.vehicle_edit, name="vehicle_edit"),
    path("<int:pk>/delete/", views.vehicle_delete, name="vehicle_delete"),
    path("<int:pk>/status/", views.vehicle_toggle_status, name="vehicle_toggle_status"),
]
