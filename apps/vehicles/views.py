# apps/vehicles/views.py

import logging

from django.contrib import messages
from django.contrib.admin.views.decorators import staff_member_required
from django.shortcuts import get_object_or_404, redirect, render
from django.views.decorators.http import require_POST

from apps.common.attachments import (
    StorageUploader,
    form_action,
    log_orphaned_uploads,
    remove_staged,
    restore_staging,
    stage_selected_files,
    staging_context,
)
from apps.common.exceptions import RecordWriteFailure, UploadFailure
from apps.common.forms import StagedImagesForm
from apps.common.utils import record_write

from .filters import (
    ALL,
    ALL_CATEGORIES,
    ALL_STATUS,
    brand_choices,
    filter_inventory,
    filter_showroom,
    inventory_categories,
    inventory_statuses,
    showroom_categories,
)
from .forms import VehicleForm
from .messenger import generate_messenger_url
from .models import VEHICLE_MAX_IMAGES, Vehicle, VehicleStatus

logger = logging.getLogger(__name__)

IMAGE_PURPOSE = "vehicle_image"
STORAGE_PREFIX = "vehicles"


# ----------------------------
# Showroom（公開）
# ----------------------------
def showroom(request):
    category = request.GET.get("category", ALL)
    brand = request.GET.get("brand", ALL)

    vehicles = filter_showroom(
        Vehicle.objects.order_by("-created_at"),
        category=category,
        brand=brand,
    )

    return render(request, "vehicles/showroom.html", {
        "vehicles": vehicles,
        "categories": showroom_categories(),
        "brands": brand_choices(),
        "selected_category": category,
        "selected_brand": brand,
    })


def vehicle_detail(request, pk: int):
    # 売約済みは staff 以外には見せない（showroom と同じ）
    qs = Vehicle.objects.all()
    if not request.user.is_staff:
        qs = qs.filter(status=VehicleStatus.AVAILABLE)
    vehicle = get_object_or_404(qs, pk=pk)
    return render(request, "vehicles/vehicle_detail.html", {
        "vehicle": vehicle,
        "messenger_url": generate_messenger_url(vehicle),
    })


# ----------------------------
# Inventory（staff）
# ----------------------------
@staff_member_required
def inventory(request):
    query = request.GET.get("q", "")
    category = request.GET.get("category", ALL_CATEGORIES)
    status = request.GET.get("status", ALL_STATUS)

    vehicles = filter_inventory(
        Vehicle.objects.order_by("-created_at"),
        query=query,
        category=category,
        status=status,
    )

    return render(request, "vehicles/inventory.html", {
        "vehicles": vehicles,
        "categories": inventory_categories(),
        "statuses": inventory_statuses(),
        "query": query,
        "selected_category": category,
        "selected_status": status,
    })


@staff_member_required
def vehicle_create(request):
    return _vehicle_form(request, None)


@staff_member_required
def vehicle_edit(request, pk: int):
    vehicle = get_object_or_404(Vehicle, pk=pk)
    return _vehicle_form(request, vehicle)


@staff_member_required
@require_POST
def vehicle_delete(request, pk: int):
    vehicle = get_object_or_404(Vehicle, pk=pk)

    try:
        with record_write("delete vehicle"):
            vehicle.delete()
    except RecordWriteFailure as exc:
        messages.error(request, str(exc))
    else:
        messages.success(request, "Vehicle deleted.")
    return redirect("inventory")


@staff_member_required
@require_POST
def vehicle_toggle_status(request, pk: int):
    vehicle = get_object_or_404(Vehicle, pk=pk)

    try:
        with record_write("update vehicle status"):
            vehicle.status = vehicle.next_status()
            vehicle.save(update_fields=["status", "updated_at"])
    except RecordWriteFailure as exc:
        messages.error(request, str(exc))
    return redirect("inventory")


# ----------------------------
# helper: 作成/編集フォーム（画像は1枚）
# ----------------------------
def _vehicle_form(request, vehicle):
    staging = restore_staging(
        request,
        maximum=VEHICLE_MAX_IMAGES,
        purpose=IMAGE_PURPOSE,
        existing_urls=vehicle.image_urls if vehicle else (),
    )
    images_form = StagedImagesForm()

    if request.method == "POST":
        action = form_action(request)

        if action == "cancel":
            staging.close()
            return redirect("inventory")

        if action == "remove":
            if not remove_staged(request, staging):
                messages.error(request, "Invalid image selection.")
            form = VehicleForm(initial=request.POST.dict(), instance=vehicle)

        elif action == "upload":
            images_form = StagedImagesForm(request.POST, request.FILES)
            stage_selected_files(images_form, staging)
            form = VehicleForm(initial=request.POST.dict(), instance=vehicle)

        else:
            form = VehicleForm(request.POST, instance=vehicle)
            images_form = StagedImagesForm(request.POST, request.FILES)

            staged = stage_selected_files(images_form, staging)
            if form.is_valid() and staged:
                saved = _save_vehicle(request, form, staging)
                if saved is not None:
                    staging.close()
                    messages.success(request, "Vehicle updated." if vehicle else "Vehicle added.")
                    return redirect("inventory")
    else:
        form = VehicleForm(instance=vehicle)

    return render(request, "vehicles/vehicle_form.html", {
        "form": form,
        "images_form": images_form,
        "vehicle": vehicle,
        **staging_context(staging),
    })


def _save_vehicle(request, form, staging):
    vehicle = form.instance

    try:
        image_urls = staging.resolve_for_submit(
            StorageUploader(),
            request.user.pk,
            prefix=STORAGE_PREFIX,
            record_id=vehicle.pk,
        )
    except UploadFailure as exc:
        form.add_error(None, str(exc))
        return None

    try:
        with record_write("save vehicle"):
            vehicle = form.save(commit=False)
            vehicle.image_url = image_urls[0] if image_urls else ""
            vehicle.save()
    except RecordWriteFailure as exc:
        log_orphaned_uploads(staging, image_urls)
        messages.error(request, str(exc))
        return None

    logger.info("Saved vehicle %s", vehicle.pk)
    return vehicle
