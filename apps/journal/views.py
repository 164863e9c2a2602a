# apps/journal/views.py

import logging

from django.contrib import messages
from django.contrib.auth.decorators import login_required
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

from .forms import DocumentationForm
from .models import DOCUMENTATION_MAX_IMAGES, Documentation

logger = logging.getLogger(__name__)

IMAGE_PURPOSE = "documentation_images"
STORAGE_PREFIX = "ojt-documentations"


@login_required
def documentation_list(request):
    documentations = (
        Documentation.objects
        .filter(owner=request.user)
        .order_by("-date", "-created_at")
    )
    return render(request, "journal/documentation_list.html", {"documentations": documentations})


@login_required
def documentation_detail(request, pk: int):
    documentation = get_object_or_404(Documentation, pk=pk, owner=request.user)
    return render(request, "journal/documentation_detail.html", {"documentation": documentation})


@login_required
def documentation_create(request):
    return _documentation_form(request, None)


@login_required
def documentation_edit(request, pk: int):
    documentation = get_object_or_404(Documentation, pk=pk, owner=request.user)
    return _documentation_form(request, documentation)


@login_required
@require_POST
def documentation_delete(request, pk: int):
    documentation = get_object_or_404(Documentation, pk=pk, owner=request.user)

    try:
        with record_write("delete documentation"):
            documentation.delete()
    except RecordWriteFailure as exc:
        messages.error(request, str(exc))
    else:
        messages.success(request, "Documentation deleted.")
    return redirect("documentation_list")


# ----------------------------
# helper: 作成/編集フォーム（画像の追加/削除/保存/キャンセル）
# ----------------------------
def _documentation_form(request, documentation):
    staging = restore_staging(
        request,
        maximum=DOCUMENTATION_MAX_IMAGES,
        purpose=IMAGE_PURPOSE,
        existing_urls=documentation.image_urls if documentation else (),
    )
    images_form = StagedImagesForm()

    if request.method == "POST":
        action = form_action(request)

        if action == "cancel":
            staging.close()
            return redirect("documentation_list")

        if action == "remove":
            if not remove_staged(request, staging):
                messages.error(request, "Invalid image selection.")
            form = DocumentationForm(initial=request.POST.dict(), instance=documentation)

        elif action == "upload":
            images_form = StagedImagesForm(request.POST, request.FILES)
            stage_selected_files(images_form, staging)
            form = DocumentationForm(initial=request.POST.dict(), instance=documentation)

        else:
            form = DocumentationForm(request.POST, instance=documentation)
            images_form = StagedImagesForm(request.POST, request.FILES)

            # 入力エラーでも選んだ画像はプレビューとして残す
            staged = stage_selected_files(images_form, staging)
            if form.is_valid() and staged:
                saved = _save_documentation(request, form, staging)
                if saved is not None:
                    staging.close()
                    messages.success(
                        request,
                        "Documentation updated." if documentation else "Documentation added.",
                    )
                    return redirect("documentation_detail", pk=saved.pk)
    else:
        form = DocumentationForm(instance=documentation)

    return render(request, "journal/documentation_form.html", {
        "form": form,
        "images_form": images_form,
        "documentation": documentation,
        **staging_context(staging),
    })


def _save_documentation(request, form, staging):
    """
    画像を全部アップロードできたときだけレコードを書き込む
    """
    documentation = form.instance

    try:
        image_urls = staging.resolve_for_submit(
            StorageUploader(),
            request.user.pk,
            prefix=STORAGE_PREFIX,
            record_id=documentation.pk,
        )
    except UploadFailure as exc:
        form.add_error(None, str(exc))
        return None

    try:
        with record_write("save documentation"):
            documentation = form.save(commit=False)
            if documentation.owner_id is None:
                documentation.owner = request.user
            documentation.image_urls = image_urls
            documentation.save()
    except RecordWriteFailure as exc:
        log_orphaned_uploads(staging, image_urls)
        messages.error(request, str(exc))
        return None

    logger.info("Saved documentation %s with %d image(s)", documentation.pk, len(image_urls))
    return documentation
