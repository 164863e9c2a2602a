# apps/common/attachments.py

"""
AttachmentSet を Django のリクエスト/ストレージにつなぐための部品。

- プレビューハンドル = TempUpload（フォーム往復の間ファイルを保持）
- アップロード先 = Django の default_storage
"""

import json
import logging
from typing import Iterable, Optional

from PIL import Image
from django.conf import settings
from django.core.files.storage import default_storage

from .exceptions import CapacityExceeded, PreviewFailure, UploadFailure
from .images import generate_thumbnail, shrink_image
from .models import TempUpload
from .staging import AttachmentSet
from .utils import delete_filefields, get_temp_uploads_for_user

logger = logging.getLogger(__name__)


class TempUploadPreviews:
    def __init__(self, user, purpose: str):
        self.user = user
        self.purpose = purpose

    def create_preview(self, file) -> TempUpload:
        temp = TempUpload(user=self.user, purpose=self.purpose)
        temp.file.save(file.name, file, save=False)
        try:
            generate_thumbnail(temp.file, temp.thumb)
        except (Image.DecompressionBombError, OSError, ValueError) as exc:
            # 行を作る前なので保存済みファイルはここで消す
            logger.warning("Could not create preview for %s: %s", file.name, exc)
            delete_filefields(temp, field_names=("thumb", "file"))
            raise PreviewFailure(f"{file.name} could not be processed.") from exc
        temp.save()
        return temp

    def release_preview(self, handle: TempUpload) -> None:
        handle.delete()


class StorageUploader:
    """
    uploader(path, file) -> 公開URL
    """

    def __init__(self, storage=None, *, max_side: Optional[int] = None):
        self.storage = storage or default_storage
        self.max_side = max_side or settings.UPLOAD_IMAGE_MAX_SIDE

    def __call__(self, path: str, file) -> str:
        try:
            content = shrink_image(file, max_side=self.max_side)
            name = self.storage.save(path, content)
            url = self.storage.url(name)
        except Exception as exc:
            raise UploadFailure(path=path) from exc

        logger.info("Uploaded %s", name)
        return url


def restore_staging(request, *, maximum: int, purpose: str, existing_urls: Iterable[str] = ()) -> AttachmentSet:
    """
    GET: レコードの image_urls から作る
    POST: hidden（existing_image_urls / temp_image_ids_json）から復元する
      - 既存URLはレコードが持っているものだけ受け付ける
      - temp はログインユーザー＆purpose のものだけ
    """
    previews = TempUploadPreviews(request.user, purpose)
    existing_urls = [u for u in existing_urls if u]

    if request.method != "POST":
        return AttachmentSet(maximum, previews=previews, existing_urls=existing_urls)

    allowed = set(existing_urls)
    posted = request.POST.getlist("existing_image_urls")
    rejected = [u for u in posted if u not in allowed]
    if rejected:
        logger.warning("Ignoring image URLs not owned by the record: %s", rejected)

    temps = get_temp_uploads_for_user(
        request.user,
        request.POST.get("temp_image_ids_json", ""),
        purpose=purpose,
    )
    return AttachmentSet.restore(
        maximum,
        previews=previews,
        remote_urls=[u for u in posted if u in allowed],
        staged=[(t.file, t) for t in temps],
    )


def stage_selected_files(images_form, staging: AttachmentSet, field_name: str = "images") -> bool:
    """
    images_form が受け付けたファイルを staging に追加する
    - 残り枠オーバー / プレビュー失敗はフォームのエラーにする（1枚も追加しない）
    """
    if not images_form.is_valid():
        return False

    files = images_form.cleaned_data.get(field_name) or []
    if not files:
        return True

    try:
        staging.add_files(files)
    except (CapacityExceeded, PreviewFailure) as exc:
        images_form.add_error(field_name, str(exc))
        return False
    return True


def remove_staged(request, staging: AttachmentSet) -> bool:
    try:
        index = int(request.POST.get("remove_index", ""))
        staging.remove_at(index)
    except (TypeError, ValueError, IndexError):
        logger.warning("Invalid remove_index: %r", request.POST.get("remove_index"))
        return False
    return True


def staging_context(staging: AttachmentSet) -> dict:
    staged_images = []
    for index, entry in enumerate(staging):
        staged_images.append({
            "index": index,
            "is_local": entry.is_local,
            "src": entry.preview.preview_url if entry.is_local else entry.url,
        })

    return {
        "staged_images": staged_images,
        "existing_image_urls": staging.remote_urls,
        "temp_image_ids_json": json.dumps([e.preview.id for e in staging.local_entries]),
        "max_images": staging.maximum,
        "remaining_slots": staging.remaining,
        "staging_error": staging.error,
    }


def log_orphaned_uploads(staging: AttachmentSet, image_urls) -> None:
    """
    アップロード後にレコードの書き込みが失敗したとき、今回アップロードした分を記録する
    """
    remote = set(staging.remote_urls)
    orphaned = [u for u in image_urls if u not in remote]
    if orphaned:
        logger.warning("Uploaded image(s) left without a record: %s", orphaned)


def form_action(request) -> str:
    """
    押されたボタンから action を決める（upload / remove / cancel / save）
    """
    if "remove_index" in request.POST:
        return "remove"
    return request.POST.get("action", "save") or "save"
