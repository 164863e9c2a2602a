# apps/common/utils.py

import json
import logging
from contextlib import contextmanager
from datetime import timedelta
from typing import Iterable, List, Sequence

from django.db import DatabaseError, transaction
from django.utils import timezone

from apps.common.exceptions import RecordWriteFailure
from apps.common.models import TempUpload

logger = logging.getLogger(__name__)


def delete_filefields(obj, field_names: Sequence[str] = ("thumb", "image")) -> None:
    """
    obj.<field> が Django の FieldFile(ImageField/FileField) の場合に
    ストレージ上のファイルを削除する（DBレコードは削除しない）
    """
    for name in field_names:
        f = getattr(obj, name, None)
        if not f:
            continue
        try:
            f.delete(save=False)
        except OSError:
            # ファイル欠損でもレコード削除は続ける
            logger.warning("Could not delete stored file %s", f.name, exc_info=True)


@contextmanager
def record_write(action: str):
    """
    ORM 書き込みを atomic で包み、DB エラーを RecordWriteFailure に変換する
    （リトライはしない）
    """
    try:
        with transaction.atomic():
            yield
    except DatabaseError as exc:
        logger.exception("Record write failed: %s", action)
        raise RecordWriteFailure(f"Failed to {action}.") from exc


def parse_temp_ids_json(s: str) -> List[int]:
    if not s:
        return []
    try:
        arr = json.loads(s)
    except ValueError:
        return []
    if not isinstance(arr, list):
        return []

    out = []
    for x in arr:
        try:
            out.append(int(x))
        except (TypeError, ValueError):
            continue
    return out


def get_temp_uploads_for_user(user, temp_ids_json: str, purpose: str) -> List[TempUpload]:
    """
    hidden で渡された temp_id 配列(JSON)から TempUpload を取得（ユーザー＆purposeで絞る）
    - ids の順序を維持する（重複は1回だけ）
    """
    ids = parse_temp_ids_json(temp_ids_json)
    if not ids:
        return []
    qs = TempUpload.objects.filter(user=user, purpose=purpose, id__in=ids)
    temp_map = {t.id: t for t in qs}

    out, seen = [], set()
    for i in ids:
        if i in temp_map and i not in seen:
            seen.add(i)
            out.append(temp_map[i])
    return out


def delete_temps(temps: Iterable[TempUpload]) -> int:
    count = 0
    for t in temps or []:
        t.delete()
        count += 1
    return count


def purge_stale_temps(max_age_hours: int) -> int:
    """
    期限切れの TempUpload を削除する（閉じられずに放置されたフォームの後始末）
    """
    cutoff = timezone.now() - timedelta(hours=max_age_hours)
    stale = TempUpload.objects.filter(created_at__lt=cutoff)
    return delete_temps(stale.iterator())
