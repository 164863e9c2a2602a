import os
import time
import uuid


def staged_image_path(prefix: str, owner_id, filename: str, record_id=None) -> str:
    """
    <prefix>/<owner>/<record|new>/<time_ns>-<random><ext>
    同時に別ユーザー/別レコードから送信されても衝突しないパス
    """
    ext = os.path.splitext(filename or "")[1].lower() or ".jpg"
    scope = str(record_id) if record_id is not None else "new"
    stamp = time.time_ns()
    uid = uuid.uuid4().hex[:12]
    return f"{prefix}/{owner_id}/{scope}/{stamp}-{uid}{ext}"
