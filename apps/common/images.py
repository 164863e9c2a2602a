import io
import os
from uuid import uuid4

from PIL import Image, ImageOps, UnidentifiedImageError
from django.core.files.base import ContentFile


def is_image_file(f) -> bool:
    """
    Pillow で最後までデコードできるかどうか
    - 拡張子/content_type の偽装、途中で切れたファイル、巨大な画像を弾く
    """
    try:
        f.seek(0)
        Image.open(f).verify()
        # verify() は途中で切れた JPEG などを通すので読み直して展開する
        f.seek(0)
        with Image.open(f) as img:
            img.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError):
        return False
    finally:
        f.seek(0)
    return True


def _format_for(filename: str, fallback: str) -> str:
    ext = os.path.splitext(filename or "")[1].lower()
    return Image.registered_extensions().get(ext, fallback)


def shrink_image(f, *, max_side: int = 1600):
    """
    最大辺を max_side に制限する。
    - 元の形式（拡張子）のまま保存し直す
    - 小さい画像はそのまま返す
    """
    f.seek(0)
    img = Image.open(f)
    fmt = img.format or "JPEG"

    w, h = img.size
    scale = min(max_side / max(w, h), 1.0)
    if scale >= 1.0:
        f.seek(0)
        return f

    img = img.resize((int(w * scale), int(h * scale)), Image.LANCZOS)

    fmt = _format_for(getattr(f, "name", ""), fmt)
    if fmt == "JPEG" and img.mode not in ("RGB", "L"):
        img = img.convert("RGB")

    buf = io.BytesIO()
    img.save(buf, format=fmt)
    buf.seek(0)
    return ContentFile(buf.read(), name=os.path.basename(getattr(f, "name", "") or "image.jpg"))


def generate_thumbnail(src_field, dest_field, *, size=(240, 180)):
    """
    プレビュー用サムネイル（中央トリミング）を dest_field に保存する
    """
    if not src_field:
        return

    src_field.file.seek(0)
    img = Image.open(src_field.file)

    has_alpha = (
        img.mode in ("RGBA", "LA") or
        (img.mode == "P" and "transparency" in img.info)
    )
    img = ImageOps.fit(img.convert("RGBA" if has_alpha else "RGB"), size, Image.LANCZOS)

    buf = io.BytesIO()
    if has_alpha:
        img.save(buf, format="PNG", optimize=True)
        ext = ".png"
    else:
        img.save(buf, format="WEBP", quality=80, method=6)
        ext = ".webp"

    name = f"{uuid4().hex}{ext}"
    dest_field.save(name, ContentFile(buf.getvalue(), name=name), save=False)
