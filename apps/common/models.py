# apps/common/models.py
from django.conf import settings
from django.db import models
from django.utils import timezone


class TempUpload(models.Model):
    """
    フォーム編集中の画像（プレビューハンドル）
    - バリデーションエラーや追加/削除の往復でもファイルを保持する
    - 送信成功 / キャンセル / 削除 / 期限切れで必ず1回だけ削除される
    """
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="temp_uploads")
    file = models.ImageField(upload_to="temp/%Y/%m/%d/")
    thumb = models.ImageField(upload_to="temp/thumbs/%Y/%m/%d/", blank=True, null=True)
    purpose = models.CharField(max_length=50, default="", blank=True)  # 例: "documentation_images"
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["id"]

    def __str__(self):
        return f"TempUpload({self.id}) {self.purpose}"

    @property
    def preview_url(self) -> str:
        f = self.thumb or self.file
        return f.url if f else ""

    def delete(self, *args, **kwargs):
        from .utils import delete_filefields  # 循環import防止

        delete_filefields(self, field_names=("thumb", "file"))
        return super().delete(*args, **kwargs)
