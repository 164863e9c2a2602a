from django.conf import settings
from django.db import models
from django.utils import timezone

# 1件あたりの画像上限
DOCUMENTATION_MAX_IMAGES = 5


class Documentation(models.Model):
    """
    OJT の日ごとの記録
    """
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="documentations",
    )

    title = models.CharField(max_length=150)  # 例: "Day 1"
    date = models.DateField(default=timezone.localdate)
    description = models.TextField()

    # アップロード済み画像の公開URL（表示順）
    image_urls = models.JSONField(default=list, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-date", "-created_at"]

    def __str__(self):
        return f"{self.title} ({self.date})"

    @property
    def cover_url(self) -> str:
        return self.image_urls[0] if self.image_urls else ""
