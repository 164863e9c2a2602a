from django.contrib import admin

from .models import TempUpload


@admin.register(TempUpload)
class TempUploadAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "purpose", "created_at")
    list_filter = ("purpose",)
