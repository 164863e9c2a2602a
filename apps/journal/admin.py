from django.contrib import admin

from .models import Documentation


@admin.register(Documentation)
class DocumentationAdmin(admin.ModelAdmin):
    list_display = ("title", "owner", "date", "created_at")
    list_filter = ("date",)
    search_fields = ("title", "description", "owner__username")
