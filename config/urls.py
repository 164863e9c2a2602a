# config/urls.py
from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),

    path("", include("apps.pages.urls")),

    path("accounts/", include("django.contrib.auth.urls")),
    path("account/", include("apps.accounts.urls")),

    path("vehicles/", include("apps.vehicles.urls")),
    path("journal/", include("apps.journal.urls")),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
    urlpatterns += static(settings.STATIC_URL, document_root=settings.STATIC_ROOT)
