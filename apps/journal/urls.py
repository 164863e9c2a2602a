from django.urls import path
from . import views

urlpatterns = [
    path("", views.documentation_list, name="documentation_list"),
    path("new/", views.documentation_create, name="documentation_create"),
    path("<int:pk>/", views.documentation_detail, name="documentation_detail"),
    path("<int:pk>/edit/", views.documentation_edit, name="documentation_edit"),
    path("<int:pk>/delete/", views.documentation_delete, name="documentation_delete"),
]
