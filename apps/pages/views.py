# apps/pages/views.py

from django.shortcuts import redirect, render

from apps.journal.models import DOCUMENTATION_MAX_IMAGES


def home(request):
    # ログイン済みなら自分の記録へ
    if request.user.is_authenticated:
        return redirect("documentation_list")

    return render(request, "pages/home.html", {"max_images": DOCUMENTATION_MAX_IMAGES})
