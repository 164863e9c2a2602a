# apps/vehicles/filters.py

from typing import List

from django.db.models import Q, QuerySet

from .models import Category, Vehicle, VehicleStatus

# showroom（公開側）
ALL = "All"
# inventory（管理側）
ALL_CATEGORIES = "All Categories"
ALL_STATUS = "All Status"


def showroom_categories() -> List[str]:
    return [ALL] + list(Category.values)


def inventory_categories() -> List[str]:
    return [ALL_CATEGORIES] + list(Category.values)


def inventory_statuses() -> List[str]:
    return [ALL_STATUS] + list(VehicleStatus.values)


def brand_choices(qs: QuerySet = None) -> List[str]:
    """
    "All" + 登録済みメーカー（重複なし・昇順）
    """
    qs = Vehicle.objects.all() if qs is None else qs
    makes = qs.order_by().values_list("make", flat=True).distinct()
    return [ALL] + sorted(set(makes))


def filter_showroom(qs: QuerySet, *, category: str = ALL, brand: str = ALL) -> QuerySet:
    """
    公開一覧: 販売中のみ + カテゴリ / メーカー
    """
    qs = qs.filter(status=VehicleStatus.AVAILABLE)
    if category and category != ALL:
        qs = qs.filter(category=category)
    if brand and brand != ALL:
        qs = qs.filter(make=brand)
    return qs


def filter_inventory(
    qs: QuerySet,
    *,
    query: str = "",
    category: str = ALL_CATEGORIES,
    status: str = ALL_STATUS,
) -> QuerySet:
    """
    管理一覧: メーカー/モデルの部分一致 + カテゴリ + ステータス
    """
    query = (query or "").strip()
    if query:
        qs = qs.filter(Q(make__icontains=query) | Q(model__icontains=query))
    if category and category != ALL_CATEGORIES:
        qs = qs.filter(category=category)
    if status and status != ALL_STATUS:
        qs = qs.filter(status=status)
    return qs
