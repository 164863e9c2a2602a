# apps/common/templatetags/common_extras.py

from django import template

register = template.Library()


@register.filter
def peso(value):
    """
    1234000 -> "₱1,234,000"
    """
    try:
        return f"₱{int(value):,}"
    except (TypeError, ValueError):
        return ""
