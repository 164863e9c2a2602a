# apps/vehicles/forms.py

from django import forms
from django.core.exceptions import ValidationError
from django.utils import timezone

from .models import MAKES, Vehicle

MIN_YEAR = 1990


class VehicleForm(forms.ModelForm):
    make = forms.ChoiceField(choices=[(m, m) for m in MAKES])

    class Meta:
        model = Vehicle
        fields = [
            "make",
            "category",
            "model",
            "year",
            "price",
            "mileage",
            "transmission",
            "fuel_type",
        ]
        widgets = {
            "model": forms.TextInput(attrs={"placeholder": "e.g. Camry"}),
            "mileage": forms.TextInput(attrs={"placeholder": "e.g. 5,000 km"}),
        }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)

        # 既存データのメーカーがリストに無くても編集できるようにする
        current = getattr(self.instance, "make", "")
        if current and current not in MAKES:
            self.fields["make"].choices = [(current, current)] + self.fields["make"].choices

        if not self.instance.pk and not self.initial.get("year"):
            self.initial["year"] = timezone.localdate().year

    def clean_year(self):
        year = self.cleaned_data.get("year")
        max_year = timezone.localdate().year + 1
        if year is not None and not (MIN_YEAR <= year <= max_year):
            raise ValidationError(f"Year must be between {MIN_YEAR} and {max_year}.")
        return year

    def clean_model(self):
        model = (self.cleaned_data.get("model") or "").strip()
        if not model:
            raise ValidationError("Model is required.")
        return model
