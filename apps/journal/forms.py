# apps/journal/forms.py

from django import forms

from .models import Documentation


class DocumentationForm(forms.ModelForm):
    class Meta:
        model = Documentation
        fields = ["title", "date", "description"]
        widgets = {
            "title": forms.TextInput(attrs={"placeholder": "e.g., Day 1, Day 2"}),
            "date": forms.DateInput(attrs={"type": "date"}, format="%Y-%m-%d"),
            "description": forms.Textarea(attrs={
                "rows": 6,
                "placeholder": "Describe your activities, tasks, and learnings for this day...",
            }),
        }

    def clean_title(self):
        title = (self.cleaned_data.get("title") or "").strip()
        if not title:
            raise forms.ValidationError("Title is required.")
        return title
