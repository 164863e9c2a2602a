from django import forms
from django.contrib.auth import get_user_model
from django.contrib.auth.forms import UserCreationForm


User = get_user_model()

MIN_USERNAME_LENGTH = 3


class SignupForm(UserCreationForm):
    class Meta(UserCreationForm.Meta):
        model = User
        fields = ("username",)

    def clean_username(self):
        username = (self.cleaned_data.get("username") or "").strip()
        if len(username) < MIN_USERNAME_LENGTH:
            raise forms.ValidationError(
                f"Username must be at least {MIN_USERNAME_LENGTH} characters long."
            )
        return username
