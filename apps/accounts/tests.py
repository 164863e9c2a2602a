from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse

from .forms import SignupForm


class SignupFormTests(TestCase):

    def _data(self, **extra):
        data = {"username": "juan", "password1": "kalye-123", "password2": "kalye-123"}
        data.update(extra)
        return data

    def test_valid(self):
        self.assertTrue(SignupForm(self._data()).is_valid())

    def test_short_username(self):
        form = SignupForm(self._data(username="ab"))
        self.assertFalse(form.is_valid())
        self.assertEqual(form.errors["username"], ["Username must be at least 3 characters long."])

    def test_short_password(self):
        form = SignupForm(self._data(password1="ab12", password2="ab12"))
        self.assertFalse(form.is_valid())
        self.assertIn("password2", form.errors)

    def test_password_mismatch(self):
        form = SignupForm(self._data(password2="kalye-124"))
        self.assertFalse(form.is_valid())
        self.assertIn("password2", form.errors)

    def test_duplicate_username(self):
        get_user_model().objects.create_user(username="juan", password="secret123")
        form = SignupForm(self._data())
        self.assertFalse(form.is_valid())
        self.assertIn("username", form.errors)


class SignupViewTests(TestCase):

    def test_signup_logs_in_and_redirects(self):
        res = self.client.post(reverse("signup"), {
            "username": "juan",
            "password1": "kalye-123",
            "password2": "kalye-123",
        })

        self.assertRedirects(res, reverse("documentation_list"))
        user = get_user_model().objects.get(username="juan")
        self.assertEqual(int(self.client.session["_auth_user_id"]), user.pk)

    def test_invalid_signup_rerenders(self):
        res = self.client.post(reverse("signup"), {"username": "jo", "password1": "x", "password2": "x"})

        self.assertEqual(res.status_code, 200)
        self.assertContains(res, "Username must be at least 3 characters long.")
        self.assertFalse(get_user_model().objects.exists())

    def test_signed_in_user_is_redirected(self):
        user = get_user_model().objects.create_user(username="juan", password="secret123")
        self.client.force_login(user)

        self.assertRedirects(self.client.get(reverse("signup")), reverse("documentation_list"))

    def test_login_page(self):
        get_user_model().objects.create_user(username="juan", password="secret123")

        self.assertEqual(self.client.get(reverse("login")).status_code, 200)
        res = self.client.post(reverse("login"), {"username": "juan", "password": "secret123"})
        self.assertRedirects(res, reverse("documentation_list"))
