from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse


class HomeViewTests(TestCase):

    def test_landing_page_for_visitors(self):
        res = self.client.get(reverse("home"))

        self.assertEqual(res.status_code, 200)
        self.assertTemplateUsed(res, "pages/home.html")
        self.assertEqual(res.context["max_images"], 5)

    def test_signed_in_user_goes_to_journal(self):
        user = get_user_model().objects.create_user(username="juan", password="secret123")
        self.client.force_login(user)

        self.assertRedirects(self.client.get(reverse("home")), reverse("documentation_list"))
