import io
import shutil
import tempfile
from datetime import timedelta
from urllib.parse import unquote

from PIL import Image
from django.contrib.auth import get_user_model
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase, override_settings
from django.urls import reverse
from django.utils import timezone

from .filters import brand_choices, filter_inventory, filter_showroom, inventory_statuses, showroom_categories
from .forms import VehicleForm
from .messenger import build_inquiry_message, generate_messenger_url
from .models import Vehicle, VehicleStatus

TEMP_MEDIA_ROOT = tempfile.mkdtemp()


def tearDownModule():
    shutil.rmtree(TEMP_MEDIA_ROOT, ignore_errors=True)


def png_file(name="car.png"):
    buf = io.BytesIO()
    Image.new("RGB", (48, 32), (90, 90, 90)).save(buf, format="PNG")
    return SimpleUploadedFile(name, buf.getvalue(), content_type="image/png")


def make_vehicle(**kwargs):
    fields = {
        "make": "Toyota",
        "model": "Camry",
        "year": 2020,
        "price": 1250000,
        "mileage": "5,000 km",
        "category": "Sedan",
        "transmission": "Automatic",
        "fuel_type": "Petrol",
    }
    fields.update(kwargs)
    return Vehicle.objects.create(**fields)


class VehicleFilterTests(TestCase):

    def setUp(self):
        self.camry = make_vehicle()
        self.crv = make_vehicle(make="Honda", model="CR-V", category="SUV")
        self.sold = make_vehicle(make="Ford", model="Ranger", category="Pick up", status=VehicleStatus.SOLD)

    def test_brand_choices_are_sorted_and_distinct(self):
        make_vehicle(model="Vios")
        self.assertEqual(brand_choices(), ["All", "Ford", "Honda", "Toyota"])

    def test_category_lists(self):
        self.assertEqual(showroom_categories(), ["All", "Sedan", "Hatchback", "SUV", "Van", "Pick up"])
        self.assertEqual(inventory_statuses(), ["All Status", "available", "sold"])

    def test_showroom_lists_available_only(self):
        qs = filter_showroom(Vehicle.objects.all())
        self.assertCountEqual(qs, [self.camry, self.crv])

        self.assertEqual(list(filter_showroom(Vehicle.objects.all(), category="SUV")), [self.crv])
        self.assertEqual(list(filter_showroom(Vehicle.objects.all(), brand="Toyota")), [self.camry])
        self.assertEqual(list(filter_showroom(Vehicle.objects.all(), brand="Ford")), [])

    def test_inventory_search_is_case_insensitive(self):
        qs = Vehicle.objects.all()

        self.assertEqual(list(filter_inventory(qs, query="cr-v")), [self.crv])
        self.assertEqual(list(filter_inventory(qs, query="TOYO")), [self.camry])
        self.assertCountEqual(filter_inventory(qs), [self.camry, self.crv, self.sold])

    def test_inventory_category_and_status(self):
        qs = Vehicle.objects.all()

        self.assertEqual(list(filter_inventory(qs, status="sold")), [self.sold])
        self.assertEqual(list(filter_inventory(qs, category="Sedan", status="available")), [self.camry])
        self.assertEqual(list(filter_inventory(qs, query="ranger", status="available")), [])


class MessengerTests(TestCase):

    @override_settings(SELLER_MESSENGER_USERNAME="acme.cars")
    def test_url_carries_encoded_inquiry(self):
        vehicle = make_vehicle()

        url = generate_messenger_url(vehicle)

        self.assertTrue(url.startswith("https://m.me/acme.cars?text="))
        text = url.split("?text=", 1)[1]
        self.assertNotIn(" ", text)
        self.assertNotIn("+", text)
        self.assertEqual(unquote(text), build_inquiry_message(vehicle))

    def test_message_contents(self):
        message = build_inquiry_message(make_vehicle())

        self.assertIn("🚗 Toyota Camry (2020)", message)
        self.assertIn("💰 Price: ₱1,250,000", message)
        self.assertIn("📊 Mileage: 5,000 km", message)
        self.assertTrue(message.endswith("Could you please provide more information about this unit?"))

    def test_explicit_username(self):
        url = generate_messenger_url(make_vehicle(), username="dealer")
        self.assertTrue(url.startswith("https://m.me/dealer?text="))


class VehicleFormTests(TestCase):

    def _data(self, **extra):
        data = {
            "make": "Honda",
            "category": "Hatchback",
            "model": "Jazz",
            "year": "2019",
            "price": "650000",
            "mileage": "30,000 km",
            "transmission": "Manual",
            "fuel_type": "Petrol",
        }
        data.update(extra)
        return data

    def test_year_range(self):
        next_year = timezone.localdate().year + 1

        self.assertTrue(VehicleForm(self._data(year=str(next_year))).is_valid())
        form = VehicleForm(self._data(year="1989"))
        self.assertFalse(form.is_valid())
        self.assertEqual(form.errors["year"], [f"Year must be between 1990 and {next_year}."])

    def test_unknown_make_is_rejected_for_new_vehicles(self):
        form = VehicleForm(self._data(make="Lada"))
        self.assertFalse(form.is_valid())
        self.assertIn("make", form.errors)

    def test_existing_make_outside_list_stays_editable(self):
        vehicle = make_vehicle(make="Isuzu")
        form = VehicleForm(self._data(make="Isuzu"), instance=vehicle)
        self.assertTrue(form.is_valid())

    def test_new_vehicle_defaults_to_current_year(self):
        self.assertEqual(VehicleForm().initial["year"], timezone.localdate().year)


@override_settings(MEDIA_ROOT=TEMP_MEDIA_ROOT)
class VehicleViewTests(TestCase):

    def setUp(self):
        User = get_user_model()
        self.staff = User.objects.create_user(username="manager", password="secret123", is_staff=True)
        self.customer = User.objects.create_user(username="buyer", password="secret123")

    def _fields(self, **extra):
        data = {
            "make": "Toyota",
            "category": "SUV",
            "model": "Fortuner",
            "year": "2021",
            "price": "1800000",
            "mileage": "12,000 km",
            "transmission": "Automatic",
            "fuel_type": "Diesel",
            "action": "save",
        }
        data.update(extra)
        return data

    def test_showroom_is_public_and_hides_sold(self):
        available = make_vehicle()
        make_vehicle(model="Vios", status=VehicleStatus.SOLD)

        res = self.client.get(reverse("showroom"))

        self.assertEqual(res.status_code, 200)
        self.assertEqual(list(res.context["vehicles"]), [available])
        self.assertEqual(res.context["brands"], ["All", "Toyota"])

    def test_showroom_filters_by_query_string(self):
        make_vehicle()
        suv = make_vehicle(make="Honda", model="CR-V", category="SUV")

        res = self.client.get(reverse("showroom"), {"category": "SUV", "brand": "Honda"})

        self.assertEqual(list(res.context["vehicles"]), [suv])

    def test_detail_links_to_messenger(self):
        vehicle = make_vehicle()

        res = self.client.get(reverse("vehicle_detail", args=[vehicle.pk]))

        self.assertEqual(res.context["messenger_url"], generate_messenger_url(vehicle))

    def test_inventory_is_staff_only(self):
        self.assertEqual(self.client.get(reverse("inventory")).status_code, 302)

        self.client.force_login(self.customer)
        self.assertEqual(self.client.get(reverse("inventory")).status_code, 302)

        self.client.force_login(self.staff)
        self.assertEqual(self.client.get(reverse("inventory")).status_code, 200)

    def test_inventory_lists_sold_vehicles_too(self):
        make_vehicle()
        make_vehicle(model="Vios", status=VehicleStatus.SOLD)
        self.client.force_login(self.staff)

        res = self.client.get(reverse("inventory"), {"q": "vios"})

        self.assertEqual([v.model for v in res.context["vehicles"]], ["Vios"])

    def test_customer_cannot_create(self):
        self.client.force_login(self.customer)

        res = self.client.post(reverse("vehicle_create"), self._fields())

        self.assertEqual(res.status_code, 302)
        self.assertFalse(Vehicle.objects.exists())

    def test_create_with_image(self):
        self.client.force_login(self.staff)

        res = self.client.post(reverse("vehicle_create"), self._fields(images=[png_file()]))

        self.assertRedirects(res, reverse("inventory"))
        vehicle = Vehicle.objects.get()
        self.assertEqual(vehicle.model, "Fortuner")
        self.assertEqual(vehicle.status, VehicleStatus.AVAILABLE)
        self.assertTrue(vehicle.image_url.startswith(f"/media/vehicles/{self.staff.pk}/new/"))

    def test_second_image_is_rejected(self):
        self.client.force_login(self.staff)

        res = self.client.post(
            reverse("vehicle_create"),
            self._fields(images=[png_file("a.png"), png_file("b.png")]),
        )

        self.assertEqual(res.status_code, 200)
        self.assertContains(res, "You can only upload up to 1 images. 1 slot(s) remaining.")
        self.assertFalse(Vehicle.objects.exists())

    def test_edit_replaces_image_after_remove(self):
        vehicle = make_vehicle(image_url="/media/vehicles/1/old.png")
        self.client.force_login(self.staff)
        url = reverse("vehicle_edit", args=[vehicle.pk])

        res = self.client.post(url, self._fields(remove_index="0", existing_image_urls=[vehicle.image_url]))
        self.assertEqual(res.context["existing_image_urls"], [])
        self.assertEqual(res.context["remaining_slots"], 1)

        res = self.client.post(url, self._fields(images=[png_file()]))

        self.assertRedirects(res, reverse("inventory"))
        vehicle.refresh_from_db()
        self.assertTrue(vehicle.image_url.startswith(f"/media/vehicles/{self.staff.pk}/{vehicle.pk}/"))

    def test_edit_can_clear_image(self):
        vehicle = make_vehicle(image_url="/media/vehicles/1/old.png")
        self.client.force_login(self.staff)

        self.client.post(reverse("vehicle_edit", args=[vehicle.pk]), self._fields())

        vehicle.refresh_from_db()
        self.assertEqual(vehicle.image_url, "")

    def test_toggle_status(self):
        vehicle = make_vehicle()
        self.client.force_login(self.staff)
        url = reverse("vehicle_toggle_status", args=[vehicle.pk])

        self.assertRedirects(self.client.post(url), reverse("inventory"))
        vehicle.refresh_from_db()
        self.assertEqual(vehicle.status, VehicleStatus.SOLD)

        self.client.post(url)
        vehicle.refresh_from_db()
        self.assertEqual(vehicle.status, VehicleStatus.AVAILABLE)


    def test_toggle_status_touches_updated_at(self):
        vehicle = make_vehicle()
        earlier = timezone.now() - timedelta(days=3)
        Vehicle.objects.filter(pk=vehicle.pk).update(updated_at=earlier)
        self.client.force_login(self.staff)

        self.client.post(reverse("vehicle_toggle_status", args=[vehicle.pk]))

        vehicle.refresh_from_db()
        self.assertEqual(vehicle.status, VehicleStatus.SOLD)
        self.assertGreater(vehicle.updated_at, earlier)

    def test_sold_vehicle_detail_is_staff_only(self):
        sold = make_vehicle(status=VehicleStatus.SOLD)
        url = reverse("vehicle_detail", args=[sold.pk])

        self.assertEqual(self.client.get(url).status_code, 404)

        self.client.force_login(self.customer)
        self.assertEqual(self.client.get(url).status_code, 404)

        self.client.force_login(self.staff)
        self.assertEqual(self.client.get(url).status_code, 200)
    def test_delete(self):
        vehicle = make_vehicle()
        self.client.force_login(self.staff)

        res = self.client.post(reverse("vehicle_delete", args=[vehicle.pk]))

        self.assertRedirects(res, reverse("inventory"))
        self.assertFalse(Vehicle.objects.exists())
