import io
import json
import shutil
import tempfile
from unittest.mock import patch

from PIL import Image
from django.contrib.auth import get_user_model
from django.core.files.uploadedfile import SimpleUploadedFile
from django.db import DatabaseError
from django.test import TestCase, override_settings
from django.urls import reverse

from apps.common.attachments import StorageUploader
from apps.common.exceptions import UploadFailure
from apps.common.models import TempUpload

from .models import Documentation

TEMP_MEDIA_ROOT = tempfile.mkdtemp()


def tearDownModule():
    shutil.rmtree(TEMP_MEDIA_ROOT, ignore_errors=True)


def png_file(name="day.png"):
    buf = io.BytesIO()
    Image.new("RGB", (32, 24), (20, 120, 200)).save(buf, format="PNG")
    return SimpleUploadedFile(name, buf.getvalue(), content_type="image/png")


def truncated_jpeg(name="bad.jpg"):
    buf = io.BytesIO()
    Image.radial_gradient("L").convert("RGB").save(buf, format="JPEG", quality=95)
    data = buf.getvalue()
    return SimpleUploadedFile(name, data[: len(data) // 2], content_type="image/jpeg")


@override_settings(MEDIA_ROOT=TEMP_MEDIA_ROOT)
class DocumentationViewTests(TestCase):

    def setUp(self):
        User = get_user_model()
        self.user = User.objects.create_user(username="alice", password="secret123")
        self.other = User.objects.create_user(username="bob", password="secret123")
        self.client.force_login(self.user)

    def _fields(self, **extra):
        data = {
            "title": "Day 1",
            "date": "2024-06-03",
            "description": "Orientation and safety briefing.",
            "action": "save",
        }
        data.update(extra)
        return data

    def _doc(self, owner=None, urls=("https://cdn/u1.png", "https://cdn/u2.png")):
        return Documentation.objects.create(
            owner=owner or self.user,
            title="Day 2",
            description="Shadowed the service team.",
            image_urls=list(urls),
        )

    # ----------------------------
    # 一覧 / 詳細
    # ----------------------------
    def test_list_requires_login(self):
        self.client.logout()
        res = self.client.get(reverse("documentation_list"))
        self.assertEqual(res.status_code, 302)
        self.assertIn(reverse("login"), res.url)

    def test_list_shows_only_own_entries(self):
        mine = self._doc()
        self._doc(owner=self.other)

        res = self.client.get(reverse("documentation_list"))

        self.assertEqual(list(res.context["documentations"]), [mine])

    def test_other_users_entry_is_not_found(self):
        theirs = self._doc(owner=self.other)

        self.assertEqual(self.client.get(reverse("documentation_detail", args=[theirs.pk])).status_code, 404)
        self.assertEqual(self.client.get(reverse("documentation_edit", args=[theirs.pk])).status_code, 404)

    # ----------------------------
    # 作成
    # ----------------------------
    def test_create_uploads_images_in_order(self):
        res = self.client.post(
            reverse("documentation_create"),
            self._fields(images=[png_file("first.png"), png_file("second.png")]),
        )

        doc = Documentation.objects.get()
        self.assertRedirects(res, reverse("documentation_detail", args=[doc.pk]))
        self.assertEqual(doc.owner, self.user)
        self.assertEqual(len(doc.image_urls), 2)
        prefix = f"/media/ojt-documentations/{self.user.pk}/new/"
        self.assertTrue(all(u.startswith(prefix) for u in doc.image_urls))
        # 送信成功でプレビューは全部 release
        self.assertEqual(TempUpload.objects.count(), 0)

    def test_create_without_images(self):
        res = self.client.post(reverse("documentation_create"), self._fields())

        doc = Documentation.objects.get()
        self.assertRedirects(res, reverse("documentation_detail", args=[doc.pk]))
        self.assertEqual(doc.image_urls, [])

    def test_too_many_images_rejects_the_whole_batch(self):
        images = [png_file(f"{i}.png") for i in range(6)]

        res = self.client.post(reverse("documentation_create"), self._fields(images=images))

        self.assertEqual(res.status_code, 200)
        self.assertContains(res, "You can only upload up to 5 images. 5 slot(s) remaining.")
        self.assertFalse(Documentation.objects.exists())
        self.assertEqual(TempUpload.objects.count(), 0)

    def test_invalid_fields_keep_selected_images_for_next_submit(self):
        res = self.client.post(
            reverse("documentation_create"),
            self._fields(title="  ", images=[png_file("a.png"), png_file("b.png")]),
        )

        self.assertEqual(res.status_code, 200)
        self.assertFalse(Documentation.objects.exists())
        temp_ids = json.loads(res.context["temp_image_ids_json"])
        self.assertEqual(len(temp_ids), 2)

        res = self.client.post(
            reverse("documentation_create"),
            self._fields(temp_image_ids_json=json.dumps(temp_ids)),
        )

        doc = Documentation.objects.get()
        self.assertRedirects(res, reverse("documentation_detail", args=[doc.pk]))
        self.assertEqual(len(doc.image_urls), 2)
        self.assertEqual(TempUpload.objects.count(), 0)

    def test_upload_action_stages_without_saving(self):
        res = self.client.post(
            reverse("documentation_create"),
            self._fields(action="upload", images=[png_file()]),
        )

        self.assertEqual(res.status_code, 200)
        self.assertFalse(Documentation.objects.exists())
        self.assertEqual(TempUpload.objects.filter(user=self.user).count(), 1)
        self.assertEqual(res.context["remaining_slots"], 4)

    def test_cancel_releases_staged_images(self):
        res = self.client.post(
            reverse("documentation_create"),
            self._fields(action="upload", images=[png_file()]),
        )
        temp_ids_json = res.context["temp_image_ids_json"]

        res = self.client.post(
            reverse("documentation_create"),
            self._fields(action="cancel", temp_image_ids_json=temp_ids_json),
        )

        self.assertRedirects(res, reverse("documentation_list"))
        self.assertEqual(TempUpload.objects.count(), 0)
        self.assertFalse(Documentation.objects.exists())

    def test_remove_staged_local_image(self):
        res = self.client.post(
            reverse("documentation_create"),
            self._fields(action="upload", images=[png_file("a.png"), png_file("b.png")]),
        )
        first, second = json.loads(res.context["temp_image_ids_json"])

        res = self.client.post(
            reverse("documentation_create"),
            self._fields(remove_index="0", temp_image_ids_json=json.dumps([first, second])),
        )

        self.assertEqual(res.status_code, 200)
        self.assertEqual(json.loads(res.context["temp_image_ids_json"]), [second])
        self.assertEqual(list(TempUpload.objects.values_list("id", flat=True)), [second])

    # ----------------------------
    # 編集
    # ----------------------------
    def test_edit_remove_existing_image_then_save(self):
        doc = self._doc()
        url = reverse("documentation_edit", args=[doc.pk])

        res = self.client.post(url, self._fields(
            remove_index="0",
            existing_image_urls=doc.image_urls,
        ))

        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.context["existing_image_urls"], ["https://cdn/u2.png"])
        doc.refresh_from_db()
        self.assertEqual(doc.image_urls, ["https://cdn/u1.png", "https://cdn/u2.png"])

        with patch.object(StorageUploader, "__call__") as uploader:
            res = self.client.post(url, self._fields(existing_image_urls=["https://cdn/u2.png"]))

        uploader.assert_not_called()
        self.assertRedirects(res, reverse("documentation_detail", args=[doc.pk]))
        doc.refresh_from_db()
        self.assertEqual(doc.image_urls, ["https://cdn/u2.png"])
        self.assertEqual(doc.title, "Day 1")

    def test_edit_appends_new_images_after_existing(self):
        doc = self._doc(urls=["https://cdn/u1.png"])

        self.client.post(
            reverse("documentation_edit", args=[doc.pk]),
            self._fields(existing_image_urls=doc.image_urls, images=[png_file()]),
        )

        doc.refresh_from_db()
        self.assertEqual(len(doc.image_urls), 2)
        self.assertEqual(doc.image_urls[0], "https://cdn/u1.png")
        self.assertTrue(doc.image_urls[1].startswith(f"/media/ojt-documentations/{self.user.pk}/{doc.pk}/"))

    def test_edit_ignores_urls_the_entry_does_not_own(self):
        doc = self._doc(urls=["https://cdn/u1.png"])

        self.client.post(
            reverse("documentation_edit", args=[doc.pk]),
            self._fields(existing_image_urls=["https://cdn/u1.png", "https://evil.example.com/x.png"]),
        )

        doc.refresh_from_db()
        self.assertEqual(doc.image_urls, ["https://cdn/u1.png"])

    def test_upload_failure_leaves_entry_unchanged(self):
        doc = self._doc(urls=["https://cdn/u1.png"])

        with patch.object(StorageUploader, "__call__", side_effect=UploadFailure()):
            res = self.client.post(
                reverse("documentation_edit", args=[doc.pk]),
                self._fields(title="Changed", existing_image_urls=doc.image_urls, images=[png_file()]),
            )

        self.assertEqual(res.status_code, 200)
        self.assertContains(res, "Failed to upload one or more images. Please try again.")
        doc.refresh_from_db()
        self.assertEqual(doc.image_urls, ["https://cdn/u1.png"])
        self.assertEqual(doc.title, "Day 2")
        # 再送信できるようにプレビューは残す
        self.assertEqual(TempUpload.objects.count(), 1)

    def test_record_write_failure_is_reported(self):
        with patch.object(Documentation, "save", side_effect=DatabaseError("disk I/O error")):
            res = self.client.post(reverse("documentation_create"), self._fields())

        self.assertEqual(res.status_code, 200)
        self.assertContains(res, "Failed to save documentation.")

    def test_record_write_failure_logs_uploaded_images(self):
        with patch.object(Documentation, "save", side_effect=DatabaseError("disk I/O error")):
            with self.assertLogs("apps.common.attachments", "WARNING") as logs:
                res = self.client.post(
                    reverse("documentation_create"),
                    self._fields(images=[png_file()]),
                )

        self.assertContains(res, "Failed to save documentation.")
        self.assertTrue(any(
            "left without a record" in line and f"/media/ojt-documentations/{self.user.pk}/new/" in line
            for line in logs.output
        ))

    def test_truncated_image_is_rejected_without_staging(self):
        res = self.client.post(
            reverse("documentation_create"),
            self._fields(action="upload", images=[png_file("ok.png"), truncated_jpeg("bad.jpg")]),
        )

        self.assertEqual(res.status_code, 200)
        self.assertContains(res, "bad.jpg is not a valid image.")
        self.assertEqual(res.context["temp_image_ids_json"], "[]")
        self.assertEqual(TempUpload.objects.count(), 0)

    def test_preview_failure_keeps_batch_out(self):
        # 2枚目のサムネイル作成だけ失敗させる
        with patch("apps.common.attachments.generate_thumbnail", side_effect=[None, OSError("broken")]):
            res = self.client.post(
                reverse("documentation_create"),
                self._fields(action="upload", images=[png_file("a.png"), png_file("b.png")]),
            )

        self.assertEqual(res.status_code, 200)
        self.assertContains(res, "b.png could not be processed.")
        self.assertEqual(res.context["remaining_slots"], 5)
        self.assertEqual(TempUpload.objects.count(), 0)

    # ----------------------------
    # 削除
    # ----------------------------
    def test_delete_requires_post(self):
        doc = self._doc()
        res = self.client.get(reverse("documentation_delete", args=[doc.pk]))
        self.assertEqual(res.status_code, 405)

    def test_delete(self):
        doc = self._doc()

        res = self.client.post(reverse("documentation_delete", args=[doc.pk]))

        self.assertRedirects(res, reverse("documentation_list"))
        self.assertFalse(Documentation.objects.filter(pk=doc.pk).exists())

    def test_cannot_delete_other_users_entry(self):
        theirs = self._doc(owner=self.other)

        res = self.client.post(reverse("documentation_delete", args=[theirs.pk]))

        self.assertEqual(res.status_code, 404)
        self.assertTrue(Documentation.objects.filter(pk=theirs.pk).exists())
