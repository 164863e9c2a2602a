"""
Tests for image staging (AttachmentSet) and its Django adapters.
"""
import io
import itertools
import os
import shutil
import tempfile
from datetime import timedelta
from unittest.mock import Mock, patch

from PIL import Image
from django.contrib.auth import get_user_model
from django.core.files.storage import default_storage
from django.core.files.uploadedfile import SimpleUploadedFile
from django.core.management import call_command
from django.test import RequestFactory, SimpleTestCase, TestCase, override_settings
from django.utils import timezone

from apps.common.attachments import StorageUploader, TempUploadPreviews, restore_staging
from apps.common.exceptions import (
    CapacityExceeded,
    OwnerRequired,
    PreviewFailure,
    StagingClosed,
    UploadFailure,
)
from apps.common.forms import StagedImagesForm
from apps.common.models import TempUpload
from apps.common.staging import AttachmentSet
from apps.common.templatetags.common_extras import peso
from apps.common.upload import staged_image_path

TEMP_MEDIA_ROOT = tempfile.mkdtemp()


def tearDownModule():
    shutil.rmtree(TEMP_MEDIA_ROOT, ignore_errors=True)


def png_file(name="photo.png", size=(40, 30), color=(200, 30, 30)):
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return SimpleUploadedFile(name, buf.getvalue(), content_type="image/png")


def truncated_jpeg(name="bad.jpg"):
    # ヘッダは正常なので verify() は通るが、展開すると途中で切れている
    buf = io.BytesIO()
    Image.radial_gradient("L").convert("RGB").save(buf, format="JPEG", quality=95)
    data = buf.getvalue()
    return SimpleUploadedFile(name, data[: len(data) // 2], content_type="image/jpeg")


class FakeFile:
    def __init__(self, name):
        self.name = name

    def __repr__(self):
        return f"FakeFile({self.name})"


class FakePreviews:
    """Counts create/release calls so the call balance can be asserted."""

    def __init__(self, fail_on=()):
        self._ids = itertools.count(1)
        self.fail_on = set(fail_on)
        self.created = []
        self.released = []

    def create_preview(self, file):
        if file.name in self.fail_on:
            raise PreviewFailure(f"{file.name} could not be processed.")
        handle = f"preview-{next(self._ids)}:{file.name}"
        self.created.append(handle)
        return handle

    def release_preview(self, handle):
        self.released.append(handle)


class FakeUploader:
    def __init__(self, fail_on=(), error=None):
        self.fail_on = set(fail_on)
        self.error = error or RuntimeError("storage unavailable")
        self.calls = []

    def __call__(self, path, file):
        self.calls.append((path, file.name))
        if file.name in self.fail_on:
            raise self.error
        return f"https://cdn.example.com/{path}"


def files(*names):
    return [FakeFile(n) for n in names]


class AttachmentSetAddTests(SimpleTestCase):

    def setUp(self):
        self.previews = FakePreviews()
        self.staging = AttachmentSet(5, previews=self.previews)

    def test_batch_over_capacity_is_rejected_whole(self):
        with self.assertRaises(CapacityExceeded) as ctx:
            self.staging.add_files(files("a.png", "b.png", "c.png", "d.png", "e.png", "f.png"))

        self.assertEqual(len(self.staging), 0)
        self.assertEqual(self.previews.created, [])
        self.assertIn("5 slot(s) remaining", str(ctx.exception))
        self.assertEqual(ctx.exception.remaining, 5)
        self.assertEqual(self.staging.error, str(ctx.exception))

    def test_batches_append_in_selection_order(self):
        uploader = FakeUploader()
        self.staging.add_files(files("a.png", "b.png"))
        self.staging.add_files(files("c.png", "d.png"))

        self.assertEqual([e.name for e in self.staging], ["a.png", "b.png", "c.png", "d.png"])
        self.assertEqual(len(self.staging.local_entries), 4)
        self.assertEqual(len(self.previews.created), 4)
        self.assertEqual(uploader.calls, [])

    def test_length_never_exceeds_maximum(self):
        self.staging.add_files(files("a.png", "b.png", "c.png"))
        with self.assertRaises(CapacityExceeded) as ctx:
            self.staging.add_files(files("d.png", "e.png", "f.png"))

        self.assertEqual(len(self.staging), 3)
        self.assertEqual(self.staging.remaining, 2)
        self.assertIn("2 slot(s) remaining", str(ctx.exception))

        self.staging.add_files(files("d.png", "e.png"))
        self.assertEqual(len(self.staging), 5)
        self.assertEqual(self.staging.remaining, 0)

    def test_success_clears_previous_error(self):
        with self.assertRaises(CapacityExceeded):
            self.staging.add_files(files(*[f"{i}.png" for i in range(6)]))
        self.assertIsNotNone(self.staging.error)

        self.staging.add_files(files("a.png"))
        self.assertIsNone(self.staging.error)

    def test_failed_preview_adds_nothing_and_releases_created(self):
        previews = FakePreviews(fail_on={"c.png"})
        staging = AttachmentSet(5, previews=previews)

        with self.assertRaises(PreviewFailure):
            staging.add_files(files("a.png", "b.png", "c.png", "d.png"))

        self.assertEqual(len(staging), 0)
        self.assertEqual(len(previews.created), 2)
        self.assertEqual(previews.released, previews.created)
        self.assertEqual(staging.error, "c.png could not be processed.")

        staging.add_files(files("a.png"))
        self.assertEqual(len(staging), 1)
        self.assertIsNone(staging.error)

    def test_vehicle_limit_of_one(self):
        staging = AttachmentSet(1, previews=self.previews, existing_urls=["https://cdn/v.png"])
        with self.assertRaises(CapacityExceeded) as ctx:
            staging.add_files(files("new.png"))
        self.assertIn("0 slot(s) remaining", str(ctx.exception))


class AttachmentSetRemoveTests(SimpleTestCase):

    def setUp(self):
        self.previews = FakePreviews()

    def test_remove_remote_then_resolve_without_uploads(self):
        staging = AttachmentSet(5, previews=self.previews, existing_urls=["url1", "url2"])
        uploader = FakeUploader()

        staging.remove_at(0)

        self.assertEqual(staging.remote_urls, ["url2"])
        self.assertEqual(staging.resolve_for_submit(uploader, 1, prefix="ojt"), ["url2"])
        self.assertEqual(uploader.calls, [])
        self.assertEqual(self.previews.released, [])

    def test_remove_local_releases_immediately(self):
        staging = AttachmentSet(5, previews=self.previews, existing_urls=["url1"])
        staging.add_files(files("a.png", "b.png"))

        staging.remove_at(1)

        self.assertEqual(self.previews.released, [self.previews.created[0]])
        self.assertEqual([getattr(e, "url", None) or e.name for e in staging], ["url1", "b.png"])

    def test_remove_out_of_range(self):
        staging = AttachmentSet(5, previews=self.previews)
        with self.assertRaises(IndexError):
            staging.remove_at(0)
        staging.add_files(files("a.png"))
        with self.assertRaises(IndexError):
            staging.remove_at(-1)

    def test_release_calls_match_local_entries_added(self):
        staging = AttachmentSet(5, previews=self.previews, existing_urls=["url1"])
        staging.add_files(files("a.png", "b.png"))
        staging.remove_at(1)
        staging.add_files(files("c.png"))
        staging.remove_at(0)

        staging.close()
        staging.close()

        self.assertEqual(len(self.previews.released), 3)
        self.assertCountEqual(self.previews.released, self.previews.created)

    def test_duplicate_remote_urls_are_tracked_once(self):
        staging = AttachmentSet(5, previews=self.previews, existing_urls=["url1", "url1", "url2", ""])
        self.assertEqual(staging.remote_urls, ["url1", "url2"])


class AttachmentSetResolveTests(SimpleTestCase):

    def setUp(self):
        self.previews = FakePreviews()

    def test_uploads_locals_in_order_after_remote(self):
        staging = AttachmentSet(5, previews=self.previews, existing_urls=["url1"])
        staging.add_files(files("a.PNG", "b.jpeg"))
        uploader = FakeUploader()

        urls = staging.resolve_for_submit(uploader, 7, prefix="ojt-documentations", record_id=12)

        self.assertEqual(len(urls), 3)
        self.assertEqual(urls[0], "url1")
        self.assertEqual([name for _, name in uploader.calls], ["a.PNG", "b.jpeg"])
        paths = [path for path, _ in uploader.calls]
        self.assertTrue(all(p.startswith("ojt-documentations/7/12/") for p in paths))
        self.assertTrue(paths[0].endswith(".png"))
        self.assertTrue(paths[1].endswith(".jpeg"))
        self.assertEqual(urls[1:], [f"https://cdn.example.com/{p}" for p in paths])
        # 送信自体は set を変更せず、release もしない
        self.assertEqual(len(staging), 3)
        self.assertEqual(self.previews.released, [])

    def test_failed_upload_returns_no_partial_list(self):
        staging = AttachmentSet(5, previews=self.previews, existing_urls=["url1"])
        staging.add_files(files("fileA.png"))
        uploader = FakeUploader(fail_on={"fileA.png"})

        with self.assertRaises(UploadFailure) as ctx:
            staging.resolve_for_submit(uploader, 7, prefix="ojt")

        self.assertIsInstance(ctx.exception.__cause__, RuntimeError)
        self.assertEqual(staging.remote_urls, ["url1"])
        self.assertEqual(len(staging.local_entries), 1)

    def test_failure_after_earlier_uploads(self):
        staging = AttachmentSet(5, previews=self.previews)
        staging.add_files(files("a.png", "b.png", "c.png"))
        uploader = FakeUploader(fail_on={"b.png"})

        with self.assertRaises(UploadFailure):
            staging.resolve_for_submit(uploader, 7, prefix="ojt")

        # c はアップロードされない
        self.assertEqual([name for _, name in uploader.calls], ["a.png", "b.png"])

    def test_upload_failure_from_uploader_is_kept(self):
        staging = AttachmentSet(5, previews=self.previews)
        staging.add_files(files("a.png"))
        original = UploadFailure("quota exceeded")
        uploader = FakeUploader(fail_on={"a.png"}, error=original)

        with self.assertRaises(UploadFailure) as ctx:
            staging.resolve_for_submit(uploader, 7, prefix="ojt")
        self.assertIs(ctx.exception, original)

    def test_owner_is_required(self):
        staging = AttachmentSet(5, previews=self.previews)
        staging.add_files(files("a.png"))
        uploader = FakeUploader()

        with self.assertRaises(OwnerRequired):
            staging.resolve_for_submit(uploader, None, prefix="ojt")
        self.assertEqual(uploader.calls, [])

    def test_close_during_submit_waits_until_settled(self):
        staging = AttachmentSet(5, previews=self.previews)
        staging.add_files(files("a.png", "b.png"))
        released_during_upload = []

        def uploader(path, file):
            staging.close()
            released_during_upload.append(len(self.previews.released))
            return f"https://cdn/{path}"

        urls = staging.resolve_for_submit(uploader, 7, prefix="ojt")

        self.assertEqual(len(urls), 2)
        self.assertEqual(released_during_upload, [0, 0])
        self.assertCountEqual(self.previews.released, self.previews.created)
        self.assertTrue(staging.closed)
        with self.assertRaises(StagingClosed):
            staging.add_files(files("c.png"))

    def test_close_during_failed_submit_still_releases(self):
        staging = AttachmentSet(5, previews=self.previews)
        staging.add_files(files("a.png"))

        def uploader(path, file):
            staging.close()
            raise OSError("disk full")

        with self.assertRaises(UploadFailure):
            staging.resolve_for_submit(uploader, 7, prefix="ojt")
        self.assertEqual(self.previews.released, self.previews.created)

    def test_close_before_submit(self):
        staging = AttachmentSet(5, previews=self.previews)
        staging.add_files(files("a.png"))
        staging.close()

        self.assertEqual(self.previews.released, self.previews.created)
        with self.assertRaises(StagingClosed):
            staging.resolve_for_submit(FakeUploader(), 7, prefix="ojt")
        with self.assertRaises(StagingClosed):
            staging.remove_at(0)


class AttachmentSetRestoreTests(SimpleTestCase):

    def test_restore_keeps_handles_without_new_previews(self):
        previews = FakePreviews()
        staging = AttachmentSet.restore(
            5,
            previews=previews,
            remote_urls=["url1"],
            staged=[(FakeFile("a.png"), "h1"), (FakeFile("b.png"), "h2")],
        )
        self.assertEqual(len(staging), 3)
        self.assertEqual(previews.created, [])

        staging.close()
        self.assertEqual(previews.released, ["h1", "h2"])

    def test_restore_over_capacity_releases_excess(self):
        previews = FakePreviews()
        staging = AttachmentSet.restore(
            1,
            previews=previews,
            remote_urls=["url1"],
            staged=[(FakeFile("a.png"), "h1")],
        )
        self.assertEqual(staging.remote_urls, ["url1"])
        self.assertEqual(staging.local_entries, [])
        self.assertEqual(previews.released, ["h1"])


class StagedImagePathTests(SimpleTestCase):

    def test_path_is_scoped_and_keeps_extension(self):
        path = staged_image_path("ojt-documentations", 3, "Day1.JPG", record_id=9)
        self.assertRegex(path, r"^ojt-documentations/3/9/\d+-[0-9a-f]{12}\.jpg$")

    def test_new_record_and_missing_extension(self):
        path = staged_image_path("vehicles", 1, "blob")
        self.assertRegex(path, r"^vehicles/1/new/\d+-[0-9a-f]{12}\.jpg$")

    def test_paths_do_not_collide(self):
        paths = {staged_image_path("vehicles", 1, "a.png") for _ in range(50)}
        self.assertEqual(len(paths), 50)


class PesoFilterTests(SimpleTestCase):

    def test_formats_with_thousands_separator(self):
        self.assertEqual(peso(1250000), "₱1,250,000")
        self.assertEqual(peso("0"), "₱0")
        self.assertEqual(peso(None), "")


class StagedImagesFormTests(SimpleTestCase):

    def test_accepts_images(self):
        form = StagedImagesForm(files={"images": png_file()})
        self.assertTrue(form.is_valid())
        self.assertEqual(len(form.cleaned_data["images"]), 1)

    def test_rejects_non_image_content(self):
        fake = SimpleUploadedFile("notes.png", b"not really a png", content_type="image/png")
        form = StagedImagesForm(files={"images": fake})
        self.assertFalse(form.is_valid())
        self.assertIn("images", form.errors)

    def test_rejects_non_image_content_type(self):
        doc = SimpleUploadedFile("notes.txt", b"hello", content_type="text/plain")
        form = StagedImagesForm(files={"images": doc})
        self.assertFalse(form.is_valid())

    def test_rejects_truncated_jpeg(self):
        form = StagedImagesForm(files={"images": truncated_jpeg()})
        self.assertFalse(form.is_valid())
        self.assertEqual(form.errors["images"], ["bad.jpg is not a valid image."])

    def test_rejects_oversized_pixel_count(self):
        # 40x30 でも上限を下げれば DecompressionBombError になる
        with patch.object(Image, "MAX_IMAGE_PIXELS", 100):
            form = StagedImagesForm(files={"images": png_file("huge.png")})
            self.assertFalse(form.is_valid())
        self.assertEqual(form.errors["images"], ["huge.png is not a valid image."])


@override_settings(MEDIA_ROOT=TEMP_MEDIA_ROOT)
class TempUploadPreviewsTests(TestCase):

    def setUp(self):
        self.user = get_user_model().objects.create_user(username="alice", password="secret123")
        self.previews = TempUploadPreviews(self.user, "documentation_images")

    def test_create_and_release(self):
        temp = self.previews.create_preview(png_file())

        self.assertTrue(TempUpload.objects.filter(pk=temp.pk, purpose="documentation_images").exists())
        self.assertTrue(temp.thumb)
        file_name, thumb_name = temp.file.name, temp.thumb.name
        self.assertTrue(default_storage.exists(file_name))
        self.assertTrue(temp.preview_url.startswith("/media/temp/thumbs/"))

        self.previews.release_preview(temp)

        self.assertFalse(TempUpload.objects.filter(pk=temp.pk).exists())
        self.assertFalse(default_storage.exists(file_name))
        self.assertFalse(default_storage.exists(thumb_name))

    def test_thumbnail_failure_removes_stored_file(self):
        with patch("apps.common.attachments.generate_thumbnail", side_effect=OSError("image file is truncated")):
            with self.assertRaises(PreviewFailure):
                self.previews.create_preview(png_file("thumbfail.png"))

        self.assertFalse(TempUpload.objects.exists())
        leftovers = [
            name
            for _, _, names in os.walk(TEMP_MEDIA_ROOT)
            for name in names
            if name.startswith("thumbfail")
        ]
        self.assertEqual(leftovers, [])

    def test_purge_command_removes_only_stale_temps(self):
        stale = self.previews.create_preview(png_file("old.png"))
        fresh = self.previews.create_preview(png_file("new.png"))
        TempUpload.objects.filter(pk=stale.pk).update(created_at=timezone.now() - timedelta(hours=48))

        out = io.StringIO()
        call_command("purge_temp_uploads", "--hours", "24", stdout=out)

        self.assertIn("Deleted 1 staged image(s).", out.getvalue())
        self.assertFalse(TempUpload.objects.filter(pk=stale.pk).exists())
        self.assertTrue(TempUpload.objects.filter(pk=fresh.pk).exists())


@override_settings(MEDIA_ROOT=TEMP_MEDIA_ROOT, UPLOAD_IMAGE_MAX_SIDE=1600)
class StorageUploaderTests(TestCase):

    def test_upload_returns_public_url(self):
        url = StorageUploader()("ojt-documentations/1/new/123-abc.png", png_file())

        self.assertEqual(url, "/media/ojt-documentations/1/new/123-abc.png")
        self.assertTrue(default_storage.exists("ojt-documentations/1/new/123-abc.png"))

    def test_large_images_are_shrunk_keeping_format(self):
        StorageUploader()("vehicles/1/new/big.png", png_file("big.png", size=(3200, 1000)))

        with default_storage.open("vehicles/1/new/big.png") as f:
            img = Image.open(f)
            self.assertEqual(img.format, "PNG")
            self.assertEqual(img.size, (1600, 500))

    def test_storage_errors_become_upload_failure(self):
        storage = Mock()
        storage.save.side_effect = OSError("bucket unavailable")

        with self.assertRaises(UploadFailure) as ctx:
            StorageUploader(storage)("vehicles/1/new/a.png", png_file())
        self.assertEqual(ctx.exception.path, "vehicles/1/new/a.png")


@override_settings(MEDIA_ROOT=TEMP_MEDIA_ROOT)
class RestoreStagingTests(TestCase):

    def setUp(self):
        User = get_user_model()
        self.user = User.objects.create_user(username="alice", password="secret123")
        self.other = User.objects.create_user(username="bob", password="secret123")
        self.factory = RequestFactory()

    def _post(self, data):
        request = self.factory.post("/journal/new/", data)
        request.user = self.user
        return request

    def test_get_seeds_from_record(self):
        request = self.factory.get("/journal/1/edit/")
        request.user = self.user

        staging = restore_staging(request, maximum=5, purpose="p", existing_urls=["u1", "u2"])
        self.assertEqual(staging.remote_urls, ["u1", "u2"])

    def test_post_ignores_urls_the_record_does_not_own(self):
        request = self._post({"existing_image_urls": ["u2", "https://evil.example.com/x.png"]})

        staging = restore_staging(request, maximum=5, purpose="p", existing_urls=["u1", "u2"])
        self.assertEqual(staging.remote_urls, ["u2"])

    def test_post_restores_only_own_temps_for_purpose(self):
        mine = TempUploadPreviews(self.user, "p").create_preview(png_file("mine.png"))
        other_purpose = TempUploadPreviews(self.user, "q").create_preview(png_file("q.png"))
        theirs = TempUploadPreviews(self.other, "p").create_preview(png_file("theirs.png"))
        request = self._post({"temp_image_ids_json": f"[{mine.id}, {other_purpose.id}, {theirs.id}]"})

        staging = restore_staging(request, maximum=5, purpose="p")

        self.assertEqual([e.preview.pk for e in staging.local_entries], [mine.pk])
