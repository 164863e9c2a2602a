# apps/common/forms.py

from django import forms
from django.core.exceptions import ValidationError
from django.core.files.uploadedfile import UploadedFile

from .images import is_image_file


class MultipleImageInput(forms.ClearableFileInput):
    allow_multiple_selected = True


class MultipleImageField(forms.Field):
    """
    <input type="file" multiple> を安全に受け取るためのField。

    - list/tuple で来たら list 化
    - UploadedFile 単体で来たら [file] にする
    - 枚数の上限は AttachmentSet 側（残り枠）で判定する
    """
    widget = MultipleImageInput

    def to_python(self, data):
        if not data:
            return []

        if isinstance(data, (list, tuple)):
            return list(data)

        if isinstance(data, UploadedFile):
            return [data]

        return data  # validateで弾く

    def validate(self, value):
        super().validate(value)

        if value is None:
            return
        if not isinstance(value, list):
            raise ValidationError("Invalid upload.")

        for f in value:
            if not isinstance(f, UploadedFile):
                raise ValidationError("Invalid upload.")

            ct = getattr(f, "content_type", "") or ""
            if ct and not ct.startswith("image/"):
                raise ValidationError("Only image files can be uploaded.")

            if not is_image_file(f):
                raise ValidationError(f"{f.name} is not a valid image.")

    def clean(self, value):
        value = self.to_python(value)
        self.validate(value)
        self.run_validators(value)
        return value


class StagedImagesForm(forms.Form):
    """
    レコード用フォームとは別に、今回選んだ画像だけを検証する
    """
    images = MultipleImageField(required=False)
