# apps/common/exceptions.py


class AttachmentError(Exception):
    """画像添付まわりのエラーの基底クラス"""


class CapacityExceeded(AttachmentError):
    """
    追加しようとした枚数が残り枠を超えている（バッチ全体を拒否）
    """

    def __init__(self, maximum: int, remaining: int, requested: int):
        self.maximum = maximum
        self.remaining = remaining
        self.requested = requested
        super().__init__(
            f"You can only upload up to {maximum} images. "
            f"{remaining} slot(s) remaining."
        )


class PreviewFailure(AttachmentError):
    """選んだファイルのプレビュー（サムネイル）を作れなかった"""


class UploadFailure(AttachmentError):
    """1枚でもアップロードに失敗した"""

    def __init__(self, message: str = "Failed to upload one or more images. Please try again.", *, path: str = ""):
        self.path = path
        super().__init__(message)


class RecordWriteFailure(AttachmentError):
    """レコードの insert / update / delete に失敗した"""


class OwnerRequired(AttachmentError):
    """アップロード先の名前空間に使う owner id が無い"""


class StagingClosed(AttachmentError):
    """close 済みの AttachmentSet を操作しようとした"""
