# apps/common/staging.py

"""
フォームを開いている間の画像（既存URL + 今回選んだファイル）を管理する。

- RemoteImage: すでにアップロード済みの画像（レコードの image_urls 由来）
- LocalImage: 今回のセッションで選んだファイル + プレビューハンドル

プレビューハンドルは必ず1回だけ release する（削除 / 送信成功 / キャンセル / 破棄）。
ストレージやプレビューの実体は呼び出し側から注入する（apps.common.attachments 参照）。
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Protocol, Sequence, Tuple

from .exceptions import CapacityExceeded, OwnerRequired, StagingClosed, UploadFailure
from .upload import staged_image_path

logger = logging.getLogger(__name__)


class PreviewBackend(Protocol):
    def create_preview(self, file) -> Any: ...

    def release_preview(self, handle) -> None: ...


# uploader(path, file) -> 公開URL（失敗時は例外）
Uploader = Callable[[str, Any], str]


@dataclass(frozen=True)
class RemoteImage:
    url: str

    is_local = False


@dataclass(eq=False)
class LocalImage:
    file: Any
    preview: Any
    released: bool = False

    is_local = True

    @property
    def name(self) -> str:
        return getattr(self.file, "name", "") or ""


class AttachmentSet:
    """
    1レコード分の画像を表示順に保持する。len(self) <= maximum を常に守る。
    """

    def __init__(self, maximum: int, *, previews: PreviewBackend, existing_urls: Iterable[str] = ()):
        self.maximum = maximum
        self.previews = previews
        self.error: Optional[str] = None
        self._entries: List = []
        self._closed = False
        self._resolving = False
        self._close_pending = False

        for url in existing_urls:
            if not url:
                continue
            if url in self.remote_urls:
                logger.debug("Skipping duplicate remote image %s", url)
                continue
            if len(self._entries) >= maximum:
                logger.warning("Record holds more than %s images; ignoring %s", maximum, url)
                continue
            self._entries.append(RemoteImage(url))

    @classmethod
    def restore(
        cls,
        maximum: int,
        *,
        previews: PreviewBackend,
        remote_urls: Iterable[str] = (),
        staged: Sequence[Tuple[Any, Any]] = (),
    ) -> "AttachmentSet":
        """
        フォーム往復後の状態を復元する（プレビューは作り直さない）
        - staged: (file, handle) のリスト
        - 枠を超えた分はハンドルを release して捨てる
        """
        attachments = cls(maximum, previews=previews, existing_urls=remote_urls)
        for file, handle in staged:
            entry = LocalImage(file=file, preview=handle)
            if len(attachments) >= maximum:
                logger.warning("Dropping staged image beyond capacity: %s", entry.name)
                attachments._release(entry)
                continue
            attachments._entries.append(entry)
        return attachments

    # ----------------------------
    # 参照系
    # ----------------------------
    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(list(self._entries))

    def __getitem__(self, index: int):
        return self._entries[index]

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def remaining(self) -> int:
        return max(0, self.maximum - len(self._entries))

    @property
    def remote_urls(self) -> List[str]:
        return [e.url for e in self._entries if not e.is_local]

    @property
    def local_entries(self) -> List[LocalImage]:
        return [e for e in self._entries if e.is_local]

    # ----------------------------
    # 操作系
    # ----------------------------
    def add_files(self, selected: Sequence[Any]) -> "AttachmentSet":
        self._ensure_open()
        files = list(selected)
        remaining = self.remaining

        if len(files) > remaining:
            exc = CapacityExceeded(self.maximum, remaining, len(files))
            self.error = str(exc)
            raise exc

        # 全部プレビューを作れたときだけ追加する
        created: List[LocalImage] = []
        try:
            for f in files:
                created.append(LocalImage(file=f, preview=self.previews.create_preview(f)))
        except Exception as exc:
            for entry in created:
                self._release(entry)
            self.error = str(exc)
            raise

        self._entries.extend(created)
        self.error = None
        return self

    def remove_at(self, index: int) -> "AttachmentSet":
        self._ensure_open()
        if not 0 <= index < len(self._entries):
            raise IndexError(f"No staged image at index {index}")

        entry = self._entries[index]
        if entry.is_local:
            self._release(entry)
        del self._entries[index]
        return self

    def resolve_for_submit(
        self,
        uploader: Uploader,
        owner_id,
        *,
        prefix: str,
        record_id=None,
    ) -> List[str]:
        """
        Local を順番にアップロードし、表示順の URL リストを返す。
        1枚でも失敗したら UploadFailure（途中までのリストは返さない）。
        """
        self._ensure_open()
        if owner_id is None or owner_id == "":
            raise OwnerRequired("An authenticated owner is required to upload images.")

        entries = list(self._entries)
        urls: List[str] = []
        uploaded: List[str] = []

        self._resolving = True
        try:
            for entry in entries:
                if not entry.is_local:
                    urls.append(entry.url)
                    continue

                path = staged_image_path(prefix, owner_id, entry.name, record_id=record_id)
                try:
                    url = uploader(path, entry.file)
                except Exception as exc:
                    if uploaded:
                        # 失敗より前にアップロード済みのファイルはストレージに残る
                        logger.warning("Upload failed after %d blob(s) were stored: %s", len(uploaded), uploaded)
                    logger.error("Image upload failed for %s: %s", path, exc)
                    if isinstance(exc, UploadFailure):
                        raise
                    raise UploadFailure(path=path) from exc

                uploaded.append(path)
                urls.append(url)
        finally:
            self._resolving = False
            if self._close_pending:
                self._close_pending = False
                self._release_all()

        logger.info("Resolved %d image(s) (%d uploaded)", len(urls), len(uploaded))
        return urls

    def close(self) -> None:
        """
        全プレビューを release する。送信中なら送信完了まで待ってから release する。
        """
        if self._closed:
            return
        if self._resolving:
            self._close_pending = True
            self._closed = True
            return
        self._closed = True
        self._release_all()

    # ----------------------------
    # internal
    # ----------------------------
    def _ensure_open(self) -> None:
        if self._closed:
            raise StagingClosed("This form has already been closed.")

    def _release(self, entry: LocalImage) -> None:
        if entry.released:
            return
        entry.released = True
        self.previews.release_preview(entry.preview)

    def _release_all(self) -> None:
        for entry in self._entries:
            if entry.is_local:
                self._release(entry)
