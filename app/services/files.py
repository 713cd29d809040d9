# app/services/files.py
import logging
from typing import Optional, Tuple

from app.core.config import Settings
from app.core.errors import InternalError, NotFound, ValidationError
from app.core.security import now_ms
from app.models.users import User
from app.repositories.commands import SetFields
from app.repositories.files import FileRepository
from app.repositories.users import UserRepository
from app.services.storage import BlobNotFound, BlobStore, BlobStoreError, LocalBlobStore

logger = logging.getLogger(__name__)

AVATAR_STORAGE_PATH = "avatars/"
# 副檔名 -> 存檔用的 content type
AVATAR_CONTENT_TYPES = {"png": "image/png", "jpg": "image/jpeg", "jpeg": "image/jpeg"}


def _extension(filename: Optional[str]) -> str:
    if not filename or "." not in filename:
        return ""
    return filename.rsplit(".", 1)[1].lower()


class FileService:
    def __init__(self, files: FileRepository, users: UserRepository, blobs: BlobStore, settings: Settings):
        self._files = files
        self._users = users
        self._blobs = blobs
        self._settings = settings

    # === Avatar ===
    async def upload_avatar(self, user: User, filename: Optional[str], data: bytes) -> str:
        """上傳（或覆蓋）頭像，回傳 file id"""
        logger.info("Attempting to upload %s's avatar", user.id)

        max_bytes = self._settings.AVATAR_MAX_BYTES
        if len(data) > max_bytes:
            raise ValidationError(f"File size must be less than {max_bytes // 1000}KB")

        extension = _extension(filename)
        if extension not in AVATAR_CONTENT_TYPES:
            allowed = ", ".join(AVATAR_CONTENT_TYPES)
            raise ValidationError(
                f"Cannot upload a file with the extension {extension or '(none)'}. "
                f"Only files of the following extensions are allowed: {allowed}"
            )

        cooldown = self._settings.AVATAR_UPDATE_COOLDOWN_SECONDS
        if user.avatar_updated_at and now_ms() - user.avatar_updated_at < cooldown * 1000:
            raise ValidationError(f"You can only update your avatar every {max(cooldown // 60, 1)} minutes")

        # 每個使用者固定一個 key，新頭像直接蓋掉舊的
        key = f"{AVATAR_STORAGE_PATH}avatar-{user.id}"
        content_type = AVATAR_CONTENT_TYPES[extension]
        try:
            url = await self._blobs.put(key, data, content_type)
        except BlobStoreError as exc:
            logger.error("Uploading avatar of %s failed: %s", user.id, exc)
            raise InternalError("Failed to upload your avatar") from exc

        file = await self._files.get_by_key(key)
        if file is None:
            file = await self._files.create(key, url, content_type)
        else:
            await self._files.apply(file.id, SetFields({"url": url, "content_type": content_type}))

        await self._users.atomic_update(user.id, SetFields({"avatar": file.id, "avatar_updated_at": now_ms()}))
        return file.id

    async def delete_avatar(self, user: User) -> None:
        logger.info("Attempting to delete %s's avatar", user.id)
        if not user.avatar:
            return

        file = await self._files.get(user.avatar)
        if file is not None:
            try:
                await self._blobs.delete(file.key)
            except BlobStoreError as exc:
                logger.error("Deleting avatar of %s failed: %s", user.id, exc)
                raise InternalError("Failed to delete your avatar") from exc

        await self._users.atomic_update(user.id, SetFields({"avatar": None}))
        if file is not None:
            await self._files.delete(file.id)

    # === Retrieval ===
    async def signed_url_for_key(self, key: str) -> str:
        logger.info("Attempting to get file with key: %s", key)
        try:
            # 先確認檔案存在，再簽短效網址
            await self._blobs.get(key)
            return await self._blobs.signed_url(key, self._settings.FILE_URL_EXPIRES_IN_SECONDS)
        except BlobNotFound as exc:
            raise NotFound(f"File with key {key} not found") from exc
        except BlobStoreError as exc:
            raise InternalError("Failed to get file") from exc

    async def signed_url_for_file(self, file_id: str) -> str:
        file = await self._files.get(file_id)
        if file is None:
            raise NotFound(f"File with Id {file_id} not found")
        return await self.signed_url_for_key(file.key)

    async def open_signed_link(self, token: str) -> Tuple[bytes, str]:
        """本機儲存的簽名網址；雲端儲存的網址直接指向 Azure，不會走到這裡"""
        if not isinstance(self._blobs, LocalBlobStore):
            raise NotFound("File not found")
        try:
            return await self._blobs.open_signed(token)
        except BlobNotFound as exc:
            raise NotFound("Invalid or expired file link") from exc
