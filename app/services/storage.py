# app/services/storage.py
"""檔案儲存：有設定 Azure Blob 就上雲，否則存本機目錄（開發 / 測試環境）"""
import logging
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Protocol

from azure.core.exceptions import AzureError, ResourceExistsError, ResourceNotFoundError
from azure.storage.blob import BlobSasPermissions, BlobServiceClient, ContentSettings, generate_blob_sas
from jose import JWTError, jwt
from starlette.concurrency import run_in_threadpool

from app.core.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class BlobStoreError(Exception):
    pass


class BlobNotFound(BlobStoreError):
    pass


class BlobStore(Protocol):
    async def put(self, key: str, data: bytes, content_type: Optional[str] = None) -> str: ...

    async def get(self, key: str) -> bytes: ...

    async def delete(self, key: str) -> None: ...

    async def signed_url(self, key: str, expires_in: int) -> str: ...


class AzureBlobStore:
    def __init__(self, connection_string: str, container: str):
        self._service = BlobServiceClient.from_connection_string(connection_string)
        self._container_name = container
        self._container = None

    def _container_client(self):
        if self._container is None:
            try:
                self._service.create_container(self._container_name)
            except ResourceExistsError:
                pass
            self._container = self._service.get_container_client(self._container_name)
        return self._container

    def _put(self, key: str, data: bytes, content_type: Optional[str]) -> str:
        blob = self._container_client().get_blob_client(key)
        settings = ContentSettings(content_type=content_type) if content_type else None
        blob.upload_blob(data, overwrite=True, content_settings=settings)
        return blob.url

    def _get(self, key: str) -> bytes:
        blob = self._container_client().get_blob_client(key)
        try:
            return blob.download_blob().readall()
        except ResourceNotFoundError as exc:
            raise BlobNotFound(key) from exc

    def _delete(self, key: str) -> None:
        blob = self._container_client().get_blob_client(key)
        try:
            blob.delete_blob()
        except ResourceNotFoundError:
            return

    def _signed_url(self, key: str, expires_in: int) -> str:
        blob = self._container_client().get_blob_client(key)
        sas = generate_blob_sas(
            account_name=self._service.account_name,
            container_name=self._container_name,
            blob_name=key,
            account_key=self._service.credential.account_key,
            permission=BlobSasPermissions(read=True),
            expiry=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        )
        return f"{blob.url}?{sas}"

    async def _call(self, action: str, fn, *args):
        # SDK 是同步的，丟到 threadpool
        try:
            return await run_in_threadpool(fn, *args)
        except BlobNotFound:
            raise
        except AzureError as exc:
            logger.error("Azure blob %s failed: %s", action, exc)
            raise BlobStoreError(f"Failed to {action} file") from exc

    async def put(self, key: str, data: bytes, content_type: Optional[str] = None) -> str:
        return await self._call("upload", self._put, key, data, content_type)

    async def get(self, key: str) -> bytes:
        return await self._call("get", self._get, key)

    async def delete(self, key: str) -> None:
        await self._call("delete", self._delete, key)

    async def signed_url(self, key: str, expires_in: int) -> str:
        return await self._call("sign", self._signed_url, key, expires_in)


class LocalBlobStore:
    """
    存在本機目錄；簽名網址指向 /files/raw?token=，
    token 是帶 key 與 exp 的 JWT，過期即失效。
    """

    _TOKEN_TYPE = "file"

    def __init__(self, root: str, secret: str, raw_url: str, algorithm: str = "HS256"):
        self._root = Path(root).resolve()
        self._secret = secret
        self._raw_url = raw_url
        self._algorithm = algorithm

    def _path(self, key: str) -> Path:
        path = (self._root / key.lstrip("/")).resolve()
        # key 不能跳出根目錄
        if path == self._root or self._root not in path.parents:
            raise BlobNotFound(key)
        return path

    def _put(self, key: str, data: bytes, content_type: Optional[str]) -> str:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        path.with_name(path.name + ".type").write_text(content_type or DEFAULT_CONTENT_TYPE)
        return path.as_uri()

    def _get(self, key: str) -> bytes:
        path = self._path(key)
        if not path.is_file():
            raise BlobNotFound(key)
        return path.read_bytes()

    def _get_with_type(self, key: str):
        data = self._get(key)
        type_file = self._path(key).with_name(self._path(key).name + ".type")
        content_type = type_file.read_text().strip() if type_file.is_file() else DEFAULT_CONTENT_TYPE
        return data, content_type or DEFAULT_CONTENT_TYPE

    def _delete(self, key: str) -> None:
        path = self._path(key)
        for target in (path, path.with_name(path.name + ".type")):
            target.unlink(missing_ok=True)

    async def put(self, key: str, data: bytes, content_type: Optional[str] = None) -> str:
        try:
            return await run_in_threadpool(self._put, key, data, content_type)
        except OSError as exc:
            logger.error("Writing file %s failed: %s", key, exc)
            raise BlobStoreError("Failed to upload file") from exc

    async def get(self, key: str) -> bytes:
        return await run_in_threadpool(self._get, key)

    async def delete(self, key: str) -> None:
        try:
            await run_in_threadpool(self._delete, key)
        except OSError as exc:
            logger.error("Deleting file %s failed: %s", key, exc)
            raise BlobStoreError("Failed to delete file") from exc

    async def signed_url(self, key: str, expires_in: int) -> str:
        claims = {"key": key, "type": self._TOKEN_TYPE, "exp": int(time.time()) + int(expires_in)}
        token = jwt.encode(claims, self._secret, algorithm=self._algorithm)
        return f"{self._raw_url}?token={token}"

    async def open_signed(self, token: str):
        """驗證簽名網址的 token，回傳 (內容, content type)"""
        try:
            claims = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except JWTError as exc:
            raise BlobNotFound("Invalid or expired file link") from exc
        key = claims.get("key")
        if claims.get("type") != self._TOKEN_TYPE or not key:
            raise BlobNotFound("Invalid or expired file link")
        return await run_in_threadpool(self._get_with_type, key)


def build_blob_store(settings: Settings) -> BlobStore:
    if settings.BLOB_STORAGE_CONNECTION_STRING:
        return AzureBlobStore(settings.BLOB_STORAGE_CONNECTION_STRING, settings.BLOB_STORAGE_CONTAINER)
    logger.info("Blob storage not configured; storing files under %s", settings.LOCAL_STORAGE_DIR)
    return LocalBlobStore(
        settings.LOCAL_STORAGE_DIR,
        settings.SECRET_KEY,
        f"{settings.API_V1_PREFIX}/files/raw",
        settings.JWT_ALGORITHM,
    )
