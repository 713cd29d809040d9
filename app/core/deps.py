# app/core/deps.py
"""
Composition root：所有 service 都在這裡以建構子注入組起來，
endpoint 只透過 Depends 取得，不直接 new 任何東西。
"""
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.cookies import apply_rotated_tokens, extract_access_token, extract_refresh_token
from app.core.security import CredentialHasher, TokenCodec
from app.core.validators import validate_object_id
from app.db.session import get_db
from app.repositories.comments import CommentRepository
from app.repositories.files import FileRepository
from app.repositories.notifications import NotificationRepository
from app.repositories.posts import PostRepository
from app.repositories.users import UserRepository
from app.schemas.common import Pagination
from app.services.background import DetachedTaskRunner
from app.services.comments import CommentService
from app.services.denylist_cleanup import prune_user_denylist
from app.services.files import FileService
from app.services.mail import MailSender, build_mail_sender
from app.services.notifications import NotificationAggregator, NotificationService
from app.services.posts import PostService
from app.services.presence import ConnectionRegistry
from app.services.session import AuthContext, SessionManager, TokenPair
from app.services.storage import BlobStore, build_blob_store
from app.services.users import UserService


# ---- 無狀態元件（整個行程共用） ----
@lru_cache
def get_token_codec() -> TokenCodec:
    return TokenCodec(settings.SECRET_KEY, settings.JWT_ALGORITHM)


@lru_cache
def get_credential_hasher() -> CredentialHasher:
    return CredentialHasher(settings.AUTH_HASHING_SALT_ROUNDS)


@lru_cache
def get_mail_sender() -> MailSender:
    return build_mail_sender(settings)


@lru_cache
def get_blob_store() -> BlobStore:
    return build_blob_store(settings)


def get_presence(request: Request) -> ConnectionRegistry:
    return request.app.state.presence


def get_background(request: Request) -> DetachedTaskRunner:
    return request.app.state.background


# ---- Repositories（每個請求一個 session） ----
def get_user_repository(db: AsyncSession = Depends(get_db)) -> UserRepository:
    return UserRepository(db)


def get_post_repository(db: AsyncSession = Depends(get_db)) -> PostRepository:
    return PostRepository(db)


def get_comment_repository(db: AsyncSession = Depends(get_db)) -> CommentRepository:
    return CommentRepository(db)


def get_notification_repository(db: AsyncSession = Depends(get_db)) -> NotificationRepository:
    return NotificationRepository(db)


def get_file_repository(db: AsyncSession = Depends(get_db)) -> FileRepository:
    return FileRepository(db)


# ---- Services ----
def build_session_manager(
    db: AsyncSession,
    background: DetachedTaskRunner,
    *,
    codec: Optional[TokenCodec] = None,
    hasher: Optional[CredentialHasher] = None,
    mailer: Optional[MailSender] = None,
) -> SessionManager:
    """HTTP 依賴與 WebSocket 共用的組裝；沒給的元件用行程共用的預設值"""
    return SessionManager(
        UserRepository(db),
        codec or get_token_codec(),
        hasher or get_credential_hasher(),
        mailer or get_mail_sender(),
        settings,
        background,
        denylist_pruner=prune_user_denylist,
    )


def get_session_manager(
    db: AsyncSession = Depends(get_db),
    codec: TokenCodec = Depends(get_token_codec),
    hasher: CredentialHasher = Depends(get_credential_hasher),
    mailer: MailSender = Depends(get_mail_sender),
    background: DetachedTaskRunner = Depends(get_background),
) -> SessionManager:
    return build_session_manager(db, background, codec=codec, hasher=hasher, mailer=mailer)


def get_notification_aggregator(
    notifications: NotificationRepository = Depends(get_notification_repository),
    presence: ConnectionRegistry = Depends(get_presence),
) -> NotificationAggregator:
    return NotificationAggregator(notifications, presence)


def get_notification_service(
    notifications: NotificationRepository = Depends(get_notification_repository),
) -> NotificationService:
    return NotificationService(notifications)


def get_user_service(
    users: UserRepository = Depends(get_user_repository),
    notifications: NotificationRepository = Depends(get_notification_repository),
    aggregator: NotificationAggregator = Depends(get_notification_aggregator),
) -> UserService:
    return UserService(users, notifications, aggregator)


def get_post_service(
    posts: PostRepository = Depends(get_post_repository),
    comments: CommentRepository = Depends(get_comment_repository),
    users: UserRepository = Depends(get_user_repository),
    notifications: NotificationRepository = Depends(get_notification_repository),
    aggregator: NotificationAggregator = Depends(get_notification_aggregator),
) -> PostService:
    return PostService(posts, comments, users, notifications, aggregator)


def get_comment_service(
    comments: CommentRepository = Depends(get_comment_repository),
    posts: PostRepository = Depends(get_post_repository),
    notifications: NotificationRepository = Depends(get_notification_repository),
    aggregator: NotificationAggregator = Depends(get_notification_aggregator),
) -> CommentService:
    return CommentService(comments, posts, notifications, aggregator)


def get_file_service(
    files: FileRepository = Depends(get_file_repository),
    users: UserRepository = Depends(get_user_repository),
    blobs: BlobStore = Depends(get_blob_store),
) -> FileService:
    return FileService(files, users, blobs, settings)


# ---- 授權 ----
async def _authorize(
    request: Request, response: Response, sessions: SessionManager, allow_unverified: bool
) -> AuthContext:
    def remember(pair: TokenPair) -> None:
        # 舊 refresh 已作廢；就算之後請求失敗，錯誤回應也要帶上新 token
        request.state.rotated_tokens = pair

    ctx = await sessions.authorize(
        extract_access_token(request),
        extract_refresh_token(request),
        allow_unverified=allow_unverified,
        on_rotated=remember,
    )
    if ctx.rotated:
        apply_rotated_tokens(response, ctx.rotated.access_token, ctx.rotated.refresh_token)
    return ctx


async def get_auth_context(
    request: Request,
    response: Response,
    sessions: SessionManager = Depends(get_session_manager),
) -> AuthContext:
    """需要登入且 email 已驗證"""
    return await _authorize(request, response, sessions, allow_unverified=False)


async def get_auth_context_unverified(
    request: Request,
    response: Response,
    sessions: SessionManager = Depends(get_session_manager),
) -> AuthContext:
    """未驗證帳號也能通過（只給登出與讀取本人資料用）"""
    return await _authorize(request, response, sessions, allow_unverified=True)


# ---- 分頁 ----
def get_pagination(
    limit: int = Query(5, ge=1, le=50),
    last_document_id: Optional[str] = Query(None, alias="lastDocumentId"),
) -> Pagination:
    """游標分頁：lastDocumentId 為上一頁最後一筆的 id（不含）"""
    if last_document_id:
        validate_object_id(last_document_id, "lastDocumentId")
    return Pagination(limit=limit, last_document_id=last_document_id)
