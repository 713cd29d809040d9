# app/api/v1/endpoints/files.py
from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import RedirectResponse

from app.core.cookies import apply_rotated_tokens
from app.core.deps import get_auth_context, get_file_service
from app.core.validators import validate_object_id
from app.services.files import FileService
from app.services.session import AuthContext

router = APIRouter(tags=["files"])


def _redirect(url: str, ctx: AuthContext) -> RedirectResponse:
    # 直接回傳 Response 時不會帶上依賴寫入的 header，輪替出的 token 要自己補
    redirect = RedirectResponse(url)
    if ctx.rotated:
        apply_rotated_tokens(redirect, ctx.rotated.access_token, ctx.rotated.refresh_token)
    return redirect


# === 依 key 取得檔案：導向短效簽名網址 ===
@router.get("/", response_class=RedirectResponse)
async def get_file(
    key: str = Query(..., min_length=1),
    ctx: AuthContext = Depends(get_auth_context),
    files: FileService = Depends(get_file_service),
):
    return _redirect(await files.signed_url_for_key(key), ctx)


# 本機儲存的簽名網址（不需登入，token 本身就是授權）
@router.get("/raw")
async def read_signed_file(
    token: str = Query(..., min_length=1),
    files: FileService = Depends(get_file_service),
):
    data, content_type = await files.open_signed_link(token)
    return Response(content=data, media_type=content_type)


@router.get("/{file_id}", response_class=RedirectResponse)
async def get_file_by_id(
    file_id: str,
    ctx: AuthContext = Depends(get_auth_context),
    files: FileService = Depends(get_file_service),
):
    validate_object_id(file_id, "file id")
    return _redirect(await files.signed_url_for_file(file_id), ctx)
