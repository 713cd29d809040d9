# app/api/v1/router.py
from fastapi import APIRouter

# 匯入所有已定義的 endpoint 模組
from .endpoints import auth, comments, files, health, notifications, posts, users, ws

# === API v1 主路由 ===
api_router = APIRouter()

# 系統健康檢查
api_router.include_router(health.router, prefix="/health", tags=["health"])

# 認證 / 登入 / 登出 / email 驗證 / 密碼
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])

# 使用者（個人頁、搜尋、追蹤）
api_router.include_router(users.router, prefix="/users", tags=["users"])

# 貼文與留言
api_router.include_router(posts.router, prefix="/posts", tags=["posts"])
api_router.include_router(comments.router, prefix="/comments", tags=["comments"])

# 檔案（頭像等）的簽名網址
api_router.include_router(files.router, prefix="/files")

# 通知收件匣 + 即時推播
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
api_router.include_router(ws.router, prefix="/ws")
