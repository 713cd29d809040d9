# scripts/run_cleanup_once.py
import asyncio

from app.db.session import AsyncSessionLocal
from app.services.denylist_cleanup import cleanup_expired_denylist


async def main():
    async with AsyncSessionLocal() as db:
        deleted = await cleanup_expired_denylist(db)
    print({"deleted": deleted})


if __name__ == "__main__":
    asyncio.run(main())
