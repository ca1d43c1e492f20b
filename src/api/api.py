from fastapi import APIRouter

from src.api.auth import auth
from src.api.content import content
from src.api.subscriptions import subscriptions
from src.api.users import users
from src.api.watch_history import watch_history

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
api_router.include_router(subscriptions.router, prefix="/subscriptions", tags=["Subscriptions"])
api_router.include_router(content.router, prefix="/content", tags=["Content"])
api_router.include_router(watch_history.router, prefix="/watch-history", tags=["Watch History"])
api_router.include_router(users.router, prefix="/users", tags=["Users"])
