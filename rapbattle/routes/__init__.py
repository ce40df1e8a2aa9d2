"""
rapbattle/routes/__init__.py
Route registration
"""
from fastapi import APIRouter

from rapbattle.routes import admin, artist, judge, public

router = APIRouter()

router.include_router(judge.router)
router.include_router(artist.router)
router.include_router(admin.router)
router.include_router(public.router)
