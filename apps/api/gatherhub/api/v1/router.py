from fastapi import APIRouter

from gatherhub.api.v1.admin import router as admin_router
from gatherhub.api.v1.events import router as events_router
from gatherhub.api.v1.me import router as me_router
from gatherhub.api.v1.organizer import router as organizer_router
from gatherhub.api.v1.registrations import router as registrations_router
from gatherhub.api.v1.tickets import router as tickets_router
from gatherhub.api.v1.webhooks import router as webhooks_router

router = APIRouter()
router.include_router(events_router)
router.include_router(registrations_router)
router.include_router(tickets_router)
router.include_router(me_router)
router.include_router(organizer_router)
router.include_router(admin_router)
router.include_router(webhooks_router)
