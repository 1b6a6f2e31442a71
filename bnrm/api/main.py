from fastapi import APIRouter

from bnrm.api.routes import (
    activity_logs,
    ai,
    bookings,
    content,
    digital_library,
    integrations,
    legal_deposit,
    login,
    manuscripts,
    messages,
    notifications,
    payments,
    professionals,
    subscriptions,
    users,
    utils,
    workflows,
)

api_router = APIRouter()
api_router.include_router(login.router)
api_router.include_router(users.router)
api_router.include_router(utils.router)
api_router.include_router(activity_logs.router)
api_router.include_router(content.router)
api_router.include_router(manuscripts.router)
api_router.include_router(digital_library.router)
api_router.include_router(legal_deposit.router)
api_router.include_router(professionals.router)
api_router.include_router(bookings.router)
api_router.include_router(messages.router)
api_router.include_router(notifications.router)
api_router.include_router(subscriptions.router)
api_router.include_router(payments.router)
api_router.include_router(integrations.router)
api_router.include_router(ai.router)
api_router.include_router(workflows.router)
