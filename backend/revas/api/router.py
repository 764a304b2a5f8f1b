from fastapi import APIRouter

from revas.api.routes import account_managers, auth, documents, notifications, orders, products

api_router = APIRouter()
api_router.include_router(auth.router)
api_router.include_router(account_managers.router)
api_router.include_router(products.router)
api_router.include_router(orders.router)
api_router.include_router(documents.router)
api_router.include_router(notifications.router)
