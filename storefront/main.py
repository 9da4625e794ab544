# storefront/main.py
import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from storefront.config import settings
from storefront.database import SessionLocal, init_db
from storefront.utils.cart_store import SqlCartStore
from storefront.utils.devices import DeviceRegistry
from storefront.utils.rest_store import RestCartStore

load_dotenv()

# Router imports
from storefront.routes.admin import router as admin_router
from storefront.routes.cart import router as cart_router
from storefront.routes.checkout import router as checkout_router
from storefront.routes.profile import router as profile_router
from storefront.routes.shop import router as shop_router
from storefront.routes.wishlist import router as wishlist_router

logger = logging.getLogger(__name__)


def default_store_factory():
    # One SQL store serves every device; REST stores carry a per-device token
    if settings.STORE_BACKEND == "rest":
        return RestCartStore
    sql_store = SqlCartStore(SessionLocal)
    return lambda: sql_store


def create_app(registry: DeviceRegistry = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await app.state.devices.close()

    app = FastAPI(title="Storefront API", version="1.0.0", lifespan=lifespan)
    app.state.devices = registry if registry is not None else DeviceRegistry(default_store_factory())

    # CORS Configuration; the device cookie needs credentials
    origins = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]
    if settings.FRONTEND_URL and settings.FRONTEND_URL not in origins:
        origins.append(settings.FRONTEND_URL)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Router registration
    app.include_router(shop_router)
    app.include_router(cart_router)
    app.include_router(wishlist_router)
    app.include_router(checkout_router)
    app.include_router(profile_router)
    app.include_router(admin_router)

    @app.get("/")
    def read_root():
        return {"message": "Storefront API is running", "store": settings.STORE_BACKEND}

    return app


# Initialization
init_db()
app = create_app()
