# storefront/config.py
from pydantic_settings import BaseSettings
from typing import ClassVar, Literal
from pathlib import Path

# Resolve absolute path to the .env file for reliable loading
env_path = Path(__file__).parent.parent / ".env"

class Settings(BaseSettings):
    SECRET_KEY: str = "dev-secret-change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    DATABASE_URL: str = "sqlite:///./storefront.db"

    # Which Catalog/Cart Store implementation backs the cart engine
    STORE_BACKEND: Literal["sql", "rest"] = "sql"

    # Hosted backend (REST tables + serverless functions)
    BACKEND_URL: str = "http://127.0.0.1:54321"
    BACKEND_ANON_KEY: str = ""

    FRONTEND_URL: str = "http://localhost:5173"

    # Guest cart storage (one JSON document per device)
    CART_STORAGE_KEY: str = "ot_cart_v1"
    LOCAL_STORAGE_DIR: str = "storage/devices"

    # Seconds; store calls and session settling are bounded
    STORE_CALL_TIMEOUT: float = 10.0
    CART_SETTLE_TIMEOUT: float = 15.0

    # Upper bound of live device sessions kept in memory
    MAX_DEVICES: int = 1000

    class Config:
        env_file: ClassVar[str] = str(env_path)

settings = Settings()
