import os
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Always load .env from root
BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(__file__)))
load_dotenv(os.path.join(BASE_DIR, ".env"))


class Settings(BaseSettings):
    DATABASE_URL: str | None = os.getenv("DATABASE_URL")

    DB_USER: str | None = os.getenv("DB_USER")
    DB_PASS: str | None = os.getenv("DB_PASS")
    DB_HOST: str | None = os.getenv("DB_HOST")
    DB_PORT: str | None = os.getenv("DB_PORT")
    DB_NAME: str | None = os.getenv("DB_NAME")

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Scan engine
    OPERATION_TIMEOUT_SECONDS: float = float(
        os.getenv("OPERATION_TIMEOUT_SECONDS", 10))
    CHILD_MATCH_POLICY: str = os.getenv("CHILD_MATCH_POLICY", "category")
    CHILD_TIE_BREAK: str = os.getenv("CHILD_TIE_BREAK", "preorder")

    # Barcode generation
    BOX_BARCODE_PREFIX: str = os.getenv("BOX_BARCODE_PREFIX", "BOX-")
    BARCODE_SEQUENCE_WIDTH: int = int(os.getenv("BARCODE_SEQUENCE_WIDTH", 6))

    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "http://localhost:4200")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()


def build_database_url(config: Settings) -> str:
    if config.DATABASE_URL:
        return config.DATABASE_URL
    if config.DB_HOST:
        return (
            f"postgresql+psycopg2://{config.DB_USER}:{config.DB_PASS}@{config.DB_HOST}:{config.DB_PORT}/{config.DB_NAME}"
        )
    return f"sqlite:///{os.path.join(BASE_DIR, 'kitpack.db')}"


KITPACK_DATABASE_URL = build_database_url(settings)
