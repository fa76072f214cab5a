# config.py
import logging
import os

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()

logger = logging.getLogger(__name__)

DEV_JWT_SECRET = "fallbacksecret"


def _env(name: str, default: str = "") -> str:
    # tolerate quotes/newlines pasted into hosting dashboards
    return (os.getenv(name) or default).strip().strip('"').strip("'")


class Settings(BaseModel):
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_timeout: float = 60.0

    jwt_secret: str = DEV_JWT_SECRET
    jwt_expires_hours: int = 1

    ga_config_path: str = "ga_config.json"
    ga_property_id: str = ""

    port: int = 3001
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        settings = cls(
            openai_api_key=_env("OPENAI_API_KEY"),
            openai_model=_env("OPENAI_MODEL", "gpt-4o-mini"),
            openai_timeout=float(_env("OPENAI_TIMEOUT", "60")),
            jwt_secret=_env("JWT_SECRET", DEV_JWT_SECRET),
            jwt_expires_hours=int(_env("JWT_EXPIRES_HOURS", "1")),
            ga_config_path=_env("GA_CONFIG_PATH", "ga_config.json"),
            ga_property_id=_env("GA_PROPERTY_ID"),
            port=int(_env("PORT", "3001")),
            log_level=_env("LOG_LEVEL", "INFO").upper(),
        )
        if settings.jwt_secret == DEV_JWT_SECRET:
            logger.warning("[AUTH] JWT_SECRET is not set, using the development fallback secret")
        return settings


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
