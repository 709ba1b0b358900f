import os


def _bool_env(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _int_env(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


class Config:
    BASE_DIR = os.path.dirname(os.path.dirname(__file__))
    DATABASE_URL = os.environ.get("DATABASE_URL")
    DATABASE_DIR = None if DATABASE_URL else os.path.join(BASE_DIR, "var")
    DB_PATH = DATABASE_URL or os.path.join(DATABASE_DIR, "pharmamarket.db")
    DB_AUTO_INIT = _bool_env("DB_AUTO_INIT", False)

    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-pharmamarket")
    LOG_JSON = _bool_env("LOG_JSON", True)
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    CURRENCY = os.environ.get("CURRENCY", "DZD")
    TENDER_REOPEN_EXTENSION_DAYS = _int_env("TENDER_REOPEN_EXTENSION_DAYS", 7)
    TENDER_CLONE_DEADLINE_DAYS = _int_env("TENDER_CLONE_DEADLINE_DAYS", 14)

    NOTIFICATIONS_MODE = os.environ.get("NOTIFICATIONS_MODE", "log")
    NOTIFICATION_WEBHOOK_URL = os.environ.get("NOTIFICATION_WEBHOOK_URL")
    NOTIFICATION_TIMEOUT_SECONDS = _int_env("NOTIFICATION_TIMEOUT_SECONDS", 10)
    USER_DIRECTORY = os.environ.get("USER_DIRECTORY", "")

    def __init__(self):
        env = os.environ.get("FLASK_ENV", "development").lower()
        if env == "production" and not self.DATABASE_URL:
            raise RuntimeError("DATABASE_URL non definie pour l'environnement de production.")
        if env == "production" and self.SECRET_KEY == "dev-secret-pharmamarket":
            raise RuntimeError("SECRET_KEY non securisee pour la production.")
