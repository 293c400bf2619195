# app/core/config.py
import os
from urllib.parse import quote_plus

from dotenv import load_dotenv


def str_to_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


def merge_unique(items: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for v in items:
        if v in seen:
            continue
        seen.add(v)
        out.append(v)
    return out


# gmail is a legacy alias for smtp.
EMAIL_PROVIDERS = frozenset({"resend", "ses", "smtp", "gmail"})


def _url(name: str, dev_default: str, is_prod: bool) -> str:
    # Dev defaults are local URLs; prod MUST be explicitly configured.
    default = "" if is_prod else dev_default
    return os.getenv(name, default).strip().rstrip("/")


class Settings:
    def __init__(self) -> None:
        # Only load .env for local/dev. In prod, env vars come from the service config.
        self.ENV = os.getenv("ENV", "dev").strip().lower()  # dev | prod
        if self.ENV != "prod":
            load_dotenv()

        self.APP_NAME = os.getenv("APP_NAME", "HireHub").strip() or "HireHub"

        # ----------------------------
        # Database
        # ----------------------------
        self.DATABASE_URL = os.getenv("DATABASE_URL", "").strip()
        self.DB_HOST = os.getenv("DB_HOST", "")
        self.DB_PORT = os.getenv("DB_PORT", "5432")
        self.DB_NAME = os.getenv("DB_NAME", "")
        self.DB_APP_USER = os.getenv("DB_APP_USER", "")
        self.DB_APP_PASSWORD = os.getenv("DB_APP_PASSWORD", "")
        self.DB_MIGRATOR_USER = os.getenv("DB_MIGRATOR_USER", "")
        self.DB_MIGRATOR_PASSWORD = os.getenv("DB_MIGRATOR_PASSWORD", "")
        self.DB_SSLMODE = os.getenv("DB_SSLMODE", "require").strip().lower()

        # ----------------------------
        # Password policy
        # ----------------------------
        self.PASSWORD_MIN_LENGTH = int(os.getenv("PASSWORD_MIN_LENGTH", "6"))

        # ----------------------------
        # Client applications (cross-app hand-off targets)
        # ----------------------------
        is_prod = self.ENV == "prod"
        self.USER_APP_URL = _url("USER_APP_URL", "http://localhost:8080", is_prod)
        self.EMPLOYER_APP_URL = _url("EMPLOYER_APP_URL", "http://localhost:8081", is_prod)
        self.ADMIN_APP_URL = _url("ADMIN_APP_URL", "http://localhost:3000", is_prod)
        # Where reset links point. The page reads ?token= and posts to /auth/reset-password.
        self.PASSWORD_RESET_URL = _url("PASSWORD_RESET_URL", "http://localhost:5173/reset-password", is_prod)

        # ----------------------------
        # CORS
        # ----------------------------
        cors_from_env = parse_csv(os.getenv("CORS_ORIGINS"))
        if is_prod:
            self.CORS_ORIGINS = merge_unique(cors_from_env)
        else:
            dev_defaults = [
                "http://localhost:5173",
                "http://127.0.0.1:5173",
                self.USER_APP_URL,
                self.EMPLOYER_APP_URL,
                self.ADMIN_APP_URL,
            ]
            self.CORS_ORIGINS = merge_unique(cors_from_env + [v for v in dev_defaults if v])

        # ----------------------------
        # Auth / JWT
        # ----------------------------
        self.JWT_SECRET = os.getenv("JWT_SECRET", "")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.JWT_ISSUER = os.getenv("JWT_ISSUER", "hirehub-identity")
        self.ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
        self.REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))

        # ----------------------------
        # Email verification / password reset
        # ----------------------------
        self.OTP_LENGTH = int(os.getenv("OTP_LENGTH", "6"))
        self.OTP_EXPIRE_MINUTES = int(os.getenv("OTP_EXPIRE_MINUTES", "30"))
        self.PASSWORD_RESET_EXPIRE_MINUTES = int(os.getenv("PASSWORD_RESET_EXPIRE_MINUTES", "60"))

        # ----------------------------
        # Email delivery
        # ----------------------------
        self.EMAIL_PROVIDER = os.getenv("EMAIL_PROVIDER", "resend").strip().lower() or "resend"
        self.EMAIL_ENABLED = str_to_bool(os.getenv("EMAIL_ENABLED"), default=False)

        self.FROM_EMAIL = os.getenv("FROM_EMAIL", "")
        self.RESEND_API_KEY = os.getenv("RESEND_API_KEY", "")
        self.AWS_REGION = os.getenv("AWS_REGION", "")

        # SMTP (only relevant if EMAIL_PROVIDER=smtp/gmail)
        self.SMTP_HOST = os.getenv("SMTP_HOST", "")
        self.SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
        self.SMTP_USERNAME = os.getenv("SMTP_USERNAME", "")
        self.SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
        self.SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL", "")
        self.SMTP_USE_TLS = str_to_bool(os.getenv("SMTP_USE_TLS", "true"), default=True)
        self.SMTP_USE_SSL = str_to_bool(os.getenv("SMTP_USE_SSL", "false"), default=False)
        self.SMTP_TIMEOUT_SECONDS = float(os.getenv("SMTP_TIMEOUT_SECONDS", "10"))

        # Retry/backoff layered on top of the provider
        self.MAIL_MAX_ATTEMPTS = int(os.getenv("MAIL_MAX_ATTEMPTS", "3"))
        self.MAIL_BACKOFF_BASE_SECONDS = float(os.getenv("MAIL_BACKOFF_BASE_SECONDS", "1.0"))
        self.MAIL_BACKOFF_FACTOR = float(os.getenv("MAIL_BACKOFF_FACTOR", "2.0"))
        self.MAIL_DELIVERY_DEADLINE_SECONDS = float(os.getenv("MAIL_DELIVERY_DEADLINE_SECONDS", "10"))
        self.MAIL_DELIVERY_MODE = os.getenv("MAIL_DELIVERY_MODE", "sync").strip().lower()  # sync | background
        self.RESET_MAIL_MAX_ATTEMPTS = int(os.getenv("RESET_MAIL_MAX_ATTEMPTS", "1"))

        # Background delivery queue (Celery over SQS). Unset: tasks run inline.
        self.MAIL_SQS_QUEUE_URL = os.getenv("MAIL_SQS_QUEUE_URL", "").strip()

        # Final: fail fast on bad values, then on missing prod config
        self._validate()
        self._validate_prod()

    def _validate(self) -> None:
        if self.MAIL_DELIVERY_MODE not in {"sync", "background"}:
            raise RuntimeError("MAIL_DELIVERY_MODE must be 'sync' or 'background'")
        if self.EMAIL_PROVIDER not in EMAIL_PROVIDERS:
            raise RuntimeError(f"EMAIL_PROVIDER must be one of: {', '.join(sorted(EMAIL_PROVIDERS))}")

    def _validate_prod(self) -> None:
        if self.ENV != "prod":
            return

        missing: list[str] = []

        if not self.JWT_SECRET:
            missing.append("JWT_SECRET")
        if not self.DATABASE_URL:
            if not self.DB_HOST:
                missing.append("DB_HOST")
            if not self.DB_NAME:
                missing.append("DB_NAME")
            if not self.DB_APP_USER:
                missing.append("DB_APP_USER")
            if not self.DB_APP_PASSWORD:
                missing.append("DB_APP_PASSWORD")
            if self.DB_SSLMODE != "require":
                raise RuntimeError("DB_SSLMODE must be 'require' in prod")

        for name in ("USER_APP_URL", "EMPLOYER_APP_URL", "ADMIN_APP_URL", "PASSWORD_RESET_URL"):
            value = getattr(self, name)
            if not value:
                missing.append(name)
            elif not value.startswith("https://"):
                raise RuntimeError(f"{name} should be https://... in prod")

        if not self.CORS_ORIGINS:
            missing.append("CORS_ORIGINS")

        cors_joined = ",".join(self.CORS_ORIGINS)
        if "localhost" in cors_joined or "127.0.0.1" in cors_joined:
            raise RuntimeError("CORS_ORIGINS contains localhost/dev origins in prod")

        if missing:
            raise RuntimeError(f"Missing required prod env vars: {', '.join(missing)}")

    @property
    def is_prod(self) -> bool:
        return self.ENV == "prod"

    def _build_database_url(self, user: str, password: str) -> str:
        encoded_password = quote_plus(password)
        return (
            f"postgresql+psycopg2://{user}:{encoded_password}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
            f"?sslmode={self.DB_SSLMODE}"
        )

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return self._build_database_url(self.DB_APP_USER, self.DB_APP_PASSWORD)

    @property
    def migrations_database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return self._build_database_url(self.DB_MIGRATOR_USER, self.DB_MIGRATOR_PASSWORD)


settings = Settings()


def require_jwt_secret() -> None:
    if not settings.JWT_SECRET:
        raise RuntimeError("JWT_SECRET must be set")
