import logging
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Messages(BaseModel):
    """User-facing strings, one per outcome."""

    # validation
    CHECK_NAME: str = "Name must be between the configured length bounds"
    CHECK_EMAIL: str = "Email address is not valid"
    CHECK_PASSWORD: str = (
        "Password needs lower & upper case letters, a digit and a special character"
    )
    CHECK_TEXT: str = "Text length is out of bounds"
    CHECK_URL: str = "Url length is out of bounds"
    DISPO_NAME: str = "This name is already taken"
    DISPO_EMAIL: str = "This email is already registered"
    DISPO_URL: str = "This url is already used"
    FILE_REQUIRED: str = "An image file is required"
    FILE_EMPTY: str = "Uploaded file is empty"
    FILE_TOO_LARGE: str = "Uploaded file is too large"

    # users
    USER_CREATED: str = "User created"
    USER_NOT_CREATED: str = "User not created"
    USER_UPDATED: str = "User updated"
    USER_NOT_UPDATED: str = "User not updated"
    USER_NOT_DELETED: str = "User not deleted"
    USER_NOT_FOUND: str = "User not found"
    USER_FORBIDDEN: str = "You can only manage your own account"
    USER_MESSAGE: str = "Message sent"
    MESSAGE_NOT_SENT: str = "Message could not be sent, please retry later"

    # images
    IMAGE_CREATED: str = "Image created"
    IMAGE_NOT_CREATED: str = "Image not created"
    IMAGE_UPDATED: str = "Image updated"
    IMAGE_NOT_UPDATED: str = "Image not updated"
    IMAGE_NOT_DELETED: str = "Image not deleted"
    IMAGE_NOT_FOUND: str = "Image not found"

    # galleries
    GALLERY_CREATED: str = "Gallery created"
    GALLERY_NOT_CREATED: str = "Gallery not created"
    GALLERY_UPDATED: str = "Gallery updated"
    GALLERY_NOT_UPDATED: str = "Gallery not updated"
    GALLERY_NOT_DELETED: str = "Gallery not deleted"
    GALLERY_NOT_FOUND: str = "Gallery not found"

    # articles
    ARTICLE_CREATED: str = "Article created"
    ARTICLE_NOT_CREATED: str = "Article not created"
    ARTICLE_UPDATED: str = "Article updated"
    ARTICLE_NOT_UPDATED: str = "Article not updated"
    ARTICLE_NOT_DELETED: str = "Article not deleted"
    ARTICLE_NOT_FOUND: str = "Article not found"

    # auth
    AUTH_FAILED: str = "Invalid email or password"
    AUTH_REQUIRED: str = "Could not validate credentials"
    PASSWORD_RESET_SENT: str = "If this email is registered, a reset link has been sent"
    PASSWORD_UPDATED: str = "Password updated"
    TOKEN_INVALID: str = "Reset token is invalid"
    TOKEN_EXPIRED: str = "Reset token has expired"
    TOKEN_USED: str = "Reset token has already been used"
    RECAPTCHA_OK: str = "Human verification passed"
    RECAPTCHA_FAILED: str = "Human verification failed"
    TOO_MANY_REQUESTS: str = "Too many requests, please retry later"

    INTERNAL_ERROR: str = "Internal server error"


class Settings(BaseSettings):
    APP_NAME: str = "Portfolio CMS API"
    APP_ENV: str = "production"
    APP_URL: str = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"

    BACKEND_CORS_ORIGINS: str = "*"  # comma-separated list

    DATABASE_URL: str = "sqlite:///./portfolio.db"

    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 8
    BCRYPT_ROUNDS: int = 10
    RESET_TOKEN_TTL_MINUTES: int = 30

    # Validation bounds
    STRING_MIN: int = 2
    STRING_MAX: int = 50
    TEXT_MAX: int = 5000
    PASSWORD_MIN: int = 8
    PASSWORD_MAX: int = 50

    # Managed storage
    STORAGE_ROOT: str = "./media"
    USERS_DIR: str = "users"
    IMAGES_DIR: str = "images"
    GALLERIES_DIR: str = "galleries"
    ARTICLES_DIR: str = "articles"
    UPLOAD_TMP_DIR: str = "./tmp/uploads"
    MEDIA_URL: str = "/media"
    IMG_EXT: str = "webp"
    IMG_MAX_WIDTH: int = 1920
    THUMB_WIDTH: int = 480
    THUMB_SUFFIX: str = "-thumb"
    MAX_UPLOAD_MB: int = 10

    # SMTP / Resend
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_FROM: Optional[str] = None
    SMTP_USE_TLS: bool = True
    SMTP_USE_SSL: bool = False
    RESEND_API_KEY: Optional[str] = None
    RESEND_FROM: Optional[str] = None
    MAIL_CONTACT_TO: Optional[str] = None
    MAIL_TIMEOUT_SECONDS: float = 10.0

    # Human verification
    RECAPTCHA_SECRET_KEY: Optional[str] = None
    RECAPTCHA_VERIFY_URL: str = "https://www.google.com/recaptcha/api/siteverify"
    HUMAN_CHECK_TIMEOUT_SECONDS: float = 10.0

    # Redis rate limiting
    REDIS_URL: str = "redis://localhost:6379/0"
    RATE_LIMIT_WINDOW_SECONDS: int = 600
    LOGIN_RATE_LIMIT: int = 20
    RESET_RATE_LIMIT: int = 5
    MESSAGE_RATE_LIMIT: int = 5

    MESSAGES: Messages = Messages()

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_bounds(self):
        if self.STRING_MIN > self.STRING_MAX:
            raise ValueError("STRING_MIN must not exceed STRING_MAX")
        if self.PASSWORD_MIN > self.PASSWORD_MAX:
            raise ValueError("PASSWORD_MIN must not exceed PASSWORD_MAX")
        # bcrypt only accepts 4..31
        if not 4 <= self.BCRYPT_ROUNDS <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31")
        self.IMG_EXT = self.IMG_EXT.strip().lstrip(".").lower()
        self.MEDIA_URL = "/" + self.MEDIA_URL.strip("/")
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()


logging.basicConfig(
    level=get_settings().LOG_LEVEL.upper(),
    format="%(asctime)s | %(levelname)s | %(message)s",
)
logger = logging.getLogger("portfolio")
