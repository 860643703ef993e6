"""Application settings and validation."""

import base64
import binascii
import os
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent

_DEFAULT_PASSWORD = "change_me_for_prod"
# base64 of b"dev-secret-do-not-use-in-prod"
_DEFAULT_SECRET = "ZGV2LXNlY3JldC1kby1ub3QtdXNlLWluLXByb2Q="


class Settings:
    ENV: str
    APP_PASSWD: str
    APP_SECRET: bytes
    DB_PATH: Path
    CORRECTIONS_PATH: Path
    REAL_IP_HEADER: str | None
    MAX_PICTURE_BYTES: int
    MAX_LOGIN_BODY_BYTES: int
    NORMALIZE_TIMEOUT_SECONDS: float
    LOGIN_RATE_LIMIT_PER_MIN: int
    ALLOW_DEV_CORS: bool

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.APP_PASSWD = os.getenv("APP_PASSWD", _DEFAULT_PASSWORD)
        self._raw_secret = os.getenv("APP_SECRET", _DEFAULT_SECRET)
        self.APP_SECRET = _decode_secret(self._raw_secret)
        self.DB_PATH = Path(os.getenv("DB_PATH", str(BASE / "app.db"))).expanduser()
        self.CORRECTIONS_PATH = Path(
            os.getenv("CORRECTIONS_PATH", str(BASE / "data" / "corrections"))
        ).expanduser()
        self.REAL_IP_HEADER = os.getenv("REAL_IP_HEADER") or None
        self.MAX_PICTURE_BYTES = int(os.getenv("MAX_PICTURE_BYTES", str(5 * 1024 * 1024)))  # 5 MiB
        self.MAX_LOGIN_BODY_BYTES = int(os.getenv("MAX_LOGIN_BODY_BYTES", "1024"))
        self.NORMALIZE_TIMEOUT_SECONDS = float(os.getenv("NORMALIZE_TIMEOUT_SECONDS", "30"))
        self.LOGIN_RATE_LIMIT_PER_MIN = int(os.getenv("LOGIN_RATE_LIMIT_PER_MIN", "20"))
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        self._validate()

    @property
    def DB_URL(self) -> str:
        return f"sqlite:///{self.DB_PATH}"

    def _validate(self):
        if self.ENV == "dev":
            return
        if self.APP_PASSWD == _DEFAULT_PASSWORD:
            raise RuntimeError("APP_PASSWD must be set to a non-default value in non-dev environments")
        if self._raw_secret == _DEFAULT_SECRET:
            raise RuntimeError("APP_SECRET must be set to a non-default value in non-dev environments")


def _decode_secret(raw: str) -> bytes:
    """Decode the base64 `APP_SECRET` value into the HMAC key."""
    try:
        secret = base64.b64decode(raw.strip(), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise RuntimeError("APP_SECRET must be valid base64") from exc
    if not secret:
        raise RuntimeError("APP_SECRET must not be empty")
    return secret


settings = Settings()
