# https://fastapi.tiangolo.com/advanced/settings/#pydantic-settings

import logging.config
import re
from typing import Any

import sentry_sdk
from pydantic_settings import BaseSettings, SettingsConfigDict


def sentry_filter_transactions(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any] | None:
    """
    Filter transactions to be sent to Sentry.
    This function prevents transactions that only fetch Google's token signing keys from being sent to Sentry.

    :param event: The event data.
    :param hint: A dictionary of extra data passed to the function.
    :return: The event data if it should be sent to Sentry, otherwise None.
    """
    values = event.get("breadcrumbs", {}).get("values") or [{}]
    data_url = values[0].get("data", {}).get("url") or None
    if data_url and re.search(r"https://www\.googleapis\.com/service_accounts/", data_url):
        return None
    return event


class Settings(BaseSettings):
    """
    Each setting has a corresponding uppercase environment variable.

    .. seealso:: `Settings Management <https://docs.pydantic.dev/latest/concepts/pydantic_settings/#usage>`__
    """

    #: If "production", the ``x-dev-bypass`` header is ignored and error responses omit the underlying cause.
    environment: str = "development"
    #: The `logging level <https://docs.python.org/3/library/logging.html#levels>`__ of the root logger.
    log_level: int | str = logging.INFO
    #: The base URL of the web frontend (for CORS).
    frontend_url: str = "http://localhost:3000"

    # Firebase

    #: The Firebase project ID. ID tokens must have this audience.
    firebase_project_id: str = ""
    #: The Realtime Database URL, like ``https://<project>-default-rtdb.firebaseio.com``.
    firebase_database_url: str = ""
    #: A service account key, as a JSON string. Takes precedence over
    #: :attr:`~permits.settings.Settings.firebase_service_account_path`.
    firebase_service_account_json: str = ""
    #: The path to a service account key file. If neither this nor the JSON is set, Application Default Credentials
    #: are used.
    firebase_service_account_path: str = ""
    #: The JWKS endpoint with the public keys that sign Firebase ID tokens.
    firebase_jwks_url: str = (
        "https://www.googleapis.com/service_accounts/v1/jwk/securetoken@system.gserviceaccount.com"
    )
    #: The database path under which admin, staff and treasury accounts are stored.
    database_namespace: str = "users/webapp"

    # Documents

    #: The directory containing the DOCX and XLSX templates.
    templates_dir: str = "templates"

    # Converter

    #: The base URL of the DOCX to PDF converter service, tried first.
    converter_service_url: str = ""
    #: The path, relative to the request's public origin, at which the converter is reverse-proxied.
    converter_same_origin_path: str = "/converter"
    #: The base URL of a converter running beside this service, tried last.
    converter_local_url: str = "http://localhost:8080"
    #: The timeout of a single conversion request, in seconds.
    converter_timeout: float = 60
    #: The number of consecutive failures after which a converter backend is skipped.
    converter_failure_threshold: int = 3
    #: The number of seconds for which a failing converter backend is skipped, before it is tried again.
    converter_reset_timeout: float = 30

    # Preview cache

    #: The Redis connection string.
    redis_url: str = ""
    #: The Redis connection string, if ``REDIS_URL`` is not set (Upstash).
    upstash_redis_url: str = ""
    #: The Redis connection string, if neither of the above is set (Vercel KV).
    kv_url: str = ""
    #: The number of seconds for which a rendered PDF preview is cached.
    preview_cache_ttl: int = 60 * 60 * 24
    #: Increment to invalidate all cached PDF previews, for example after a template changes.
    preview_cache_version: int = 1

    # Third-party services

    #: Sentry DSN.
    sentry_dsn: str = ""

    model_config = SettingsConfigDict(env_file=".env")

    @property
    def cache_url(self) -> str:
        return self.redis_url or self.upstash_redis_url or self.kv_url

    @property
    def production(self) -> bool:
        return self.environment == "production"


app_settings = Settings()

logging.config.dictConfig(
    {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {
                "format": "%(asctime)s %(levelname)s [%(name)s:%(lineno)s] %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "console",
            },
        },
        "loggers": {
            "": {
                "handlers": ["console"],
                "level": app_settings.log_level,
            },
        },
    }
)

if app_settings.sentry_dsn:
    sentry_sdk.init(
        dsn=app_settings.sentry_dsn,
        before_send=sentry_filter_transactions,
        # Set traces_sample_rate to 1.0 to capture 100% of transactions for performance monitoring.
        traces_sample_rate=1.0,
    )
