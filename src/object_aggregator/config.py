import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from .exceptions import ConfigurationError, InvalidInputError
from .security import normalize_file_type

logger = logging.getLogger(__name__)


def _positive_int(name: str, default: str) -> int:
    value = int(os.getenv(name, default))
    if value <= 0:
        raise ValueError(f"{name} must be a positive integer.")
    return value


def _optional_str(name: str) -> str | None:
    value = os.getenv(name, "").strip()
    return value or None


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Application configuration loaded from environment variables."""

    # --- Required Variables ---
    service_name: str
    environment: str

    # --- Buckets (required only by the handler that uses them) ---
    excel_bucket: str | None
    archive_source_bucket: str | None
    archive_dest_bucket: str | None

    # --- Optional Variables with Defaults ---
    excel_input_prefix: str
    archive_input_prefix: str
    default_archive_file_type: str
    max_files_to_merge: int
    max_files_to_archive: int
    log_level: str
    s3_operation_timeout_seconds: int
    timeout_guard_threshold_seconds: int

    # --- Derived Properties ---
    @property
    def timeout_guard_threshold_ms(self) -> int:
        return self.timeout_guard_threshold_seconds * 1000

    def require(self, field_name: str) -> str:
        """
        Returns a bucket setting, failing with a ConfigurationError when the
        handler that needs it was deployed without it.
        """
        value = getattr(self, field_name)
        if not value:
            raise ConfigurationError(
                f"Missing required configuration: {field_name}",
                context={"config_field": field_name},
            )
        return value

    @classmethod
    def load_from_env(cls) -> "AppConfig":
        """
        Loads configuration from environment variables, performing validation and type casting.
        Fails fast with a ConfigurationError if anything is invalid.
        """
        try:
            # --- Handle required string variables ---
            service_name = os.environ["SERVICE_NAME"]
            environment = os.environ["ENVIRONMENT"]

            # --- Handle optional bucket and prefix variables ---
            excel_bucket = _optional_str("EXCEL_BUCKET_NAME")
            archive_source_bucket = _optional_str("PDF_SOURCE_BUCKET_NAME")
            archive_dest_bucket = _optional_str("PDF_DEST_BUCKET_NAME")
            excel_input_prefix = os.getenv("EXCEL_INPUT_PREFIX", "input/")
            archive_input_prefix = os.getenv("ARCHIVE_INPUT_PREFIX", "")

            try:
                default_archive_file_type = normalize_file_type(
                    os.getenv("DEFAULT_ARCHIVE_FILE_TYPE", "pdf")
                )
            except InvalidInputError as e:
                raise ValueError(f"DEFAULT_ARCHIVE_FILE_TYPE is invalid: {e.message}") from e

            # --- Handle numeric variables with validation ---
            max_files_to_merge = _positive_int("MAX_FILES_TO_MERGE", "20")
            max_files_to_archive = _positive_int("MAX_FILES_TO_ARCHIVE", "500")
            s3_operation_timeout_seconds = _positive_int(
                "S3_OPERATION_TIMEOUT_SECONDS", "30"
            )

            timeout_guard_threshold_seconds = int(
                os.getenv("TIMEOUT_GUARD_THRESHOLD_SECONDS", "5")
            )
            if timeout_guard_threshold_seconds < 0:
                raise ValueError(
                    "TIMEOUT_GUARD_THRESHOLD_SECONDS must be a non-negative integer."
                )

            # --- Handle special-case variables like log level ---
            log_level = os.getenv("LOG_LEVEL", "INFO").upper()
            allowed_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
            if log_level not in allowed_log_levels:
                raise ValueError(
                    f"LOG_LEVEL must be one of {allowed_log_levels}, not '{log_level}'"
                )

        except KeyError as e:
            raise ConfigurationError(
                f"Missing required environment variable: {e.args[0]}"
            ) from e
        except (ValueError, TypeError) as e:
            raise ConfigurationError(
                f"Invalid value for an environment variable: {e}"
            ) from e

        return cls(
            service_name=service_name,
            environment=environment,
            excel_bucket=excel_bucket,
            archive_source_bucket=archive_source_bucket,
            archive_dest_bucket=archive_dest_bucket,
            excel_input_prefix=excel_input_prefix,
            archive_input_prefix=archive_input_prefix,
            default_archive_file_type=default_archive_file_type,
            max_files_to_merge=max_files_to_merge,
            max_files_to_archive=max_files_to_archive,
            log_level=log_level,
            s3_operation_timeout_seconds=s3_operation_timeout_seconds,
            timeout_guard_threshold_seconds=timeout_guard_threshold_seconds,
        )


# --- Singleton Factory Function (Lazy-loaded and Cached) ---
@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """
    Loads the application configuration from environment variables.
    The result is cached using lru_cache, so the environment is only read once
    on the first call. This avoids import-time side effects.
    """
    logger.info("Loading application configuration from environment...")
    return AppConfig.load_from_env()
