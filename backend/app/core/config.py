import json
from typing import Annotated, List, Union
from pydantic import AnyHttpUrl, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    PROJECT_NAME: str = "Video to Audio API"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

    # CORS
    BACKEND_CORS_ORIGINS: Annotated[List[AnyHttpUrl], NoDecode] = []

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",") if i.strip()]
        elif isinstance(v, str):
            return json.loads(v)
        elif isinstance(v, list):
            return v
        raise ValueError(v)

    # Public addressing (used to build the callback URL handed to the remote worker)
    PUBLIC_BASE_URL: str = "http://localhost:8000"
    WEBHOOK_URL: str = ""  # overrides the derived callback URL when set

    # Webhooks
    WEBHOOK_SECRET: str = ""
    WEBHOOK_REQUIRE_SIGNATURE: bool = False

    # Remote processing worker
    REMOTE_PROCESSING_URL: str = ""
    REMOTE_PROCESSING_ENABLED: bool = True
    PROCESSING_SERVICE_TOKEN: str = ""
    REMOTE_SERVICE_NAME: str = "remote"
    STRICT_REMOTE: bool = False  # fail instead of falling back to local processing
    DELEGATION_TIMEOUT: float = 30.0
    DELEGATION_MAX_ATTEMPTS: int = 2
    DELEGATION_BACKOFF_BASE: float = 2.0
    REMOTE_HEALTH_TIMEOUT: float = 10.0

    # Source fetching
    SOURCE_FETCH_TIMEOUT: float = 300.0  # 5 minutes
    SOURCE_MAX_REDIRECTS: int = 5
    USER_AGENT: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
    )
    EXTRA_SUPPORTED_DOMAINS: Annotated[List[str], NoDecode] = []

    @field_validator("EXTRA_SUPPORTED_DOMAINS", mode="before")
    @classmethod
    def assemble_domains(cls, v: Union[str, List[str]]) -> List[str]:
        if isinstance(v, str):
            return [i.strip().lower() for i in v.split(",") if i.strip()]
        return [str(i).lower() for i in v]

    # Job registry
    JOB_MAX_AGE_HOURS: float = 24.0
    JOB_SWEEP_INTERVAL: int = 600  # 10 minutes

    # Artifact storage
    STORAGE_DIR: str = "./storage"
    STORAGE_PUBLIC_URL: str = "http://localhost:8000/media"
    TEMP_DIR: str = ""  # falls back to the system temp dir

    # Conversion engine
    FFMPEG_PATH: str = "ffmpeg"
    FFPROBE_PATH: str = "ffprobe"
    AUDIO_BITRATE: str = "128k"
    AUDIO_CHANNELS: int = 2
    AUDIO_SAMPLE_RATE: int = 44100

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True
    SUBMIT_RATE_LIMIT: str = "30/minute"

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    @property
    def remote_configured(self) -> bool:
        return bool(self.REMOTE_PROCESSING_URL) and self.REMOTE_PROCESSING_ENABLED

    @property
    def callback_url(self) -> str:
        if self.WEBHOOK_URL:
            return self.WEBHOOK_URL
        base = self.PUBLIC_BASE_URL.rstrip("/")
        if not base.startswith(("http://", "https://")):
            base = f"https://{base}"
        return f"{base}{self.API_V1_STR}/webhook/processing-complete"

    def configuration_warnings(self) -> List[str]:
        warnings = []
        if not self.REMOTE_PROCESSING_URL:
            warnings.append("REMOTE_PROCESSING_URL not configured - jobs will be processed locally")
        elif not self.PROCESSING_SERVICE_TOKEN:
            warnings.append("PROCESSING_SERVICE_TOKEN not configured - remote authentication may fail")
        if not self.WEBHOOK_SECRET:
            warnings.append("WEBHOOK_SECRET not configured - webhook signatures cannot be verified")
        if self.STRICT_REMOTE and not self.remote_configured:
            warnings.append("STRICT_REMOTE is enabled but no remote processing service is configured")
        return warnings


settings = Settings()
