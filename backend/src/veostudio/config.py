"""
Configuration for the Veo Studio agent.
"""
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


logger = logging.getLogger(__name__)


@dataclass
class Config:
    """Main configuration for the studio backend."""

    # Provider settings
    gemini_api_key: Optional[str] = None
    default_veo_model: str = "veo-3.0-generate-preview"
    imagen_model: str = "imagen-4.0-fast-generate-001"
    provider_max_attempts: int = 3

    # Chat agent settings
    agent_model: str = "openai/gpt-4o"
    agent_max_turns: int = 12

    # Externally reachable base URL of the API (used by the UI and for absolute links)
    public_base_url: str = "http://localhost:8000"

    # Media settings
    media_root: Path = field(default_factory=lambda: Path("public"))
    image_dir_name: str = "generated-images"
    video_dir_name: str = "generated-videos"

    # Cost accrual in cents per successful generation
    video_cost_cents: int = 50
    image_cost_cents: int = 10

    # UI polling interval for long-running video jobs
    video_poll_interval_seconds: float = 5.0

    log_level: str = "INFO"

    @property
    def image_dir(self) -> Path:
        return self.media_root / self.image_dir_name

    @property
    def video_dir(self) -> Path:
        return self.media_root / self.video_dir_name

    @property
    def image_url_prefix(self) -> str:
        return f"/{self.image_dir_name}"

    @property
    def video_url_prefix(self) -> str:
        return f"/{self.video_dir_name}"

    def absolute_url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.public_base_url.rstrip('/')}/{path.lstrip('/')}"

    def require_api_key(self) -> str:
        if not self.gemini_api_key:
            raise RuntimeError("GEMINI_API_KEY environment variable is not set.")
        return self.gemini_api_key

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "Config":
        """Build a config from environment variables, loading a .env file first."""
        # Try repo root first, then cwd for local runs
        repo_env = env_file or Path(__file__).resolve().parents[3] / ".env"
        if repo_env.exists():
            load_dotenv(dotenv_path=repo_env)
        else:
            load_dotenv()

        config = cls()
        config.gemini_api_key = os.getenv("GEMINI_API_KEY") or None
        config.public_base_url = os.getenv("PUBLIC_BASE_URL", config.public_base_url)
        config.media_root = Path(os.getenv("MEDIA_ROOT", str(config.media_root)))
        config.agent_model = os.getenv("AGENT_MODEL", config.agent_model)
        config.imagen_model = os.getenv("IMAGEN_MODEL", config.imagen_model)
        config.default_veo_model = os.getenv("DEFAULT_VEO_MODEL", config.default_veo_model)
        config.log_level = os.getenv("LOG_LEVEL", config.log_level).upper()

        attempts_raw = os.getenv("PROVIDER_MAX_ATTEMPTS")
        if attempts_raw:
            try:
                config.provider_max_attempts = max(1, int(attempts_raw))
            except ValueError:
                logger.warning("[from_env] Ignoring non-integer PROVIDER_MAX_ATTEMPTS=%r", attempts_raw)

        poll_raw = os.getenv("VIDEO_POLL_INTERVAL_SECONDS")
        if poll_raw:
            try:
                config.video_poll_interval_seconds = max(1.0, float(poll_raw))
            except ValueError:
                logger.warning("[from_env] Ignoring non-numeric VIDEO_POLL_INTERVAL_SECONDS=%r", poll_raw)
        return config


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
