from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class AppSettings(BaseSettings):
    """Runtime configuration loaded from environment variables."""

    app_name: str = Field(default="magica-bridge")
    log_level: str = Field(default="INFO")
    aws_region: str = Field(default="us-east-1")
    input_bucket: Optional[str] = None
    output_bucket: Optional[str] = None
    work_dir: Path = Field(default=Path("/tmp/magica-bridge"))

    # Conversion policy
    spring_keywords: List[str] = Field(default_factory=lambda: ["breast", "boob", "bust"])
    distance_stiffness_factor: float = Field(default=0.1, gt=0.0)
    gravity_epsilon: float = Field(default=1e-6, ge=0.0)
    radius_separation_threshold: float = Field(default=0.01, ge=0.0)
    skip_exclusions: bool = False
    use_container: bool = True
    container_name: str = Field(default="MC2")

    model_config = {
        "env_file": (".env", ".env.local", str(Path(__file__).parent.parent.parent / ".env")),
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    """Return cached application settings."""

    settings = AppSettings()
    settings.work_dir.mkdir(parents=True, exist_ok=True)
    return settings
