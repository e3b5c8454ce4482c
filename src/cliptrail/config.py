import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from cliptrail.database.kv_store import RedisConfig, _to_bool


@dataclass(frozen=True)
class AppConfig:
    data_dir: Path = field(default_factory=lambda: Path.home() / ".cliptrail")
    use_redis: bool = True
    redis: RedisConfig = field(default_factory=RedisConfig)
    api_host: str = "127.0.0.1"
    api_port: int = 3001

    @property
    def image_dir(self) -> Path:
        return self.data_dir / "images"

    @classmethod
    def from_env(cls, *, env_path: Optional[Path] = None) -> "AppConfig":
        load_dotenv(dotenv_path=env_path, override=False)

        data_dir_raw = os.getenv("CLIPTRAIL_DATA_DIR")
        data_dir = Path(data_dir_raw).expanduser() if data_dir_raw else Path.home() / ".cliptrail"
        port_raw = os.getenv("CLIPTRAIL_API_PORT")

        return cls(
            data_dir=data_dir,
            use_redis=_to_bool(os.getenv("CLIPTRAIL_USE_REDIS"), default=True),
            redis=RedisConfig.from_env(),
            api_host=os.getenv("CLIPTRAIL_API_HOST", cls.api_host),
            api_port=int(port_raw) if port_raw else cls.api_port,
        )
