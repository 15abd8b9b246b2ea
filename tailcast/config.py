import copy, os, yaml
from pathlib import Path
from typing import Dict, Any, Optional
from .logger import get_logger
log = get_logger("config")

ENV_CONFIG = "TAILCAST_CONFIG"
DEFAULT_CONFIG_FILE = "config/config.yaml"

DEFAULTS: Dict[str, Any] = {
    "log_file": "sample.log",
    "history_lines": 10,
    "chunk_size": 1024,
    "server": {"host": "0.0.0.0", "port": 3000},
    "watch": {
        "use_polling": False,
        "poll_interval": 1.0,
        "debounce_seconds": 0.05,
        "rewatch": True,
    },
    "log": {
        "level": "INFO",
        "dir": None,
        "backup_count": 14,
        "timezone": "UTC",
    },
}

_cache: Dict[str, tuple] = {}


def _load(path: str) -> Dict[str, Any]:
    try:
        mtime = os.path.getmtime(path)
    except FileNotFoundError:
        log.error("配置文件不存在：%s", path)
        raise
    cached = _cache.get(path)
    if cached and cached[0] == mtime:
        return cached[1]
    log.info("加载配置：%s", path)
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"配置文件格式错误：{path}")
    _cache[path] = (mtime, data)
    return data


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out


class Settings:
    def __init__(self, cfg: Optional[Dict[str, Any]] = None):
        cfg = _merge(DEFAULTS, cfg or {})
        self.log_file: Path = Path(cfg["log_file"]).expanduser()
        self.history_lines: int = int(cfg["history_lines"])
        self.chunk_size: int = int(cfg["chunk_size"])

        server = cfg["server"]
        self.host: str = server["host"]
        self.port: int = int(server["port"])

        watch = cfg["watch"]
        self.use_polling: bool = bool(watch["use_polling"])
        self.poll_interval: float = float(watch["poll_interval"])
        self.debounce: float = float(watch["debounce_seconds"])
        self.rewatch: bool = bool(watch["rewatch"])

        lg = cfg["log"]
        self.log_level: str = str(lg["level"]).upper()
        self.log_dir: Optional[str] = lg["dir"]
        self.log_backup_count: int = int(lg["backup_count"])
        self.log_timezone: str = lg["timezone"]

    def validate(self):
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size 必须为正数：{self.chunk_size}")
        if self.history_lines < 0:
            raise ValueError(f"history_lines 不能为负数：{self.history_lines}")
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval 必须为正数：{self.poll_interval}")
        if self.debounce < 0:
            raise ValueError(f"debounce_seconds 不能为负数：{self.debounce}")
        if not self.log_file.is_file():
            raise FileNotFoundError(f"日志文件不存在: {self.log_file}")


def load(path: Optional[str] = None) -> Settings:
    """
    path 为空时依次看 TAILCAST_CONFIG 和 config/config.yaml，都没有就用默认值。
    显式指定（参数或环境变量）的文件不存在时报错。
    """
    if path:
        return Settings(_load(path))
    env_path = os.environ.get(ENV_CONFIG)
    if env_path:
        return Settings(_load(env_path))
    if os.path.exists(DEFAULT_CONFIG_FILE):
        return Settings(_load(DEFAULT_CONFIG_FILE))
    log.info("未找到配置文件，使用默认配置")
    return Settings()
