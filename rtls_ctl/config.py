"""Configuration loader for rtls-ctl."""

from __future__ import annotations

from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import constants


@dataclass(slots=True)
class ScanConfig:
    concurrency: int = constants.DEFAULT_SCAN_CONCURRENCY
    timeout_seconds: float = constants.DEFAULT_SCAN_TIMEOUT_SECONDS
    port: int = constants.DEFAULT_HTTP_PORT


@dataclass(slots=True)
class Mg3Config:
    timeout_seconds: float = constants.DEFAULT_MG3_TIMEOUT_SECONDS


@dataclass(slots=True)
class LoggingConfig:
    level: str = constants.DEFAULT_LOG_LEVEL
    path: Optional[Path] = None


@dataclass(slots=True)
class RtlsConfig:
    scan: ScanConfig
    mg3: Mg3Config
    logging: LoggingConfig
    raw: ConfigParser
    path: Path


def _getint(parser: ConfigParser, section: str, option: str, default: int) -> int:
    try:
        return parser.getint(section, option, fallback=default)
    except ValueError:
        return default


def _getfloat(parser: ConfigParser, section: str, option: str, default: float) -> float:
    try:
        return parser.getfloat(section, option, fallback=default)
    except ValueError:
        return default


def load_config(path: Optional[Path] = None) -> RtlsConfig:
    """Load configuration from disk, applying defaults where necessary."""

    config_path = path or constants.DEFAULT_CONFIG_PATH
    parser = ConfigParser()
    parser.read_dict(
        {
            "scan": {
                "concurrency": str(constants.DEFAULT_SCAN_CONCURRENCY),
                "timeout_seconds": str(constants.DEFAULT_SCAN_TIMEOUT_SECONDS),
                "port": str(constants.DEFAULT_HTTP_PORT),
            },
            "mg3": {
                "timeout_seconds": str(constants.DEFAULT_MG3_TIMEOUT_SECONDS),
            },
            "logging": {
                "level": constants.DEFAULT_LOG_LEVEL,
                "path": "",
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    scan_defaults = ScanConfig()
    scan = ScanConfig(
        concurrency=max(
            1, _getint(parser, "scan", "concurrency", scan_defaults.concurrency)
        ),
        timeout_seconds=_getfloat(
            parser, "scan", "timeout_seconds", scan_defaults.timeout_seconds
        ),
        port=_getint(parser, "scan", "port", scan_defaults.port),
    )
    if scan.timeout_seconds <= 0:
        scan.timeout_seconds = scan_defaults.timeout_seconds
    if not 0 < scan.port < 65536:
        scan.port = scan_defaults.port

    mg3_timeout = _getfloat(
        parser, "mg3", "timeout_seconds", constants.DEFAULT_MG3_TIMEOUT_SECONDS
    )
    mg3 = Mg3Config(
        timeout_seconds=mg3_timeout
        if mg3_timeout > 0
        else constants.DEFAULT_MG3_TIMEOUT_SECONDS
    )

    log_path_value = parser.get("logging", "path", fallback="").strip()
    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback=constants.DEFAULT_LOG_LEVEL),
        path=Path(log_path_value).expanduser() if log_path_value else None,
    )

    return RtlsConfig(
        scan=scan,
        mg3=mg3,
        logging=logging_config,
        raw=parser,
        path=config_path,
    )
