"""Constants used across the rtls-ctl package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "rtls-ctl"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_CONFIG_PATH = Path.home() / ".config" / APP_NAME / DEFAULT_CONFIG_FILENAME

DEFAULT_SCAN_CONCURRENCY = 512
DEFAULT_SCAN_TIMEOUT_SECONDS = 3.0
DEFAULT_HTTP_PORT = 80

DEFAULT_MG3_TIMEOUT_SECONDS = 10.0

DEFAULT_LOG_LEVEL = "WARNING"

G1_STATUS_PATH = "/cgi-bin/cgic-statusget"
# admin with an empty password
G1_AUTHORIZATION = "Basic YWRtaW46"

MG3_HELLO_PATH = "/hello"
MG3_SET_PATH = "/set"

MG3_SUCCESS_CODE = 200
