from __future__ import annotations

"""
Configuration loader for Circuit Services.

- Reads environment variables (optionally from `.env`) via pydantic-settings.
- Exposes a cached `load_config()` accessor.

Environment variables (high-level):
    LOG_LEVEL                 (str, default "INFO")
    LOG_FORMAT                (str, default "json")   : "json" | "console"
    HOST / PORT               (str/int)               : bind address for `main`

Workspace & tools:
    WORKSPACE_DIR             (path, default "./zk-workspace")
    CIRCOM_BIN                (str, default "circom")
    SNARKJS_BIN               (str, default "snarkjs") : shell-split, e.g. "npx snarkjs"
    CIRCOM_LIBRARY_PATHS      (csv|json list)          : passed to circom as `-l`
    COMPILER_VERSION          (str, optional)          : else detected via `circom --version`

Universal setup (powers of tau):
    PTAU_POWERS               (csv|json list of ints)  : capacity tiers, ascending
    PTAU_FETCH_POWER          (int, default 15)        : tier fetched when none is present
    PTAU_URLS                 (csv|json list)          : mirror templates with `{power:02d}`
    PTAU_DOWNLOAD_TIMEOUT     (float seconds)
    ENFORCE_SETUP_CAPACITY    (bool, default False)

Key ceremony:
    KEY_STALENESS             ("mtime" | "content-hash", default "mtime")
    CEREMONY_ENTROPY          ("pseudo" | "system", default "pseudo")

Processes:
    MAX_CONCURRENT_PROCESSES  (int, default 4)
    MAX_OUTPUT_BYTES          (int, default 10 MiB)
    PROCESS_TIMEOUT           (float seconds, optional; unset means no timeout)

Ledger:
    LEDGER_URL / LEDGER_API_KEY / LEDGER_TIMEOUT

CORS:
    CORS_ALLOW_ORIGINS        (csv|json list)

Notes
-----
- Lists accept comma-separated strings or JSON arrays.
"""

import json
import shlex
from functools import lru_cache
from pathlib import Path
from typing import Annotated, List, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

PTAU_FILE_TEMPLATE = "powersOfTau28_hez_final_{power:02d}.ptau"

DEFAULT_PTAU_URLS = [
    "https://storage.googleapis.com/zkevm/ptau/" + PTAU_FILE_TEMPLATE,
    "https://hermez.s3-eu-west-1.amazonaws.com/" + PTAU_FILE_TEMPLATE,
]


def _parse_list(val, *, default: List[str]) -> List[str]:
    if val is None:
        return list(default)
    if isinstance(val, (list, tuple)):
        return [str(x) for x in val]
    s = str(val).strip()
    if not s:
        return []
    if s.startswith("[") and s.endswith("]"):
        try:
            return [str(x) for x in json.loads(s)]
        except ValueError:
            pass
    return [x.strip() for x in s.split(",") if x.strip()]


class Settings(BaseSettings):
    # Core
    log_level: str = Field("INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    log_format: str = Field("json", description="json | console")
    host: str = Field("0.0.0.0", description="Bind address")
    port: int = Field(8080, description="Bind port")

    # Workspace & external tools
    workspace_dir: Path = Field(Path("./zk-workspace"), description="Root of the on-disk workspace")
    circom_bin: str = Field("circom", description="Circom compiler executable")
    snarkjs_bin: str = Field("snarkjs", description="snarkjs CLI command (shell-split)")
    circom_library_paths: Annotated[List[str], NoDecode] = Field(default_factory=list)
    compiler_version: Optional[str] = Field(None, description="Override detected circom version")

    # Universal setup
    ptau_powers: Annotated[List[int], NoDecode] = Field(
        default_factory=lambda: [10, 12, 14, 15, 16, 18, 20]
    )
    ptau_fetch_power: int = Field(15, ge=1, le=28)
    ptau_urls: Annotated[List[str], NoDecode] = Field(default_factory=lambda: list(DEFAULT_PTAU_URLS))
    ptau_download_timeout: float = Field(120.0, gt=0)
    enforce_setup_capacity: bool = False

    # Key ceremony
    key_staleness: Literal["mtime", "content-hash"] = "mtime"
    ceremony_entropy: Literal["pseudo", "system"] = "pseudo"

    # External processes
    max_concurrent_processes: int = Field(4, ge=1)
    max_output_bytes: int = Field(10 * 1024 * 1024, ge=1024)
    process_timeout: Optional[float] = Field(None, gt=0)

    # Ledger collaborator
    ledger_url: Optional[str] = None
    ledger_api_key: Optional[str] = None
    ledger_timeout: float = Field(15.0, gt=0)

    # CORS
    cors_allow_origins: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"]
    )

    model_config = SettingsConfigDict(
        env_prefix="", env_file=".env", case_sensitive=False, extra="ignore"
    )

    @field_validator("circom_library_paths", "ptau_urls", "cors_allow_origins", mode="before")
    @classmethod
    def _coerce_list(cls, v):
        return _parse_list(v, default=[])

    @field_validator("ptau_powers", mode="before")
    @classmethod
    def _coerce_powers(cls, v):
        powers = sorted({int(x) for x in _parse_list(v, default=[])})
        if not powers:
            raise ValueError("PTAU_POWERS must list at least one tier")
        return powers

    @field_validator("workspace_dir", mode="before")
    @classmethod
    def _coerce_path(cls, v):
        return Path(v).expanduser() if v is not None else Path("./zk-workspace")

    # --- derived helpers ----------------------------------------------------

    @property
    def snarkjs_argv(self) -> List[str]:
        return shlex.split(self.snarkjs_bin)

    def ptau_filename(self, power: int) -> str:
        return PTAU_FILE_TEMPLATE.format(power=power)


# Kept as the name used across the app factory and CLI.
Config = Settings


@lru_cache(maxsize=1)
def load_config() -> Settings:
    """Return cached settings instance (reads env and `.env`)."""
    return Settings()


__all__ = ["Settings", "Config", "load_config", "PTAU_FILE_TEMPLATE", "DEFAULT_PTAU_URLS"]
