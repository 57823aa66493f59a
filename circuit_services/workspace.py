"""
On-disk workspace layout.

    <root>/
      circuits/<name>.circom          submitted sources
      artifacts/<name>/               circom output (r1cs, <name>_js/, sym, <name>_cpp/)
      witness/<name>_input.json       input assignments and witnesses
      zkeys/<name>_<system>_*.zkey    proving keys + exported verification keys
      ptau/                           universal setup files

Circuit names double as file-name stems, so they are restricted to a safe
alphabet.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from .errors import BadRequest

_NAME_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def check_circuit_name(name: str) -> str:
    if not isinstance(name, str) or not _NAME_RE.match(name):
        raise BadRequest(
            "Invalid circuit name: use 1-64 letters, digits, '_' or '-'",
            details={"circuitName": name},
        )
    return name


@dataclass(frozen=True)
class Workspace:
    root: Path

    @classmethod
    def from_config(cls, cfg) -> "Workspace":
        return cls(Path(cfg.workspace_dir).expanduser().resolve())

    @property
    def circuits_dir(self) -> Path:
        return self.root / "circuits"

    @property
    def artifacts_dir(self) -> Path:
        return self.root / "artifacts"

    @property
    def witness_dir(self) -> Path:
        return self.root / "witness"

    @property
    def zkeys_dir(self) -> Path:
        return self.root / "zkeys"

    @property
    def ptau_dir(self) -> Path:
        return self.root / "ptau"

    def initialize(self) -> "Workspace":
        for d in (self.circuits_dir, self.artifacts_dir, self.witness_dir, self.zkeys_dir, self.ptau_dir):
            d.mkdir(parents=True, exist_ok=True)
        return self

    def source_path(self, name: str) -> Path:
        return self.circuits_dir / f"{check_circuit_name(name)}.circom"

    def artifact_dir(self, name: str) -> Path:
        return self.artifacts_dir / check_circuit_name(name)


__all__ = ["Workspace", "check_circuit_name"]
