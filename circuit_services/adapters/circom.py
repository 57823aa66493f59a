"""
circom compiler adapter.

Pieces
------
- ``precheck(source, compiler_version)``: fast textual checks run before any
  process is spawned (pragma compatibility, a ``template``, a
  ``component main``).
- ``CompileOptions`` / ``build_compile_argv``: flag set for ``circom``.
- ``CircomCli``: runs the compiler (compile, ``--inspect``, ``--version``)
  through a ``ProcessRunner``.
- ``discover_artifacts`` / ``parse_stats``: read what the compiler left on
  disk and printed on stdout.

circom's exit code is not authoritative (it can exit 0 having produced
nothing), so callers decide success from classified output plus artifacts.
"""

from __future__ import annotations

import re
import struct
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, List, Literal, Optional, Sequence, Tuple

from ..logging import get_logger
from .process import ProcessResult, ProcessRunner

log = get_logger(__name__)

Prime = Literal["bn128", "bls12381", "goldilocks"]

PRAGMA_RE = re.compile(r"pragma\s+circom\s+(\d+)\.(\d+)\.(\d+)\s*;")
VERSION_RE = re.compile(r"(\d+)\.(\d+)\.(\d+)")
TEMPLATE_RE = re.compile(r"\btemplate\s+[A-Za-z_$][\w$]*")
MAIN_RE = re.compile(r"\bcomponent\s+main\b")
_COMMENT_RE = re.compile(r"//[^\n]*|/\*.*?\*/", re.DOTALL)

NO_TEMPLATE_MSG = "No template found: a circuit must declare at least one `template`"
NO_MAIN_MSG = "No main component found: declare `component main = YourTemplate(...);`"
NO_PRAGMA_MSG = "No `pragma circom` directive; the installed compiler version is assumed"

_STAT_PATTERNS = {
    "constraints": re.compile(r"non-linear constraints:\s*(\d+)", re.IGNORECASE),
    "linear_constraints": re.compile(r"(?<!non-)linear constraints:\s*(\d+)", re.IGNORECASE),
    "public_inputs": re.compile(r"public inputs:\s*(\d+)", re.IGNORECASE),
    "private_inputs": re.compile(r"private inputs:\s*(\d+)", re.IGNORECASE),
    "outputs": re.compile(r"public outputs:\s*(\d+)", re.IGNORECASE),
    "wires": re.compile(r"wires:\s*(\d+)", re.IGNORECASE),
    "labels": re.compile(r"labels:\s*(\d+)", re.IGNORECASE),
}


# --------------------------------- Types ------------------------------------ #


@dataclass(frozen=True)
class CompileOptions:
    r1cs: bool = True
    wasm: bool = True
    sym: bool = True
    c: bool = False
    optimize: bool = True
    verbose: bool = False
    inspect: bool = False
    prime: Prime = "bn128"

    def wants_any_artifact(self) -> bool:
        return self.r1cs or self.wasm or self.sym or self.c


@dataclass
class CompiledArtifacts:
    r1cs: Optional[Path] = None
    wasm: Optional[Path] = None
    wasm_js: Optional[Path] = None
    sym: Optional[Path] = None
    cpp: Optional[Path] = None

    def present(self) -> Dict[str, Path]:
        return {k: v for k, v in self.__dict__.items() if v is not None}

    def any(self) -> bool:
        return bool(self.present())

    def to_dict(self) -> Dict[str, str]:
        return {k: str(v) for k, v in self.present().items()}


@dataclass
class CircuitStats:
    constraints: int = 0
    linear_constraints: int = 0
    wires: int = 0
    public_inputs: int = 0
    private_inputs: int = 0
    outputs: int = 0
    labels: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class PrecheckResult:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


# -------------------------------- Precheck ---------------------------------- #


def parse_version(text: Optional[str]) -> Optional[Tuple[int, int, int]]:
    if not text:
        return None
    m = VERSION_RE.search(text)
    if not m:
        return None
    return int(m.group(1)), int(m.group(2)), int(m.group(3))


def _fmt(v: Tuple[int, int, int]) -> str:
    return ".".join(str(x) for x in v)


def precheck(source: str, compiler_version: Optional[str] = None) -> PrecheckResult:
    """
    Cheap source checks, in order: pragma, template, main component.

    A missing pragma is only a warning. With an unknown compiler version the
    pragma is not compared.
    """
    res = PrecheckResult()

    m = PRAGMA_RE.search(source)
    compiler = parse_version(compiler_version)
    if m is None:
        res.warnings.append(NO_PRAGMA_MSG)
    elif compiler is not None:
        wanted = (int(m.group(1)), int(m.group(2)), int(m.group(3)))
        if wanted[0] != compiler[0]:
            res.errors.append(
                f"pragma circom {_fmt(wanted)} targets major version {wanted[0]}, "
                f"but the installed compiler is {_fmt(compiler)}"
            )
        elif wanted > compiler:
            res.errors.append(
                f"pragma circom {_fmt(wanted)} requires a newer compiler than the installed {_fmt(compiler)}"
            )

    code = _COMMENT_RE.sub("", source)
    if not TEMPLATE_RE.search(code):
        res.errors.append(NO_TEMPLATE_MSG)
    if not MAIN_RE.search(code):
        res.errors.append(NO_MAIN_MSG)
    return res


# ---------------------------- Flags & invocation ---------------------------- #


def build_compile_argv(
    binary: str,
    source_path: Path,
    options: CompileOptions,
    library_paths: Sequence[str] = (),
) -> List[str]:
    argv = [binary, str(source_path)]
    if options.r1cs:
        argv.append("--r1cs")
    if options.wasm:
        argv.append("--wasm")
    if options.sym:
        argv.append("--sym")
    if options.c:
        argv.append("--c")
    argv.append("--O1" if options.optimize else "--O0")
    if options.verbose:
        argv.append("--verbose")
    if options.inspect:
        argv.append("--inspect")
    argv += ["--prime", options.prime]
    for lib in library_paths:
        argv += ["-l", str(lib)]
    argv += ["-o", "."]
    return argv


class CircomCli:
    def __init__(
        self,
        runner: ProcessRunner,
        *,
        binary: str = "circom",
        library_paths: Sequence[str] = (),
        compiler_version: Optional[str] = None,
    ) -> None:
        self.runner = runner
        self.binary = binary
        self.library_paths = list(library_paths)
        self._version = compiler_version

    def version(self) -> Optional[str]:
        """Configured version, else ``circom --version`` (cached once known)."""
        if self._version:
            return self._version
        res = self.runner.run([self.binary, "--version"])
        v = parse_version(res.output) if res.ok else None
        if v is None:
            log.warning("circom_version_unknown", output=res.output.strip()[:200])
            return None
        self._version = _fmt(v)
        return self._version

    def compile(self, source_path: Path, out_dir: Path, options: CompileOptions) -> ProcessResult:
        argv = build_compile_argv(self.binary, source_path.resolve(), options, self.library_paths)
        log.info("circom_compile", source=source_path.name, argv=argv[2:])
        return self.runner.run(argv, cwd=out_dir)

    def inspect(self, source_path: Path) -> ProcessResult:
        argv = [self.binary, str(source_path.resolve()), "--inspect"]
        for lib in self.library_paths:
            argv += ["-l", str(lib)]
        return self.runner.run(argv, cwd=source_path.parent)


# ------------------------------ Artifacts/stats ----------------------------- #


def discover_artifacts(out_dir: Path, name: str) -> CompiledArtifacts:
    js_dir = out_dir / f"{name}_js"
    found = CompiledArtifacts()
    candidates: Dict[str, Path] = {
        "r1cs": out_dir / f"{name}.r1cs",
        "wasm": js_dir / f"{name}.wasm",
        "wasm_js": js_dir / "generate_witness.js",
        "sym": out_dir / f"{name}.sym",
    }
    for attr, p in candidates.items():
        if p.is_file():
            setattr(found, attr, p)
    cpp = out_dir / f"{name}_cpp"
    if cpp.is_dir():
        found.cpp = cpp
    return found


def parse_stats(stdout: str, sym_path: Optional[Path] = None) -> CircuitStats:
    """
    Stats from circom's stdout summary; input/output counts fall back to the
    symbol table's ``main.`` lines when stdout does not print them.
    """
    stats = CircuitStats()
    seen: Dict[str, bool] = {}
    for key, rx in _STAT_PATTERNS.items():
        m = rx.search(stdout or "")
        if m:
            setattr(stats, key, int(m.group(1)))
            seen[key] = True

    need_io = not (seen.get("public_inputs") or seen.get("private_inputs") or seen.get("outputs"))
    if need_io and sym_path is not None and sym_path.is_file():
        try:
            text = sym_path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            log.warning("sym_read_failed", path=str(sym_path), error=str(e))
            return stats
        for line in text.splitlines():
            if "main." not in line:
                continue
            if "[input]" in line:
                stats.private_inputs += 1
            elif "[output]" in line:
                stats.outputs += 1
    return stats


@dataclass
class R1csHeader:
    field_size: int
    wires: int
    public_outputs: int
    public_inputs: int
    private_inputs: int
    labels: int
    constraints: int


def read_r1cs_header(path: Path) -> Optional[R1csHeader]:
    """
    Header section of an iden3 binary ``.r1cs`` file, or None when the file
    is not in that format.

        "r1cs" u32:version u32:nSections
        { u32:type u64:size <data> }*
        header(type 1): u32:n8 <prime n8 bytes> u32:nWires u32:nPubOut
                        u32:nPubIn u32:nPrvIn u64:nLabels u32:nConstraints
    """
    try:
        with open(path, "rb") as fh:
            if fh.read(4) != b"r1cs":
                return None
            _version, n_sections = struct.unpack("<II", fh.read(8))
            for _ in range(n_sections):
                sec_type, sec_size = struct.unpack("<IQ", fh.read(12))
                if sec_type != 1:
                    fh.seek(sec_size, 1)
                    continue
                (n8,) = struct.unpack("<I", fh.read(4))
                fh.seek(n8, 1)
                wires, pub_out, pub_in, prv_in = struct.unpack("<IIII", fh.read(16))
                (labels,) = struct.unpack("<Q", fh.read(8))
                (constraints,) = struct.unpack("<I", fh.read(4))
                return R1csHeader(n8 * 8, wires, pub_out, pub_in, prv_in, labels, constraints)
    except (OSError, struct.error):
        return None
    return None


__all__ = [
    "Prime",
    "R1csHeader",
    "read_r1cs_header",
    "CompileOptions",
    "CompiledArtifacts",
    "CircuitStats",
    "PrecheckResult",
    "NO_TEMPLATE_MSG",
    "NO_MAIN_MSG",
    "precheck",
    "parse_version",
    "build_compile_argv",
    "CircomCli",
    "discover_artifacts",
    "parse_stats",
]
