from __future__ import annotations

import json

import pytest

from circuit_services.adapters.circom import NO_MAIN_MSG, NO_TEMPLATE_MSG, CompileOptions
from circuit_services.errors import (
    ArtifactMissingError,
    BadRequest,
    CompilerDiagnosticError,
    SyntaxPrecheckError,
)
from circuit_services.services.compiler import STATS_FILE


def test_compile_produces_artifacts_and_stats(services, multiplier_source):
    result = services.compiler.compile(multiplier_source, "Multiplier2")

    assert result.circuit_name == "Multiplier2"
    arts = result.artifacts
    assert arts.r1cs.name == "Multiplier2.r1cs"
    assert arts.wasm.name == "Multiplier2.wasm"
    assert arts.wasm_js.name == "generate_witness.js"
    assert arts.sym.name == "Multiplier2.sym"
    assert arts.cpp is None
    assert result.stats.constraints == 1
    assert result.stats.wires == 4

    src = services.workspace.source_path("Multiplier2")
    assert src.read_text() == multiplier_source
    stored = json.loads((services.workspace.artifact_dir("Multiplier2") / STATS_FILE).read_text())
    assert stored["stats"]["constraints"] == 1
    assert stored["compilerVersion"] == "2.1.9"


def test_compile_is_idempotent(services, multiplier_source):
    first = services.compiler.compile(multiplier_source, "Multiplier2")
    second = services.compiler.compile(multiplier_source, "Multiplier2")
    assert first.stats == second.stats
    assert sorted(first.artifacts.present()) == sorted(second.artifacts.present())


def _compile_calls(toolchain):
    return [c for c in toolchain.tool_calls("circom") if "--version" not in c]


def test_ensure_compiled_reuses_matching_compile(services, toolchain, multiplier_source):
    first = services.compiler.ensure_compiled(multiplier_source, "Multiplier2")
    mtime = first.artifacts.r1cs.stat().st_mtime_ns

    again = services.compiler.ensure_compiled(multiplier_source, "Multiplier2")
    assert first.reused is False
    assert again.reused is True
    assert again.stats == first.stats
    assert again.artifacts.r1cs == first.artifacts.r1cs
    assert again.artifacts.r1cs.stat().st_mtime_ns == mtime
    assert len(_compile_calls(toolchain)) == 1


def test_ensure_compiled_recompiles_on_change(services, toolchain, multiplier_source):
    services.compiler.ensure_compiled(multiplier_source, "Multiplier2")
    changed = services.compiler.ensure_compiled(multiplier_source + "\n// edited\n", "Multiplier2")
    assert changed.reused is False
    other_opts = services.compiler.ensure_compiled(
        multiplier_source + "\n// edited\n", "Multiplier2", CompileOptions(optimize=False)
    )
    assert other_opts.reused is False
    assert len(_compile_calls(toolchain)) == 3


def test_ensure_compiled_recompiles_when_artifact_removed(services, toolchain, multiplier_source):
    first = services.compiler.ensure_compiled(multiplier_source, "Multiplier2")
    first.artifacts.r1cs.unlink()
    again = services.compiler.ensure_compiled(multiplier_source, "Multiplier2")
    assert again.reused is False
    assert again.artifacts.r1cs.is_file()
    assert len(_compile_calls(toolchain)) == 2


def test_compile_flags_follow_options(services, toolchain, multiplier_source):
    opts = CompileOptions(wasm=False, sym=False, c=True, optimize=False)
    result = services.compiler.compile(multiplier_source, "Multiplier2", opts)
    assert result.artifacts.wasm is None
    assert result.artifacts.cpp is not None

    argv = [c for c in toolchain.tool_calls("circom") if "--version" not in c][-1]
    assert "--wasm" not in argv and "--c" in argv and "--O0" in argv


def test_recompile_drops_stale_artifacts(services, multiplier_source):
    services.compiler.compile(multiplier_source, "Multiplier2")
    result = services.compiler.compile(multiplier_source, "Multiplier2", CompileOptions(wasm=False))
    assert result.artifacts.wasm is None
    assert not (services.workspace.artifact_dir("Multiplier2") / "Multiplier2_js").exists()


def test_missing_template_never_reaches_compiler(services, toolchain):
    with pytest.raises(SyntaxPrecheckError) as ei:
        services.compiler.compile("signal input a;\n", "Broken")
    assert NO_TEMPLATE_MSG in ei.value.errors
    assert NO_MAIN_MSG in ei.value.errors
    assert toolchain.calls == []
    assert ei.value.to_body()["code"] == "syntax_precheck_failed"


def test_pragma_newer_than_compiler_is_rejected(services, toolchain, multiplier_source):
    src = multiplier_source.replace("2.0.0", "2.5.0")
    with pytest.raises(SyntaxPrecheckError) as ei:
        services.compiler.compile(src, "Multiplier2")
    assert "requires a newer compiler" in ei.value.errors[0]
    assert toolchain.tool_calls("circom") == [["circom", "--version"]]


def test_compiler_errors_are_grouped(services, toolchain, multiplier_source):
    toolchain.compile_override = (
        "",
        "error[P1012]: illegal expression\n  --> Multiplier2.circom:7:5\nprevious errors were found\n",
        1,
    )
    with pytest.raises(CompilerDiagnosticError) as ei:
        services.compiler.compile(multiplier_source, "Multiplier2")
    err = ei.value
    assert err.errors == ["error[P1012]: illegal expression", "previous errors were found"]
    assert err.formatted == (
        "error[P1012]: illegal expression\n  --> Multiplier2.circom:7:5\n\nprevious errors were found"
    )
    assert err.status_code == 400


def test_error_lines_fail_even_with_zero_exit(services, toolchain, multiplier_source):
    toolchain.compile_override = ("error[T3001]: Non quadratic constraints are not allowed!\n", "", 0)
    with pytest.raises(CompilerDiagnosticError):
        services.compiler.compile(multiplier_source, "Multiplier2")


def test_no_artifacts_is_an_error(services, toolchain, multiplier_source):
    toolchain.compile_override = ("Everything went okay\n", "", 0)
    with pytest.raises(ArtifactMissingError):
        services.compiler.compile(multiplier_source, "Multiplier2")


def test_requesting_no_artifacts_is_rejected(services, multiplier_source):
    with pytest.raises(BadRequest):
        services.compiler.compile(multiplier_source, "Multiplier2", CompileOptions(r1cs=False, wasm=False, sym=False))


@pytest.mark.parametrize("name", ["", "../etc", "a b", "x" * 65])
def test_bad_circuit_names(services, multiplier_source, name):
    with pytest.raises(BadRequest):
        services.compiler.compile(multiplier_source, name)


def test_validate_syntax_reports_inspect_diagnostics(services, toolchain, multiplier_source):
    toolchain.inspect_output = ("", "warning[CA01]: unused signal\nerror[T2021]: undeclared symbol\n  detail\n", 1)
    out = services.compiler.validate_syntax(multiplier_source, "Multiplier2")
    assert out["valid"] is False
    assert out["errors"] == ["error[T2021]: undeclared symbol"]
    assert out["warnings"] == ["warning[CA01]: unused signal"]
    assert "error[T2021]: undeclared symbol\n  detail" in out["formatted"]
    # Validation leaves nothing behind.
    assert not services.workspace.source_path("Multiplier2").exists()
    assert list(services.workspace.circuits_dir.iterdir()) == []


def test_validate_syntax_precheck_only(services, toolchain):
    out = services.compiler.validate_syntax("// nothing here\n", "Empty")
    assert out["valid"] is False
    assert NO_TEMPLATE_MSG in out["errors"]
    assert toolchain.calls == []


def test_artifact_lookup_and_clean(services, compiled):
    arts = services.compiler.get_artifacts("Multiplier2")
    assert arts.r1cs == compiled.artifacts.r1cs
    assert services.compiler.get_stats("Multiplier2") == compiled.stats

    removed = services.compiler.clean("Multiplier2")
    assert removed == {"source": True, "artifacts": True}
    with pytest.raises(ArtifactMissingError):
        services.compiler.get_artifacts("Multiplier2")
    assert services.compiler.clean("Multiplier2") == {"source": False, "artifacts": False}


def test_require_reports_missing_kinds(services, multiplier_source):
    services.compiler.compile(multiplier_source, "Multiplier2", CompileOptions(wasm=False))
    with pytest.raises(ArtifactMissingError) as ei:
        services.compiler.require("Multiplier2", "r1cs", "wasm")
    assert ei.value.details["missing"] == ["wasm"]


def test_compile_file_uses_stem(services, tmp_path, multiplier_source):
    p = tmp_path / "Mult.circom"
    p.write_text(multiplier_source)
    assert services.compiler.compile_file(p).circuit_name == "Mult"
