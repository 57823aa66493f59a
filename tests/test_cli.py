from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from circuit_services import cli

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_ctx(monkeypatch, settings, services):
    monkeypatch.setattr(cli, "_ctx", cli.AppCtx(cfg=settings, services=services))


@pytest.fixture
def source_file(tmp_path, multiplier_source):
    p = tmp_path / "Multiplier2.circom"
    p.write_text(multiplier_source)
    return p


def test_compile_writes_artifacts(services, source_file):
    result = runner.invoke(cli.app, ["compile", str(source_file)])
    assert result.exit_code == 0, result.output
    assert services.compiler.get_artifacts("Multiplier2").r1cs.is_file()


def test_compile_precheck_failure_exits_1(tmp_path):
    bad = tmp_path / "Broken.circom"
    bad.write_text("signal input a;\n")
    result = runner.invoke(cli.app, ["compile", str(bad)])
    assert result.exit_code == 1
    assert "syntax_precheck_failed" in result.output


def test_validate(source_file):
    result = runner.invoke(cli.app, ["validate", str(source_file)])
    assert result.exit_code == 0, result.output


def test_prove_then_verify(tmp_path, source_file):
    assert runner.invoke(cli.app, ["compile", str(source_file)]).exit_code == 0
    inputs = tmp_path / "input.json"
    inputs.write_text(json.dumps({"a": 3, "b": 4}))
    out = tmp_path / "out"

    result = runner.invoke(cli.app, ["prove", "Multiplier2", "--input", str(inputs), "--out", str(out)])
    assert result.exit_code == 0, result.output
    assert json.loads((out / "public.json").read_text()) == ["12"]

    args = ["verify", "Multiplier2", "--proof", str(out / "proof.json"), "--public", str(out / "public.json")]
    result = runner.invoke(cli.app, args)
    assert result.exit_code == 0, result.output

    (out / "public.json").write_text(json.dumps(["13"]))
    result = runner.invoke(cli.app, args)
    assert result.exit_code == 1


def test_setup_unknown_circuit_exits_1():
    result = runner.invoke(cli.app, ["setup", "Nope"])
    assert result.exit_code == 1
    assert "artifact_missing" in result.output


def test_clean_with_yes(services, source_file):
    runner.invoke(cli.app, ["compile", str(source_file)])
    result = runner.invoke(cli.app, ["clean", "Multiplier2", "--yes"])
    assert result.exit_code == 0, result.output
    assert not services.workspace.artifact_dir("Multiplier2").exists()


def test_fetch_ptau_keeps_existing_file(ptau_file):
    result = runner.invoke(cli.app, ["fetch-ptau", "--power", "10"])
    assert result.exit_code == 0, result.output
    assert str(ptau_file) in result.output
    assert ptau_file.read_bytes() == b"fake-ptau-10"
