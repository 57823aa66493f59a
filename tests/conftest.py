from __future__ import annotations

from pathlib import Path
from typing import AsyncIterator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from circuit_services.adapters.ledger import InMemoryLedger
from circuit_services.app import create_app
from circuit_services.config import Settings
from circuit_services.services import Services, build_services

from .fakes import FakeToolchain

MULTIPLIER2 = """\
pragma circom 2.0.0;

template Multiplier2() {
    signal input a;
    signal input b;
    signal output c;
    c <== a * b;
}

component main = Multiplier2();
"""

ADDER = """\
pragma circom 2.0.0;

template Adder() {
    signal input x;
    signal input y;
    signal output s;
    s <== x + y;
}

component main = Adder();
"""


@pytest.fixture
def multiplier_source() -> str:
    return MULTIPLIER2


@pytest.fixture
def adder_source() -> str:
    return ADDER


# ----------------------------
# Settings & workspace
# ----------------------------
@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Isolated settings: workspace under tmp_path, no .env, no real mirrors."""
    return Settings(
        _env_file=None,
        workspace_dir=tmp_path / "ws",
        ptau_powers=[10, 12],
        ptau_fetch_power=10,
        ptau_urls=["https://ptau.invalid/powersOfTau28_hez_final_{power:02d}.ptau"],
        log_format="console",
        ledger_url=None,
    )


@pytest.fixture
def ptau_file(settings: Settings) -> Path:
    """A local 2^10 universal setup file, so no download is attempted."""
    d = Path(settings.workspace_dir) / "ptau"
    d.mkdir(parents=True, exist_ok=True)
    p = d / settings.ptau_filename(10)
    p.write_bytes(b"fake-ptau-10")
    return p


# ----------------------------
# Services around the fake toolchain
# ----------------------------
@pytest.fixture
def toolchain() -> FakeToolchain:
    return FakeToolchain()


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger()


@pytest.fixture
def services(settings: Settings, toolchain: FakeToolchain, ledger: InMemoryLedger, ptau_file: Path) -> Services:
    return build_services(settings, runner=toolchain, ledger=ledger)


@pytest.fixture
def compiled(services: Services, multiplier_source: str):
    """Multiplier2 compiled into the workspace."""
    return services.compiler.compile(multiplier_source, "Multiplier2")


# ----------------------------
# App + clients
# ----------------------------
@pytest.fixture
def app(settings: Settings, services: Services) -> FastAPI:
    return create_app(settings, services=services)


@pytest_asyncio.fixture
async def aclient(app: FastAPI) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
