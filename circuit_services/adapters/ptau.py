"""
Powers-of-tau (universal setup) store.

Files follow the Hermez naming ``powersOfTau28_hez_final_<NN>.ptau`` where
``NN`` is the power of two of the supported constraint count. Tiers are kept
in ascending order and selection is "first found": the smallest tier present
on disk wins. When no tier is present, one tier is fetched from the mirror
list (redirects followed, progress logged, written to a ``.part`` file and
renamed into place). A failed fetch is fatal and reports what to download and
where to put it.
"""

from __future__ import annotations

import os
import tempfile
import threading
import time
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import httpx

from ..config import DEFAULT_PTAU_URLS, PTAU_FILE_TEMPLATE
from ..errors import SetupPrerequisiteError
from ..logging import get_logger

log = get_logger(__name__)

CHUNK = 1 << 16


def human_size(n: float) -> str:
    units = ["B", "KB", "MB", "GB"]
    for u in units:
        if n < 1024 or u == units[-1]:
            return f"{n:.0f} {u}"
        n /= 1024
    return f"{n:.0f} B"


class PtauStore:
    def __init__(
        self,
        ptau_dir: Path,
        *,
        powers: Sequence[int] = (10, 12, 14, 15, 16, 18, 20),
        fetch_power: int = 15,
        urls: Sequence[str] = tuple(DEFAULT_PTAU_URLS),
        timeout: float = 120.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.ptau_dir = Path(ptau_dir)
        self.powers = sorted(set(int(p) for p in powers))
        self.fetch_power = fetch_power
        self.urls = list(urls)
        self.timeout = timeout
        self._transport = transport
        self._fetch_lock = threading.Lock()

    @staticmethod
    def capacity(power: int) -> int:
        """Maximum constraint count a tier supports."""
        return 2 ** power

    def path_for(self, power: int) -> Path:
        return self.ptau_dir / PTAU_FILE_TEMPLATE.format(power=power)

    def candidates(self) -> List[Tuple[int, Path]]:
        return [(p, self.path_for(p)) for p in self.powers]

    def select(self) -> Optional[Tuple[int, Path]]:
        for power, path in self.candidates():
            if path.is_file():
                return power, path
        return None

    def ensure(self) -> Tuple[int, Path]:
        """Return a local tier, fetching one if none is present."""
        found = self.select()
        if found:
            return found
        with self._fetch_lock:
            # Another thread may have finished the download while we waited.
            found = self.select()
            if found:
                return found
            return self.fetch_power, self.fetch(self.fetch_power)

    # ------------------------------------------------------------------ fetch

    def mirrors(self, power: int) -> List[str]:
        return [u.format(power=power) for u in self.urls]

    def fetch(self, power: int) -> Path:
        dst = self.path_for(power)
        dst.parent.mkdir(parents=True, exist_ok=True)
        attempts: List[str] = []
        for url in self.mirrors(power):
            try:
                self._download(url, dst)
                return dst
            except (httpx.HTTPError, OSError) as e:
                log.warning("ptau_download_failed", url=url, error=str(e))
                attempts.append(f"{url}: {e}")

        mirrors = self.mirrors(power)
        raise SetupPrerequisiteError(
            f"Universal setup file {dst.name} is missing and could not be downloaded. "
            f"Download it manually from {mirrors[0] if mirrors else 'a powers-of-tau mirror'} "
            f"and place it at {dst}",
            errors=attempts or ["no powers-of-tau mirrors configured (PTAU_URLS)"],
            details={"path": str(dst), "urls": mirrors},
        )

    def _download(self, url: str, dst: Path) -> None:
        log.info("ptau_download_started", url=url, dest=str(dst))
        t0 = time.perf_counter()
        fd, tmp_name = tempfile.mkstemp(dir=str(dst.parent), prefix=dst.name, suffix=".part")
        try:
            with os.fdopen(fd, "wb") as out, httpx.Client(
                follow_redirects=True, timeout=self.timeout, transport=self._transport
            ) as client, client.stream("GET", url) as resp:
                resp.raise_for_status()
                encoded = resp.headers.get("content-encoding") not in (None, "identity")
                total = 0 if encoded else int(resp.headers.get("content-length") or 0)
                copied = 0
                last_pct = -10
                for chunk in resp.iter_bytes(CHUNK):
                    out.write(chunk)
                    copied += len(chunk)
                    if total:
                        pct = copied * 100 // total
                        if pct >= last_pct + 10:
                            last_pct = pct
                            log.info(
                                "ptau_download_progress",
                                percent=pct,
                                downloaded=human_size(copied),
                                total=human_size(total),
                            )
            if total and copied != total:
                raise OSError(f"size mismatch: expected {total} bytes, got {copied}")
            os.replace(tmp_name, dst)
        finally:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
        log.info(
            "ptau_download_completed",
            path=str(dst),
            size=human_size(dst.stat().st_size),
            seconds=round(time.perf_counter() - t0, 2),
        )


__all__ = ["PtauStore", "human_size"]
