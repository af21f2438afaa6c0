"""Open a rendered document in a word processor.

Opening the document is a convenience for the user, not part of the sync
contract: callers log a failure and carry on.  Which applications are
installed is looked up once per :class:`DocumentOpener` and kept on that
instance.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

_WINDOWS_WORD = (
    r"C:\Program Files\Microsoft Office\root\Office16\WINWORD.EXE",
    r"C:\Program Files (x86)\Microsoft Office\root\Office16\WINWORD.EXE",
    r"C:\Program Files\Microsoft Office\Office15\WINWORD.EXE",
    r"%LOCALAPPDATA%\Microsoft\WindowsApps\WINWORD.EXE",
)
_WINDOWS_WPS = (
    r"C:\Program Files\WPS Office\ksolaunch.exe",
    r"C:\Program Files (x86)\WPS Office\ksolaunch.exe",
    r"%LOCALAPPDATA%\Kingsoft\WPS Office\ksolaunch.exe",
)
_MAC_APPS = (
    "/Applications/Microsoft Word.app",
    "/Applications/WPS Office.app",
    "/Applications/LibreOffice.app",
)
_LINUX_APPS = ("wps", "libreoffice", "soffice", "onlyoffice")
_LINUX_FALLBACKS = (*_LINUX_APPS, "gnome-open", "kde-open")


class NoSuitableApplicationError(RuntimeError):
    """No application could be found or started to open the document."""


@dataclass(frozen=True)
class OpenResult:
    succeeded: bool
    method: str


@dataclass
class _Capabilities:
    """Installed editors found on this machine, keyed by role."""

    apps: dict[str, str] = field(default_factory=dict)


class DocumentOpener:
    """Open documents with the platform's preferred word processor.

    Args:
        platform: Override for ``sys.platform`` (tests, cross-platform
            tooling).
    """

    def __init__(self, platform: str | None = None) -> None:
        self.platform = platform or sys.platform
        self._capabilities: _Capabilities | None = None

    async def open(self, path: str | Path, prefer_primary_app: bool = True) -> OpenResult:
        """Open *path*; prefer Microsoft Word over WPS when *prefer_primary_app*.

        Raises:
            OSError: The file is missing or unreadable.
            NoSuitableApplicationError: Nothing could open it.
        """
        target = Path(path).resolve()
        if not os.access(target, os.R_OK):
            raise FileNotFoundError(f"Cannot read document: {target}")

        capabilities = await self._get_capabilities()
        if self.platform == "win32":
            result = self._open_windows(target, capabilities, prefer_primary_app)
        elif self.platform == "darwin":
            result = await self._open_macos(target, capabilities)
        else:
            result = self._open_linux(target, capabilities)
        logger.info("Opened %s via %s", target, result.method)
        return result

    # ------------------------------------------------------------------
    # Capability lookup
    # ------------------------------------------------------------------

    async def _get_capabilities(self) -> _Capabilities:
        if self._capabilities is None:
            self._capabilities = await asyncio.to_thread(self._detect)
        return self._capabilities

    def _detect(self) -> _Capabilities:
        caps = _Capabilities()
        if self.platform == "win32":
            word = _first_existing(os.path.expandvars(p) for p in _WINDOWS_WORD)
            wps = _first_existing(os.path.expandvars(p) for p in _WINDOWS_WPS)
            if word:
                caps.apps["word"] = word
            if wps:
                caps.apps["wps"] = wps
        elif self.platform == "darwin":
            app = _first_existing(_MAC_APPS)
            if app:
                caps.apps["word"] = app
        else:
            for name in _LINUX_APPS:
                found = shutil.which(name)
                if found:
                    caps.apps["word"] = found
                    break
        logger.debug("Detected document applications: %s", caps.apps)
        return caps

    # ------------------------------------------------------------------
    # Per-platform strategies
    # ------------------------------------------------------------------

    def _open_windows(
        self, target: Path, caps: _Capabilities, prefer_primary_app: bool
    ) -> OpenResult:
        startfile = getattr(os, "startfile", None)
        if startfile is not None:
            try:
                startfile(str(target))
                return OpenResult(True, "startfile")
            except OSError as exc:
                logger.debug("os.startfile failed: %s", exc)

        preferred = caps.apps.get("word" if prefer_primary_app else "wps")
        app = preferred or caps.apps.get("word") or caps.apps.get("wps")
        if app:
            _spawn_detached([app, str(target)])
            return OpenResult(True, "direct-executable")
        raise NoSuitableApplicationError(
            "Cannot open the document; install Microsoft Word or WPS Office"
        )

    async def _open_macos(self, target: Path, caps: _Capabilities) -> OpenResult:
        if await _run_ok(["open", str(target)]):
            return OpenResult(True, "open-command")
        for app in ([caps.apps["word"]] if "word" in caps.apps else []) + list(_MAC_APPS):
            if Path(app).exists() and await _run_ok(["open", "-a", app, str(target)]):
                return OpenResult(True, "specific-app")
        raise NoSuitableApplicationError("No document editor found")

    def _open_linux(self, target: Path, caps: _Capabilities) -> OpenResult:
        # xdg-open first, then the editor found at detection time, then the rest.
        candidates: list[tuple[str, str]] = []
        xdg = shutil.which("xdg-open")
        if xdg:
            candidates.append(("xdg-open", xdg))
        detected = caps.apps.get("word")
        if detected:
            candidates.append((Path(detected).name, detected))
        for name in _LINUX_FALLBACKS:
            exe = shutil.which(name)
            if exe and exe != detected:
                candidates.append((name, exe))

        for name, exe in candidates:
            try:
                _spawn_detached([exe, str(target)])
            except OSError as exc:
                logger.debug("%s failed: %s", name, exc)
                continue
            return OpenResult(True, name)
        raise NoSuitableApplicationError(
            "Install WPS Office, LibreOffice or OnlyOffice to open documents"
        )


def _first_existing(candidates) -> str | None:
    for candidate in candidates:
        if candidate and Path(candidate).exists():
            return candidate
    return None


def _spawn_detached(args: list[str]) -> None:
    kwargs: dict = {
        "stdin": subprocess.DEVNULL,
        "stdout": subprocess.DEVNULL,
        "stderr": subprocess.DEVNULL,
    }
    if sys.platform == "win32":
        kwargs["creationflags"] = subprocess.DETACHED_PROCESS
    else:
        kwargs["start_new_session"] = True
    subprocess.Popen(args, **kwargs)


async def _run_ok(args: list[str]) -> bool:
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except OSError:
        return False
    return await proc.wait() == 0
