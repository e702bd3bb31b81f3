"""Browser binary presence checks and on-demand installation."""
from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional, Sequence

from classifier import is_blocked_download_error
from diagnostics import DiagnosticsRecorder
from smoke_types import InstallOutcome

BLOCKED_NOTE = "Browser binary download blocked by environment (CDN restriction)."

logger = logging.getLogger("installer")


def check_binaries(playwright: Any, recorder: DiagnosticsRecorder, targets: Sequence[str]) -> bool:
    """Record ``{browser, executable_path, exists}`` per target; True if all exist."""
    checks = []
    for name in targets:
        browser_type = getattr(playwright, name, None)
        if browser_type is None:
            continue
        executable_path = browser_type.executable_path
        exists = bool(executable_path) and Path(executable_path).exists()
        checks.append({"browser": name, "executable_path": executable_path, "exists": exists})
        if not exists:
            logger.warning(f"{name} executable missing at {executable_path}")

    recorder.record.binary_checks = checks
    return all(row["exists"] for row in checks)


def install_command(targets: Sequence[str], with_deps: bool = False) -> List[str]:
    args = [sys.executable, "-m", "playwright", "install"]
    if with_deps:
        args.append("--with-deps")
    args.extend(targets)
    return args


async def install_browsers(
    recorder: DiagnosticsRecorder,
    targets: Sequence[str],
    with_deps: bool = False,
    timeout: Optional[float] = None,
) -> InstallOutcome:
    """Run one ``playwright install`` for the targets and record the attempt."""
    args = install_command(targets, with_deps)
    command = " ".join(["playwright", *args[3:]])
    logger.info(f"Installing browsers: {command}")

    status: Optional[int]
    try:
        process = await asyncio.create_subprocess_exec(
            *args,
            cwd=str(recorder.config.artifacts.app_root),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        status, output = None, f"Failed to start installer: {exc}"
    else:
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
            status = process.returncode
            output = f"{stdout.decode('utf-8', errors='replace')}\n{stderr.decode('utf-8', errors='replace')}"
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            status, output = None, f"Browser install timed out after {timeout}s"

    ok = status == 0
    blocked = not ok and is_blocked_download_error(output)
    attempt = {"command": command, "status": status, "blocked": blocked}
    if blocked:
        attempt["note"] = BLOCKED_NOTE
        logger.error(BLOCKED_NOTE)
    elif not ok:
        logger.error(f"Browser install failed (status={status})")
    recorder.record.install_attempt = attempt

    return InstallOutcome(ok=ok, blocked=blocked, status=status, command=command, output=output)
