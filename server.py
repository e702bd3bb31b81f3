"""Static file server lifecycle with multi-host readiness polling."""
from __future__ import annotations

import asyncio
import logging
import sys
from typing import List, Optional, Sequence

import httpx

from classifier import error_text
from diagnostics import DiagnosticsRecorder


class StaticServer:
    """Serve the app root over loopback for the duration of an ``async with`` block.

    Entering spawns ``python -m http.server`` and polls every configured host
    alias; the first alias that answers becomes ``selected_host``. Leaving
    terminates the process and writes its buffered output to ``server.log``,
    whatever happened inside the block.
    """

    def __init__(
        self,
        recorder: DiagnosticsRecorder,
        command: Optional[Sequence[str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.recorder = recorder
        self.config = recorder.config
        self.logger = logger or logging.getLogger("server")
        server = self.config.server
        self.command = list(command) if command else [
            sys.executable, "-m", "http.server", str(server.port), "--bind", server.bind,
        ]
        self._transport = transport
        self._process: Optional[asyncio.subprocess.Process] = None
        self._pumps: List[asyncio.Task] = []
        self._chunks: List[str] = []
        self._stopped = False
        self.selected_host: Optional[str] = None

    async def __aenter__(self) -> "StaticServer":
        try:
            await self.start()
        except BaseException:
            await self.stop()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    def url_for(self, host: str) -> str:
        return f"http://{host}:{self.config.server.port}/{self.config.artifacts.index_file}"

    async def start(self) -> Optional[str]:
        """Spawn the server and wait for the first reachable host alias."""
        artifacts = self.config.artifacts
        artifacts.artifacts_dir.mkdir(parents=True, exist_ok=True)

        self._process = await asyncio.create_subprocess_exec(
            *self.command,
            cwd=str(artifacts.app_root),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        self._pumps = [
            asyncio.create_task(self._pump(self._process.stdout, "stdout")),
            asyncio.create_task(self._pump(self._process.stderr, "stderr")),
        ]
        self.recorder.record.server = {
            "cwd": str(artifacts.app_root),
            "pid": self._process.pid,
            "command": " ".join(self.command),
            "index_exists": artifacts.index_path.exists(),
        }
        self.logger.info(f"Static server started (pid={self._process.pid}, port={self.config.server.port})")

        self.selected_host = await self.wait_until_ready()
        self.recorder.record.server["selected_host"] = self.selected_host
        if self.selected_host:
            self.logger.info(f"Server reachable via {self.selected_host}")
        else:
            self.logger.warning("Server did not answer on any host alias")
        return self.selected_host

    async def _pump(self, stream: Optional[asyncio.StreamReader], label: str) -> None:
        if stream is None:
            return
        while True:
            line = await stream.readline()
            if not line:
                break
            self._chunks.append(f"[{label}] {line.decode('utf-8', errors='replace')}")

    async def probe(self, client: httpx.AsyncClient, host: str) -> bool:
        """Issue one HEAD request and record it."""
        url = self.url_for(host)
        try:
            response = await client.head(url)
        except httpx.HTTPError as exc:
            self.recorder.log_event(
                "server_health_checks", host=host, url=url, ok=False, error=error_text(exc)
            )
            return False
        ok = response.is_success
        self.recorder.log_event(
            "server_health_checks", host=host, url=url, ok=ok, status=response.status_code
        )
        return ok

    async def wait_for_host(self, client: httpx.AsyncClient, host: str) -> bool:
        """Poll one alias until it answers or its timeout window closes."""
        server = self.config.server
        loop = asyncio.get_running_loop()
        deadline = loop.time() + server.startup_timeout
        while loop.time() < deadline:
            if await self.probe(client, host):
                return True
            await asyncio.sleep(server.poll_interval)
        return False

    async def wait_until_ready(self) -> Optional[str]:
        """Poll every alias in order; the first reachable one is selected."""
        selected: Optional[str] = None
        async with httpx.AsyncClient(
            transport=self._transport,
            timeout=self.config.server.probe_timeout,
        ) as client:
            for host in self.config.server.hosts:
                ok = await self.wait_for_host(client, host)
                if ok and selected is None:
                    selected = host
        return selected

    async def stop(self) -> None:
        """Terminate the server and flush its output; runs once."""
        if self._stopped:
            return
        self._stopped = True

        process = self._process
        grace = self.config.server.stop_grace
        if process is not None and process.returncode is None:
            process.terminate()
            try:
                await asyncio.wait_for(process.wait(), timeout=max(grace, 0.05) * 10)
            except asyncio.TimeoutError:
                self.logger.warning("Static server ignored SIGTERM; killing it")
                process.kill()
                await process.wait()
        await asyncio.sleep(grace)

        if self._pumps:
            await asyncio.gather(*self._pumps, return_exceptions=True)

        log_path = self.config.artifacts.server_log_path
        log_path.parent.mkdir(parents=True, exist_ok=True)
        log_path.write_text("".join(self._chunks), encoding="utf-8")
        self.logger.debug(f"Server log written to {log_path}")
