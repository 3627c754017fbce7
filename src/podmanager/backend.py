"""
Podman CLI wrapper and backend operations.

This module runs the podman executable as an asyncio subprocess and provides:
  - Listing queries (containers, pod containers, pods, images, volumes,
    networks, disk usage) parsed into record dataclasses
  - Container, pod, image, volume and network actions
  - Compose commands (podman-compose or ``podman compose``)
  - Podman machine status and start/stop

Every command is executed without a shell. A non-zero exit status, or an
executable that cannot be started, raises EngineError carrying the command
line so the UI can offer it for copying.

Error Handling:
  - Query/action methods raise EngineError
  - @engine_safe wraps per-category fetches: logs, notifies once, returns
    the default so one failing category never affects another

Dependencies:
  - asyncio subprocess (no shell)
  - shlex for the configured executable paths and copyable command text
"""

import asyncio
import functools
import json
import logging
import os
import re
import shlex
from typing import Any, Callable, List, Optional, Sequence, Set, Tuple

from .config import ConfigManager, DEFAULT_COMPOSE_PATH, config_manager
from .model import (
    ContainerRecord, ImageRecord, NetworkRecord, PodContainerRecord, PodRecord,
    VolumeRecord,
)
from .parsing import (
    CONTAINER_FIELDS, IMAGE_FIELDS, NETWORK_FIELDS, POD_CONTAINER_FIELDS,
    POD_FIELDS, VOLUME_FIELDS, format_template, parse_container_row,
    parse_image_row, parse_listing, parse_network_row, parse_pod_container_row,
    parse_pod_row, parse_volume_row, split_rows,
)

logger = logging.getLogger(__name__)

PRUNE_COMMANDS = {
    "dangling-images": (["image", "prune", "-f"], "Remove all dangling images"),
    "unused-images": (["image", "prune", "-a", "-f"], "Remove all unused images"),
    "builder-cache": (["builder", "prune", "-a", "-f"], "Remove Podman builder cache"),
}


class EngineError(Exception):
    """An engine command failed to start or exited non-zero."""

    def __init__(self, command: Sequence[str], returncode: Optional[int], stderr: str = ""):
        self.command = list(command)
        self.returncode = returncode
        self.stderr = (stderr or "").strip()
        super().__init__(str(self))

    @property
    def command_text(self) -> str:
        return shlex.join(self.command)

    def __str__(self) -> str:
        if self.returncode is None:
            return f"could not run {self.command_text}: {self.stderr}"
        detail = f": {self.stderr}" if self.stderr else ""
        return f"{self.command_text} exited with status {self.returncode}{detail}"


def engine_safe(default_return: Any = None, what: Optional[str] = None) -> Callable:
    """
    Decorator for async fetch methods that must never fail their caller.

    Catches exceptions, logs them, reports them once through ``self.notifier``
    (with the failing command text when available) and returns a fresh copy of
    ``default_return``.

    Usage:
        @engine_safe(default_return=[], what="volumes")
        async def _fetch_volumes(self) -> List[PodmanItem]:
            ...
    """
    def decorator(func: Callable) -> Callable:
        label = what or func.__name__

        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs) -> Any:
            try:
                return await func(self, *args, **kwargs)
            except Exception as e:
                logger.error(f"Engine query failed in {func.__name__}: {e}", exc_info=True)
                notifier = getattr(self, "notifier", None)
                if notifier is not None:
                    command = e.command_text if isinstance(e, EngineError) else None
                    notifier.error(f"Failed to get {label}: {e}", command)
                if isinstance(default_return, (list, dict, set)):
                    return type(default_return)(default_return)
                return default_return
        return wrapper
    return decorator


def extract_container_id(full_id: str) -> str:
    """Return the trailing 12-hex id of tree ids like ``compose-web-<id>``."""
    match = re.search(r"-([a-f0-9]{12})$", full_id, re.IGNORECASE)
    if match:
        return match.group(1)
    return full_id


class PodmanBackend:
    def __init__(self, config: Optional[ConfigManager] = None):
        self.config = config or config_manager

    def podman_command(self) -> List[str]:
        return shlex.split(self.config.get_podman_path())

    async def _exec(self, cmd: Sequence[str], cwd: Optional[str] = None) -> Tuple[str, str]:
        logger.debug(f"Running {shlex.join(cmd)}" + (f" in {cwd}" if cwd else ""))
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
            )
        except OSError as e:
            raise EngineError(cmd, None, str(e)) from e

        stdout, stderr = await process.communicate()
        out = stdout.decode("utf-8", errors="replace") if stdout else ""
        err = stderr.decode("utf-8", errors="replace") if stderr else ""
        if process.returncode != 0:
            raise EngineError(cmd, process.returncode, err)
        return out, err

    async def run(self, args: Sequence[str], cwd: Optional[str] = None) -> str:
        stdout, _ = await self._exec(self.podman_command() + list(args), cwd=cwd)
        return stdout

    async def run_with_stderr(self, args: Sequence[str], cwd: Optional[str] = None) -> Tuple[str, str]:
        return await self._exec(self.podman_command() + list(args), cwd=cwd)

    def command_text(self, args: Sequence[str]) -> str:
        return shlex.join(self.podman_command() + list(args))

    # --- QUERIES ---

    async def list_containers(self) -> List[ContainerRecord]:
        stdout = await self.run(["container", "ls", "-a", "--format", format_template(CONTAINER_FIELDS)])
        return parse_listing(stdout, parse_container_row)

    async def list_pod_containers(self, pod: str) -> List[PodContainerRecord]:
        stdout = await self.run([
            "ps", "--filter", f"pod={pod}", "--format", format_template(POD_CONTAINER_FIELDS),
        ])
        return parse_listing(stdout, parse_pod_container_row)

    async def list_pods(self) -> List[PodRecord]:
        stdout = await self.run(["pod", "ls", "--format", format_template(POD_FIELDS)])
        return parse_listing(stdout, parse_pod_row)

    async def list_images(self) -> List[ImageRecord]:
        stdout = await self.run(["image", "ls", "--format", format_template(IMAGE_FIELDS)])
        return parse_listing(stdout, parse_image_row)

    async def list_used_image_ids(self) -> Set[str]:
        stdout = await self.run(["container", "ls", "-a", "--format", "{{.ImageID}}"])
        return {line.strip() for line in split_rows(stdout)}

    async def list_volumes(self) -> List[VolumeRecord]:
        stdout = await self.run(["volume", "ls", "--format", format_template(VOLUME_FIELDS)])
        return parse_listing(stdout, parse_volume_row)

    async def list_networks(self) -> List[NetworkRecord]:
        stdout = await self.run(["network", "ls", "--format", format_template(NETWORK_FIELDS)])
        return parse_listing(stdout, parse_network_row)

    async def system_df(self) -> str:
        return await self.run(["system", "df"])

    async def container_logs(self, container_id: str) -> Tuple[str, str]:
        return await self.run_with_stderr(["logs", extract_container_id(container_id)])

    # --- CONTAINER ACTIONS ---

    async def start_container(self, container_id: str) -> None:
        await self.run(["container", "start", extract_container_id(container_id)])

    async def stop_container(self, container_id: str) -> None:
        await self.run(["container", "stop", extract_container_id(container_id)])

    async def restart_container(self, container_id: str) -> None:
        await self.run(["container", "restart", extract_container_id(container_id)])

    async def remove_container(self, container_id: str) -> None:
        await self.run(["container", "rm", "-f", extract_container_id(container_id)])

    def exec_shell_command(self, container_id: str, shell: str = "/bin/sh") -> List[str]:
        """Interactive shell command line; run by the UI with the terminal attached."""
        return self.podman_command() + ["exec", "-it", extract_container_id(container_id), shell]

    def create_container_args(
        self,
        image: str,
        name: Optional[str] = None,
        ports: Sequence[str] = (),
        volumes: Sequence[str] = (),
        network: Optional[str] = None,
        env: Sequence[str] = (),
        cpus: Optional[str] = None,
        memory: Optional[str] = None,
        mounts: Sequence[str] = (),
    ) -> List[str]:
        args = ["run", "-d"]
        if name:
            args += ["--name", name]
        for port in ports:
            args += ["-p", port]
        for volume in volumes:
            args += ["-v", volume]
        if network:
            args += ["--network", network]
        for var in env:
            if var.strip():
                args += ["-e", var.strip()]
        if cpus:
            args.append(f"--cpus={cpus}")
        if memory:
            args += ["-m", memory]
        for mount in mounts:
            args += ["--mount", mount]
        args.append(image)
        return args

    async def create_container(self, image: str, **options: Any) -> str:
        stdout = await self.run(self.create_container_args(image, **options))
        return stdout.strip()[:12]

    # --- POD ACTIONS ---

    def create_pod_args(
        self,
        name: Optional[str] = None,
        hostname: Optional[str] = None,
        add_hosts: Optional[str] = None,
        cpu_shares: Optional[str] = None,
    ) -> List[str]:
        args = ["pod", "create"]
        if name:
            args += ["--name", name]
        if hostname:
            args += ["--hostname", hostname]
        if add_hosts:
            for host in add_hosts.split(";"):
                if host.strip():
                    args += ["--add-host", host.strip()]
        if cpu_shares:
            args += ["--cpu-shares", cpu_shares]
        return args

    async def create_pod(self, **options: Any) -> str:
        stdout = await self.run(self.create_pod_args(**options))
        return stdout.strip()[:12]

    def pod_command_args(self, command: str, pod_id: str, force: bool = False) -> List[str]:
        args = ["pod", command]
        if force:
            args.append("-f")
        args.append(pod_id)
        return args

    async def pod_command(self, command: str, pod_id: str, force: bool = False) -> None:
        await self.run(self.pod_command_args(command, pod_id, force))

    # --- IMAGES, VOLUMES, NETWORKS ---

    async def remove_image(self, image_id: str) -> None:
        await self.run(["image", "rm", "-f", image_id])

    def build_image_args(self, tag: str, dockerfile: str) -> List[str]:
        return ["build", "-t", tag, "-f", dockerfile, os.path.dirname(os.path.abspath(dockerfile))]

    async def build_image(self, tag: str, dockerfile: str) -> Tuple[str, str]:
        return await self.run_with_stderr(self.build_image_args(tag, dockerfile))

    async def create_volume(self, name: str) -> None:
        await self.run(["volume", "create", name])

    async def remove_volume(self, name: str) -> None:
        await self.run(["volume", "rm", "-f", name])

    async def create_network(self, name: str) -> None:
        await self.run(["network", "create", name])

    async def remove_network(self, name: str) -> None:
        await self.run(["network", "rm", "-f", name])

    async def prune(self, kind: str) -> Tuple[str, str]:
        args, _ = PRUNE_COMMANDS[kind]
        return await self.run_with_stderr(args)

    # --- MACHINE ---

    async def machine_running(self) -> bool:
        name = self.config.get_machine_name()
        try:
            stdout = await self.run(["machine", "list", "--format", "json"])
            machines = json.loads(stdout or "[]")
        except (EngineError, ValueError) as e:
            logger.error(f"Error checking Podman machine status: {e}")
            return False
        machine = next((m for m in machines if m.get("Name") == name), None)
        return bool(machine and machine.get("Running"))

    async def start_machine(self) -> None:
        await self.run(["machine", "start", self.config.get_machine_name()])

    async def stop_machine(self) -> None:
        await self.run(["machine", "stop", self.config.get_machine_name()])

    # --- COMPOSE ---

    def build_compose_command(self, compose_file: str, project_name: str, args: Sequence[str]) -> List[str]:
        podman_path = self.config.get_podman_path()
        compose_path = self.config.get_compose_path()
        style = self.config.get_compose_command_style()
        tail = ["-f", compose_file, "-p", project_name, *args]

        # A custom compose executable is used as-is
        if compose_path and compose_path != DEFAULT_COMPOSE_PATH:
            return shlex.split(compose_path) + tail

        is_remote = "--remote" in podman_path
        base = shlex.split(podman_path.replace("--remote", "").strip()) or ["podman"]
        if style == "podman-space-compose":
            cmd = base + (["--remote"] if is_remote else []) + ["compose"]
        else:
            cmd = base[:-1] + [base[-1] + "-compose"] + (["--remote"] if is_remote else [])
        return cmd + tail

    async def compose(self, compose_file: str, project_name: str, args: Sequence[str]) -> Tuple[str, str]:
        cmd = self.build_compose_command(compose_file, project_name, args)
        return await self._exec(cmd, cwd=os.path.dirname(compose_file) or None)
