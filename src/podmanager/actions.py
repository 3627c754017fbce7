"""
Action handlers for podmanager.

Each handler runs one engine command under the shared status indicator,
reports the outcome through the notifier and asks the tree to refresh.
Confirmation prompts are the UI's job; handlers assume the user already
agreed. Failures are reported with the failing command and never raised.
"""

import logging
import os
import shlex
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from .backend import PRUNE_COMMANDS, EngineError, PodmanBackend, extract_container_id
from .compose_paths import ComposePathStore
from .model import COMPOSE_GROUP, PodmanItem
from .provider import PodmanTreeDataProvider
from .status import Notifier, StatusReporter, with_status

logger = logging.getLogger(__name__)

COMPOSE_COMMANDS: Dict[str, Tuple[List[str], str]] = {
    "up": (["up", "-d"], "Running compose up"),
    "down": (["down"], "Running compose down"),
    "start": (["start"], "Starting compose services"),
    "stop": (["stop"], "Stopping compose services"),
    "restart": (["restart"], "Restarting compose services"),
}

Chooser = Callable[[List[Tuple[str, str]]], Awaitable[Optional[str]]]


class ActionHandler:
    def __init__(
        self,
        backend: PodmanBackend,
        provider: PodmanTreeDataProvider,
        reporter: StatusReporter,
        notifier: Notifier,
        path_store: Optional[ComposePathStore] = None,
    ):
        self.backend = backend
        self.provider = provider
        self.reporter = reporter
        self.notifier = notifier
        self.path_store = path_store

    async def _run(
        self,
        operation: str,
        task: Callable[[], Awaitable],
        command: str,
        success: Optional[str] = None,
        refresh: bool = True,
    ) -> bool:
        try:
            await with_status(self.reporter, operation, task)
        except Exception as e:
            logger.error(f"{operation} failed: {e}", exc_info=not isinstance(e, EngineError))
            self.notifier.error(f"{operation} failed: {e}", command)
            return False
        if success:
            self.notifier.info(success)
        if refresh:
            self.provider.refresh()
        return True

    # --- CONTAINERS ---

    async def start_container(self, item: PodmanItem) -> bool:
        cid = extract_container_id(item.id or "")
        return await self._run(
            f"Starting container {cid}",
            lambda: self.backend.start_container(cid),
            self.backend.command_text(["container", "start", cid]),
            f"Container {cid} started successfully",
        )

    async def stop_container(self, item: PodmanItem) -> bool:
        cid = extract_container_id(item.id or "")
        return await self._run(
            f"Stopping container {cid}",
            lambda: self.backend.stop_container(cid),
            self.backend.command_text(["container", "stop", cid]),
            f"Container {cid} stopped successfully",
        )

    async def restart_container(self, item: PodmanItem) -> bool:
        cid = extract_container_id(item.id or "")
        return await self._run(
            f"Restarting container {cid}",
            lambda: self.backend.restart_container(cid),
            self.backend.command_text(["container", "restart", cid]),
            f"Container {cid} restarted successfully",
        )

    async def delete_container(self, item: PodmanItem) -> bool:
        cid = extract_container_id(item.id or "")
        return await self._run(
            f"Deleting container {cid}",
            lambda: self.backend.remove_container(cid),
            self.backend.command_text(["container", "rm", "-f", cid]),
            f"Container {cid} deleted successfully",
        )

    async def create_container(self, image: str, **options) -> bool:
        args = self.backend.create_container_args(image, **options)
        return await self._run(
            f"Creating container from {image}",
            lambda: self.backend.run(args),
            self.backend.command_text(args),
            f"Container created from {image}",
        )

    async def view_logs(self, item: PodmanItem) -> Optional[str]:
        cid = extract_container_id(item.id or "")
        try:
            stdout, stderr = await self.backend.container_logs(cid)
        except Exception as e:
            logger.error(f"Failed to fetch logs for {cid}: {e}")
            self.notifier.error(
                f"Failed to fetch logs for container {item.id}: {e}",
                self.backend.command_text(["logs", cid]),
            )
            return None
        if stderr:
            self.notifier.warning(f"Error fetching logs for {item.label}: {stderr.strip()}")
        return f"--- Logs for container {item.label} ({cid}) ---\n{stdout}{stderr}"

    def shell_command(self, item: PodmanItem, shell: str = "/bin/sh") -> str:
        """Command line that opens an interactive shell in the container."""
        return shlex.join(self.backend.exec_shell_command(item.id or "", shell))

    # --- PODS ---

    async def pod_command(self, item: PodmanItem, command: str) -> bool:
        if not item.id:
            return False
        force = command == "rm"
        args = self.backend.pod_command_args(command, item.id, force)
        return await self._run(
            f"Pod {command} {item.id}",
            lambda: self.backend.pod_command(command, item.id, force),
            self.backend.command_text(args),
            f"Pod {command} command for {item.id} executed successfully.",
        )

    async def create_pod(self, **options) -> bool:
        args = self.backend.create_pod_args(**options)
        return await self._run(
            "Creating pod",
            lambda: self.backend.run(args),
            self.backend.command_text(args),
            "Pod created successfully",
        )

    # --- IMAGES, VOLUMES, NETWORKS ---

    async def delete_image(self, item: PodmanItem) -> bool:
        image_id = item.status if item.context_value == "image-tag" else item.id
        return await self._run(
            f"Deleting image {image_id}",
            lambda: self.backend.remove_image(image_id),
            self.backend.command_text(["image", "rm", "-f", image_id or ""]),
            f"Image {image_id} deleted successfully",
        )

    async def build_image(self, dockerfile: str, tag: str) -> bool:
        args = self.backend.build_image_args(tag, dockerfile)

        async def task():
            _, stderr = await self.backend.build_image(tag, dockerfile)
            if stderr.strip():
                self.notifier.warning(f"Image build completed with warnings: {stderr.strip()}")

        return await self._run(
            f"Building image {tag}", task, self.backend.command_text(args),
            f"Image {tag} built successfully",
        )

    async def delete_volume(self, item: PodmanItem) -> bool:
        if not item.resource_name:
            self.notifier.error(
                "Unable to delete volume: Resource name is missing",
                self.backend.command_text(["volume", "rm", "-f", "<volume-name>"]),
            )
            return False
        name = item.resource_name
        return await self._run(
            f"Deleting volume {name}",
            lambda: self.backend.remove_volume(name),
            self.backend.command_text(["volume", "rm", "-f", name]),
            f"Volume {name} deleted successfully",
        )

    async def delete_network(self, item: PodmanItem) -> bool:
        if not item.resource_name:
            self.notifier.error(
                "Unable to delete network: Resource name is missing",
                self.backend.command_text(["network", "rm", "-f", "<network-name>"]),
            )
            return False
        name = item.resource_name
        return await self._run(
            f"Deleting network {name}",
            lambda: self.backend.remove_network(name),
            self.backend.command_text(["network", "rm", "-f", name]),
            f"Network {name} deleted successfully",
        )

    async def create_volume(self, name: str) -> bool:
        return await self._run(
            f"Creating volume {name}",
            lambda: self.backend.create_volume(name),
            self.backend.command_text(["volume", "create", name]),
            f"Volume '{name}' created successfully",
        )

    async def create_network(self, name: str) -> bool:
        return await self._run(
            f"Creating network {name}",
            lambda: self.backend.create_network(name),
            self.backend.command_text(["network", "create", name]),
            f"Network '{name}' created successfully",
        )

    async def prune(self, kind: str) -> bool:
        args, description = PRUNE_COMMANDS[kind]
        return await self._run(
            description,
            lambda: self.backend.prune(kind),
            self.backend.command_text(args),
            f"Successfully {description.lower()}",
        )

    # --- MACHINE ---

    async def start_machine(self) -> bool:
        name = self.backend.config.get_machine_name()
        return await self._run(
            f"Starting machine {name}",
            self.backend.start_machine,
            self.backend.command_text(["machine", "start", name]),
            f"Podman machine '{name}' started successfully",
            refresh=False,
        )

    async def stop_machine(self) -> bool:
        name = self.backend.config.get_machine_name()
        return await self._run(
            f"Stopping machine {name}",
            self.backend.stop_machine,
            self.backend.command_text(["machine", "stop", name]),
            f"Podman machine '{name}' stopped successfully",
            refresh=False,
        )

    # --- COMPOSE ---

    async def resolve_compose_target(
        self,
        item: Optional[PodmanItem] = None,
        compose_file: Optional[str] = None,
        choose: Optional[Chooser] = None,
    ) -> Tuple[Optional[str], str]:
        """Find (compose file, project name) for a compose command."""
        if compose_file:
            project = os.path.basename(os.path.dirname(os.path.abspath(compose_file)))
            if self.path_store is not None:
                self.path_store.store(project, compose_file)
            return compose_file, project

        if item is not None and item.context_value == COMPOSE_GROUP:
            project = item.compose_project or item.label
            if item.fs_path and os.path.exists(item.fs_path):
                return item.fs_path, project
            stored = self.path_store.get(project) if self.path_store else None
            if stored and os.path.exists(stored):
                return stored, project
            return None, project

        candidates = self.path_store.existing() if self.path_store else {}
        if len(candidates) == 1:
            project, path = next(iter(candidates.items()))
            return path, project
        if len(candidates) > 1 and choose is not None:
            picked = await choose(list(candidates.items()))
            if picked in candidates:
                return candidates[picked], picked
        return None, ""

    async def compose(
        self,
        command: str,
        item: Optional[PodmanItem] = None,
        compose_file: Optional[str] = None,
        choose: Optional[Chooser] = None,
    ) -> bool:
        args, operation = COMPOSE_COMMANDS[command]
        path, project = await self.resolve_compose_target(item, compose_file, choose)
        if not path:
            self.notifier.error(
                "No compose file specified or selected.",
                "Select a compose group whose containers carry compose labels, "
                "or run the command with a compose file path.",
            )
            return False

        cmd_text = shlex.join(self.backend.build_compose_command(path, project, args))

        async def task():
            stdout, stderr = await self.backend.compose(path, project, args)
            if stderr.strip():
                self.notifier.warning(f"Podman Compose command finished with messages: {stderr.strip()}")
            if stdout.strip():
                self.notifier.info(stdout.strip())

        return await self._run(operation, task, cmd_text)
