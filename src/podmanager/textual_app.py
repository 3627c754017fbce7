"""Textual-based tree UI for podmanager."""

from __future__ import annotations

import shutil
import subprocess
from typing import Any, Optional

from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Vertical, VerticalScroll
from textual.screen import ModalScreen
from textual.widgets import Footer, Header, Input, OptionList, Static, Tree
from textual.widgets.option_list import Option
from textual.widgets.tree import TreeNode
from rich.markup import escape as rich_escape

from .actions import ActionHandler
from .backend import EngineError, PodmanBackend
from .compose_paths import ComposePathStore
from .config import config_manager
from .model import (
    COMPOSE_CONTAINER, COMPOSE_GROUP, CONTAINER, IMAGE, IMAGE_TAG, NETWORK, POD,
    VOLUME, PodmanItem,
)
from .provider import PodmanTreeDataProvider
from .status import Notifier, StatusReporter, strip_format_flags

# First available tool wins
CLIPBOARD_COMMANDS = (
    ("pbcopy", ["pbcopy"]),
    ("wl-copy", ["wl-copy"]),
    ("xclip", ["xclip", "-selection", "clipboard"]),
    ("xsel", ["xsel", "--clipboard", "--input"]),
)

# Option value for "skip this step" in choice dialogs
NO_CHOICE = "__none__"

DIALOG_CSS = """
#dialog {
  width: 72;
  height: auto;
  max-height: 80%;
  border: round $accent;
  background: $surface;
  padding: 1 2;
}

#dialog .title {
  text-style: bold;
  margin-bottom: 1;
}

#dialog .hint {
  color: $text-muted;
  margin-top: 1;
}
"""


class ConfirmScreen(ModalScreen[bool]):
    """Yes/no question; Enter or y answers yes."""

    DEFAULT_CSS = "ConfirmScreen { align: center middle; }" + DIALOG_CSS
    BINDINGS = [
        Binding("enter,y", "answer(True)", "Yes", show=False),
        Binding("escape,n", "answer(False)", "No", show=False),
    ]

    def __init__(self, question: str) -> None:
        super().__init__()
        self.question = question

    def compose(self) -> ComposeResult:
        with Vertical(id="dialog"):
            yield Static("Please confirm", classes="title")
            yield Static(self.question, markup=False)
            yield Static("Enter/y: yes   Esc/n: no", classes="hint")

    def action_answer(self, answer: bool) -> None:
        self.dismiss(answer)


class InputScreen(ModalScreen[Optional[str]]):
    """Single line prompt; an empty answer or Esc returns None."""

    DEFAULT_CSS = "InputScreen { align: center middle; }" + DIALOG_CSS
    BINDINGS = [Binding("escape", "cancel", "Cancel", show=False)]

    def __init__(self, prompt: str, placeholder: str = "") -> None:
        super().__init__()
        self.prompt = prompt
        self.placeholder = placeholder

    def compose(self) -> ComposeResult:
        with Vertical(id="dialog"):
            yield Static(self.prompt, classes="title", markup=False)
            yield Input(placeholder=self.placeholder, id="answer")
            yield Static("Enter: accept   Esc: cancel", classes="hint")

    def on_mount(self) -> None:
        self.query_one("#answer", Input).focus()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self.dismiss(event.value.strip() or None)

    def action_cancel(self) -> None:
        self.dismiss(None)


class ChoiceScreen(ModalScreen[Optional[str]]):
    """Pick one of ``(label, value)`` options; returns the value."""

    DEFAULT_CSS = "ChoiceScreen { align: center middle; }" + DIALOG_CSS
    BINDINGS = [Binding("escape", "cancel", "Cancel", show=False)]

    def __init__(self, title: str, options: list[tuple[str, str]]) -> None:
        super().__init__()
        self.choice_title = title
        self.options = options

    def compose(self) -> ComposeResult:
        with Vertical(id="dialog"):
            yield Static(self.choice_title, classes="title", markup=False)
            yield OptionList(*[Option(rich_escape(label), id=value) for label, value in self.options])
            yield Static("Enter: select   Esc: cancel", classes="hint")

    def on_mount(self) -> None:
        self.query_one(OptionList).focus()

    def on_option_list_option_selected(self, event: OptionList.OptionSelected) -> None:
        self.dismiss(event.option.id)

    def action_cancel(self) -> None:
        self.dismiss(None)


class TextScreen(ModalScreen[None]):
    """Scrollable read-only text, used for container logs."""

    DEFAULT_CSS = """
    TextScreen { align: center middle; }
    #viewer { width: 95%; height: 90%; border: round $accent; background: $surface; }
    #viewer-body { height: 1fr; padding: 0 1; }
    """
    BINDINGS = [Binding("escape,q", "close", "Close")]

    def __init__(self, title: str, text: str) -> None:
        super().__init__()
        self.viewer_title = title
        self.text = text

    def compose(self) -> ComposeResult:
        with Vertical(id="viewer"):
            yield Static(self.viewer_title, markup=False)
            with VerticalScroll(id="viewer-body"):
                yield Static(self.text, markup=False)

    def action_close(self) -> None:
        self.dismiss(None)


def copy_to_clipboard(text: str) -> bool:
    """Pipe ``text`` into the first clipboard tool found on PATH."""
    if not text.strip():
        return False
    for executable, command in CLIPBOARD_COMMANDS:
        if shutil.which(executable) is None:
            continue
        try:
            subprocess.run(command, input=text, text=True, check=True, timeout=5)
            return True
        except (OSError, subprocess.SubprocessError):
            continue
    return False


class AppStatusReporter(StatusReporter):
    """Status line at the bottom of the app; completion messages fade after 3s."""

    def __init__(self, app: "PodmanTextualApp") -> None:
        self.app = app
        self._timer = None

    def show_status(self, text: str, is_loading: bool = True) -> None:
        prefix = "… " if is_loading else "✓ "
        self.app.set_status(prefix + text)
        if self._timer is not None:
            self._timer.stop()
            self._timer = None
        if not is_loading:
            self._timer = self.app.set_timer(3.0, self.hide_status)

    def hide_status(self) -> None:
        self.app.set_status("")


class AppNotifier(Notifier):
    def __init__(self, app: "PodmanTextualApp") -> None:
        self.app = app
        self.last_command: Optional[str] = None

    def info(self, message: str) -> None:
        self.app.notify(rich_escape(message))

    def warning(self, message: str) -> None:
        self.app.notify(rich_escape(message), severity="warning")

    def error(self, message: str, command: Optional[str] = None) -> None:
        if command:
            self.last_command = strip_format_flags(command)
            key = config_manager.get_key_binding("copy_command")
            message = f"{message}\n({key} copies the command)"
        self.app.notify(rich_escape(message), severity="error", timeout=8)


class PodmanTextualApp(App[None]):
    TITLE = "podmanager"
    SUB_TITLE = "Podman resources"

    CSS = """
    #tree { height: 1fr; padding: 0 1; }
    #status { height: 1; padding: 0 1; background: $boost; color: $text-muted; }
    """

    BINDINGS = [
        Binding(config_manager.get_key_binding("quit") or "q", "quit", "Quit"),
        Binding("m", "open_menu", "Tools"),
    ]

    def __init__(
        self,
        backend: Optional[PodmanBackend] = None,
        path_store: Optional[ComposePathStore] = None,
    ) -> None:
        super().__init__()
        self.reporter = AppStatusReporter(self)
        self.notifier = AppNotifier(self)
        self.backend = backend or PodmanBackend(config_manager)
        self.path_store = path_store or ComposePathStore()
        self.provider = PodmanTreeDataProvider(
            backend=self.backend,
            notifier=self.notifier,
            path_store=self.path_store,
            config=config_manager,
        )
        self.actions = ActionHandler(
            self.backend, self.provider, self.reporter, self.notifier, self.path_store
        )
        self._unsubscribe = self.provider.on_did_change.subscribe(self._on_tree_changed)

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield Tree("Podman", id="tree")
        yield Static("", id="status", markup=False)
        yield Footer()

    async def on_mount(self) -> None:
        tree = self.query_one("#tree", Tree)
        tree.show_root = False
        await self._populate_root(set())
        tree.focus()
        self.run_worker(self.provider.refresh_overview(), group="overview")

    async def on_unmount(self) -> None:
        self.provider.refresher.cancel()
        self._unsubscribe()

    def set_status(self, text: str) -> None:
        self.query_one("#status", Static).update(text)

    # --- TREE ---

    def _label(self, item: PodmanItem) -> str:
        return rich_escape(f"{item.icon} {item.label}".strip())

    def _add_node(self, parent: TreeNode, item: PodmanItem) -> TreeNode:
        if item.collapsible:
            return parent.add(self._label(item), data=item)
        return parent.add_leaf(self._label(item), data=item)

    async def _populate_root(self, expanded: set[str]) -> None:
        tree = self.query_one("#tree", Tree)
        tree.clear()
        for item in self.provider.get_root_items():
            node = self._add_node(tree.root, item)
            if item.cache_key in expanded:
                await self._expand(node, expanded)
        tree.root.expand()

    async def _expand(self, node: TreeNode, expanded: set[str]) -> None:
        await self._load_children(node)
        node.expand()
        for child in node.children:
            item = child.data
            if isinstance(item, PodmanItem) and item.collapsible and item.cache_key in expanded:
                await self._expand(child, expanded)

    async def _load_children(self, node: TreeNode) -> None:
        item = node.data
        if not isinstance(item, PodmanItem):
            return
        children = await self.provider.get_children(item)
        node.remove_children()
        for child in children:
            self._add_node(node, child)

    def _expanded_keys(self) -> set[str]:
        keys: set[str] = set()
        stack = list(self.query_one("#tree", Tree).root.children)
        while stack:
            node = stack.pop()
            if node.is_expanded and isinstance(node.data, PodmanItem):
                keys.add(node.data.cache_key)
                stack.extend(node.children)
        return keys

    def _on_tree_changed(self) -> None:
        # Node ids are deterministic, so expansion state survives the rebuild
        expanded = self._expanded_keys()
        self.run_worker(self._populate_root(expanded), group="tree", exclusive=True)

    async def on_tree_node_expanded(self, event: Tree.NodeExpanded) -> None:
        # Already populated by a rebuild; children stay until the next refresh
        if not event.node.children:
            await self._load_children(event.node)

    def on_tree_node_highlighted(self, event: Tree.NodeHighlighted) -> None:
        item = event.node.data
        if isinstance(item, PodmanItem) and item.tooltip:
            self.set_status(item.tooltip.replace("\n", "  "))

    def _selected_item(self) -> Optional[PodmanItem]:
        node = self.query_one("#tree", Tree).cursor_node
        if node is None or not isinstance(node.data, PodmanItem):
            return None
        return node.data

    # --- PROMPTS ---

    async def _confirm(self, question: str) -> bool:
        result = await self.push_screen_wait(ConfirmScreen(question))
        return bool(result)

    async def _input(self, prompt: str, placeholder: str = "") -> Optional[str]:
        return await self.push_screen_wait(InputScreen(prompt, placeholder))

    async def _choose(self, title: str, options: list[tuple[str, str]]) -> Optional[str]:
        return await self.push_screen_wait(ChoiceScreen(title, options))

    async def _choose_compose_project(self, candidates: list[tuple[str, str]]) -> Optional[str]:
        options = [(f"{name}  {path}", name) for name, path in candidates]
        return await self._choose("Select a compose project", options)

    # --- ACTIONS ---

    def action_open_menu(self) -> None:
        self.run_worker(self._tools_flow(), group="user-action", exclusive=True)

    async def _tools_flow(self) -> None:
        choice = await self._choose("Podman tools", [
            ("Create Container", "create-container"),
            ("Create Pod", "create-pod"),
            ("Create Volume", "create-volume"),
            ("Create Network", "create-network"),
            ("Build Image", "build-image"),
            ("Compose Up", "compose-up"),
            ("Prune Dangling Images", "dangling-images"),
            ("Prune All Unused Images", "unused-images"),
            ("Prune Builder Cache", "builder-cache"),
            ("Start Podman Machine", "start-machine"),
            ("Stop Podman Machine", "stop-machine"),
            ("Reset Podman Path to Default", "reset-path"),
        ])
        if choice is None:
            return
        if choice == "create-container":
            await self._create_container_flow()
        elif choice == "create-pod":
            name = await self._input("Pod name (optional)")
            hostname = await self._input("Hostname (optional)")
            add_hosts = await self._input("Additional hosts, semicolon separated (optional)")
            cpu_shares = await self._input("CPU shares (optional)", "1024")
            await self.actions.create_pod(
                name=name, hostname=hostname, add_hosts=add_hosts, cpu_shares=cpu_shares
            )
        elif choice in ("create-volume", "create-network"):
            kind = choice.split("-")[1]
            name = await self._input(f"Name for the new {kind}", f"my-{kind}")
            if name:
                if kind == "volume":
                    await self.actions.create_volume(name)
                else:
                    await self.actions.create_network(name)
        elif choice == "build-image":
            dockerfile = await self._input("Path to Dockerfile", "./Dockerfile")
            tag = await self._input("Image name", "e.g. myapp:latest") if dockerfile else None
            if dockerfile and tag:
                await self.actions.build_image(dockerfile, tag)
        elif choice == "compose-up":
            path = await self._input("Compose file (empty to use a stored one)", "./docker-compose.yml")
            await self.actions.compose(
                "up", compose_file=path, choose=self._choose_compose_project
            )
        elif choice in ("dangling-images", "unused-images", "builder-cache"):
            if await self._confirm(f"Prune {choice.replace('-', ' ')}?"):
                await self.actions.prune(choice)
        elif choice == "start-machine":
            await self.actions.start_machine()
        elif choice == "stop-machine":
            await self.actions.stop_machine()
        elif choice == "reset-path":
            config_manager.reset_podman_path()
            self.notify("Podman path has been reset to default.")

    async def _create_container_flow(self) -> None:
        mode = await self._choose("Container creation mode", [("Simple", "simple"), ("Advanced", "advanced")])
        if mode is None:
            return
        try:
            images = await self.backend.list_images()
        except EngineError as e:
            self.notifier.error(f"Failed to list images: {e}", e.command_text)
            return
        refs = list(dict.fromkeys(
            f"{i.repository}:{i.tag}" for i in images if "<none>" not in (i.repository, i.tag)
        ))
        if not refs:
            self.notifier.info("No Podman images found. Please pull or build an image first.")
            return
        image = await self._choose("Select an image", [(ref, ref) for ref in refs])
        if not image:
            return

        options: dict[str, Any] = {"name": await self._input("Container name (optional)")}
        if mode == "simple":
            port = await self._input("Port mapping (optional)", "e.g. 8080:80")
            options["ports"] = [port] if port else []
        else:
            options.update(await self._advanced_container_options())
        await self.actions.create_container(image, **options)

    async def _advanced_container_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {}
        try:
            volumes = await self.backend.list_volumes()
            networks = await self.backend.list_networks()
        except EngineError as e:
            self.notifier.warning(f"Volumes and networks unavailable: {e}")
            volumes, networks = [], []

        if volumes:
            volume = await self._choose(
                "Volume to mount (optional)",
                [("No volume", NO_CHOICE)] + [(v.name, v.name) for v in volumes if v.name],
            )
            if volume and volume != NO_CHOICE:
                target = await self._input(f"Path inside the container for '{volume}'", "/data")
                if target:
                    options["volumes"] = [f"{volume}:{target}"]

        # "podman" is the default network; only ask when there is something else
        if len(networks) > 1:
            network = await self._choose(
                "Network (optional)",
                [("Default", NO_CHOICE)] + [(n.name, n.name) for n in networks if n.name and n.name != "podman"],
            )
            if network and network != NO_CHOICE:
                options["network"] = network

        env = await self._input("Environment variables (optional)", "VAR1=value1,VAR2=value2")
        options["env"] = env.split(",") if env else []
        options["cpus"] = await self._input("CPU limit (optional)", "e.g. 0.5")
        options["memory"] = await self._input("Memory limit (optional)", "e.g. 512m")
        mounts = await self._input(
            "Advanced mounts, semicolon separated (optional)",
            "type=bind,src=/local/path,target=/container/path",
        )
        options["mounts"] = [m.strip() for m in mounts.split(";") if m.strip()] if mounts else []
        return options

    async def _item_action(self, action: str) -> None:
        item = self._selected_item()
        if item is None:
            return
        ctx = item.context_value
        is_container = ctx in (CONTAINER, COMPOSE_CONTAINER)

        if action in ("start", "stop", "restart"):
            if is_container:
                await getattr(self.actions, f"{action}_container")(item)
            elif ctx == POD:
                await self.actions.pod_command(item, action)
            elif ctx == COMPOSE_GROUP:
                await self.actions.compose(action, item=item)
        elif action == "delete":
            if ctx not in (CONTAINER, COMPOSE_CONTAINER, POD, IMAGE, IMAGE_TAG, VOLUME, NETWORK):
                return
            name = item.resource_name or item.id
            if not await self._confirm(f"Are you sure you want to delete {ctx} {name}?"):
                return
            if is_container:
                await self.actions.delete_container(item)
            elif ctx == POD:
                await self.actions.pod_command(item, "rm")
            elif ctx in (IMAGE, IMAGE_TAG):
                await self.actions.delete_image(item)
            elif ctx == VOLUME:
                await self.actions.delete_volume(item)
            elif ctx == NETWORK:
                await self.actions.delete_network(item)
        elif action == "logs" and is_container:
            text = await self.actions.view_logs(item)
            if text is not None:
                await self.push_screen(TextScreen(f"Podman Logs: {item.label}", text))
        elif action == "shell" and is_container:
            command = self.actions.shell_command(item)
            self.notifier.last_command = command
            if copy_to_clipboard(command):
                self.notify("Shell command copied to clipboard")
            else:
                self.notify(rich_escape(command), title="Run in a terminal")
        elif action in ("compose_up", "compose_down") and ctx == COMPOSE_GROUP:
            await self.actions.compose(action.split("_")[1], item=item)

    async def on_key(self, event: events.Key) -> None:
        if len(self.screen_stack) > 1:
            return

        if _matches(event, "refresh"):
            self.provider.refresh()
            event.stop()
            return
        if _matches(event, "refresh_overview"):
            self.run_worker(self.provider.refresh_overview(), group="overview")
            event.stop()
            return
        if _matches(event, "copy_command"):
            command = self.notifier.last_command or ""
            if copy_to_clipboard(command):
                self.notify("Command copied to clipboard")
            elif command:
                self.notify(rich_escape(command), title="Copy failed, command was")
            event.stop()
            return

        for action in ("start", "stop", "restart", "delete", "logs", "shell", "compose_up", "compose_down"):
            if _matches(event, action):
                self.run_worker(self._item_action(action), group="user-action", exclusive=True)
                event.stop()
                return


def _matches(event: events.Key, action: str) -> bool:
    # Bindings may name a key ("f5") or a typed character ("D")
    if config_manager.is_key_binding(event.key, action):
        return True
    return bool(event.character) and config_manager.is_key_binding(event.character, action)


def run() -> Any:
    app = PodmanTextualApp()
    return app.run()
