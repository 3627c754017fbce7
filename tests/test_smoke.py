import asyncio
import logging


def test_imports():
    import podmanager.actions
    import podmanager.backend
    import podmanager.provider
    import podmanager.textual_app
    assert podmanager.__version__


def test_setup_logging_uses_custom_path(tmp_path, mocker):
    from podmanager import main

    log_file = tmp_path / "custom.log"
    mocker.patch.object(main.config_manager, "get_custom_log_path", return_value=str(log_file))
    basic_config = mocker.patch("podmanager.main.logging.basicConfig")

    assert main.setup_logging() == str(log_file)
    assert basic_config.call_args[1]["filename"] == str(log_file)
    assert basic_config.call_args[1]["level"] == logging.INFO


def test_main_runs_app(mocker):
    from podmanager import main

    mocker.patch("podmanager.main.setup_logging", return_value="/tmp/podmanager.log")
    run = mocker.patch("podmanager.textual_app.run")
    main.main()
    run.assert_called_once()


def test_app_shows_categories(backend, path_store):
    from podmanager.textual_app import PodmanTextualApp

    async def scenario():
        app = PodmanTextualApp(backend=backend, path_store=path_store)
        async with app.run_test() as pilot:
            await pilot.pause()
            tree = app.query_one("#tree")
            return [str(node.label) for node in tree.root.children]

    labels = asyncio.run(scenario())
    assert labels == ["Containers", "Pods", "Images", "Volumes", "Networks", "Overview"]
