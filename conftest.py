# Root conftest: make sure pytest-asyncio is registered before collection
import pytest_asyncio.plugin


def pytest_configure(config):
    # The entry point registers the module under "asyncio"; check the module itself
    if not config.pluginmanager.is_registered(pytest_asyncio.plugin):
        config.pluginmanager.register(pytest_asyncio.plugin, name="pytest_asyncio")
