pytest_plugins = ["batchcommit.testing.conftest"]
