import logging

import config


class TestConfigureLogging:
    def test_sets_level_once(self):
        root = logging.getLogger()
        old_level = root.level
        try:
            config.configure_logging("DEBUG")
            handlers = list(root.handlers)
            config.configure_logging("DEBUG")

            assert root.level == logging.DEBUG
            assert root.handlers == handlers
        finally:
            root.setLevel(old_level)

    def test_defaults(self):
        assert config.OVERDUE_NOTIFY_DAYS >= 0
        assert config.DB_FILE.name
