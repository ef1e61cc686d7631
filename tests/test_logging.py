import logging

import app.core.logging as app_logging
from app.core.logging import setup_logging


class TestSetupLogging:
    def test_quiets_chatty_libraries(self):
        setup_logging()
        for name in ("httpx", "httpcore", "groq", "langchain"):
            assert logging.getLogger(name).level == logging.WARNING

    def test_modules_log_under_their_own_names(self):
        assert not hasattr(app_logging, "logger")
