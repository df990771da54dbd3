# SPDX-License-Identifier: LGPL-3.0-or-later
from __future__ import annotations

import json
import logging

import pytest

from hypergen2.core.logger import EmojiFormatter, JsonFormatter, Log, LogStyle
from hypergen2.core.logging_utils import log_step


def _record(msg="hello", level=logging.INFO, **extra):
    rec = logging.LogRecord("hypergen2", level, __file__, 1, msg, None, None)
    for k, v in extra.items():
        setattr(rec, k, v)
    return rec


@pytest.mark.unit
class TestFormatters:
    def test_emoji_formatter_appends_context(self):
        fmt = EmojiFormatter(LogStyle(color=False))
        line = fmt.format(_record("Backing up", ctx={"vm": "Web01"}))

        assert "Backing up" in line
        assert line.endswith("vm=Web01")

    def test_json_formatter(self):
        fmt = JsonFormatter()
        obj = json.loads(fmt.format(_record("done", logging.WARNING, ctx={"vm": "Web01", "stage": 3})))

        assert obj["level"] == "WARNING"
        assert obj["msg"] == "done"
        assert obj["ctx"] == {"vm": "Web01", "stage": "3"}

    @pytest.mark.parametrize("v,q,level", [(0, 0, logging.INFO), (2, 0, logging.DEBUG), (0, 1, logging.WARNING), (3, 2, logging.ERROR)])
    def test_level_from_flags(self, v, q, level):
        assert Log._level_from_flags(v, q) == level


@pytest.mark.unit
class TestLogFacade:
    def test_bound_context_reaches_records(self, caplog):
        log = Log.bind(logging.getLogger("h2test.logger"), vm="Web01")
        with caplog.at_level(logging.INFO, logger="h2test.logger"):
            Log.ok(log, "converted")
            log.bind(stage="start").info("started")

        assert caplog.records[0].ctx == {"vm": "Web01"}
        assert caplog.records[1].ctx == {"vm": "Web01", "stage": "start"}

    def test_setup_writes_json_log_file(self, tmp_path):
        path = tmp_path / "logs" / "run.log"
        logger = Log.setup(verbose=1, log_file=str(path), json_logs=True, logger_name="h2test.setup")
        logger.info("inventory written")
        for h in logger.handlers:
            h.flush()

        lines = [json.loads(x) for x in path.read_text(encoding="utf-8").splitlines()]
        assert any(x["msg"] == "inventory written" for x in lines)
        assert logger.propagate is False


@pytest.mark.unit
class TestLogStep:
    def test_reraises_and_logs_failure(self, caplog):
        log = logging.getLogger("h2test.step")
        with caplog.at_level(logging.INFO, logger="h2test.step"):
            with pytest.raises(RuntimeError):
                with log_step(log, "Backing up disks"):
                    raise RuntimeError("copy failed")

        assert "Backing up disks ..." in caplog.records[0].getMessage()
        assert caplog.records[-1].levelno == logging.ERROR
        assert "copy failed" in caplog.records[-1].getMessage()
