import json
import logging

from songaday.utils.logging_config import JSONFormatter


def make_record(**extra):
    record = logging.LogRecord("songaday.scheduler", logging.INFO, __file__, 1,
                               "%s: cycle finished", ("listener",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_carries_cycle_extras():
    line = JSONFormatter().format(make_record(user_id="listener", outcome="ok", duration=0.25))
    data = json.loads(line)

    assert data["message"] == "listener: cycle finished"
    assert data["level"] == "INFO"
    assert (data["user_id"], data["outcome"], data["duration"]) == ("listener", "ok", 0.25)


def test_json_formatter_without_extras():
    data = json.loads(JSONFormatter().format(make_record()))
    assert "user_id" not in data
    assert "outcome" not in data
