from __future__ import annotations

import json
import logging

from common.logger import JsonFormatter


def test_json_formatter_includes_domain_extras() -> None:
    record = logging.LogRecord(
        name="story_service.app.services.credit_ledger",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="credits refunded amount=%s",
        args=(1,),
        exc_info=None,
    )
    record.user_code = "user-001"
    record.operation = "story.create"
    record.unrelated = "ignored"

    data = json.loads(JsonFormatter().format(record))

    assert data["level"] == "INFO"
    assert data["message"] == "credits refunded amount=1"
    assert data["user_code"] == "user-001"
    assert data["operation"] == "story.create"
    assert "unrelated" not in data
