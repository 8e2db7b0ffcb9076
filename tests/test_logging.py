"""Logging configuration tests — credentials never reach the sink."""

import json

import structlog

from lonepengu.logging import _redact_credentials, configure_logging


def test_token_fields_are_masked():
    event = _redact_credentials(
        None,
        "info",
        {
            "event": "auth.debug",
            "access_token": "eyJhbGciOiJIUzI1NiJ9.payload.sig",
            "Authorization": "Bearer abc",
            "user_id": "u-1",
        },
    )
    assert event["access_token"] == "eyJh***"
    assert event["Authorization"] == "Bear***"
    assert event["user_id"] == "u-1"


def test_short_secrets_are_fully_masked():
    event = _redact_credentials(None, "info", {"event": "x", "jwt_secret": "short"})
    assert event["jwt_secret"] == "***"


def test_json_output_carries_context_and_redacts(capsys):
    configure_logging("INFO", json_output=True)
    structlog.contextvars.bind_contextvars(request_id="req-1")
    try:
        structlog.get_logger().info("auth.login", refresh_token="0123456789abcdef")
    finally:
        structlog.contextvars.clear_contextvars()

    line = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert line["event"] == "auth.login"
    assert line["request_id"] == "req-1"
    assert line["level"] == "info"
    assert line["refresh_token"] == "0123***"


def test_level_filtering(capsys):
    configure_logging("WARNING", json_output=True)
    structlog.get_logger().info("quiet")
    structlog.get_logger().warning("loud")

    out = capsys.readouterr().out
    assert "quiet" not in out
    assert "loud" in out
