import json
import logging

from campos.obs import logging as obs_logging


def _format(**extra) -> dict:
    record = logging.LogRecord("campos.test", logging.INFO, __file__, 1, "event", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return json.loads(obs_logging.JSONLogFormatter().format(record))


def test_location_and_credentials_are_redacted():
    payload = _format(lat=40.1, lon=-3.2, accuracy_m=12.0, latency_ms=3.5, token="abc", user_position="x")
    assert payload["lat"] == "[redacted]"
    assert payload["lon"] == "[redacted]"
    assert payload["token"] == "[redacted]"
    assert payload["user_position"] == "[redacted]"
    assert payload["latency_ms"] == 3.5
    assert payload["accuracy_m"] == 12.0


def test_nested_values_are_sanitised():
    payload = _format(region={"latitude": 1.0, "id": "p1"}, ids=[str(n) for n in range(15)])
    assert payload["region"] == {"latitude": "[redacted]", "id": "p1"}
    assert len(payload["ids"]) == 11


def test_bound_context_is_included():
    tokens = obs_logging.bind_context(request_id="req-1", user_id="u1", device_sid="sid-1")
    try:
        payload = _format()
    finally:
        obs_logging.reset_context(tokens)
    assert payload["request_id"] == "req-1"
    assert payload["user_id"] == "u1"
    assert payload["sid"] == "sid-1"
    assert obs_logging.current_request_id() is None
