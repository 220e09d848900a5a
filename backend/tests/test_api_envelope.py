import json

from app.api.envelope import error_envelope, success_envelope
from app.core.correlation import set_request_id


def test_success_envelope_shape() -> None:
    response = success_envelope({"value": 1}, message="Saved", status_code=201)
    body = json.loads(response.body.decode("utf-8"))
    assert response.status_code == 201
    assert body["success"] is True
    assert body["message"] == "Saved"
    assert body["data"] == {"value": 1}
    assert isinstance(body.get("meta"), dict)


def test_error_envelope_shape() -> None:
    response = error_envelope(code="bad_request", message="Invalid", status_code=400, details={"field": "x"})
    body = json.loads(response.body.decode("utf-8"))
    assert response.status_code == 400
    assert body["success"] is False
    assert body["message"] == "Invalid"
    assert body["error"]["code"] == "bad_request"
    assert body["error"]["details"] == {"field": "x"}


def test_envelope_meta_carries_request_id() -> None:
    set_request_id("req-abc")
    try:
        body = json.loads(success_envelope().body.decode("utf-8"))
    finally:
        set_request_id("")
    assert body["meta"]["request_id"] == "req-abc"
    assert body["meta"]["timestamp"]
