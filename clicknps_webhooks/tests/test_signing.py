import json

from clicknps_webhooks.signing import (
    canonical_json,
    sign_payload,
    signature_header,
    verify_signature,
)

SECRET = "whk_test_secret"


def test_canonical_json_is_key_order_independent():
    a = {"score": 9, "survey_id": "s1", "comment": None}
    b = {"comment": None, "survey_id": "s1", "score": 9}
    assert canonical_json(a) == canonical_json(b)
    assert canonical_json(a) == b'{"comment":null,"score":9,"survey_id":"s1"}'


def test_canonical_json_keeps_unicode():
    body = canonical_json({"comment": "très bien ☕"})
    assert json.loads(body.decode("utf-8"))["comment"] == "très bien ☕"
    assert "très".encode("utf-8") in body


def test_sign_payload_known_vector():
    # RFC 4231 test case 2
    assert sign_payload("Jefe", b"what do ya want for nothing?") == (
        "5bdcc146bf60754e6a042426089575c75a003f089d2739839dec58b964ec3843"
    )


def test_signature_header_has_prefix():
    body = canonical_json({"score": 10})
    header = signature_header(SECRET, body)
    assert header == f"sha256={sign_payload(SECRET, body)}"


def test_verify_signature_round_trip():
    payloads = [
        {"survey_id": "s1", "subject_id": "u1", "score": 0, "comment": None},
        {"survey_id": "s2", "subject_id": "ü", "score": 10, "comment": "line\nbreak \"quoted\""},
        {},
    ]
    for payload in payloads:
        body = canonical_json(payload)
        header = signature_header(SECRET, body)
        assert verify_signature(SECRET, body, header)
        assert verify_signature(SECRET, body, header.split("=", 1)[1])


def test_verify_signature_rejects_tampering():
    body = canonical_json({"score": 9})
    header = signature_header(SECRET, body)
    assert not verify_signature(SECRET, canonical_json({"score": 10}), header)
    assert not verify_signature("other_secret", body, header)
