import pytest

from roomhub.codec import decode, encode
from roomhub.constants import T_SEND_MESSAGE
from roomhub.envelope import make_envelope, validate_envelope


def test_codec_round_trip() -> None:
    env = make_envelope(T_SEND_MESSAGE, body={"room": "devs", "text": "hello"})
    data = encode(env)
    decoded = decode(data)
    assert decoded == env
    validate_envelope(decoded)


def test_decode_rejects_truncated_payload() -> None:
    data = encode(make_envelope(T_SEND_MESSAGE, body={"text": "hello"}))
    with pytest.raises(ValueError):
        decode(data[:-3])
