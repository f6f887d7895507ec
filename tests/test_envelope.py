import pytest

from roomhub.constants import K_BODY, K_ID, K_T, K_TS, K_V, T_LOGIN, WIRE_VERSION
from roomhub.envelope import make_envelope, validate_envelope


def test_validate_accepts_make_envelope() -> None:
    env = make_envelope(T_LOGIN, body={"username": "alice"})
    validate_envelope(env)


def test_validate_allows_omitted_body() -> None:
    env = make_envelope(T_LOGIN)
    assert K_BODY not in env
    validate_envelope(env)


def test_validate_rejects_missing_required_key() -> None:
    env = make_envelope(T_LOGIN)
    env.pop(K_TS)
    with pytest.raises(ValueError):
        validate_envelope(env)


def test_validate_rejects_wrong_version() -> None:
    env = make_envelope(T_LOGIN)
    env[K_V] = WIRE_VERSION + 1
    with pytest.raises(ValueError):
        validate_envelope(env)


def test_validate_rejects_non_integer_keys() -> None:
    env = make_envelope(T_LOGIN)
    env["1"] = env.pop(K_T)
    with pytest.raises(TypeError):
        validate_envelope(env)


def test_validate_allows_unknown_extension_keys() -> None:
    env = make_envelope(T_LOGIN)
    env[64] = {"future": True}
    validate_envelope(env)


def test_validate_rejects_wrong_field_types() -> None:
    env = make_envelope(T_LOGIN)
    env[K_ID] = "not-bytes"
    with pytest.raises(TypeError):
        validate_envelope(env)

    env = make_envelope(T_LOGIN)
    env[K_TS] = "not-int"
    with pytest.raises(TypeError):
        validate_envelope(env)

    env = make_envelope(T_LOGIN)
    env[K_T] = True
    with pytest.raises(TypeError):
        validate_envelope(env)

    env = make_envelope(T_LOGIN)
    env[K_BODY] = ["alice"]
    with pytest.raises(TypeError):
        validate_envelope(env)
