from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

import jwt
import pytest

from jobly.errors import Unauthorized
from jobly.security import (
    Identity,
    JwtSecurityConfig,
    build_request_context,
    decode_token,
    derive_identity,
    issue_token,
    parse_bearer_header,
)

SECRET = "jwt_unit_secret_0123456789abcdefghij"


def _cfg(**overrides) -> JwtSecurityConfig:
    return JwtSecurityConfig(shared_secret=SECRET, **overrides)


def test_config_from_env_reads_jwt_settings(security_cfg):
    assert security_cfg.issuer == "jobly.test"
    assert security_cfg.audience == "jobly.api"
    assert security_cfg.subject_claim == "username"
    assert security_cfg.admin_claim == "isAdmin"
    assert security_cfg.required_claims == ["username"]
    assert security_cfg.ttl_seconds == 0


def test_config_from_env_rejects_non_integer_ttl(monkeypatch):
    monkeypatch.setenv("JWT_TTL_SECONDS", "soon")
    with pytest.raises(ValueError, match="JWT_TTL_SECONDS"):
        JwtSecurityConfig.from_env()


@pytest.mark.parametrize(
    ("header", "expected"),
    [
        (None, None),
        ("", None),
        ("Bearer abc.def.ghi", "abc.def.ghi"),
        ("bearer abc.def.ghi", "abc.def.ghi"),
        ("Bearer    ", None),
        ("Basic dXNlcjpwYXNz", None),
        ("abc.def.ghi", None),
    ],
)
def test_parse_bearer_header(header, expected):
    assert parse_bearer_header(header) == expected


def test_issue_and_decode_round_trip(security_cfg):
    now = datetime.now(UTC)
    token = issue_token(subject="u1", is_privileged=False, cfg=security_cfg, now=now)
    identity = decode_token(token, security_cfg)
    assert identity == Identity(subject="u1", is_privileged=False, issued_at=int(now.timestamp()))


def test_admin_flag_must_be_literal_true():
    cfg = _cfg()
    token = jwt.encode({"username": "u1", "isAdmin": "true"}, SECRET, algorithm="HS256")
    assert decode_token(token, cfg).is_privileged is False

    token = jwt.encode({"username": "u1", "isAdmin": True}, SECRET, algorithm="HS256")
    assert decode_token(token, cfg).is_privileged is True


def test_decode_rejects_bad_signature():
    token = jwt.encode({"username": "u1", "isAdmin": True}, "some_other_secret_0123456789abcdef", algorithm="HS256")
    with pytest.raises(Unauthorized):
        decode_token(token, _cfg())


def test_decode_rejects_expired_token():
    cfg = _cfg(ttl_seconds=60)
    token = issue_token(
        subject="u1",
        is_privileged=False,
        cfg=cfg,
        now=datetime.now(UTC) - timedelta(hours=2),
    )
    with pytest.raises(Unauthorized, match="expired"):
        decode_token(token, cfg)


def test_decode_rejects_missing_required_claim():
    token = jwt.encode({"isAdmin": True}, SECRET, algorithm="HS256")
    with pytest.raises(Unauthorized, match="username"):
        decode_token(token, _cfg())


def test_decode_rejects_blank_subject():
    token = jwt.encode({"username": "  "}, SECRET, algorithm="HS256")
    with pytest.raises(Unauthorized, match="subject"):
        decode_token(token, _cfg())


def test_decode_checks_issuer_and_audience():
    token = issue_token(subject="u1", is_privileged=False, cfg=_cfg(issuer="elsewhere", audience="jobly.api"))
    with pytest.raises(Unauthorized):
        decode_token(token, _cfg(issuer="jobly.test", audience="jobly.api"))


def test_decode_without_secret_is_unauthorized():
    with pytest.raises(Unauthorized, match="not configured"):
        decode_token("a.b.c", JwtSecurityConfig(shared_secret=""))


def test_issue_token_requires_secret():
    with pytest.raises(ValueError, match="JWT_SHARED_SECRET"):
        issue_token(subject="u1", is_privileged=False, cfg=JwtSecurityConfig(shared_secret=""))


def test_derive_identity_absent_token_is_anonymous():
    assert derive_identity(None, _cfg()) is None
    assert derive_identity("", _cfg()) is None


@pytest.mark.parametrize(
    "token",
    [
        "not-a-jwt",
        "a.b.c",
        jwt.encode({"username": "u1"}, "wrong_secret_0123456789abcdefghijkl", algorithm="HS256"),
    ],
)
def test_derive_identity_absorbs_invalid_tokens(token, caplog):
    with caplog.at_level(logging.DEBUG, logger="jobly.security"):
        assert derive_identity(token, _cfg()) is None
    assert "bearer credential rejected" in caplog.text
    assert token not in caplog.text


def test_derive_identity_valid_token():
    token = issue_token(subject="u2", is_privileged=True, cfg=_cfg())
    identity = derive_identity(token, _cfg())
    assert identity is not None
    assert identity.subject == "u2"
    assert identity.is_privileged is True


def test_build_request_context(security_cfg):
    token = issue_token(subject="u1", is_privileged=False, cfg=security_cfg)
    ctx = build_request_context(authorization=f"Bearer {token}", cfg=security_cfg, params={"username": "u1"})
    assert ctx.is_authenticated
    assert ctx.identity.subject == "u1"
    assert ctx.params == {"username": "u1"}

    anon = build_request_context(authorization="Bearer garbage", cfg=security_cfg)
    assert anon.identity is None
    assert not anon.is_authenticated
    assert anon.params == {}


def test_identity_and_context_are_immutable(security_cfg):
    ctx = build_request_context(authorization=None, cfg=security_cfg)
    with pytest.raises(AttributeError):
        ctx.identity = Identity(subject="x")  # type: ignore[misc]
    with pytest.raises(AttributeError):
        Identity(subject="x").is_privileged = True  # type: ignore[misc]
