import jwt
import pytest

from heron_booking.auth.jwt_handler import create_access_token, decode_access_token
from heron_booking.core import config


def test_access_token_round_trips_subject_and_role() -> None:
    payload = decode_access_token(create_access_token('counselor-1', 'counselor'))

    assert payload['sub'] == 'counselor-1'
    assert payload['role'] == 'counselor'
    assert payload['exp'] > payload['iat']


def test_expired_token_is_rejected() -> None:
    token = create_access_token('student-1', 'student', expires_minutes=-1)

    with pytest.raises(jwt.ExpiredSignatureError):
        decode_access_token(token)


def test_production_requires_real_secrets(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'APP_ENV', 'production')
    monkeypatch.setattr(config, 'JWT_SECRET_KEY', 'change-me')

    with pytest.raises(RuntimeError):
        config.validate_runtime_config()

    monkeypatch.setattr(config, 'JWT_SECRET_KEY', 'a-real-secret')
    monkeypatch.setattr(config, 'GOOGLE_SERVICE_ACCOUNT_FILE', '')

    with pytest.raises(RuntimeError):
        config.validate_runtime_config()

    monkeypatch.setattr(config, 'GOOGLE_SERVICE_ACCOUNT_FILE', '/etc/booking/service-account.json')
    config.validate_runtime_config()
