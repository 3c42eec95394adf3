import json
from urllib.parse import parse_qs

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from heron_booking.integrations.google_client import (
    CalendarAPIError,
    GoogleCalendarClient,
    ServiceAccountTokenProvider,
)

BASE_URL = 'https://calendar.test/calendar/v3'
TOKEN_URL = 'https://oauth.test/token'


class StaticTokenProvider:
    def get_token(self) -> str:
        return 'token-abc'


def _client(handler) -> GoogleCalendarClient:
    http = httpx.Client(transport=httpx.MockTransport(handler))
    return GoogleCalendarClient(http, StaticTokenProvider(), BASE_URL + '/')


def test_freebusy_posts_query_and_returns_busy_periods() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        body = json.loads(request.content)
        calendar_id = body['items'][0]['id']
        return httpx.Response(200, json={'calendars': {calendar_id: {'busy': [{'start': 'a', 'end': 'b'}]}}})

    busy = _client(handler).freebusy('ccis@group.calendar.google.com', '2025-11-17T00:00:00Z', '2025-11-18T00:00:00Z')

    assert busy == [{'start': 'a', 'end': 'b'}]
    request = seen[0]
    assert request.url == httpx.URL(BASE_URL + '/freeBusy')
    assert request.headers['Authorization'] == 'Bearer token-abc'
    assert json.loads(request.content)['timeMin'] == '2025-11-17T00:00:00Z'


def test_freebusy_raises_on_calendar_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={'calendars': {'cal': {'errors': [{'reason': 'notFound'}]}}})

    with pytest.raises(CalendarAPIError):
        _client(handler).freebusy('cal', 'a', 'b')


def test_insert_event_quotes_calendar_id() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={'id': 'evt-1'})

    created = _client(handler).insert_event('ccis@group.calendar.google.com', {'summary': 'Meeting'})

    assert created == {'id': 'evt-1'}
    assert seen[0].url.raw_path.decode().startswith('/calendar/v3/calendars/ccis%40group.calendar.google.com/events')
    assert seen[0].url.params['sendUpdates'] == 'none'


@pytest.mark.parametrize('status_code', [400, 403, 500])
def test_error_status_raises(status_code: int) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json={'error': 'nope'})

    with pytest.raises(CalendarAPIError):
        _client(handler).insert_event('cal', {})


def test_transport_error_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError('unreachable', request=request)

    with pytest.raises(CalendarAPIError):
        _client(handler).freebusy('cal', 'a', 'b')


@pytest.fixture(scope='module')
def service_account_info() -> dict:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()
    return {
        'client_email': 'booking@project.iam.gserviceaccount.com',
        'private_key': pem,
        'token_uri': TOKEN_URL,
        'public_key': key.public_key(),
    }


def test_token_provider_signs_assertion_and_caches_token(service_account_info) -> None:
    assertions = []

    def handler(request: httpx.Request) -> httpx.Response:
        form = parse_qs(request.content.decode())
        assertions.append(form['assertion'][0])
        return httpx.Response(200, json={'access_token': 'token-1', 'expires_in': 3600})

    provider = ServiceAccountTokenProvider(
        service_account_info,
        'https://www.googleapis.com/auth/calendar',
        httpx.Client(transport=httpx.MockTransport(handler)),
    )

    assert provider.get_token() == 'token-1'
    assert provider.get_token() == 'token-1'
    assert len(assertions) == 1

    claims = jwt.decode(
        assertions[0],
        service_account_info['public_key'],
        algorithms=['RS256'],
        audience=TOKEN_URL,
    )
    assert claims['iss'] == 'booking@project.iam.gserviceaccount.com'
    assert claims['scope'] == 'https://www.googleapis.com/auth/calendar'


def test_token_provider_without_credentials_file_raises() -> None:
    provider = ServiceAccountTokenProvider.from_file('', 'scope', httpx.Client())

    with pytest.raises(CalendarAPIError):
        provider.get_token()


def test_token_provider_reports_rejected_token_request(service_account_info) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, text='invalid_grant')

    provider = ServiceAccountTokenProvider(
        service_account_info,
        'scope',
        httpx.Client(transport=httpx.MockTransport(handler)),
    )

    with pytest.raises(CalendarAPIError):
        provider.get_token()


@pytest.mark.parametrize(
    'reply',
    [
        {'text': '<html>Service Unavailable</html>'},
        {'json': ['not', 'an', 'object']},
    ],
)
def test_malformed_success_body_raises(reply: dict) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, **reply)

    with pytest.raises(CalendarAPIError):
        _client(handler).insert_event('cal', {})
    with pytest.raises(CalendarAPIError):
        _client(handler).freebusy('cal', 'a', 'b')


@pytest.mark.parametrize(
    'reply',
    [
        {'text': '<html>oops</html>'},
        {'json': {'token_type': 'Bearer'}},
        {'json': {'access_token': 'token-1', 'expires_in': 'soon'}},
    ],
)
def test_token_provider_reports_malformed_token_response(service_account_info, reply: dict) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, **reply)

    provider = ServiceAccountTokenProvider(
        service_account_info,
        'scope',
        httpx.Client(transport=httpx.MockTransport(handler)),
    )

    with pytest.raises(CalendarAPIError):
        provider.get_token()
