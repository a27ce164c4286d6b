"""
Tests for sign-in providers and prompt templating
"""

from unittest.mock import patch, MagicMock

import pytest
from firebase_admin import exceptions as firebase_exceptions

from app.core.errors import AuthError
from app.schemas.event import EventCreate
from app.services.auth_service import FirebaseAuthService, LocalAuthService
from app.services.prompts import build_event_prompt, format_event_date

def test_local_sign_in_with_known_token():
    identity = LocalAuthService({"tok": "user-7"}).sign_in("tok")
    assert identity.user_id == "user-7"
    assert identity.anonymous is False

@pytest.mark.parametrize("token", [None, "", "unknown"])
def test_local_sign_in_rejects_bad_tokens(token):
    with pytest.raises(AuthError):
        LocalAuthService({"tok": "user-7"}).sign_in(token)

def test_local_anonymous_ids_are_unique():
    service = LocalAuthService()
    first = service.sign_in_anonymously()
    second = service.sign_in_anonymously()
    assert first.anonymous and second.anonymous
    assert first.user_id != second.user_id

@patch("app.services.auth_service.get_firebase_app")
@patch("app.services.auth_service.firebase_auth")
def test_firebase_sign_in_verifies_token(mock_auth, mock_app):
    mock_auth.verify_id_token.return_value = {"uid": "fb-user"}

    identity = FirebaseAuthService().sign_in("id-token")

    assert identity.user_id == "fb-user"
    mock_auth.verify_id_token.assert_called_once_with("id-token", app=mock_app.return_value)

@patch("app.services.auth_service.get_firebase_app")
@patch("app.services.auth_service.firebase_auth")
def test_firebase_invalid_token_raises_auth_error(mock_auth, mock_app):
    mock_auth.verify_id_token.side_effect = ValueError("malformed")
    with pytest.raises(AuthError):
        FirebaseAuthService().sign_in("junk")

@patch("app.services.auth_service.get_firebase_app")
@patch("app.services.auth_service.firebase_auth")
def test_firebase_anonymous_creates_user(mock_auth, mock_app):
    mock_auth.create_user.return_value = MagicMock(uid="anon-fb")
    identity = FirebaseAuthService().sign_in_anonymously()
    assert identity.user_id == "anon-fb"
    assert identity.anonymous is True

@patch("app.services.auth_service.get_firebase_app")
@patch("app.services.auth_service.firebase_auth")
def test_firebase_anonymous_failure(mock_auth, mock_app):
    mock_auth.create_user.side_effect = firebase_exceptions.UnavailableError("down")
    with pytest.raises(AuthError):
        FirebaseAuthService().sign_in_anonymously()

def test_format_event_date():
    assert format_event_date("2025-06-01T18:00") == "Sunday, June 1, 2025 at 6:00 PM"
    assert format_event_date("2025-01-05T00:05") == "Sunday, January 5, 2025 at 12:05 AM"

def test_format_event_date_passes_through_unparseable():
    assert format_event_date("soon") == "soon"

def test_build_event_prompt_contains_all_details():
    prompt = build_event_prompt(EventCreate(
        name="Baby party", type="Baby Shower", datetime="2025-03-14T14:30", recipient="first child",
    ))
    assert "Baby party" in prompt
    assert "Baby Shower" in prompt
    assert "Friday, March 14, 2025 at 2:30 PM" in prompt
    assert "first child" in prompt
