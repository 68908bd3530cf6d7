from datetime import timedelta

from app.models.export import format_file_size, slugify
from app.utils.sanitize import clean_text, escape_text
from app.utils.security import (
    create_access_token,
    create_share_session_token,
    decode_access_token,
    decode_share_session_token,
    hash_secret,
    new_opaque_id,
    verify_secret,
)


def test_hash_verifies_only_correct_secret():
    hashed = hash_secret("secret123")
    assert hashed != "secret123"
    assert verify_secret("secret123", hashed)
    assert not verify_secret("wrong", hashed)


def test_verify_secret_rejects_missing_or_malformed_hash():
    assert not verify_secret("secret123", None)
    assert not verify_secret("secret123", "")
    assert not verify_secret("secret123", "not-a-bcrypt-hash")
    assert not verify_secret(None, hash_secret("secret123"))


def test_opaque_ids_are_unique_uuid_strings():
    ids = {new_opaque_id() for _ in range(100)}
    assert len(ids) == 100
    assert all(len(value) == 36 for value in ids)


def test_access_token_round_trip():
    payload = decode_access_token(create_access_token(42))
    assert payload is not None
    assert payload.sub == 42


def test_expired_access_token_is_rejected():
    assert decode_access_token(create_access_token(42, expires_delta=timedelta(seconds=-5))) is None


def test_share_session_token_is_not_an_access_token():
    token = create_share_session_token(["abc"])
    assert decode_access_token(token) is None
    assert decode_share_session_token(token) == ["abc"]


def test_tampered_share_session_token_yields_nothing():
    token = create_share_session_token(["abc"])
    assert decode_share_session_token(token[:-2] + "xx") == []
    assert decode_share_session_token(None) == []
    assert decode_share_session_token(create_access_token(1)) == []


def test_clean_text_strips_tags_and_blank_values():
    assert clean_text("  <b>Hello</b> world ") == "Hello world"
    assert clean_text("<br>   ") is None
    assert clean_text(None) is None


def test_escape_text_escapes_quotes():
    assert escape_text('Tom & "Jerry"') == "Tom &amp; &quot;Jerry&quot;"


def test_slugify():
    assert slugify("TechFlow Solutions") == "techflow-solutions"
    assert slugify("Café Déjà Vu!") == "cafe-deja-vu"
    assert slugify("a" * 50) == "a" * 30
    assert slugify("!!!") == ""


def test_format_file_size():
    assert format_file_size(0) == "0 B"
    assert format_file_size(512) == "512 B"
    assert format_file_size(1536) == "1.5 KB"
    assert format_file_size(5 * 1024 * 1024) == "5 MB"
