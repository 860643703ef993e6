import base64

import pytest

from tracker.tokens import (
    AuthError,
    InvalidSignature,
    InvalidSubject,
    MalformedToken,
    check_password,
    issue_token,
    verify_token,
)

SECRET = b"k"


def _flip_bit(text: str, index: int, bit: int) -> str:
    chars = bytearray(text.encode("ascii"))
    chars[index] ^= 1 << bit
    return chars.decode("latin-1")


def test_issue_and_verify_example():
    token = issue_token(42, SECRET)
    subject, sig = token.split(".")
    assert subject == "42"
    assert len(sig) == 43
    assert "=" not in sig
    assert verify_token(token, SECRET) == 42
    with pytest.raises(InvalidSignature):
        verify_token(token, b"different-key")


@pytest.mark.parametrize("student_id", [0, 1, 7, 42, 65535, 2**32 - 1, 2**40])
def test_round_trip(student_id):
    assert verify_token(issue_token(student_id, b"some secret"), b"some secret") == student_id


def test_issue_rejects_negative_ids():
    with pytest.raises(ValueError):
        issue_token(-1, SECRET)


def test_flipping_any_signature_bit_fails():
    token = issue_token(42, SECRET)
    subject, sig = token.split(".")
    raw = bytearray(base64.urlsafe_b64decode(sig + "="))
    for i in range(len(raw)):
        for bit in range(8):
            tampered = bytearray(raw)
            tampered[i] ^= 1 << bit
            encoded = base64.urlsafe_b64encode(bytes(tampered)).rstrip(b"=").decode()
            with pytest.raises(InvalidSignature):
                verify_token(f"{subject}.{encoded}", SECRET)


def test_flipping_any_subject_bit_fails():
    token = issue_token(1234, SECRET)
    for i in range(4):
        for bit in range(7):
            tampered = _flip_bit(token, i, bit)
            with pytest.raises(AuthError):
                verify_token(tampered, SECRET)


def test_non_canonical_signature_text_is_rejected():
    token = issue_token(42, SECRET)
    subject, sig = token.split(".")
    # The last character carries two unused bits; changing them keeps the bytes.
    alphabet = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_"
    pos = alphabet.index(sig[-1])
    alt = alphabet[pos ^ 1]
    with pytest.raises(InvalidSignature):
        verify_token(f"{subject}.{sig[:-1]}{alt}", SECRET)


@pytest.mark.parametrize("token", ["", "42", "42.a.b", "...", "42sig"])
def test_malformed_structure(token):
    with pytest.raises(MalformedToken):
        verify_token(token, SECRET)


@pytest.mark.parametrize("subject", ["", "-1", "+4", "4a", " 42", "4e1", "٤٢"])
def test_invalid_subject(subject):
    sig = issue_token(42, SECRET).split(".")[1]
    with pytest.raises(InvalidSubject):
        verify_token(f"{subject}.{sig}", SECRET)


@pytest.mark.parametrize("sig", ["", "abc=", "ab+/", "a", "not base64!"])
def test_invalid_signature_encoding(sig):
    with pytest.raises(InvalidSignature):
        verify_token(f"42.{sig}", SECRET)


def test_auth_errors_are_value_errors():
    assert issubclass(MalformedToken, AuthError)
    assert issubclass(AuthError, ValueError)


def test_check_password():
    assert check_password("hunter2", "hunter2")
    assert not check_password("hunter3", "hunter2")
    assert not check_password("", "hunter2")
    assert check_password("pässwörd", "pässwörd")
