"""Stateless bearer tokens for logged in students.

A token is ``"<student_id>.<signature>"`` where the signature is the
unpadded base64url HMAC-SHA256 of the decimal student id under the
server secret. Nothing is stored server side: a token is valid for as
long as the secret does not change.

Verification only authenticates the student id. It says nothing about
what that student may do.
"""

import base64
import binascii
import hashlib
import hmac
import re

_SUBJECT_RE = re.compile(r"[0-9]+")
_SIGNATURE_RE = re.compile(r"[A-Za-z0-9_-]+")


class AuthError(ValueError):
    """Base class for every token verification failure."""


class MalformedToken(AuthError):
    """The token is not made of exactly two dot separated parts."""


class InvalidSubject(AuthError):
    """The subject part is not a non-negative decimal integer."""


class InvalidSignature(AuthError):
    """The signature is not valid base64url or does not match."""


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(text: str) -> bytes:
    """Strictly decode unpadded base64url.

    Only the canonical encoding is accepted, so two different strings can
    never decode to the same signature.
    """
    if not _SIGNATURE_RE.fullmatch(text) or len(text) % 4 == 1:
        raise InvalidSignature("signature is not base64url")
    padded = text + "=" * (-len(text) % 4)
    try:
        raw = base64.b64decode(padded, altchars=b"-_", validate=True)
    except binascii.Error as exc:
        raise InvalidSignature("signature is not base64url") from exc
    if _b64url_encode(raw) != text:
        raise InvalidSignature("signature is not canonical base64url")
    return raw


def _sign(subject: str, secret: bytes) -> bytes:
    return hmac.new(secret, subject.encode("ascii"), hashlib.sha256).digest()


def issue_token(student_id: int, secret: bytes) -> str:
    """Return the bearer token for `student_id`."""
    if student_id < 0:
        raise ValueError("student id must be non-negative")
    subject = str(student_id)
    return f"{subject}.{_b64url_encode(_sign(subject, secret))}"


def verify_token(token: str, secret: bytes) -> int:
    """Return the student id authenticated by `token`.

    Raises a subclass of `AuthError` describing the first problem found.
    """
    parts = token.split(".")
    if len(parts) != 2:
        raise MalformedToken("token must contain exactly one '.'")
    subject, encoded_signature = parts
    if not _SUBJECT_RE.fullmatch(subject):
        raise InvalidSubject("subject is not a non-negative integer")
    signature = _b64url_decode(encoded_signature)
    if not hmac.compare_digest(signature, _sign(subject, secret)):
        raise InvalidSignature("signature mismatch")
    return int(subject)


def check_password(given: str, expected: str) -> bool:
    """Compare a submitted password with the configured one in constant time."""
    return hmac.compare_digest(given.encode("utf-8"), expected.encode("utf-8"))
