"""Self-expiring claim tokens carrying wallet credentials.

A token is a Fernet ciphertext (AES-CBC + HMAC-SHA256, URL-safe base64) of a
JSON `ClaimPayload`. Nothing is stored server-side: whoever holds the token
can open it until `expires_at`, and no token can be revoked earlier.
"""

import base64
import json
from datetime import datetime, timedelta, timezone
from typing import Callable

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from pydantic import BaseModel, ValidationError

from walletdrop.common.errors import ExpiredClaimToken, InvalidClaimToken


class ClaimPayload(BaseModel):
    """Credentials and context sealed inside one claim token."""

    external_user_id: str
    handle: str
    account_id: str | None = None
    account_alias: str
    public_key: str
    private_key: str
    recovery_password: str
    expires_at: int = 0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def derive_fernet_key(secret: str) -> bytes:
    """Stretch an operator secret of any length into a Fernet key."""

    hkdf = HKDF(algorithm=hashes.SHA256(), length=32, salt=None, info=b"walletdrop-claim-token")
    return base64.urlsafe_b64encode(hkdf.derive(secret.encode("utf-8")))


class SecretEnvelope:
    """Mint and open claim tokens with a server-held key."""

    def __init__(self, secret: str, clock: Callable[[], datetime] = _utcnow) -> None:
        self._fernet = Fernet(derive_fernet_key(secret))
        self._clock = clock

    def mint(self, payload: ClaimPayload, ttl: timedelta) -> str:
        now = self._clock()
        sealed = payload.model_copy(update={"expires_at": int((now + ttl).timestamp())})
        data = sealed.model_dump_json().encode("utf-8")
        return self._fernet.encrypt_at_time(data, int(now.timestamp())).decode("ascii")

    def open(self, token: str) -> ClaimPayload:
        """Return the sealed payload or raise `InvalidClaimToken`.

        Malformed encoding and authentication failures raise the base class.
        Authentic tokens at or past their expiry raise `ExpiredClaimToken`.
        """

        try:
            data = self._fernet.decrypt(token.encode("ascii"))
            payload = ClaimPayload.model_validate(json.loads(data))
        except (InvalidToken, UnicodeError, ValueError, ValidationError) as exc:
            raise InvalidClaimToken() from exc
        if self._clock().timestamp() >= payload.expires_at:
            raise ExpiredClaimToken()
        return payload
