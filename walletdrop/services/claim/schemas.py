"""Response bodies for the claim endpoint."""

from pydantic import BaseModel

ONE_TIME_WARNING = (
    "Save these credentials now. This page will not be shown again once the link expires, "
    "and nobody can recover a lost private key for you."
)


class ClaimResponse(BaseModel):
    """Credentials revealed by a valid claim link."""

    handle: str
    account_id: str | None = None
    account_alias: str
    public_key: str
    private_key: str
    recovery_password: str
    expires_at: int
    warning: str = ONE_TIME_WARNING


class ClaimError(BaseModel):
    detail: str
