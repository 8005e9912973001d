"""Outbound message variants and their rendering.

Every direct message and public reply the bot sends is one of the frozen
dataclasses below. `render_dm` / `render_reply` match over the closed set, so
adding a variant without rendering it fails loudly instead of sending a
mis-filled template.
"""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class ClaimLinkNotice:
    handle: str
    claim_url: str
    account_ref: str
    wallet_number: int
    ttl_minutes: int


@dataclass(frozen=True)
class SetupGuide:
    handle: str


@dataclass(frozen=True)
class PreEventReminder:
    handle: str
    event_time: datetime


@dataclass(frozen=True)
class PostEventConfirmation:
    handle: str
    account_ref: str
    airdrop_amount: int


@dataclass(frozen=True)
class WaitlistOpenNotice:
    handle: str


DirectMessage = ClaimLinkNotice | SetupGuide | PreEventReminder | PostEventConfirmation | WaitlistOpenNotice


@dataclass(frozen=True)
class WalletReadyReply:
    handle: str
    wallet_number: int


@dataclass(frozen=True)
class AlreadyHasWalletReply:
    handle: str


@dataclass(frozen=True)
class QuotaReply:
    handle: str
    daily: bool


@dataclass(frozen=True)
class ProvisioningUnavailableReply:
    handle: str


@dataclass(frozen=True)
class WaitlistReply:
    handle: str
    already_joined: bool


PublicReply = WalletReadyReply | AlreadyHasWalletReply | QuotaReply | ProvisioningUnavailableReply | WaitlistReply


def message_kind(message: DirectMessage) -> str:
    match message:
        case ClaimLinkNotice():
            return "claim_link"
        case SetupGuide():
            return "setup_guide"
        case PreEventReminder():
            return "pre_event_reminder"
        case PostEventConfirmation():
            return "post_event_confirmation"
        case WaitlistOpenNotice():
            return "waitlist_open"
    raise TypeError(f"unknown direct message variant: {type(message).__name__}")


def render_dm(message: DirectMessage) -> str:
    match message:
        case ClaimLinkNotice(handle=handle, claim_url=url, account_ref=account, wallet_number=n, ttl_minutes=ttl):
            position = f" (you are user #{n})" if n > 0 else ""
            return (
                f"Welcome @{handle}! Your wallet {account} is ready{position}.\n\n"
                f"Open this private link to view your credentials: {url}\n\n"
                f"The link works for {ttl} minutes. Save the credentials somewhere safe; "
                "they will not be shown again."
            )
        case SetupGuide(handle=handle):
            return (
                f"Hey @{handle}, next steps:\n"
                "1. Install a wallet app that supports importing a private key.\n"
                "2. Choose 'Import account' and paste the private key from your claim page.\n"
                "3. Keep your recovery password offline."
            )
        case PreEventReminder(handle=handle, event_time=when):
            return (
                f"@{handle} launch is on {when:%Y-%m-%d %H:%M} UTC. "
                "Fund your wallet before then to qualify for the airdrop."
            )
        case PostEventConfirmation(handle=handle, account_ref=account, airdrop_amount=amount):
            return f"@{handle} we're live! {account} qualifies for {amount} tokens from the launch airdrop."
        case WaitlistOpenNotice(handle=handle):
            return f"@{handle} wallets are open! Mention us with 'create wallet' to get yours."
    raise TypeError(f"unknown direct message variant: {type(message).__name__}")


def render_reply(reply: PublicReply) -> str:
    match reply:
        case WalletReadyReply(handle=handle, wallet_number=n) if n > 0:
            return f"@{handle} Your wallet is ready! Check your DMs for how to access it. You're user #{n}."
        case WalletReadyReply(handle=handle):
            return f"@{handle} Your wallet is ready! Check your DMs for how to access it."
        case AlreadyHasWalletReply(handle=handle):
            return f"@{handle} You already have a wallet! Check your DMs for details."
        case QuotaReply(handle=handle, daily=True):
            return f"@{handle} We've reached today's wallet limit. Please try again tomorrow."
        case QuotaReply(handle=handle, daily=False):
            return f"@{handle} You've reached the wallet creation limit. Please try again later."
        case ProvisioningUnavailableReply(handle=handle):
            return f"@{handle} We couldn't create your wallet right now. Please try again later."
        case WaitlistReply(handle=handle, already_joined=True):
            return f"@{handle} You're already on the waitlist."
        case WaitlistReply(handle=handle, already_joined=False):
            return f"@{handle} You're on the waitlist! We'll DM you when it opens."
    raise TypeError(f"unknown reply variant: {type(reply).__name__}")
