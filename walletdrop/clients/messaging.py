"""Messaging collaborator: mention feed, direct messages and public replies.

`TwitterMessagingClient` talks to the X API v2 with a bearer token:
https://developer.x.com/en/docs/x-api
"""

from datetime import datetime, timezone
from typing import Protocol

import httpx
from pydantic import BaseModel

from walletdrop.common.errors import MessagingError
from walletdrop.common.logging import logger


class Mention(BaseModel):
    """One inbound trigger event from the mention feed."""

    event_id: str
    author_id: str
    author_handle: str
    text: str
    created_at: datetime


class MessagingClient(Protocol):
    async def fetch_mentions(self, since: datetime) -> list[Mention]: ...

    async def send_direct_message(self, user_id: str, text: str) -> None: ...

    async def reply(self, event_id: str, text: str) -> None: ...


class TwitterMessagingClient:
    """Async X API v2 client for the bot account."""

    def __init__(
        self,
        base_url: str,
        bearer_token: str,
        bot_user_id: str,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.bot_user_id = bot_user_id
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {bearer_token}", "Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise MessagingError(f"{method} {path} timed out") from exc
        except httpx.HTTPError as exc:
            raise MessagingError(f"{method} {path} failed: {exc}") from exc
        if resp.status_code >= 400:
            raise MessagingError(f"{method} {path} rejected (status={resp.status_code})", resp.status_code)
        return resp.json()

    async def fetch_mentions(self, since: datetime) -> list[Mention]:
        """Return mentions of the bot account created after `since`."""

        params = {
            "start_time": since.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "tweet.fields": "created_at,author_id",
            "expansions": "author_id",
            "user.fields": "username",
            "max_results": 100,
        }
        payload = await self._request("GET", f"/2/users/{self.bot_user_id}/mentions", params=params)
        users = {u["id"]: u["username"] for u in payload.get("includes", {}).get("users", [])}
        mentions = []
        for item in payload.get("data", []):
            author_id = item.get("author_id")
            if not author_id or author_id == self.bot_user_id:
                continue
            created_at = datetime.fromisoformat(item["created_at"].replace("Z", "+00:00"))
            mentions.append(
                Mention(
                    event_id=item["id"],
                    author_id=author_id,
                    author_handle=users.get(author_id, author_id),
                    text=item.get("text", ""),
                    created_at=created_at,
                )
            )
        logger.debug("mentions_fetched count=%s", len(mentions))
        return mentions

    async def send_direct_message(self, user_id: str, text: str) -> None:
        await self._request("POST", f"/2/dm_conversations/with/{user_id}/messages", json={"text": text})

    async def reply(self, event_id: str, text: str) -> None:
        await self._request("POST", "/2/tweets", json={"text": text, "reply": {"in_reply_to_tweet_id": event_id}})

    async def close(self) -> None:
        await self._client.aclose()
