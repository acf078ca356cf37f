"""GitHub provider: repository collaborators and public user keys."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from scripts.keysync.base_provider import BaseProvider
from scripts.keysync.config import GitHubConfig, HttpConfig, RateLimitPolicy
from scripts.keysync.logging_config import mask_token
from scripts.keysync.models import Collaborator, clean_key_lines
from scripts.keysync.tokens import TokenPool

logger = logging.getLogger("keysync.github")

USER_AGENT = "rabbit-ssh/keysync"


class GitHubProvider(BaseProvider):
    PROVIDER_NAME = "github"

    def __init__(
        self,
        config: GitHubConfig,
        http: HttpConfig,
        tokens: Optional[TokenPool] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(http, client)
        self.config = config
        self.tokens = tokens or TokenPool(config.tokens)
        self._base = config.api_base_url.rstrip("/")
        self._keys_base = config.keys_base_url.rstrip("/")

    def _headers(self, token: str) -> dict[str, str]:
        return {
            "Authorization": f"token {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": USER_AGENT,
        }

    def _check_rate_limit(self, resp: httpx.Response, token: str) -> None:
        if resp.headers.get("X-RateLimit-Remaining") != "0":
            return
        logger.error("GitHub ratelimit exceeded using [%s] token.", mask_token(token))
        if self.config.rate_limit_policy is RateLimitPolicy.ROTATE:
            self.tokens.exclude(token)

    async def collaborators(self, repo_id: str) -> list[Collaborator]:
        """Collaborators of ``repo_id`` holding push permission.

        Pages are followed until the Link header runs out. A failed page ends
        the lookup and whatever was collected so far is returned.
        """
        url = f"{self._base}/repos/{repo_id}/collaborators"
        params: Optional[dict[str, str]] = {"per_page": "100"}
        found: list[Collaborator] = []

        while url:
            token = self.tokens.select()
            try:
                resp = await self._get(url, headers=self._headers(token), params=params)
            except httpx.HTTPError as exc:
                logger.error(
                    "Collaborator lookup failed: %s", exc,
                    extra={"stage": "collaborators", "repo": repo_id},
                )
                break
            logger.debug(
                "haveAppCollaborators [%s] using [%s] got code [%s]",
                url, mask_token(token), resp.status_code,
            )
            self._check_rate_limit(resp, token)

            if not resp.is_success:
                logger.error(
                    "Collaborator lookup returned HTTP %d", resp.status_code,
                    extra={"stage": "collaborators", "repo": repo_id},
                )
                break
            try:
                data = resp.json()
            except ValueError:
                logger.error(
                    "Collaborator lookup returned invalid JSON",
                    extra={"stage": "collaborators", "repo": repo_id},
                )
                break

            for payload in data if isinstance(data, list) else []:
                collaborator = Collaborator.from_api(payload) if isinstance(payload, dict) else None
                if collaborator is not None and collaborator.can_push:
                    found.append(collaborator)

            url = self._next_link(resp)
            params = None

        return found

    async def keys(self, account: str) -> tuple[str, ...]:
        """Public keys published at ``<keys_base>/<account>.keys``.

        Never raises: any failure yields an empty tuple.
        """
        url = f"{self._keys_base}/{account}.keys"
        try:
            resp = await self._get(url, headers={"User-Agent": USER_AGENT})
        except httpx.HTTPError as exc:
            logger.warning(
                "Key fetch failed: %s", exc,
                extra={"stage": "keys", "account": account},
            )
            return ()
        if not resp.is_success:
            logger.warning(
                "Key fetch returned HTTP %d", resp.status_code,
                extra={"stage": "keys", "account": account},
            )
            return ()
        return clean_key_lines(resp.text.split("\n"))
