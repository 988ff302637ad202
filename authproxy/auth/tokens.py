"""Static token authentication: a fixed table of credentials and their claims."""

import logging
from typing import Dict, Mapping

from fastapi import Request

from ..exceptions import AuthenticationError

logger = logging.getLogger(__name__)


class StaticTokenAuthenticator:
    """
    Authenticate requests whose credential header matches a known token.

    Example:
        >>> auth = StaticTokenAuthenticator({"test": {"user": "test", "id": "1"}})

    A request with ``Authorization: test`` is forwarded with
    ``Internal-User: test`` and ``Internal-Id: 1``.
    """

    def __init__(
        self,
        tokens: Mapping[str, Mapping[str, str]],
        header: str = "Authorization",
    ) -> None:
        self._tokens = {token: dict(claims) for token, claims in tokens.items()}
        self.header = header

    async def __call__(self, request: Request) -> Dict[str, str]:
        token = request.headers.get(self.header)
        if not token or token not in self._tokens:
            raise AuthenticationError.unauthorized()
        return dict(self._tokens[token])
