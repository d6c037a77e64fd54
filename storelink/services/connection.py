"""End-to-end connect flow: token exchange followed by webhook registration."""

import logging
from dataclasses import dataclass

from storelink.models.connection import StoreConnection
from storelink.services.token_exchange import TokenExchanger
from storelink.services.webhook_registrar import RegistrationReport, WebhookRegistrar

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectResult:
    connection: StoreConnection
    registration: RegistrationReport

    @property
    def webhooks_registered(self) -> bool:
        return self.registration.webhooks_registered


class ConnectionService:
    """Runs the exchange, then registers webhooks.

    Webhook registration is a separate failure domain: its problems are
    reported in the result and never fail the connect call.
    """

    def __init__(self, exchanger: TokenExchanger, registrar: WebhookRegistrar) -> None:
        self.exchanger = exchanger
        self.registrar = registrar

    async def connect(
        self,
        shop: str,
        code: str,
        state: str | None,
        *,
        reset_connected_at: bool = False,
    ) -> ConnectResult:
        connection = await self.exchanger.exchange(
            shop, code, state, reset_connected_at=reset_connected_at
        )
        registration = await self.registrar.register(connection)
        return ConnectResult(
            connection=connection.with_changes(
                webhooks_registered=registration.webhooks_registered
            ),
            registration=registration,
        )
