"""
Authorization gate for heart-rate access.

The platform never tells us whether the user granted or denied read access, so
once the permission prompt has been dismissed the gate considers itself
authorized. A real denial shows up later as a source that delivers no data.
"""

import asyncio

import structlog

from hralert.adapters.health.domain import PermissionProvider, QuantityType
from hralert.domain.models import AuthorizationState

logger = structlog.get_logger(__name__)


class AuthorizationGate:
    """Two-state gate: NOT_AUTHORIZED until a prompt completes, then AUTHORIZED for good."""

    def __init__(self, permission: PermissionProvider) -> None:
        self.permission = permission
        self.logger = logger.bind(component="authorization_gate")
        self._state = AuthorizationState.NOT_AUTHORIZED
        self._authorized = asyncio.Event()

    @property
    def state(self) -> AuthorizationState:
        return self._state

    @property
    def is_authorized(self) -> bool:
        return self._state is AuthorizationState.AUTHORIZED

    async def request_authorization(self) -> bool:
        """
        Show the permission prompt and wait for it to be dismissed.

        Returns True when the gate ends up authorized. Prompt failures are logged
        and leave the state unchanged; there is no automatic retry.
        """
        if self.is_authorized:
            return True

        if not self.permission.is_health_data_available():
            self.logger.warning("health_data_unavailable")
            return False

        try:
            await self.permission.request_read_access(QuantityType.HEART_RATE)
        except Exception as e:
            self.logger.error("authorization_request_failed", error=str(e))
            return False

        self._state = AuthorizationState.AUTHORIZED
        self._authorized.set()
        self.logger.info("authorization_granted")
        return True

    async def wait_until_authorized(self, timeout: float | None = None) -> bool:
        """Wait for a pending (or future) request to complete. Returns False on timeout."""
        try:
            await asyncio.wait_for(self._authorized.wait(), timeout=timeout)
        except TimeoutError:
            return False
        return True
