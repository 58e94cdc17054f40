"""
Form Login
==========
Drives a username/password form through a ``PageRenderer``.

Steps (each independently best-effort):
    1. Wait for and fill the username field   (if a selector is given)
    2. Wait for and fill the password field   (if a selector is given)
    3. Click the submit control               (if a selector is given)
    4. Wait for the success indicator (verified) or sleep a fixed
       interval (unverified heuristic)

Security:
    - Credentials are never logged or included in warnings.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List

from ..errors import AuthenticationWarning, RecoverableError, RendererError
from ..models import AuthDescriptor
from ..renderer import PageRenderer
from ..run_config import MirrorRunConfig

logger = logging.getLogger(__name__)


@dataclass
class AuthOutcome:
    """Result of one login attempt."""
    attempted: bool = False
    verified: bool = False
    warnings: List[RecoverableError] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return self.attempted and not self.warnings


class FormAuthenticator:
    """Fill-and-submit login on the renderer's current page."""

    def __init__(
        self,
        config: MirrorRunConfig,
        renderer: PageRenderer,
        descriptor: AuthDescriptor,
    ):
        self.config = config
        self.renderer = renderer
        self.descriptor = descriptor

    async def authenticate(self, log: Callable[[str], None]) -> AuthOutcome:
        """Run the login steps, logging progress through *log*.

        Never raises for step failures; they are returned as warnings.
        """
        outcome = AuthOutcome()
        d = self.descriptor

        if not d.is_complete:
            log("Authentication skipped: username and password are both required")
            return outcome

        outcome.attempted = True
        log("Attempting authentication...")
        logger.info(f"[AUTH] Login on {self.renderer.current_url[:80]}")

        if d.username_selector:
            await self._step(outcome, log, "Filled username",
                             lambda: self._wait_and_fill(d.username_selector, d.username))

        if d.password_selector:
            await self._step(outcome, log, "Filled password",
                             lambda: self._wait_and_fill(d.password_selector, d.password))

        if d.submit_selector:
            await self._step(outcome, log, "Clicked submit button",
                             lambda: self.renderer.click(d.submit_selector))

        if d.success_selector:
            outcome.verified = await self._step(
                outcome, log, "Login successful",
                lambda: self.renderer.wait_for_selector(
                    d.success_selector, self.config.success_timeout_ms
                ),
            )
        else:
            await self._step(
                outcome, log, "Login attempted (no success selector provided)",
                lambda: self.renderer.pause(self.config.post_submit_delay_ms),
            )

        if outcome.warnings:
            logger.warning(f"[AUTH] Completed with {len(outcome.warnings)} warning(s)")
        return outcome

    async def _wait_and_fill(self, selector: str, value: str) -> None:
        await self.renderer.wait_for_selector(selector, self.config.selector_timeout_ms)
        await self.renderer.fill(selector, value)

    async def _step(
        self,
        outcome: AuthOutcome,
        log: Callable[[str], None],
        success_message: str,
        action: Callable[[], Awaitable[None]],
    ) -> bool:
        try:
            await action()
        except RendererError as e:
            warning = AuthenticationWarning(str(e))
            outcome.warnings.append(
                RecoverableError.from_exception(warning, self.renderer.current_url)
            )
            log(f"Authentication warning: {e}")
            return False
        log(success_message)
        return True
