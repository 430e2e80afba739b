"""
Provider state handlers.

The provider owns how each named state is established. Handlers are kept in
an explicit registry keyed by state name; a state with no handler fails
loudly instead of being skipped.

    states = StateHandlerRegistry()

    @states.state("order 42 exists")
    def order_exists(params):
        db.insert_order(id=params.get("id", 42))

Handlers may be plain functions or coroutines, taking either no arguments or
the state's parameter mapping. Returning ``False`` or raising marks the setup
as failed. Plain functions run on a daemon thread; one that overruns its
timeout is abandoned rather than waited for.
"""

from __future__ import annotations

import asyncio
import inspect
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import httpx
import structlog

from pactlayer.contract.models import ProviderState
from pactlayer.core.errors import StateSetupError

logger = structlog.get_logger()

StateHandler = Callable[..., Any]


@dataclass(frozen=True)
class RegisteredState:
    """Setup (and optional teardown) for one provider state."""

    name: str
    setup: StateHandler
    teardown: Optional[StateHandler] = None


class ProviderStatesEndpoint:
    """
    Set up states through an HTTP endpoint exposed by the provider.

    POSTs ``{"state": name, "params": {...}, "action": "setup"|"teardown"}``
    to ``url``; any non-2xx answer is a setup failure.
    """

    def __init__(self, url: str, *, headers: dict[str, str] | None = None) -> None:
        self.url = url
        self.headers = headers or {}

    async def __call__(self, state: ProviderState, action: str, timeout: float) -> None:
        payload = {"state": state.name, "params": dict(state.params), "action": action}
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.post(self.url, json=payload, headers=self.headers)
        except httpx.TimeoutException as e:
            raise StateSetupError(
                f"Timed out setting up state '{state.name}' via {self.url}", state.name
            ) from e
        except httpx.HTTPError as e:
            raise StateSetupError(
                f"Cannot reach provider states endpoint {self.url}: {e}", state.name
            ) from e

        if response.status_code >= 400:
            raise StateSetupError(
                f"Provider states endpoint answered {response.status_code} for '{state.name}'",
                state.name,
                {"status": response.status_code},
            )


class StateHandlerRegistry:
    """Mapping from provider state name to its setup operation."""

    def __init__(self, fallback: ProviderStatesEndpoint | None = None) -> None:
        self._handlers: Dict[str, RegisteredState] = {}
        self.fallback = fallback

    def register(
        self,
        name: str,
        setup: StateHandler,
        teardown: StateHandler | None = None,
    ) -> None:
        if not name:
            raise ValueError("State name is required")
        self._handlers[name] = RegisteredState(name=name, setup=setup, teardown=teardown)

    def state(self, name: str, teardown: StateHandler | None = None) -> Callable[[StateHandler], StateHandler]:
        """Decorator form of ``register``."""

        def decorator(func: StateHandler) -> StateHandler:
            self.register(name, func, teardown=teardown)
            return func

        return decorator

    def __contains__(self, name: object) -> bool:
        return name in self._handlers

    def names(self) -> List[str]:
        return list(self._handlers)

    async def setup(self, state: ProviderState, timeout: float = 30.0) -> None:
        """
        Establish ``state`` on the provider.

        Raises:
            StateSetupError: no handler is registered, the handler failed,
                or it did not finish within ``timeout`` seconds
        """
        entry = self._handlers.get(state.name)
        if entry is None:
            if self.fallback is not None:
                await self.fallback(state, "setup", timeout)
                return
            raise StateSetupError(
                f"No handler registered for provider state '{state.name}'",
                state.name,
                {"registered": self.names()},
            )

        await _invoke(entry.setup, state, timeout, "setup")
        logger.debug("provider_state_ready", state=state.name)

    async def teardown(self, state: ProviderState, timeout: float = 30.0) -> None:
        entry = self._handlers.get(state.name)
        if entry is None:
            if self.fallback is not None:
                await self.fallback(state, "teardown", timeout)
            return
        if entry.teardown is not None:
            await _invoke(entry.teardown, state, timeout, "teardown")


async def _invoke(handler: StateHandler, state: ProviderState, timeout: float, action: str) -> None:
    params = dict(state.params)
    try:
        if inspect.iscoroutinefunction(handler):
            outcome = await asyncio.wait_for(_call(handler, params), timeout)
        else:
            outcome = await asyncio.wait_for(_in_daemon_thread(handler, params), timeout)
            if inspect.isawaitable(outcome):
                outcome = await asyncio.wait_for(outcome, timeout)
    except asyncio.TimeoutError as e:
        raise StateSetupError(
            f"Provider state '{state.name}' {action} timed out after {timeout}s", state.name
        ) from e
    except StateSetupError:
        raise
    except Exception as e:
        raise StateSetupError(
            f"Provider state '{state.name}' {action} failed: {e}",
            state.name,
            {"cause": type(e).__name__},
        ) from e

    if outcome is False:
        raise StateSetupError(f"Provider state '{state.name}' {action} reported failure", state.name)


def _call(handler: StateHandler, params: dict[str, Any]) -> Any:
    try:
        parameters = inspect.signature(handler).parameters
    except (TypeError, ValueError):
        return handler(params)
    if not parameters:
        return handler()
    return handler(params)


def _in_daemon_thread(handler: StateHandler, params: dict[str, Any]) -> asyncio.Future:
    """
    Run a blocking handler on its own daemon thread.

    A handler that outlives its timeout is abandoned: nothing joins the
    thread, so the event loop (and ``asyncio.run``) can finish without it.
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future = loop.create_future()

    def settle(result: Any, error: Optional[BaseException]) -> None:
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)

    def run() -> None:
        try:
            result, error = _call(handler, params), None
        except Exception as e:
            result, error = None, e
        try:
            loop.call_soon_threadsafe(settle, result, error)
        except RuntimeError:
            # Loop already closed after the handler timed out.
            logger.debug("provider_state_abandoned", handler=getattr(handler, "__name__", repr(handler)))

    threading.Thread(target=run, name="provider-state-handler", daemon=True).start()
    return future
