from collections.abc import Mapping
from typing import Any, Callable, Iterable, Optional, Protocol
import logging

from infra import SimulatorSettings, get_settings
from pdsim_core.diagnostic_sink.diagnostic_sink import (
    DiagnosticSink,
    get_interceptor,
    get_logging_sink,
)
from pdsim_core.schema.call_spec import CallSpec, SimulationRequest
from pdsim_core.schema.simulation_context import SimulationContext
from pdsim_core.simulation_queue.simulation_queue import SimulationQueue, get_simulation_queue
from pdsim_core.token_generator.token_generator import LegacyTokenGenerator, TokenGenerator

logger = logging.getLogger(__name__)


UNREPRODUCIBLE_MESSAGE = "Unable to reproduce error in simulation"
PERMISSION_DENIED_CODE = "permission_denied"
SIMULATION_TOKEN_OPTIONS = {"simulate": True, "debug": True}


class DatabaseReference(Protocol):
    """Protocol for a client reference to one database path."""
    async def once(self, event_type: str) -> Any: ...
    async def set(self, value: Any) -> Any: ...
    async def update(self, value: Mapping) -> Any: ...
    async def remove(self) -> Any: ...
    async def push(self, value: Any) -> Any: ...


class DatabaseClient(Protocol):
    """Protocol for the database client the simulated calls are issued through.

    While the client is authenticated with a simulate/debug token, the backend
    writes its rule-evaluation transcript to the diagnostic sink before each
    rejected operation completes.
    """
    def unauthenticate(self) -> None: ...

    async def authenticate_with_custom_token(
        self,
        token: str,
        on_complete: Optional[Callable[..., None]] = None,
        remember: str = "none",
    ) -> Any: ...

    def child(self, path: str) -> DatabaseReference: ...


def _error_field(error: Any, name: str) -> Any:
    if isinstance(error, Mapping):
        return error.get(name)
    return getattr(error, name, None)


def is_permission_denied(error: Any) -> bool:
    """Guess whether ``error`` is a permission denied error, or something else.

    Compares the error's ``code`` (or, without one, its message) with
    ``permission_denied`` ignoring case. This is a heuristic: differently worded
    errors from other client versions are not recognized.

    Args:
        error: Exception, or any object/mapping carrying ``code`` or ``message``

    Returns:
        True iff the error is a permission denied error
    """
    code = _error_field(error, "code") or _error_field(error, "message")
    if not code and isinstance(error, BaseException):
        code = str(error)
    return bool(code) and str(code).lower() == PERMISSION_DENIED_CODE


def _ignore_auth_callback(*args, **kwargs) -> None:
    pass


class SimulatorProxy:
    """Simulates calls under one identity.

    Each method returns an explanatory string and never raises because the
    simulated read or write fails. It still raises if the arguments don't
    validate.
    """

    def __init__(self, simulator: "Simulator", token: str):
        self._simulator = simulator
        self._token = token

    async def on(self, ref) -> str:
        return await self._simulator.simulate(self._token, ref, [CallSpec("on", ("value",))])

    async def once(self, ref) -> str:
        return await self._simulator.simulate(self._token, ref, [CallSpec("once", ("value",))])

    async def set(self, ref, value) -> str:
        return await self._simulator.simulate(self._token, ref, [CallSpec("set", (value,))])

    async def update(self, ref, value: Mapping) -> str:
        if not isinstance(value, Mapping):
            raise TypeError(f"update() value must be a mapping, got {type(value).__name__}")
        return await self._simulator.simulate(self._token, ref, [CallSpec("update", (value,))])

    async def remove(self, ref) -> str:
        return await self._simulator.simulate(self._token, ref, [CallSpec("remove")])

    async def push(self, ref, value) -> str:
        return await self._simulator.simulate(self._token, ref, [CallSpec("push", (value,))])

    async def transaction(self, ref, value) -> str:
        """Simulate a transaction that wrote ``value``.

        Pass the value your transaction update function produced, not the
        function itself: the transaction is replayed as a read then a set.
        """
        return await self._simulator.simulate(
            self._token, ref, [CallSpec("once", ("value",)), CallSpec("set", (value,))]
        )


class Simulator:
    """Replays permission denied failures to explain which security rules rejected them.

    Calls are re-issued through a separate database client authenticated with a
    simulate/debug token, and the backend's rule-evaluation transcript is folded
    into a short trace. Simulations run one at a time through the process-wide
    simulation queue because the diagnostic sink is shared by all of them.
    """

    def __init__(
        self,
        database: Any,
        legacy_secret: str,
        client_factory: Callable[[str, str], DatabaseClient],
        *,
        token_generator: Optional[TokenGenerator] = None,
        sink: Optional[DiagnosticSink] = None,
        queue: Optional[SimulationQueue] = None,
        settings: Optional[SimulatorSettings] = None,
    ):
        """Create a new simulator for debugging permission denied errors.

        Args:
            database: Root reference of the live database; ``str(database)`` must be its URL
            legacy_secret: Legacy database secret used to sign simulation tokens
            client_factory: Builds the simulation client from ``(database_url, app_name)``
            token_generator: Overrides the legacy-secret token generator
            sink: Diagnostic sink the client writes to (default: the logger named
                by ``settings.diagnostic_logger``)
            queue: Simulation queue (default: the process-wide queue); simulators
                sharing a sink must share it
            settings: Simulator settings (default: ``infra.get_settings()``)

        Raises:
            ValueError: If ``sink`` is already used by a simulator with a different queue
        """
        self.settings = settings or get_settings()
        self._database_url = str(database).rstrip("/")
        self._client = client_factory(self._database_url, self.settings.app_name)
        self._token_generator = token_generator or LegacyTokenGenerator(legacy_secret)
        self._sink = sink or get_logging_sink(
            self.settings.diagnostic_logger, self.settings.diagnostic_level
        )
        self._queue = queue or get_simulation_queue()
        self._interceptor = get_interceptor(self._sink, self.settings.diagnostic_prefix)
        self._interceptor.bind_queue(self._queue)

    @property
    def database_url(self) -> str:
        return self._database_url

    def is_permission_denied(self, error: Any) -> bool:
        return is_permission_denied(error)

    def auth(self, claims: Mapping) -> SimulatorProxy:
        """Establish the identity under which to simulate calls.

        Args:
            claims: Claims minted into the simulation token, including the uid and
                any extra claims needed to match the real custom token

        Returns:
            SimulatorProxy exposing on, once, set, update, remove, push and transaction
        """
        token = self._token_generator.create_token(claims, SIMULATION_TOKEN_OPTIONS)
        return SimulatorProxy(self, token)

    def _relative_path(self, ref: Any) -> str:
        if ref is None:
            raise ValueError("A database reference is required")
        url = str(ref)
        if url != self._database_url and not url.startswith(self._database_url + "/"):
            raise ValueError(f"Ref not in database {self._database_url}: {url}")
        return url[len(self._database_url):] or "/"

    async def simulate(self, token: str, ref: Any, calls: Iterable[CallSpec]) -> str:
        """Replay ``calls`` against ``ref`` under the identity encoded in ``token``.

        Raises:
            ValueError: If ``ref`` is not in this simulator's database
        """
        request = SimulationRequest(token=token, path=self._relative_path(ref), calls=tuple(calls))
        # Installed as late as possible so the filter sees trace lines before
        # anything else processes them.
        self._interceptor.ensure_installed()
        return await self._queue.enqueue(lambda: self._simulate_calls(request))

    async def _simulate_calls(self, request: SimulationRequest) -> str:
        try:
            self._client.unauthenticate()
            await self._client.authenticate_with_custom_token(
                request.token, _ignore_auth_callback, remember=self.settings.remember
            )
            simulated_ref = self._client.child(request.path)
            context = SimulationContext(location_indent=self.settings.location_indent)
            traces = []
            with self._interceptor.capturing(context):
                for call in request.calls:
                    trace = await self._simulate_call(simulated_ref, call, context)
                    if trace:
                        traces.append(trace)
            if not traces:
                return UNREPRODUCIBLE_MESSAGE
            return "\n\n".join(traces)
        except Exception as e:
            logger.exception("Simulation of %s failed", request.path)
            return f"Error running simulation: {e}"

    async def _simulate_call(
        self,
        simulated_ref: DatabaseReference,
        call: CallSpec,
        context: SimulationContext,
    ) -> Optional[str]:
        context.begin_call()
        try:
            await getattr(simulated_ref, call.method)(*call.args)
        except Exception as e:
            if self.is_permission_denied(e):
                return context.collect()
            logger.warning("Simulated %s raised a different error: %s", call.method, e)
            return f"Got a different error in simulation: {e}"
        return None
