"""Clone workflow: template to running, registered container."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from rhagent.agent.network import NetworkResolver
from rhagent.errors import AgentError, CloneError, ContainerExistsError, FatalError
from rhagent.models.config import RHAgentConfig
from rhagent.models.container import ID_MARKER, CloneRequest, CloneResult, ContainerRecord
from rhagent.pki.exchange import TrustExchange
from rhagent.pki.gpg import GpgIdentity
from rhagent.providers.base import ContainerEngine, MetadataStore


logger = logging.getLogger(__name__)

VETH_PAIR_KEY = "lxc.network.veth.pair"


class Severity(Enum):
    """What a failing step does to the rest of the clone."""
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"


@dataclass
class CloneContext:
    """State carried between clone steps."""
    request: CloneRequest
    parent_id: str = ""
    record: ContainerRecord = field(default_factory=ContainerRecord)


@dataclass
class CloneStep:
    name: str
    action: Callable[[CloneContext], Awaitable[None]]
    severity: Severity


class CloneOrchestrator:
    """Runs the clone steps in order.

    There is no rollback: side effects of completed steps stay in place
    when a later step fails.
    """

    def __init__(
        self,
        config: RHAgentConfig,
        engine: ContainerEngine,
        store: MetadataStore,
        identity: GpgIdentity,
        exchange: TrustExchange,
        network: Optional[NetworkResolver] = None,
    ):
        self.config = config
        self.engine = engine
        self.store = store
        self.identity = identity
        self.exchange = exchange
        self.network = network or NetworkResolver(engine)

    @property
    def steps(self) -> List[CloneStep]:
        return [
            CloneStep("resolving parent template", self._resolve_parent, Severity.WARN),
            CloneStep("importing parent template", self._ensure_template, Severity.ERROR),
            CloneStep("checking container name", self._check_duplicate, Severity.ERROR),
            CloneStep("cloning the container", self._clone, Severity.FATAL),
            CloneStep("generating container key", self._generate_key, Severity.FATAL),
            CloneStep("exchanging keys with management", self._exchange_keys, Severity.FATAL),
            CloneStep("recording environment", self._record_environment, Severity.ERROR),
            CloneStep("configuring network", self._configure_network, Severity.ERROR),
            CloneStep("setting container uid", self._assign_uid, Severity.WARN),
            CloneStep("applying container settings", self._harden, Severity.WARN),
            CloneStep("starting container", self._start, Severity.ERROR),
            CloneStep("reading veth interface", self._read_interface, Severity.WARN),
            CloneStep("writing container data to database", self._persist, Severity.WARN),
        ]

    async def clone(self, request: CloneRequest) -> CloneResult:
        ctx = CloneContext(request=request)
        for step in self.steps:
            await self._run_step(step, ctx)

        fingerprint = await self.identity.get_fingerprint(request.name)
        result = CloneResult(
            name=request.name,
            fingerprint=fingerprint,
            metadata=ctx.record.to_metadata(),
        )
        logger.info(result.message)
        return result

    async def _run_step(self, step: CloneStep, ctx: CloneContext) -> None:
        logger.debug(f"{ctx.request.name}: {step.name}")
        try:
            await step.action(ctx)
        except AgentError:
            if step.severity is Severity.WARN:
                logger.warning(f"{step.name.capitalize()} for {ctx.request.name} failed", exc_info=True)
                return
            raise
        except Exception as e:
            if step.severity is Severity.WARN:
                logger.warning(f"{step.name.capitalize()} for {ctx.request.name}: {e}")
                return
            message = f"{step.name.capitalize()} {ctx.request.name}: {e}"
            logger.error(message)
            if step.severity is Severity.FATAL:
                raise FatalError(message) from e
            raise CloneError(message) from e

    async def _open_store(self) -> None:
        try:
            await self.store.open()
        except Exception as e:
            logger.warning(f"Opening database: {e}")

    async def _close_store(self) -> None:
        try:
            await self.store.close()
        except Exception as e:
            logger.warning(f"Closing database: {e}")

    async def _resolve_parent(self, ctx: CloneContext) -> None:
        parent = ctx.request.parent
        ctx.parent_id = ctx.request.parent_id or parent
        ctx.record.parent = ctx.parent_id
        if ctx.request.parent_id is not None:
            return

        await self._open_store()
        try:
            template_id = await self.store.resolve_template_id(parent)
        finally:
            await self._close_store()

        if template_id:
            ctx.parent_id = template_id
            ctx.record.parent = template_id
        else:
            logger.warning(f"No template id recorded for {parent}, using the name")

    async def _ensure_template(self, ctx: CloneContext) -> None:
        if not await self.engine.template_exists(ctx.parent_id):
            await self.engine.import_template(ID_MARKER + ctx.parent_id, ctx.request.cdn_token)

    async def _check_duplicate(self, ctx: CloneContext) -> None:
        if await self.engine.container_exists(ctx.request.name):
            raise ContainerExistsError(ctx.request.name)

    async def _clone(self, ctx: CloneContext) -> None:
        await self.engine.clone(ctx.parent_id, ctx.request.name)

    async def _generate_key(self, ctx: CloneContext) -> None:
        await self.identity.generate_key(ctx.request.name)

    async def _exchange_keys(self, ctx: CloneContext) -> None:
        if ctx.request.token:
            await self.exchange.exchange_and_encrypt(ctx.request.name, ctx.request.token)

    async def _record_environment(self, ctx: CloneContext) -> None:
        if ctx.request.environment:
            ctx.record.environment = ctx.request.environment

    async def _configure_network(self, ctx: CloneContext) -> None:
        if not ctx.request.network:
            return
        assignment = await self.network.configure(ctx.request.name, ctx.request.network)
        if assignment:
            ctx.record.ip = assignment.ip
            ctx.record.vlan = assignment.vlan

    async def _assign_uid(self, ctx: CloneContext) -> None:
        ctx.record.uid = await self.engine.assign_uid(ctx.request.name)

    async def _harden(self, ctx: CloneContext) -> None:
        await self.engine.apply_hardening(ctx.request.name)

    async def _start(self, ctx: CloneContext) -> None:
        await self.engine.start(ctx.request.name)

    async def _read_interface(self, ctx: CloneContext) -> None:
        ctx.record.interface = await self.engine.read_config_value(ctx.request.name, VETH_PAIR_KEY)

    async def _persist(self, ctx: CloneContext) -> None:
        await self._open_store()
        try:
            await self.store.put_container_record(ctx.request.name, ctx.record.to_metadata())
        finally:
            await self._close_store()
