"""Per-conversation session state and the registry that owns it."""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field

from cartpilot.capabilities.base import CapabilityBindings
from cartpilot.capabilities.models import DeliveryAddress
from cartpilot.memory.models import TurnEntry, system_entry
from cartpilot.memory.store import TurnLogStore

from .cart_memory import CartActionMemory
from .interrupts import PrivilegedActionInterruptManager

logger = logging.getLogger("cartpilot.orchestrator")


class CancellationToken:
    """Set once the owning conversation is torn down."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


@dataclass(slots=True)
class ConversationSession:
    """State owned by the orchestrator for one conversation."""

    conversation_id: str
    store: TurnLogStore
    capabilities: CapabilityBindings
    cart_memory: CartActionMemory = field(default_factory=CartActionMemory)
    interrupts: PrivilegedActionInterruptManager = field(default_factory=PrivilegedActionInterruptManager)
    current_address: DeliveryAddress | None = None
    user_id: str | None = None
    token: CancellationToken = field(default_factory=CancellationToken)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)

    @property
    def bindings(self) -> CapabilityBindings:
        """Capability bindings acting as the authenticated user, if any."""

        return self.capabilities.for_user(self.user_id)

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def append(self, entry: TurnEntry) -> bool:
        """Append to the turn log unless the session was torn down."""

        if self.token.cancelled:
            logger.info("Discarding %s entry for torn down conversation %s", entry.role.value, self.conversation_id)
            return False
        self.store.append_entry(entry)
        return True

    def snapshot(self) -> list[TurnEntry]:
        return self.store.read_snapshot(self.conversation_id)

    def ensure_system_prompt(self, prompt: str) -> None:
        """Make the system prompt the first entry of a new conversation."""

        if not self.store.fetch_recent(self.conversation_id, limit=1):
            self.append(system_entry(self.conversation_id, prompt))

    def clear_history(self, prompt: str) -> None:
        self.store.reset(self.conversation_id, keep_system=True)
        self.ensure_system_prompt(prompt)
        self.cart_memory.clear()
        self.interrupts.cancel()


class SessionRegistry:
    """Creates sessions lazily and tears them down on request."""

    def __init__(self, store: TurnLogStore, capabilities: CapabilityBindings) -> None:
        self._store = store
        self._capabilities = capabilities
        self._sessions: dict[str, ConversationSession] = {}
        self._lock = threading.Lock()

    @property
    def store(self) -> TurnLogStore:
        return self._store

    def get(self, conversation_id: str) -> ConversationSession | None:
        with self._lock:
            return self._sessions.get(conversation_id)

    def get_or_create(self, conversation_id: str) -> ConversationSession:
        with self._lock:
            session = self._sessions.get(conversation_id)
            if session is None:
                session = ConversationSession(
                    conversation_id=conversation_id,
                    store=self._store,
                    capabilities=self._capabilities,
                )
                self._sessions[conversation_id] = session
            return session

    def teardown(self, conversation_id: str) -> bool:
        with self._lock:
            session = self._sessions.pop(conversation_id, None)
        if session is None:
            return False
        session.token.cancel()
        logger.info("Tore down session %s", conversation_id)
        return True

    def reset(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.token.cancel()
