"""Turn orchestrator driving model replies and function calls to completion."""

from __future__ import annotations

import logging

from cartpilot.core.errors import ModelTransportError, TurnInProgressError
from cartpilot.core.metrics import MetricsCollector
from cartpilot.functions.base import ExecutionContext, FunctionResult
from cartpilot.functions.router import FunctionRouter
from cartpilot.functions.schemas import PRIVILEGED_FUNCTIONS
from cartpilot.memory.models import (
    FunctionCallRequest,
    assistant_entry,
    function_result_entry,
    user_entry,
)
from cartpilot.model.base import ModelReply, ModelService
from cartpilot.model.prompts import SYSTEM_PROMPT

from .events import (
    AuthRequired,
    FunctionCallRequested,
    FunctionResultEvent,
    PartialText,
    ProgressUpdate,
    SequenceEnded,
    TurnEvent,
    TurnEventStream,
)
from .loop_guard import LoopGuard
from .session import ConversationSession
from .types import StopReason, TurnOutcome

logger = logging.getLogger("cartpilot.orchestrator")


class TurnOrchestrator:
    """Runs the send, route, continue loop for one conversation at a time.

    Every model output is appended to the turn log as it arrives. Function
    calls are routed one at a time, each result is appended before the model
    is asked to continue, and the sequence stops on a plain reply, the
    iteration cap, a repeated call, a privileged call without authentication,
    a model transport failure or session teardown.
    """

    def __init__(
        self,
        model: ModelService,
        router: FunctionRouter,
        *,
        max_iterations: int = 10,
        metrics: MetricsCollector | None = None,
        loop_guard: LoopGuard | None = None,
        system_prompt: str = SYSTEM_PROMPT,
    ) -> None:
        self.model = model
        self.router = router
        self.max_iterations = max_iterations
        self.metrics = metrics or MetricsCollector()
        self.loop_guard = loop_guard or LoopGuard()
        self.system_prompt = system_prompt

    async def run_turn(
        self,
        session: ConversationSession,
        user_text: str,
        *,
        extra_context: str | None = None,
        events: TurnEventStream | None = None,
    ) -> TurnOutcome:
        if session.lock.locked():
            raise TurnInProgressError(session.conversation_id)

        async with session.lock:
            session.ensure_system_prompt(self.system_prompt)
            history = session.snapshot()
            session.append(user_entry(session.conversation_id, user_text))

            async def on_chunk(text: str) -> None:
                await _publish(events, PartialText(text=text))

            try:
                reply = await self.model.send(history, user_text, extra_context, on_chunk)
            except ModelTransportError as exc:
                logger.warning("Model request failed for %s: %s", session.conversation_id, exc)
                outcome = TurnOutcome(stop_reason=StopReason.TRANSPORT_ERROR)
            else:
                if session.cancelled:
                    outcome = TurnOutcome(stop_reason=StopReason.CANCELLED)
                else:
                    outcome = await self._drive(session, reply, events)

            return await self._finish(outcome, events)

    async def resume_after_auth(
        self,
        session: ConversationSession,
        user_id: str,
        *,
        events: TurnEventStream | None = None,
    ) -> TurnOutcome:
        """Execute the paused privileged call once and continue the sequence."""

        session.user_id = user_id
        call = session.interrupts.begin_resume()
        if call is None:
            return await self._finish(TurnOutcome(stop_reason=StopReason.NOTHING_PENDING), events)

        logger.info("Resuming %s for %s after authentication", call.name, session.conversation_id)
        try:
            async with session.lock:
                result = await self._route(session, call, events)
                if session.cancelled:
                    outcome = TurnOutcome(stop_reason=StopReason.CANCELLED, iterations=1)
                else:
                    self._append_result(session, call, result)
                    await _publish(events, FunctionResultEvent(call.name, result.success, result.to_payload()))
                    outcome = await self._continue(session, events, previous=call, routed=1)
        finally:
            session.interrupts.finish_resume()

        return await self._finish(outcome, events)

    async def cancel_auth(
        self,
        session: ConversationSession,
        *,
        events: TurnEventStream | None = None,
    ) -> TurnOutcome:
        discarded = session.interrupts.cancel()
        reason = StopReason.AUTH_CANCELLED if discarded is not None else StopReason.NOTHING_PENDING
        return await self._finish(TurnOutcome(stop_reason=reason), events)

    async def _drive(
        self,
        session: ConversationSession,
        reply: ModelReply,
        events: TurnEventStream | None,
        *,
        previous: FunctionCallRequest | None = None,
        routed: int = 0,
    ) -> TurnOutcome:
        iterations = routed
        while reply.function_call is not None:
            call = reply.function_call
            session.append(assistant_entry(session.conversation_id, function_call=call))
            await _publish(events, FunctionCallRequested(name=call.name, arguments=call.arguments))

            if self.loop_guard.should_stop(previous, call):
                return TurnOutcome(stop_reason=StopReason.LOOP_DETECTED, iterations=iterations)

            if call.name in PRIVILEGED_FUNCTIONS and not session.is_authenticated:
                if not session.interrupts.request(call):
                    return TurnOutcome(stop_reason=StopReason.PENDING_CONFLICT, iterations=iterations)
                await _publish(events, AuthRequired(function_name=call.name))
                return TurnOutcome(
                    stop_reason=StopReason.AUTH_REQUIRED,
                    iterations=iterations,
                    pending_function=call,
                )

            if iterations >= self.max_iterations:
                logger.warning(
                    "Reached %s function calls for %s, stopping sequence",
                    self.max_iterations,
                    session.conversation_id,
                )
                return TurnOutcome(stop_reason=StopReason.ITERATION_CAP, iterations=iterations)

            result = await self._route(session, call, events)
            iterations += 1
            if session.cancelled:
                return TurnOutcome(stop_reason=StopReason.CANCELLED, iterations=iterations)

            self._append_result(session, call, result)
            await _publish(events, FunctionResultEvent(call.name, result.success, result.to_payload()))

            try:
                reply = await self.model.continue_(session.snapshot())
            except ModelTransportError as exc:
                logger.warning("Model continuation failed for %s: %s", session.conversation_id, exc)
                return TurnOutcome(stop_reason=StopReason.TRANSPORT_ERROR, iterations=iterations)
            if session.cancelled:
                return TurnOutcome(stop_reason=StopReason.CANCELLED, iterations=iterations)
            previous = call

        text = reply.text or ""
        session.append(assistant_entry(session.conversation_id, text))
        return TurnOutcome(stop_reason=StopReason.COMPLETED, reply=text, iterations=iterations)

    async def _continue(
        self,
        session: ConversationSession,
        events: TurnEventStream | None,
        *,
        previous: FunctionCallRequest,
        routed: int,
    ) -> TurnOutcome:
        try:
            reply = await self.model.continue_(session.snapshot())
        except ModelTransportError as exc:
            logger.warning("Model continuation failed for %s: %s", session.conversation_id, exc)
            return TurnOutcome(stop_reason=StopReason.TRANSPORT_ERROR, iterations=routed)
        if session.cancelled:
            return TurnOutcome(stop_reason=StopReason.CANCELLED, iterations=routed)
        return await self._drive(session, reply, events, previous=previous, routed=routed)

    async def _route(
        self,
        session: ConversationSession,
        call: FunctionCallRequest,
        events: TurnEventStream | None,
    ) -> FunctionResult:
        async def progress(message: str) -> None:
            await _publish(events, ProgressUpdate(message=message))

        context = ExecutionContext(
            capabilities=session.bindings,
            current_address=session.current_address,
            progress=progress,
        )
        result = await self.router.route(call, context, cart_memory=session.cart_memory)
        self.metrics.record_function_call(call.name, result.success)
        return result

    def _append_result(self, session: ConversationSession, call: FunctionCallRequest, result: FunctionResult) -> None:
        session.append(function_result_entry(session.conversation_id, call.name, result.to_payload()))

    async def _finish(self, outcome: TurnOutcome, events: TurnEventStream | None) -> TurnOutcome:
        self.metrics.record_turn(outcome.stop_reason.value)
        await _publish(
            events,
            SequenceEnded(
                stop_reason=outcome.stop_reason.value,
                reply=outcome.reply,
                iterations=outcome.iterations,
            ),
        )
        return outcome


async def _publish(events: TurnEventStream | None, event: TurnEvent) -> None:
    if events is not None:
        await events.publish(event)
