"""
Handler registry and dispatcher.

Handlers register once at startup under a unique name.  The dispatcher
resolves a name, feeds the handler its own transcript for the
conversation, and records the call in the turn's accumulator.  Routing
must always produce *a* reply, so unknown names and handler errors come
back as reply text instead of exceptions.
"""

from typing import Dict, List, Optional, Protocol, runtime_checkable

from loguru import logger

from infrastructure.observability import ConversationTracer
from memory.conversation_store import ConversationStore, Transcript
from memory.turn_context import TurnContext

NO_RESPONSE = "No response generated"


class UnknownHandlerError(LookupError):
    """No handler is registered under the requested name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Handler '{name}' not found.")
        self.name = name


class DuplicateHandlerError(ValueError):
    """A strict registry refused a second handler with the same name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Handler '{name}' is already registered.")
        self.name = name


@runtime_checkable
class Handler(Protocol):
    """A named unit that answers routed questions."""

    name: str

    def invoke(self, transcript: Transcript, context: TurnContext) -> str:
        """Reply to the last user message of ``transcript``."""
        ...


class HandlerRegistry:
    """
    Name → handler table, read-only once the application is wired.

    Registration overwrites an existing name unless the registry was
    created with ``strict=True``.
    """

    def __init__(self, strict: bool = False) -> None:
        self.strict = strict
        self._handlers: Dict[str, Handler] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)

    def register(self, handler: Handler) -> None:
        if handler is None:
            raise ValueError("handler must not be None")
        if handler.name in self._handlers:
            if self.strict:
                raise DuplicateHandlerError(handler.name)
            logger.debug("Replacing handler '{}'", handler.name)
        self._handlers[handler.name] = handler

    def get(self, name: str) -> Handler:
        try:
            return self._handlers[name]
        except KeyError:
            raise UnknownHandlerError(name) from None

    def names(self) -> List[str]:
        return sorted(self._handlers)


class HandlerDispatcher:
    """Invokes registered handlers on behalf of the orchestrator."""

    def __init__(
        self,
        registry: HandlerRegistry,
        store: ConversationStore,
        tracer: Optional[ConversationTracer] = None,
    ) -> None:
        self.registry = registry
        self.store = store
        self.tracer = tracer or ConversationTracer()

    def dispatch(self, handler_name: str, question: str, context: TurnContext) -> str:
        """
        Ask ``handler_name`` the question within the turn ``context``.

        Returns the handler's reply, ``"Handler '<name>' not found."`` for
        an unknown name, or ``"Error: <message>"`` if the handler raised.
        """
        try:
            handler = self.registry.get(handler_name)
        except UnknownHandlerError as exc:
            logger.warning("Dispatch to unknown handler '{}'", handler_name)
            return str(exc)

        # Recorded before invoking, so failed calls still count as used
        context.accumulator.record_handler_used(handler_name)

        with self.tracer.invocation("agent", context.conversation_id, handler_name, question) as span:
            transcript = context.touch(
                self.store.get_or_create_handler_transcript(context.conversation_id, handler_name)
            )
            transcript.append_user(question)

            try:
                reply = handler.invoke(transcript, context)
            except Exception as exc:
                logger.error("Handler '{}' failed: {}", handler_name, exc)
                span.complete(str(exc), success=False)
                return f"Error: {exc}"

            reply = reply or NO_RESPONSE
            transcript.append_assistant(reply)

            _, documents = context.accumulator.peek()
            if documents:
                span.add_metadata(**{"gen_ai.search.documents": documents})
            span.complete(reply, success=True)

        logger.debug("Handler '{}' replied ({} chars)", handler_name, len(reply))
        return reply
