"""
Turn Orchestrator.

Main orchestration logic for one conversational turn. Coordinates:
- Deterministic openings (welcome, hand-back)
- The bounded decision loop over the active agent
- Retrieval augmentation of the model request
- Action application (state patches, tool calls, hand-offs, endings)
- Deterministic overrides of the model's last utterance
"""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass, field
from typing import Optional

from ..domain.entities import (
    ACTIVE_AGENT_KEY,
    AgentBundle,
    CallToolAction,
    CHATBOT_ID_KEY,
    CLIENT_ID_KEY,
    EndConversationAction,
    FinishTurnAction,
    HANDBACK_FLAG_KEY,
    HandoffAction,
    LANGUAGE_KEY,
    Message,
    MessageKind,
    ResponseMessage,
    RetrievalResult,
    SessionState,
    SetStateAction,
    TurnResult,
    UnknownAction,
)
from ..domain.ports import (
    IAgentStore,
    ILLMProvider,
    IRetrievalService,
    IToolDispatcher,
)
from ..providers.factory import ProviderFactory
from .config_resolver import AgentConfigResolver, ResolverConfig
from .decision_requester import DEFAULT_APOLOGY, DecisionRequester
from .retrieval_augmentor import RetrievalAugmentor, augment
from .tool_executor import ToolExecutor
from .transcript import TurnTranscript

logger = logging.getLogger(__name__)


# Hard ceiling on model round trips per turn; not configurable.
MAX_ITERATIONS = 5


@dataclass
class OrchestratorConfig:
    """Configuration for the turn orchestrator.

    Attributes:
        default_agent: Coordinator agent that specialists hand back to
        specialist_agents: Agents whose finish_turn returns control to the coordinator
        affirmative_tokens: User inputs that confirm a proposed hand-off
        default_language: Language used when the session has none
        model_timeout_seconds: Upper bound for one model call
        tool_timeout_seconds: Upper bound for one tool call
        retrieval_timeout_seconds: Upper bound for one retrieval search
        store_timeout_seconds: Upper bound for one store lookup
        retrieval_max_results: Maximum passages injected per request
        retrieval_score_threshold: Minimum passage score
        apology_message: Utterance used when the model or the turn fails
    """

    default_agent: str = "info"
    specialist_agents: frozenset[str] = field(
        default_factory=lambda: frozenset({"onboarding", "clientes"})
    )
    affirmative_tokens: frozenset[str] = field(
        default_factory=lambda: frozenset({"si", "yes"})
    )
    default_language: str = "es"
    model_timeout_seconds: float = 60.0
    tool_timeout_seconds: float = 30.0
    retrieval_timeout_seconds: float = 15.0
    store_timeout_seconds: float = 10.0
    retrieval_max_results: int = 5
    retrieval_score_threshold: float = 0.7
    apology_message: str = DEFAULT_APOLOGY


class TurnOrchestrator:
    """Drives one conversational turn.

    Manages the turn:
    1. Clone the session state and enrich it (owning client id)
    2. Consume the one-shot hand-back flag
    3. Short-circuit with a welcome or hand-back message when configured
    4. Loop (at most MAX_ITERATIONS): resolve the active agent, augment the
       request with retrieval context, request a decision, apply it
    5. Return the new state, the response messages and the transcript

    Usage:
        orchestrator = TurnOrchestrator.create(
            llm_provider=provider,
            agent_store=store,
            tool_dispatcher=registry,
        )

        result = await orchestrator.process_input("hola", session_state, history)
        for message in result.messages:
            print(message.agent_name, message.text)

    `process_input` never raises; the worst case is an apology message
    with the input session state.
    """

    def __init__(
        self,
        resolver: AgentConfigResolver,
        decision_requester: DecisionRequester,
        tool_executor: ToolExecutor,
        retrieval_augmentor: Optional[RetrievalAugmentor] = None,
        agent_store: Optional[IAgentStore] = None,
        config: Optional[OrchestratorConfig] = None,
    ):
        """Initialize the orchestrator.

        Args:
            resolver: Agent configuration resolver (owns the bundle cache)
            decision_requester: Model request/parse step
            tool_executor: Tool invocation and result reduction
            retrieval_augmentor: Optional retrieval step
            agent_store: Store used to resolve the owning client id
            config: Orchestrator configuration
        """
        self.resolver = resolver
        self.decisions = decision_requester
        self.tools = tool_executor
        self.retrieval = retrieval_augmentor
        self.agent_store = agent_store
        self.config = config or OrchestratorConfig()

    @classmethod
    def create(
        cls,
        llm_provider: ILLMProvider,
        agent_store: IAgentStore,
        tool_dispatcher: IToolDispatcher,
        retrieval_service: Optional[IRetrievalService] = None,
        config: Optional[OrchestratorConfig] = None,
        resolver_config: Optional[ResolverConfig] = None,
        provider_factory: Optional[ProviderFactory] = None,
    ) -> TurnOrchestrator:
        """Wire an orchestrator and its components from collaborators."""
        config = config or OrchestratorConfig()
        resolver_config = resolver_config or ResolverConfig(
            store_timeout_seconds=config.store_timeout_seconds
        )
        return cls(
            resolver=AgentConfigResolver(agent_store, resolver_config),
            decision_requester=DecisionRequester(
                llm_provider,
                provider_factory=provider_factory,
                timeout_seconds=config.model_timeout_seconds,
                apology_message=config.apology_message,
            ),
            tool_executor=ToolExecutor(
                tool_dispatcher, timeout_seconds=config.tool_timeout_seconds
            ),
            retrieval_augmentor=RetrievalAugmentor(
                retrieval_service,
                max_results=config.retrieval_max_results,
                score_threshold=config.retrieval_score_threshold,
                timeout_seconds=config.retrieval_timeout_seconds,
            ),
            agent_store=agent_store,
            config=config,
        )

    async def process_input(
        self,
        user_input: str,
        session_state: SessionState,
        history: list[Message],
    ) -> TurnResult:
        """Process one user input.

        Args:
            user_input: Raw user text
            session_state: Session state at the start of the turn (not mutated)
            history: Conversation history so far (not mutated)

        Returns:
            TurnResult with the new state, response messages and transcript
        """
        try:
            return await self._run_turn(user_input, session_state, history)
        except Exception as e:
            logger.exception(f"Unexpected error processing turn: {e}")
            return self._failed_turn(user_input, session_state, history)

    async def _run_turn(
        self,
        user_input: str,
        session_state: SessionState,
        history: list[Message],
    ) -> TurnResult:
        state = copy.deepcopy(session_state)
        if not state.get(ACTIVE_AGENT_KEY):
            state[ACTIVE_AGENT_KEY] = self.config.default_agent
        if not state.get(LANGUAGE_KEY):
            state[LANGUAGE_KEY] = self.config.default_language

        await self._resolve_client_id(state)

        # One-shot flag: consumed before anything else, whatever the outcome.
        is_handback_turn = bool(state.get(HANDBACK_FLAG_KEY))
        state[HANDBACK_FLAG_KEY] = False

        transcript = TurnTranscript(history)
        language = state[LANGUAGE_KEY]
        chatbot_id = state.get(CHATBOT_ID_KEY)

        if not history:
            agent = state[ACTIVE_AGENT_KEY]
            welcome = await self.resolver.lookup_message(
                agent, MessageKind.WELCOME, language, chatbot_id
            )
            if welcome:
                logger.info(f"Using welcome message of {agent}")
                transcript.emit(welcome, agent)
                return self._result(state, transcript, model_calls=0)

        if user_input and user_input.strip():
            transcript.add_user(user_input)

        if is_handback_turn:
            agent = state[ACTIVE_AGENT_KEY]
            handback = await self.resolver.lookup_message(
                agent, MessageKind.HANDBACK, language, chatbot_id
            )
            if handback:
                logger.info(f"Using hand-back message of {agent}")
                transcript.emit(handback, agent)
                return self._result(state, transcript, model_calls=0)

        model_calls = 0
        retrieval_cache: dict[int, tuple[RetrievalResult, str]] = {}
        is_affirmative = (user_input or "").strip().lower() in self.config.affirmative_tokens

        for iteration in range(MAX_ITERATIONS):
            agent = state[ACTIVE_AGENT_KEY]
            language = state.get(LANGUAGE_KEY) or self.config.default_language
            logger.info(f"Iteration {iteration + 1}/{MAX_ITERATIONS} - agent: {agent}")

            bundle = await self.resolver.resolve(agent, language, state.get(CHATBOT_ID_KEY))
            messages = await self._request_history(
                user_input, bundle, state, transcript, retrieval_cache
            )

            decision = await self.decisions.request_decision(bundle, messages, state)
            model_calls += 1

            if decision.say:
                transcript.emit(decision.say, agent)

            action = decision.action

            if isinstance(action, HandoffAction) and is_affirmative:
                confirmation = bundle.message_for(MessageKind.HANDOFF_CONFIRMATION, language)
                if confirmation:
                    logger.info(
                        f"Hand-off confirmed: {agent} -> {action.target_agent}; "
                        f"using confirmation message"
                    )
                    transcript.replace_or_emit(confirmation, agent)
                    state[ACTIVE_AGENT_KEY] = action.target_agent
                    break

            if action is None:
                break

            if isinstance(action, UnknownAction):
                logger.warning(f"Unknown action type from {agent}: {action.raw_type}")
                break

            logger.info(f"Agent {agent} declared action: {action.type.value}")

            if isinstance(action, SetStateAction):
                state.update(action.patch)
                logger.debug(f"Session state updated: {action.patch}")
                continue

            if isinstance(action, CallToolAction):
                summary = await self.tools.invoke(action.tool_name, action.args)
                transcript.add_tool_result(summary)
                continue

            if isinstance(action, HandoffAction):
                state[ACTIVE_AGENT_KEY] = action.target_agent
                logger.info(f"Active agent changed: {agent} -> {action.target_agent}")
                continue

            if isinstance(action, FinishTurnAction):
                self._finish_turn(agent, bundle, language, state, transcript)
                break

            if isinstance(action, EndConversationAction):
                farewell = bundle.message_for(MessageKind.FAREWELL, language)
                if farewell and transcript.replace_last_emitted(farewell, agent):
                    logger.info(f"Using farewell message of {agent}")
                logger.info(f"Agent {agent} ended the conversation")
                break
        else:
            logger.warning(f"Iteration cap reached ({MAX_ITERATIONS}); ending turn")

        return self._result(state, transcript, model_calls=model_calls)

    def _finish_turn(
        self,
        agent: str,
        bundle: AgentBundle,
        language: str,
        state: SessionState,
        transcript: TurnTranscript,
    ) -> None:
        """Hand a specialist back to the coordinator and apply the end-of-task message."""
        if agent.lower() in self.config.specialist_agents:
            logger.info(
                f"Specialist {agent} finished; returning control to {self.config.default_agent}"
            )
            state[ACTIVE_AGENT_KEY] = self.config.default_agent
            state[HANDBACK_FLAG_KEY] = True

        end_of_task = bundle.message_for(MessageKind.END_OF_TASK, language)
        if end_of_task and transcript.replace_last_emitted(end_of_task, agent):
            logger.info(f"Using end-of-task message of {agent}")

    async def _request_history(
        self,
        user_input: str,
        bundle: AgentBundle,
        state: SessionState,
        transcript: TurnTranscript,
        retrieval_cache: dict[int, tuple[RetrievalResult, str]],
    ) -> list[Message]:
        """History to send for this iteration, retrieval-augmented when enabled."""
        messages = transcript.messages()
        if self.retrieval is None or not bundle.retrieval_enabled or bundle.agent_id is None:
            return messages

        if bundle.agent_id not in retrieval_cache:
            retrieval_cache[bundle.agent_id] = await self.retrieval.fetch(
                user_input, bundle, state
            )
        _, block = retrieval_cache[bundle.agent_id]
        return augment(messages, block)

    async def _resolve_client_id(self, state: SessionState) -> None:
        """Fill in the owning client id from the chatbot id; failures are ignored."""
        chatbot_id = state.get(CHATBOT_ID_KEY)
        if state.get(CLIENT_ID_KEY) or not chatbot_id or self.agent_store is None:
            return

        try:
            client_id = await asyncio.wait_for(
                self.agent_store.resolve_client_id(chatbot_id),
                timeout=self.config.store_timeout_seconds,
            )
        except Exception as e:
            logger.error(f"Failed to resolve client id for chatbot {chatbot_id}: {e}")
            return

        if client_id is not None:
            state[CLIENT_ID_KEY] = client_id

    def _result(
        self, state: SessionState, transcript: TurnTranscript, model_calls: int
    ) -> TurnResult:
        snapshot = transcript.finalize()
        return TurnResult(
            session_state=state,
            messages=snapshot.responses,
            history=snapshot.history,
            new_entries=snapshot.new_entries,
            action=None,
            model_calls=model_calls,
        )

    def _failed_turn(
        self,
        user_input: str,
        session_state: SessionState,
        history: list[Message],
    ) -> TurnResult:
        """Apology result carrying the input state with the hand-back flag cleared."""
        state = dict(session_state)
        state[HANDBACK_FLAG_KEY] = False
        agent = state.get(ACTIVE_AGENT_KEY) or self.config.default_agent

        transcript = TurnTranscript(history)
        if user_input and user_input.strip():
            transcript.add_user(user_input)
        transcript.emit(self.config.apology_message, agent)
        snapshot = transcript.finalize()

        return TurnResult(
            session_state=state,
            messages=[ResponseMessage(text=self.config.apology_message, agent_name=agent)],
            history=snapshot.history,
            new_entries=snapshot.new_entries,
        )
