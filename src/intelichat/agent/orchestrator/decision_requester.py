"""
Decision Requester.

Builds one model request for the active agent and parses the reply into
a typed Decision. Fails closed: transport, provider, timeout and parse
errors all yield a synthetic apology decision with no action.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from ..domain.entities import AgentBundle, Decision, LANGUAGE_KEY, Message, SessionState
from ..domain.exceptions import DecisionParseError
from ..domain.ports import ILLMProvider
from ..providers.base import LLMProviderError
from ..providers.factory import ProviderFactory
from .prompt_builder import PromptBuilder
from .reply_schema import parse_decision

logger = logging.getLogger(__name__)


DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 1024
DEFAULT_APOLOGY = "Hubo un problema procesando tu solicitud. Por favor, intenta de nuevo."


class DecisionRequester:
    """Requests a structured decision from the model.

    Usage:
        requester = DecisionRequester(llm_provider)

        decision = await requester.request_decision(bundle, history, session_state)
        if decision.is_fallback:
            ...  # the model failed; decision.say holds the apology

    When a ProviderFactory is supplied, agents that name their own
    provider/model are served by that provider instead of the default one.
    """

    def __init__(
        self,
        llm_provider: ILLMProvider,
        prompt_builder: Optional[PromptBuilder] = None,
        provider_factory: Optional[ProviderFactory] = None,
        timeout_seconds: float = 60.0,
        apology_message: str = DEFAULT_APOLOGY,
    ):
        """Initialize the decision requester.

        Args:
            llm_provider: Default provider
            prompt_builder: Prompt builder (a default one when omitted)
            provider_factory: Factory for per-agent provider overrides
            timeout_seconds: Upper bound for one model round trip
            apology_message: Utterance of the synthetic failure decision
        """
        self.llm = llm_provider
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.provider_factory = provider_factory
        self.timeout_seconds = timeout_seconds
        self.apology_message = apology_message

    def _provider_for(self, bundle: AgentBundle) -> ILLMProvider:
        if self.provider_factory and (bundle.llm_provider or bundle.llm_model):
            return self.provider_factory.get(bundle.llm_provider, bundle.llm_model)
        return self.llm

    async def request_decision(
        self,
        bundle: AgentBundle,
        history: list[Message],
        session_state: SessionState,
    ) -> Decision:
        """Ask the model for the next decision.

        Args:
            bundle: Active agent's configuration bundle
            history: History to send (possibly retrieval-augmented)
            session_state: Current session state

        Returns:
            Parsed decision, or the synthetic apology decision on any failure
        """
        language = session_state.get(LANGUAGE_KEY) or "es"
        system_prompt = self.prompt_builder.build_system_prompt(
            bundle, language, session_state
        )
        messages = self.prompt_builder.build_messages(history, session_state)

        temperature = (
            bundle.temperature if bundle.temperature is not None else DEFAULT_TEMPERATURE
        )
        max_tokens = bundle.max_tokens or DEFAULT_MAX_TOKENS

        try:
            provider = self._provider_for(bundle)
            raw_reply = await asyncio.wait_for(
                provider.complete(
                    messages=messages,
                    system_prompt=system_prompt,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    json_mode=True,
                ),
                timeout=self.timeout_seconds,
            )
            logger.debug(f"Raw model reply for {bundle.name}: {raw_reply}")
            decision = parse_decision(raw_reply)

        except asyncio.TimeoutError:
            logger.error(
                f"Model call for {bundle.name} timed out after {self.timeout_seconds}s"
            )
            return Decision.apology(self.apology_message)
        except LLMProviderError as e:
            logger.error(f"Model call for {bundle.name} failed ({e.error_type.value}): {e}")
            return Decision.apology(self.apology_message)
        except DecisionParseError as e:
            logger.error(f"Unparseable model reply for {bundle.name}: {e}")
            return Decision.apology(self.apology_message)
        except Exception as e:
            logger.exception(f"Unexpected error requesting decision for {bundle.name}: {e}")
            return Decision.apology(self.apology_message)

        action_type = decision.action.type.value if decision.action and decision.action.type else None
        logger.debug(f"Decision from {bundle.name}: say={bool(decision.say)} action={action_type}")
        return decision
