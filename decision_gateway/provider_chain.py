"""
DecisionProvider chain.

For every alive combatant the chain walks a strict-priority list of providers:
hosted LLMs first, then the agent's scripted strategy (or the RPS weighted
profile), then a hardcoded default. Provider failures are absorbed here and
never reach the match engine.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np

from decision_gateway import config
from decision_gateway.circuit_breaker import CircuitBreaker
from decision_gateway.llm_client import ChatClient, build_clients, is_rate_limit_error
from decision_gateway.prompt_builder import build_battle_prompt, build_rps_prompt
from decision_gateway.rate_limiter import TokenBucket
from decision_gateway.validator import (
    parse_battle_decision,
    parse_rps_move,
    validate_battle_decision,
)
from engine.errors import (
    ProviderError,
    ProviderMalformedResponse,
    ProviderTimeout,
    ScriptedStrategyError,
)
from engine.events import EventChannel
from engine.models import Decision, EngineRules, GameType, StrategyParams
from strategies.rps_profile import choose_move

LOGGER = logging.getLogger("decision_gateway.chain")

FALLBACK_REASONING = "All decision providers exhausted; defaulting to defend"
RPS_FALLBACK_MOVE = "rock"


@dataclass
class RpsChoice:
    move: str
    reasoning: str = ""
    source: str = ""


ChainResult = Union[Decision, RpsChoice]


@dataclass
class DecisionRequest:
    """Everything a provider may look at when choosing for one combatant."""

    agent_id: str
    game_state: Dict[str, Any]
    kind: GameType = GameType.BATTLE
    match_id: str = ""
    name: str = "Unknown"
    params: StrategyParams = field(default_factory=StrategyParams)
    traits: List[str] = field(default_factory=list)
    description: str = ""
    strategy: Any = None
    opponent_last_move: Optional[str] = None
    rules: EngineRules = field(default_factory=EngineRules)


class DecisionProvider:
    name = "provider"
    # Only external providers are throttled and subject to cooldown.
    external = False

    def applies(self, request: DecisionRequest) -> bool:
        return True

    async def decide(self, request: DecisionRequest) -> ChainResult:
        raise NotImplementedError


class LLMProvider(DecisionProvider):
    external = True

    def __init__(self, client: ChatClient, timeout: float = config.AI_TIMEOUT) -> None:
        self.client = client
        self.name = client.name
        self.timeout = timeout

    async def decide(self, request: DecisionRequest) -> ChainResult:
        if request.kind == GameType.RPS:
            system, user = build_rps_prompt(
                request.name,
                request.params,
                request.traits,
                request.description,
                request.game_state,
            )
            text = await self._complete(system, user, config.RPS_MAX_TOKENS)
            parsed = parse_rps_move(text, self.name)
            return RpsChoice(move=parsed["move"], reasoning=parsed["reasoning"], source=self.name)

        system, user = build_battle_prompt(
            request.name,
            request.params,
            request.traits,
            request.description,
            request.game_state,
            request.rules,
        )
        text = await self._complete(system, user, config.BATTLE_MAX_TOKENS)
        decision = parse_battle_decision(text, self.name)
        decision.source = self.name
        return decision

    async def _complete(self, system: str, user: str, max_tokens: int) -> str:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.client.complete, system, user, max_tokens),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise ProviderTimeout(self.name, f"no answer within {self.timeout}s") from exc


class ScriptedStrategyProvider(DecisionProvider):
    """Runs the combatant's own registered strategy, sync or async."""

    name = "scripted"

    def __init__(self, timeout: float = config.STRATEGY_TIMEOUT) -> None:
        self.timeout = timeout

    def applies(self, request: DecisionRequest) -> bool:
        return request.kind == GameType.BATTLE and request.strategy is not None

    async def decide(self, request: DecisionRequest) -> ChainResult:
        try:
            raw = await asyncio.wait_for(
                self._invoke(request.strategy, request.game_state), timeout=self.timeout
            )
        except asyncio.TimeoutError as exc:
            raise ScriptedStrategyError(
                self.name, f"strategy exceeded {self.timeout}s"
            ) from exc
        except ProviderError:
            raise
        except Exception as exc:
            raise ScriptedStrategyError(self.name, f"strategy raised {exc!r}") from exc

        if isinstance(raw, Decision):
            raw.source = self.name
            return raw
        return validate_battle_decision(raw, self.name, source=self.name)

    @staticmethod
    async def _invoke(strategy: Any, game_state: Dict[str, Any]) -> Any:
        decide = strategy.decide
        if inspect.iscoroutinefunction(decide):
            return await decide(game_state)
        result = await asyncio.to_thread(decide, game_state)
        if inspect.isawaitable(result):
            result = await result
        return result


class RpsProfileProvider(DecisionProvider):
    """Weighted-random move keyed off the agent's params, with a counter chance."""

    name = "rps_profile"

    def __init__(self, rng: Optional[np.random.Generator] = None) -> None:
        self.rng = rng if rng is not None else np.random.default_rng()

    def applies(self, request: DecisionRequest) -> bool:
        return request.kind == GameType.RPS

    async def decide(self, request: DecisionRequest) -> ChainResult:
        move = choose_move(
            request.params, request.traits, request.opponent_last_move, self.rng
        )
        return RpsChoice(move=move, reasoning="weighted profile", source=self.name)


class DecisionProviderChain:
    def __init__(
        self,
        providers: Sequence[DecisionProvider],
        breaker: Optional[CircuitBreaker] = None,
        limiter: Optional[TokenBucket] = None,
        channel: Optional[EventChannel] = None,
    ) -> None:
        self.providers = list(providers)
        self.breaker = breaker or CircuitBreaker()
        self.limiter = limiter
        self.channel = channel or EventChannel()

    @property
    def provider_names(self) -> List[str]:
        return [p.name for p in self.providers]

    async def decide(self, request: DecisionRequest) -> ChainResult:
        for provider in self.providers:
            if not provider.applies(request):
                continue
            if provider.external and self.breaker.is_open(provider.name):
                LOGGER.debug("Skipping %s (cooling down)", provider.name)
                continue
            try:
                if provider.external and self.limiter is not None:
                    await self.limiter.acquire()
                result = await provider.decide(request)
            except Exception as exc:
                self._record_failure(provider, request, exc)
                continue
            self._announce(request, result)
            return result

        LOGGER.info("Decision chain exhausted for %s", request.agent_id)
        if request.kind == GameType.RPS:
            result = RpsChoice(
                move=RPS_FALLBACK_MOVE, reasoning=FALLBACK_REASONING, source="default"
            )
        else:
            result = Decision.defend(FALLBACK_REASONING)
        self._announce(request, result)
        return result

    async def collect_decisions(
        self, requests: Sequence[DecisionRequest]
    ) -> Dict[str, ChainResult]:
        """One call at a time, in order; the limiter paces external calls."""
        decisions: Dict[str, ChainResult] = {}
        for request in requests:
            decisions[request.agent_id] = await self.decide(request)
        return decisions

    def _record_failure(
        self, provider: DecisionProvider, request: DecisionRequest, exc: BaseException
    ) -> None:
        reason = getattr(exc, "reason", None) or str(exc) or type(exc).__name__
        if isinstance(exc, ProviderTimeout):
            kind = "timeout"
        elif isinstance(exc, ProviderMalformedResponse):
            kind = "malformed"
        else:
            kind = type(exc).__name__
        LOGGER.warning(
            "Provider %s failed for %s (%s): %s",
            provider.name,
            request.agent_id,
            kind,
            reason,
        )
        if provider.external and is_rate_limit_error(exc):
            self.breaker.trip(provider.name, reason)

    def _announce(self, request: DecisionRequest, result: ChainResult) -> None:
        if isinstance(result, RpsChoice):
            choice = result.move
        else:
            choice = result.action.value
        LOGGER.debug("%s -> %s via %s", request.agent_id, choice, result.source)
        self.channel.emit(
            "agent_reasoning",
            match_id=request.match_id,
            agent_id=request.agent_id,
            action=choice,
            reasoning=result.reasoning,
            provider=result.source,
        )


def build_default_chain(
    channel: Optional[EventChannel] = None,
    breaker: Optional[CircuitBreaker] = None,
    limiter: Optional[TokenBucket] = None,
    session=None,
    rng: Optional[np.random.Generator] = None,
) -> DecisionProviderChain:
    """Chain built from the environment: keyed LLMs, then scripted, then RPS profile."""
    providers: List[DecisionProvider] = [
        LLMProvider(client, timeout=config.AI_TIMEOUT) for client in build_clients(session)
    ]
    providers.append(ScriptedStrategyProvider(timeout=config.STRATEGY_TIMEOUT))
    providers.append(RpsProfileProvider(rng=rng))
    LOGGER.info("Decision chain: %s", ", ".join(p.name for p in providers))
    return DecisionProviderChain(
        providers,
        breaker=breaker or CircuitBreaker(cooldown=config.PROVIDER_COOLDOWN),
        limiter=limiter or TokenBucket(config.DECISION_RATE, config.DECISION_BURST),
        channel=channel,
    )
