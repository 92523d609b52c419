# services/openai_llm.py
from __future__ import annotations

import json
import logging

from openai import APIConnectionError, APIStatusError, AsyncOpenAI, OpenAIError

from ai.contexts import (
    BattleTurnInput,
    BattleTurnOutput,
    BattleVerdict,
    BattleVerdictInput,
    DigestStats,
    DigestThreadContext,
    PersonaContext,
    PostContext,
    ReplyContext,
)
from ai.prompt_builder import (
    ChatPrompt,
    build_battle_turn_prompt,
    build_battle_verdict_prompt,
    build_persona_digest_prompt,
    build_reply_prompt,
    build_thread_summary_prompt,
)
from api.app.config import Settings
from jobs.outcome import FailureKind
from services.llm import GenerationError

logger = logging.getLogger(__name__)


def classify_openai_error(exc: Exception) -> GenerationError:
    """Map SDK exceptions onto transient/permanent generation errors."""
    if isinstance(exc, APIConnectionError):  # includes APITimeoutError
        return GenerationError(f"openai connection error: {exc}", FailureKind.TRANSIENT)
    if isinstance(exc, APIStatusError):
        status = exc.status_code
        message = f"openai provider error: status={status}"
        if status == 429 or status >= 500:
            return GenerationError(message, FailureKind.TRANSIENT)
        return GenerationError(message, FailureKind.PERMANENT)
    return GenerationError(f"openai error: {exc}", FailureKind.TRANSIENT)


class OpenAILLM:
    def __init__(self, settings: Settings, client: AsyncOpenAI | None = None):
        self.settings = settings
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.settings.openai_api_key:
                raise GenerationError("OPENAI_API_KEY is required for openai provider", FailureKind.PERMANENT)
            self._client = AsyncOpenAI(
                api_key=self.settings.openai_api_key,
                base_url=self.settings.openai_base_url,
                timeout=self.settings.openai_request_timeout,
                max_retries=self.settings.openai_max_retries,
            )
        return self._client

    async def chat_completion(
        self,
        prompt: ChatPrompt,
        temperature: float = 0.8,
        max_tokens: int = 512,
        json_mode: bool = False,
    ) -> str:
        """Run one chat completion and return the assistant message text."""
        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        logger.info("LLM: sending prompt to %s", self.settings.openai_model)
        try:
            response = await self.client.chat.completions.create(
                model=self.settings.openai_model,
                messages=[
                    {"role": "system", "content": prompt.system},
                    {"role": "user", "content": prompt.user},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
                **kwargs,
            )
        except OpenAIError as exc:
            raise classify_openai_error(exc) from exc

        if not response.choices:
            raise GenerationError("openai provider returned no choices")
        text = (response.choices[0].message.content or "").strip()
        if not text:
            raise GenerationError("openai provider returned empty content")
        logger.info("LLM: got %d chars response", len(text))
        return text

    async def extract_json(self, prompt: ChatPrompt) -> dict:
        """Run a completion expecting a JSON object."""
        raw = await self.chat_completion(prompt, temperature=0.4, max_tokens=1024, json_mode=True)
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise GenerationError(f"openai provider returned malformed JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise GenerationError("openai provider returned non-object JSON")
        return data

    async def generate_reply(
        self, persona: PersonaContext, post: PostContext, thread: list[ReplyContext]
    ) -> str:
        return await self.chat_completion(build_reply_prompt(persona, post, thread), max_tokens=256)

    async def summarize_thread(self, post: PostContext, replies: list[ReplyContext]) -> str:
        return await self.chat_completion(build_thread_summary_prompt(post, replies), temperature=0.3)

    async def summarize_persona_activity(
        self, persona: PersonaContext, stats: DigestStats, threads: list[DigestThreadContext]
    ) -> str:
        return await self.chat_completion(build_persona_digest_prompt(persona, stats, threads), temperature=0.4)

    async def generate_battle_turn(self, turn: BattleTurnInput) -> BattleTurnOutput:
        data = await self.extract_json(build_battle_turn_prompt(turn))
        return BattleTurnOutput(
            claim=str(data.get("claim") or "").strip(),
            evidence=str(data.get("evidence") or "").strip(),
        )

    async def generate_battle_verdict(self, verdict: BattleVerdictInput) -> BattleVerdict:
        data = await self.extract_json(build_battle_verdict_prompt(verdict))
        takeaways = data.get("takeaways") or []
        if not isinstance(takeaways, list):
            takeaways = []
        return BattleVerdict(
            verdict=str(data.get("verdict") or "").strip(),
            takeaways=[str(t) for t in takeaways if isinstance(t, str)],
        )
