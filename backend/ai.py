import json
import logging
import os
import re
from enum import Enum
from typing import Optional

import httpx
import openai
from fastapi import Request
from openai import AsyncOpenAI
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from backend.errors import MalformedContentError, UpstreamError, UpstreamTimeoutError, ValidationError

OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY", "")
OPENROUTER_BASE_URL = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
APP_URL = os.getenv("APP_URL", "http://localhost:3000")
APP_TITLE = "ClassGPT - AI Professor"
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "120"))

TEMPERATURE = 0.7
TOP_P = 0.9

logger = logging.getLogger("ai")


#######################
# ENUMS
#######################


class Difficulty(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class ContentKind(str, Enum):
    NOTES = "notes"
    SLIDES = "slides"
    MCQS = "mcqs"
    ALL = "all"

    def expand(self) -> list["ContentKind"]:
        """The concrete kinds to generate: `all` means every kind, anything else means itself."""
        if self is ContentKind.ALL:
            return [ContentKind.NOTES, ContentKind.SLIDES, ContentKind.MCQS]
        return [self]


class ModelTier(str, Enum):
    FAST = "fast"
    BALANCED = "balanced"
    DETAILED = "detailed"


DEFAULT_TIER = ModelTier.BALANCED

MODELS = {
    ModelTier.FAST: os.getenv("FAST_MODEL", "mistralai/mistral-7b-instruct:free"),
    ModelTier.BALANCED: os.getenv("BALANCED_MODEL", "google/gemma-7b-it:free"),
    ModelTier.DETAILED: os.getenv("DETAILED_MODEL", "nousresearch/nous-hermes-2-mixtral-8x7b-dpo:free"),
}

MODEL_DESCRIPTIONS = {
    ModelTier.FAST: (
        "Fast and responsive, excellent for quick generation",
        "Quick notes and basic content",
    ),
    ModelTier.BALANCED: (
        "High-quality text generation with good coherence",
        "Detailed notes and MCQ explanations",
    ),
    ModelTier.DETAILED: (
        "Comprehensive and detailed content generation",
        "Complex topics requiring deeper understanding",
    ),
}


def resolve_tier(tier: Optional[str]) -> ModelTier:
    """Map a tier name to a ModelTier. `None` gives the default tier, unknown names are rejected."""
    if tier is None:
        return DEFAULT_TIER
    if isinstance(tier, ModelTier):
        return tier
    try:
        return ModelTier(str(tier).lower())
    except ValueError:
        valid = ", ".join(t.value for t in ModelTier)
        raise ValidationError(f"Unknown model tier '{tier}'. Expected one of: {valid}")


def list_models() -> dict:
    return {
        tier.value: {
            "name": MODELS[tier],
            "description": MODEL_DESCRIPTIONS[tier][0],
            "best_for": MODEL_DESCRIPTIONS[tier][1],
        }
        for tier in ModelTier
    }


#######################
# PYDANTIC MODELS
#######################


class Question(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: int = Field(description="1-based position of the question in the set")
    question: str
    options: dict[str, str] = Field(description="Option label (A-D) to option text")
    correct_answer: Optional[str] = Field(default=None, description="One of the option labels. Not guaranteed to be a key of `options`.")
    explanation: str = ""

    def has_valid_answer(self) -> bool:
        return self.correct_answer is not None and self.correct_answer in self.options


class QuestionSet(BaseModel):
    questions: list[Question] = Field(default_factory=list)
    parse_error: bool = False
    raw_response: Optional[str] = None


#######################
# MCQ PARSING
#######################

_FENCE_RE = re.compile(r"^```(?:json)?\s*\n?(.*?)\n?```$", re.DOTALL | re.IGNORECASE)


def _load_question_set(text: str) -> QuestionSet:
    """Strictly load a QuestionSet from LLM text, raising MalformedContentError on any mismatch."""
    candidate = (text or "").strip()
    fenced = _FENCE_RE.match(candidate)
    if fenced:
        candidate = fenced.group(1).strip()

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError:
        # Models like to wrap the object in prose; retry on the outermost braces.
        start, end = candidate.find("{"), candidate.rfind("}")
        if start == -1 or end <= start:
            raise MalformedContentError("MCQ response is not JSON", raw_response=text)
        try:
            data = json.loads(candidate[start:end + 1])
        except json.JSONDecodeError as e:
            raise MalformedContentError(f"MCQ response is not JSON: {e}", raw_response=text)

    if not isinstance(data, dict) or not isinstance(data.get("questions"), list):
        raise MalformedContentError("MCQ response has no 'questions' list", raw_response=text)

    questions = []
    for position, item in enumerate(data["questions"], start=1):
        try:
            questions.append(Question.model_validate(item))
        except PydanticValidationError as e:
            logger.warning(f"[_load_question_set] Dropping question {position}: {e.error_count()} validation errors")
    if data["questions"] and not questions:
        raise MalformedContentError("MCQ response has no question matching the expected shape", raw_response=text)
    return QuestionSet(questions=questions)


def parse_question_set(text: str) -> QuestionSet:
    """Parse MCQ output. Never raises: malformed text yields an empty set flagged with `parse_error`."""
    try:
        return _load_question_set(text)
    except MalformedContentError as e:
        logger.warning(f"[parse_question_set] Falling back to empty question set: {e.message}")
        return QuestionSet(questions=[], parse_error=True, raw_response=e.raw_response)


#######################
# GATEWAY
#######################


class LLMGateway:
    """
    Performs single chat-completion calls against an OpenRouter compatible API.

    Args:
        api_key (str, optional): Bearer token for the upstream. Defaults to OPENROUTER_API_KEY.
        base_url (str, optional): Upstream base URL. Defaults to OPENROUTER_BASE_URL.
        app_url (str, optional): Sent as HTTP-Referer. Defaults to APP_URL.
        timeout (float, optional): Per-call timeout in seconds. Defaults to LLM_TIMEOUT_SECONDS.
        client (AsyncOpenAI, optional): Prebuilt client, mostly for tests.

    The gateway owns its HTTP client; call `aclose()` on shutdown.
    """

    def __init__(
        self,
        api_key: str = None,
        base_url: str = None,
        app_url: str = None,
        timeout: float = None,
        client: AsyncOpenAI = None,
    ):
        self.api_key = OPENROUTER_API_KEY if api_key is None else api_key
        self.base_url = base_url or OPENROUTER_BASE_URL
        self.timeout = timeout or LLM_TIMEOUT_SECONDS
        self.http_client = httpx.AsyncClient(
            limits=httpx.Limits(max_connections=100, max_keepalive_connections=20)
        )
        self.client = client or AsyncOpenAI(
            # An empty key still builds the client; generate() refuses to call out without one.
            api_key=self.api_key or "",
            base_url=self.base_url,
            http_client=self.http_client,
            max_retries=0,
            timeout=self.timeout,
            default_headers={
                "HTTP-Referer": app_url or APP_URL,
                "X-Title": APP_TITLE,
            },
        )

    def _scrub(self, message: str) -> str:
        if self.api_key:
            message = message.replace(self.api_key, "***")
        return message

    async def generate(self, prompt: str, tier: ModelTier = DEFAULT_TIER, max_tokens: int = 2000) -> str:
        """Run one completion and return `choices[0].message.content` unmodified."""
        func_name = "generate"
        tier = resolve_tier(tier)
        model = MODELS[tier]
        if not self.api_key:
            raise UpstreamError("Upstream API key is not configured (OPENROUTER_API_KEY)")

        logger.info(f"[{func_name}] Calling {model} (tier={tier.value}, max_tokens={max_tokens}).")
        logger.debug(f"[{func_name}] Prompt: '{prompt[:100]}...'")
        try:
            completion = await self.client.chat.completions.create(
                model=model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=max_tokens,
                temperature=TEMPERATURE,
                top_p=TOP_P,
            )
        except openai.APITimeoutError:
            logger.error(f"[{func_name}] {model} timed out after {self.timeout}s.")
            raise UpstreamTimeoutError(f"AI API timed out after {self.timeout:g}s")
        except openai.APIStatusError as e:
            message = self._scrub(getattr(e, "message", None) or str(e))
            logger.error(f"[{func_name}] {model} answered {e.status_code}: {message}")
            raise UpstreamError(f"AI API Error ({e.status_code}): {message}")
        except openai.APIError as e:
            message = self._scrub(str(e))
            logger.error(f"[{func_name}] {model} call failed: {message}")
            raise UpstreamError(f"AI API Error: {message}")

        choices = getattr(completion, "choices", None) or []
        content = choices[0].message.content if choices and choices[0].message else None
        if content is None:
            logger.error(f"[{func_name}] {model} returned a response without choices[0].message.content.")
            raise UpstreamError("AI API Error: malformed response envelope")

        logger.info(f"[{func_name}] {model} returned {len(content)} chars.")
        return content

    async def generate_mcqs(self, prompt: str, tier: ModelTier = DEFAULT_TIER, max_tokens: int = 3000) -> QuestionSet:
        """Like `generate`, but parsed into a QuestionSet. Only transport failures raise."""
        text = await self.generate(prompt, tier=tier, max_tokens=max_tokens)
        question_set = parse_question_set(text)
        logger.info(f"[generate_mcqs] Parsed {len(question_set.questions)} questions (parse_error={question_set.parse_error}).")
        return question_set

    async def aclose(self):
        await self.http_client.aclose()


def get_gateway(request: Request) -> LLMGateway:
    return request.app.state.gateway
