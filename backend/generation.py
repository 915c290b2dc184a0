import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from backend.ai import ContentKind, Difficulty, LLMGateway, ModelTier, resolve_tier
from backend.database import ContentRecord, RecordStore
from backend.prompts import build_prompt

logger = logging.getLogger("generation")

# Default (tier, max_tokens) for each concrete kind
KIND_SETTINGS = {
    ContentKind.NOTES: (ModelTier.DETAILED, 3000),
    ContentKind.SLIDES: (ModelTier.BALANCED, 2500),
    ContentKind.MCQS: (ModelTier.DETAILED, 3000),
}


class GenerationRequest(BaseModel):
    topic: str = Field(min_length=2, max_length=200)
    subject: str = Field(min_length=2, max_length=100)
    difficulty: Difficulty = Difficulty.INTERMEDIATE
    content_kind: ContentKind
    mcq_count: int = Field(default=10, ge=5, le=50)
    slide_count: int = Field(default=12, ge=5, le=20)
    custom_instructions: Optional[str] = Field(default=None, max_length=500)
    model_tier: Optional[ModelTier] = Field(default=None, description="Overrides the per-kind default tier")


async def _generate_kind(kind: ContentKind, request: GenerationRequest, gateway: LLMGateway):
    tier, max_tokens = KIND_SETTINGS[kind]
    if request.model_tier is not None:
        tier = resolve_tier(request.model_tier)
    prompt = build_prompt(kind, request)
    logger.info(f"[_generate_kind] Generating {kind.value} for '{request.topic}' (tier={tier.value}).")
    if kind is ContentKind.MCQS:
        return await gateway.generate_mcqs(prompt, tier=tier, max_tokens=max_tokens)
    return await gateway.generate(prompt, tier=tier, max_tokens=max_tokens)


async def generate_content(request: GenerationRequest, gateway: LLMGateway, store: RecordStore) -> ContentRecord:
    """Generate every kind the request asks for, then persist one record.

    The kind-specific calls run concurrently. If any of them fails the rest are
    cancelled, the error propagates and nothing is stored.
    """
    func_name = "generate_content"
    kinds = request.content_kind.expand()
    logger.info(f"[{func_name}] '{request.topic}' ({request.subject}, {request.difficulty.value}): {[k.value for k in kinds]}")

    tasks = [asyncio.create_task(_generate_kind(kind, request, gateway)) for kind in kinds]
    try:
        results = await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.error(f"[{func_name}] Generation for '{request.topic}' failed; nothing stored.")
        raise

    content = dict(zip(kinds, results))
    record = ContentRecord(
        id=uuid.uuid4().hex,
        topic=request.topic,
        subject=request.subject,
        difficulty=request.difficulty,
        content_kind=request.content_kind,
        notes=content.get(ContentKind.NOTES),
        slides=content.get(ContentKind.SLIDES),
        mcqs=content.get(ContentKind.MCQS),
        created_at=datetime.now(timezone.utc),
    )
    return store.put(record)
