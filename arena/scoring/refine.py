"""
Prompt refinement.

Asks a chat model to rewrite a prompt so it is more specific. When no
OpenRouter credential is available, or the call fails for any reason, a
set of local rules is applied instead and the result is flagged with
fallback_used.
"""

import logging
from dataclasses import dataclass, field

from arena.dispatcher.handlers import invoke
from arena.dispatcher.types import ConversationTurn, SamplingParams
from arena.registry.models import ProviderFamily

logger = logging.getLogger(__name__)

REFINER_MODEL = "microsoft/wizardlm-2-8x22b"
REFINER_MAX_TOKENS = 150
REFINER_TEMPERATURE = 0.7

DEFAULT_IMPROVEMENT = "Enhanced prompt clarity and effectiveness"

TASK_ALIASES = {"image": "image_generation", "text": "text_generation"}

SYSTEM_PROMPT_TEMPLATE = """You are an expert at improving prompts to make them more effective and specific.

Task Type: {task_type}
Target Model: {target_model}

Improve the prompt by:
1. Making it more specific and detailed
2. Adding relevant context
3. Using clear, actionable language
4. Optimizing for the task type
5. Keeping the original intent

For image generation: Add style, lighting, and quality details.
For text generation: Add structure and tone preferences.

Return only the improved prompt."""


@dataclass(frozen=True)
class RefinementResult:
    original_prompt: str
    refined_prompt: str
    improvements: list[str] = field(default_factory=list)
    confidence: int = 0
    fallback_used: bool = False


def _normalize_task(task_type: str) -> str:
    return TASK_ALIASES.get(task_type, task_type)


def _describe_improvements(prompt: str, refined: str, task_type: str) -> list[str]:
    refined_lower = refined.lower()
    improvements = []
    if len(refined) > len(prompt):
        improvements.append("Enhanced with more detail")
    if task_type == "image_generation" and "style" in refined_lower:
        improvements.append("Added style specifications")
    if task_type == "text_generation" and ("structure" in refined_lower or "format" in refined_lower):
        improvements.append("Added structure requirements")
    if "detailed" in refined_lower or "specific" in refined_lower:
        improvements.append("Made prompt more specific")
    return improvements


def refine_locally(prompt: str, task_type: str = "general") -> RefinementResult:
    """
    Rule-based refinement used when no chat model is reachable.

    Rules are applied in order and each one may build on the previous
    rewrite, so later rules see the already-expanded prompt.
    """
    task_type = _normalize_task(task_type)
    lower = prompt.lower()
    refined = prompt
    improvements: list[str] = []

    if len(prompt) < 50:
        refined = f"Please provide a detailed explanation of: {prompt}"
        improvements.append("Added request for detailed explanation")

    match task_type:
        case "image_generation":
            if "detailed" not in lower:
                refined = f"Create a detailed, high-quality image with professional lighting and composition: {prompt}"
                improvements.append("Added detail and quality specifications")
            if "style" not in lower:
                refined = f"{refined}. Style: photorealistic, professional photography."
                improvements.append("Added style specifications")
            if "lighting" not in lower:
                refined = f"{refined}. Lighting: soft, natural lighting."
                improvements.append("Added lighting specifications")
        case "text_generation":
            if "detailed" not in lower:
                refined = f"Please provide a comprehensive and detailed response to: {prompt}"
                improvements.append("Added comprehensive response request")
            if "structure" not in lower and len(prompt) > 100:
                refined = f"{refined}. Please structure your response with clear sections and examples."
                improvements.append("Added structure requirements")
        case "analytical":
            if "analyze" not in lower:
                refined = f"Please analyze and provide a structured breakdown of: {prompt}"
                improvements.append("Added analytical structure request")
            if "compare" not in lower and "vs" in lower:
                refined = f"{refined}. Please provide a detailed comparison with pros and cons."
                improvements.append("Added comparison framework")
        case "creative":
            if "creative" not in lower:
                refined = f"Be creative and imaginative in your response to: {prompt}"
                improvements.append("Added creative direction")
            if "ideas" not in lower:
                refined = f"{refined}. Generate multiple innovative ideas and approaches."
                improvements.append("Added idea generation request")

    if "please" not in lower and "could you" not in lower:
        refined = f"Please {refined.lower()}"
        improvements.append("Added polite request format")

    return RefinementResult(
        original_prompt=prompt,
        refined_prompt=refined,
        improvements=improvements or [DEFAULT_IMPROVEMENT],
        confidence=min(100, 70 + len(improvements) * 10),
        fallback_used=True,
    )


async def refine(
    prompt: str,
    task_type: str = "general",
    target_model: str | None = None,
    credential: str | None = None,
) -> RefinementResult:
    """
    Refine a prompt with a chat model, falling back to local rules.

    Args:
        prompt: The prompt to improve (must be non-empty)
        task_type: general, coding, creative, analytical, image / image_generation,
            text / text_generation
        target_model: Model the prompt will be sent to, passed as context
        credential: OpenRouter API key (None means local rules only)

    Returns:
        RefinementResult

    Raises:
        ValueError: If prompt is empty
    """
    if not prompt:
        raise ValueError("prompt must not be empty")

    if credential is None or not credential.strip():
        logger.info("Prompt refinement: no OpenRouter key, using local rules")
        return refine_locally(prompt, task_type)

    turns = (
        ConversationTurn(
            role="system",
            content=SYSTEM_PROMPT_TEMPLATE.format(task_type=task_type, target_model=target_model or "general"),
        ),
        ConversationTurn(role="user", content=f'Please improve this prompt: "{prompt}"'),
    )
    outcome = await invoke(
        ProviderFamily.CHAT,
        REFINER_MODEL,
        turns,
        SamplingParams(temperature=REFINER_TEMPERATURE, max_tokens=REFINER_MAX_TOKENS),
        credential,
    )

    refined = outcome.envelope.content.strip() if outcome.success else ""
    if not refined:
        reason = outcome.error.message if outcome.error else "empty refinement"
        logger.warning(f"Prompt refinement via {REFINER_MODEL} failed, using local rules: {reason}")
        return refine_locally(prompt, task_type)

    improvements = _describe_improvements(prompt, refined, _normalize_task(task_type))
    return RefinementResult(
        original_prompt=prompt,
        refined_prompt=refined,
        improvements=improvements or [DEFAULT_IMPROVEMENT],
        confidence=min(100, 80 + len(improvements) * 5),
        fallback_used=False,
    )
