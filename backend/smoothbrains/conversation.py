"""
SmoothBrains Backend: Conversation helpers

Summaries, session names, wrinkle point evaluation and the idea chat itself.
"""

import json
import random
import re
from dataclasses import asdict

from smoothbrains import llm, prompts, search
from smoothbrains.config import log
from smoothbrains.models import ChatPMFAnalysis, WrinkleEvaluation

MIN_WRINKLE_POINTS = 0.1
MAX_SESSION_NAME_LENGTH = 15
MAX_SUGGESTIONS = 4
CHAT_HISTORY_LIMIT = 10


def _is_user_message(message: dict) -> bool:
    return message.get("type") == "user" or message.get("role") == "user"


def format_conversation(messages: list[dict]) -> str:
    """'User: ...' / 'Assistant: ...' lines, typing placeholders and empty messages dropped."""
    lines = [
        f"{'User' if _is_user_message(m) else 'Assistant'}: {m['content']}"
        for m in messages
        if not m.get("isTyping") and m.get("content")
    ]
    return "\n\n".join(lines)


def split_sentences(text: str) -> list[str]:
    return [s.strip() for s in re.split(r"[.!?]+", text) if s.strip()]


async def summarize_conversation(messages: list[dict], session_id: str | None = None) -> dict:
    """
    Two-sentence summary of a brainstorming conversation.

    Raises LLMError once every retry has failed.
    """
    conversation_text = format_conversation(messages)
    raw = await llm.fetch_with_retry(
        prompts.build_summary_prompt(conversation_text),
        retries=2,
        session_id=session_id,
        temperature=0.3,
        max_tokens=200,
    )

    sentences = split_sentences(raw.strip())
    if len(sentences) < 2:
        log("WARN", "summary too short, using fallback", session_id=session_id, sentences=len(sentences))
        return {"summary": prompts.FALLBACK_SUMMARY, "sentences": 2}

    return {"summary": ". ".join(sentences[:2]) + ".", "sentences": len(sentences)}


async def generate_session_name(context: str | None, session_id: str | None = None) -> str:
    """One letters-only word describing the idea. Never raises."""
    try:
        raw = await llm.call_llm(
            prompts.build_session_name_prompt(context),
            session_id=session_id,
            temperature=0.9,
            max_tokens=10,
        )
    except llm.LLMError as e:
        log("WARN", "session name generation failed", session_id=session_id, error=str(e))
        return prompts.get_fallback_session_name()

    name = re.sub(r"[^a-zA-Z]", "", raw.strip())
    if not name or len(name) > MAX_SESSION_NAME_LENGTH:
        return prompts.get_fallback_session_name()
    return name


async def evaluate_wrinkle_points(
    user_message: str,
    current_idea: str | None,
    conversation_history: list[dict],
    current_wrinkle_points: float,
    session_id: str | None = None,
) -> dict:
    """
    Points earned by the user's latest message. Always at least 0.1, and
    never raises: a failed evaluation still awards a small random amount.
    """
    messages = prompts.build_wrinkle_prompt(
        user_message, current_idea, conversation_history, current_wrinkle_points
    )
    try:
        evaluation = await llm.call_llm_structured(
            messages, WrinkleEvaluation, session_id=session_id, temperature=0.3, max_tokens=150
        )
    except (llm.LLMError, llm.LLMValidationError) as e:
        log("WARN", "wrinkle evaluation failed, using fallback", session_id=session_id, error=str(e))
        return {
            "pointChange": round(random.uniform(MIN_WRINKLE_POINTS, 1.0), 2),
            "explanation": random.choice(prompts.WRINKLE_FALLBACK_EXPLANATIONS),
        }

    return {
        "pointChange": max(MIN_WRINKLE_POINTS, evaluation.point_change),
        "explanation": evaluation.explanation,
    }


# ─────────────────────────────────────────────────────────────────────────────
# Idea chat
# ─────────────────────────────────────────────────────────────────────────────


def normalize_history(history: list[dict]) -> list[dict]:
    """Frontend messages ({type, content}) as LLM chat messages ({role, content})."""
    normalized = []
    for message in history[-CHAT_HISTORY_LIMIT:]:
        content = message.get("content")
        if not content or message.get("isTyping"):
            continue
        role = "user" if _is_user_message(message) else "assistant"
        normalized.append({"role": role, "content": content})
    return normalized


def split_suggestions(text: str) -> tuple[str, list[str]]:
    """
    Split a reply into (body, suggestions) using the JSON array on its
    final line. Text without one comes back unchanged with no suggestions.
    """
    match = re.search(r"\[[^\[\]]*\]\s*$", text)
    if not match:
        return text.strip(), []
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError:
        return text.strip(), []
    suggestions = [s.strip() for s in parsed if isinstance(s, str) and s.strip()]
    return text[: match.start()].strip(), suggestions[:MAX_SUGGESTIONS]


async def _search_context(query: str, session_id: str | None) -> list[dict]:
    results = await search.search(query, num_results=5)
    log("INFO", "chat search context", session_id=session_id, query=query[:80], results=len(results))
    return [asdict(r) for r in results]


async def chat_pmf_analysis(idea: str, session_id: str | None = None) -> dict:
    """
    Structured PMF analysis for the chat, grounded in web search results.

    Raises LLMError, LLMValidationError.
    """
    search_results = await _search_context(f"{idea} market size competitors", session_id)
    analysis = await llm.call_llm_structured(
        prompts.build_chat_pmf_prompt(idea, search_results),
        ChatPMFAnalysis,
        session_id=session_id,
        temperature=0.4,
    )
    return {
        "response": f'I\'ve completed a comprehensive analysis of "{idea}". '
                    f"The PM-Fit score is {analysis.pmf_score}/100.",
        "pmfAnalysis": analysis.model_dump(),
        "suggestions": list(prompts.PMF_FOLLOW_UP_SUGGESTIONS),
    }


async def chat_reply(
    message: str,
    conversation_history: list[dict],
    idea: str | None = None,
    current_question: str | None = None,
    session_id: str | None = None,
) -> dict:
    """
    Conversational reply with up to four follow-up suggestions.

    Raises LLMError.
    """
    search_results: list[dict] = []
    if idea:
        query = prompts.build_chat_search_query(idea, current_question or message)
        search_results = await _search_context(query, session_id)

    messages = prompts.build_chat_prompt(
        message, normalize_history(conversation_history), idea, current_question, search_results
    )
    raw = await llm.call_llm(messages, session_id=session_id, temperature=0.5, max_tokens=800)
    reply, suggestions = split_suggestions(raw)
    if not suggestions:
        suggestions = prompts.get_fallback_suggestions(idea)

    return {
        "response": reply or f"Let me help you analyze {idea or 'your idea'} with real market data.",
        "suggestions": suggestions,
        "metadata": {
            "questionContext": current_question,
            "ideaContext": idea,
            "sources": [r["url"] for r in search_results],
        },
    }

