"""
LLM answer generation over a notice, using the OpenAI chat API.

The LLM is used to phrase answers — it reads the notice and explains it in
plain language. BUT we never trust it blindly. Every answer it returns is
re-extracted and diffed against the document's canonical facts before a user
sees it.

Design:
  - Evidence-only system prompt: answer from the document or say so
  - Graceful fallback: no API key → returns None → caller refuses
  - Any API failure is logged and returns None
"""

from __future__ import annotations

import logging
import os

from openai import OpenAI, OpenAIError

from .exceptions import AnswerGenerationError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-5"

# ─── System Prompt ───────────────────────────────────────────────────

SYSTEM_PROMPT = """\
당신은 정부·법률 문서를 쉽게 설명하는 도우미입니다.
아래 제공된 문서 내용만 사용하여 질문에 답하세요.

반드시 지켜야 할 규칙:
1. 문서에 있는 날짜, 금액, 기한은 문서에 적힌 그대로 옮기세요. 절대 바꾸거나 계산하지 마세요.
2. 문서에 없는 기한, 과태료, 의무를 추측하거나 만들어내지 마세요.
3. 기한을 말할 때는 그 기한이 적용되는 행동(납부, 제출, 신청 등)을 같은 문장에 쓰세요.
4. 문서에서 답을 찾을 수 없으면 "제공된 문서에서 해당 정보를 찾을 수 없습니다"라고 답하세요.
"""


def generate_answer(question: str, document_text: str) -> str | None:
    """Ask the LLM to answer ``question`` from ``document_text``.

    Returns:
        The answer text, or None if the LLM is unavailable or fails.
        Failure is NOT an error — the caller substitutes a refusal.
    """
    api_key = os.environ.get("OPENAI_API_KEY")
    if not api_key:
        logger.info("No OPENAI_API_KEY set — skipping answer generation")
        return None

    try:
        client = OpenAI(api_key=api_key)
        response = client.chat.completions.create(
            model=os.environ.get("OPENAI_MODEL", DEFAULT_MODEL),
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": f"## 문서\n\n{document_text}\n\n---\n\n## 질문\n\n{question}",
                },
            ],
        )
        content = response.choices[0].message.content
        if not content or not content.strip():
            raise AnswerGenerationError("LLM returned empty content")
    except (OpenAIError, AnswerGenerationError) as e:
        logger.error("Answer generation failed: %s", e)
        return None

    logger.info("Answer generation succeeded")
    return content.strip()
