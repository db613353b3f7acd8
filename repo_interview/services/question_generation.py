# repo_interview/services/question_generation.py

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List

from sqlalchemy.orm import Session

from repo_interview.errors import (
    DescriptionRequiredError,
    ModelOutputError,
    NoRelevantChunksError,
    SmartInterviewerDisabledError,
)
from repo_interview.models import InterviewQuestion, Submission
from repo_interview.services.chunker import CodeChunk
from repo_interview.services.retrieval import Retriever, SearchOptions, apply_budgets, deduplicate
from repo_interview.utils.logging import logger

MIN_QUESTIONS = 1
MAX_QUESTIONS = 4
MAX_ANCHORS = 3

# Context budget for the generation prompt
GENERATION_SEARCH = SearchOptions(top_k=8, max_chunks=8, max_chunk_chars=4000, max_total_chars=30_000)

# Follow-up context for the live interview agent
FOLLOW_UP_SEARCH = SearchOptions(top_k=10, max_chunks=10, max_chunk_chars=4000, max_total_chars=20_000)
FOLLOW_UP_MAX_CHUNKS = 6
FOLLOW_UP_MAX_TOTAL_CHARS = 16_000


@dataclass(frozen=True)
class Anchor:
    path: str
    start_line: int
    end_line: int

    def to_dict(self) -> dict:
        return {"path": self.path, "startLine": self.start_line, "endLine": self.end_line}


@dataclass
class GeneratedQuestion:
    prompt: str
    anchors: List[Anchor] = field(default_factory=list)


@dataclass
class GenerationResult:
    questions: List[GeneratedQuestion]
    retrieved_chunk_count: int
    chunk_paths: List[str]
    stripped_anchor_count: int = 0


def clamp_question_count(num_questions) -> int:
    try:
        n = round(float(num_questions))
    except (TypeError, ValueError):
        n = 2
    return max(MIN_QUESTIONS, min(MAX_QUESTIONS, n))


def format_chunks(chunks: List[CodeChunk]) -> str:
    return "\n\n---\n\n".join(
        f"[Snippet {i}]\npath: {c.path}\nstartLine: {c.start_line}\nendLine: {c.end_line}\n\n{c.content}"
        for i, c in enumerate(chunks, start=1)
    )


def format_anchor_list(chunks: List[CodeChunk]) -> str:
    return "\n".join(
        f'{i}. path: "{c.path}", startLine: {c.start_line}, endLine: {c.end_line}'
        for i, c in enumerate(chunks, start=1)
    )


def build_system_prompt(num_questions: int, custom_instructions: str | None = None) -> str:
    plural = "" if num_questions == 1 else "s"
    prompt = f"""You are a technical interviewer. Generate exactly {num_questions} interview question{plural} based on the provided assessment description and code snippets from the candidate's submission.

These questions will be asked in a voice interview. The interviewer will ask each base question and then 1-2 follow-up questions, so each base question must be substantial enough to support meaningful follow-up discussion.

Requirements:
- Generate exactly {num_questions} thoughtful, specific question{plural}
- Anchors must be chosen ONLY from the provided snippets' file paths and line ranges
- DO NOT invent file paths or line numbers - only use what is provided
- Questions should test understanding, design decisions, trade-offs, and potential improvements
- Mix questions specific to the code with questions about how the candidate approached the project

Output strict JSON with a single key "questions" containing an array of objects. Each object must have:
- "prompt": string (the question text)
- "anchors": array of objects with "path", "startLine", "endLine" (1-3 anchors per question, matching the provided snippets)

Example format:
{{
  "questions": [
    {{
      "prompt": "In your authentication middleware, why did you extract the token from the Authorization header this way?",
      "anchors": [
        {{"path": "src/auth/middleware.js", "startLine": 41, "endLine": 240}}
      ]
    }}
  ]
}}"""
    if custom_instructions and custom_instructions.strip():
        prompt += (
            "\n\nAdditional Instructions for Question Generation:\n"
            f"{custom_instructions.strip()}\n\n"
            "IMPORTANT: If these custom instructions contradict any of the default "
            "instructions above, follow the custom instructions. Anchor rules still apply."
        )
    return prompt


def build_user_prompt(description: str, chunks: List[CodeChunk]) -> str:
    return (
        f"Assessment Description:\n{description}\n\n"
        f"Available Code Snippets:\n{format_chunks(chunks)}\n\n"
        "Available Anchors (copy these EXACTLY for your anchors - path, startLine, endLine must match exactly):\n"
        f"{format_anchor_list(chunks)}\n\n"
        "Generate interview questions grounded in these code snippets. For each question, include 1-3 "
        'anchors from the "Available Anchors" list above. Copy the path, startLine, and endLine EXACTLY as shown.'
    )


def parse_model_output(content: str) -> list:
    """Strict parse: malformed JSON or a missing questions array is fatal."""
    text = (content or "").strip()
    if not text:
        raise ModelOutputError("Model returned an empty response")
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        logger.error(f"Model returned malformed JSON: {exc}")
        raise ModelOutputError("Failed to parse interview questions from model response") from exc

    if not isinstance(payload, dict) or not isinstance(payload.get("questions"), list):
        raise ModelOutputError("Model response does not contain a 'questions' array")
    return payload["questions"]


def _as_line(value) -> int | None:
    # bool is an int subclass; "true" is never a line number
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def ground_questions(raw_questions: list, chunks: List[CodeChunk]):
    """
    Keep only anchors whose (path, startLine, endLine) equals a supplied chunk.

    Questions without a usable prompt are dropped. Returns
    (questions, stripped_anchor_count).
    """
    valid_keys = {(c.path, c.start_line, c.end_line) for c in chunks}
    grounded: List[GeneratedQuestion] = []
    stripped = 0

    for raw in raw_questions:
        if not isinstance(raw, dict):
            logger.warning("Skipping question that is not an object")
            continue
        prompt = raw.get("prompt")
        if not isinstance(prompt, str) or not prompt.strip():
            logger.warning("Skipping question with missing or empty prompt")
            continue

        anchors: List[Anchor] = []
        raw_anchors = raw.get("anchors") if isinstance(raw.get("anchors"), list) else []
        for raw_anchor in raw_anchors:
            if not isinstance(raw_anchor, dict):
                stripped += 1
                continue
            path = raw_anchor.get("path")
            if not isinstance(path, str):
                stripped += 1
                continue
            start = _as_line(raw_anchor.get("startLine"))
            end = _as_line(raw_anchor.get("endLine"))
            key = (path, start, end)

            if key not in valid_keys:
                stripped += 1
                logger.warning(f"Stripping ungrounded anchor {path}:{start}-{end}")
                continue

            anchor = Anchor(path, start, end)
            if anchor in anchors:
                continue
            if len(anchors) >= MAX_ANCHORS:
                stripped += 1
                continue
            anchors.append(anchor)

        grounded.append(GeneratedQuestion(prompt=prompt.strip(), anchors=anchors))

    return grounded, stripped


class QuestionGenerator:
    def __init__(self, retriever: Retriever, chat_model):
        self.retriever = retriever
        self.chat_model = chat_model

    def generate(
        self,
        submission_id: str,
        assessment_description: str,
        num_questions=2,
        custom_instructions: str | None = None,
    ) -> GenerationResult:
        description = (assessment_description or "").strip()
        if not description:
            raise DescriptionRequiredError()

        logger.info(f"Retrieving code chunks for question generation, submission {submission_id}")
        retrieval = self.retriever.search(submission_id, description, GENERATION_SEARCH)
        chunks = retrieval.chunks
        if not chunks:
            raise NoRelevantChunksError()

        count = clamp_question_count(num_questions)
        for i, c in enumerate(chunks, start=1):
            logger.debug(f"Grounding chunk {i}: {c.path} lines {c.start_line}-{c.end_line}")

        content = self.chat_model.complete_json(
            build_system_prompt(count, custom_instructions),
            build_user_prompt(description, chunks),
        )
        raw_questions = parse_model_output(content)
        logger.info(f"Model returned {len(raw_questions)} questions")

        questions, stripped = ground_questions(raw_questions, chunks)
        if stripped:
            logger.warning(f"Stripped {stripped} anchors not present in the retrieved chunk set")
        if not questions:
            raise ModelOutputError("No valid questions generated after validation")
        questions = questions[:count]

        logger.info(
            f"Generated {len(questions)} grounded questions from {len(chunks)} chunks "
            f"for submission {submission_id}"
        )
        return GenerationResult(
            questions=questions,
            retrieved_chunk_count=len(chunks),
            chunk_paths=[c.path for c in chunks],
            stripped_anchor_count=stripped,
        )

    def follow_up_context(self, submission_id: str, current_question: str, candidate_answer: str):
        """
        Code context for a live follow-up: retrieval keyed on the current
        question plus the candidate's answer, under tighter budgets.
        Returns (chunks, total_chars).
        """
        query = (
            f"Interview question: {current_question.strip()}\n\n"
            f"Candidate answer: {candidate_answer.strip()}\n\n"
            "Task: return the most relevant code snippets to verify the answer and ask a precise follow-up."
        )
        retrieval = self.retriever.search(submission_id, query, FOLLOW_UP_SEARCH)
        chunks, total = apply_budgets(
            deduplicate(retrieval.chunks),
            FOLLOW_UP_MAX_CHUNKS,
            FOLLOW_UP_SEARCH.max_chunk_chars,
            FOLLOW_UP_MAX_TOTAL_CHARS,
        )
        logger.info(
            f"Follow-up context for submission {submission_id}: question_len={len(current_question)}, "
            f"answer_len={len(candidate_answer)}, chunks={len(chunks)}, chars={total}"
        )
        return chunks, total


def save_questions(db: Session, submission, questions: List[GeneratedQuestion]) -> List[InterviewQuestion]:
    """Replace the submission's stored questions, preserving model order."""
    now = datetime.now(timezone.utc)
    submission.interview_questions.clear()
    rows = [
        InterviewQuestion(
            position=i,
            prompt=q.prompt,
            anchors=[a.to_dict() for a in q.anchors],
            created_at=now,
        )
        for i, q in enumerate(questions)
    ]
    submission.interview_questions.extend(rows)
    db.commit()
    logger.info(f"Saved {len(rows)} interview questions to submission {submission.id}")
    return rows


def generate_for_submission(db: Session, generator: QuestionGenerator, submission) -> tuple:
    """
    Generate from the owning assessment's settings and persist.
    Returns (stored_rows, GenerationResult).
    """
    assessment = submission.assessment
    if not assessment.smart_interviewer_enabled:
        raise SmartInterviewerDisabledError()

    result = generator.generate(
        submission.id,
        assessment.description or "",
        assessment.num_interview_questions,
        assessment.interviewer_custom_instructions,
    )
    rows = save_questions(db, submission, result.questions)
    return rows, result


def generate_after_indexing(db: Session, generator: QuestionGenerator, submission_id: str) -> None:
    """Post-index hook: fill in questions for a submitted repo that has none."""
    submission = db.get(Submission, submission_id)
    if submission is None:
        logger.warning(f"Submission {submission_id} not found, skipping question generation")
        return
    if submission.status not in ("submitted", "expired"):
        logger.info(f"Submission {submission_id} is '{submission.status}', skipping question generation")
        return
    if submission.interview_questions:
        logger.info(f"Interview questions already exist for submission {submission_id}")
        return

    assessment = submission.assessment
    if not (assessment.description or "").strip():
        logger.warning(f"Assessment {assessment.id} has no description, skipping question generation")
        return
    if not assessment.smart_interviewer_enabled:
        logger.info(f"Smart interviewer disabled for assessment {assessment.id}")
        return

    rows, result = generate_for_submission(db, generator, submission)
    logger.info(
        f"Auto-generated {len(rows)} questions for submission {submission_id} "
        f"from {result.retrieved_chunk_count} chunks"
    )
