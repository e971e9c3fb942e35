import asyncio

import pytest

from studybuddy.models.session import Difficulty, MaterialSource, QuizType, Verdict
from studybuddy.services.generator import (
    MATERIAL_HEADER,
    QuestionGenerator,
    build_feedback_prompt,
    build_question_prompt,
    difficulty_for,
    material_block,
    parse_options,
    parse_question,
    parse_verdict,
)
from studybuddy.services.wizard import Question, Session

MC_REPLY = (
    "Which measure is most affected by outliers?\n"
    "a) Median\n"
    "\n"
    "b) Mean\n"
    "c) Mode\n"
    "d) Interquartile range\n"
)


# ──────────────────────────────────────────────────────────────
# difficulty_for
# ──────────────────────────────────────────────────────────────

@pytest.mark.parametrize("answered,expected", [
    (0, Difficulty.easy), (1, Difficulty.easy), (2, Difficulty.easy),
    (3, Difficulty.medium), (4, Difficulty.medium), (5, Difficulty.medium), (6, Difficulty.medium),
    (7, Difficulty.hard), (8, Difficulty.hard), (50, Difficulty.hard),
])
def test_difficulty_schedule(answered, expected):
    assert difficulty_for(answered) is expected


# ──────────────────────────────────────────────────────────────
# parse_options / parse_question
# ──────────────────────────────────────────────────────────────

def test_parse_options_collects_labelled_lines():
    assert parse_options(MC_REPLY) == [
        "a) Median", "b) Mean", "c) Mode", "d) Interquartile range",
    ]


def test_parse_options_is_idempotent():
    assert parse_options(MC_REPLY) == parse_options(MC_REPLY)


def test_parse_options_does_not_validate_count_or_letters():
    raw = "Stem?\nb) one\nb) two\nA) upper\ne) five\nnot an option\nc)three"
    assert parse_options(raw) == ["b) one", "b) two", "c)three"]


def test_parse_options_ignores_first_line_even_if_labelled():
    assert parse_options("a) looks like an option\nb) real") == ["b) real"]


def test_parse_options_empty_reply():
    assert parse_options("") == []


def test_parse_multiple_choice_question():
    q = parse_question(MC_REPLY, QuizType.multiple_choice, 3, Difficulty.medium)
    assert q.id == 3
    assert q.kind is QuizType.multiple_choice
    assert q.prompt == "Which measure is most affected by outliers?"
    assert len(q.options) == 4
    assert q.difficulty is Difficulty.medium


def test_parse_malformed_multiple_choice_keeps_zero_options():
    q = parse_question("Just a sentence with no options.", QuizType.multiple_choice, 1, Difficulty.easy)
    assert q.prompt == "Just a sentence with no options."
    assert q.options == ()


def test_parse_open_question_is_verbatim():
    raw = "  Explain the central limit theorem.\n\nUse an example.  "
    q = parse_question(raw, QuizType.open, 1, Difficulty.easy)
    assert q.prompt == raw
    assert q.options == ()


# ──────────────────────────────────────────────────────────────
# prompts
# ──────────────────────────────────────────────────────────────

def test_knowledge_prompt_uses_general_knowledge_without_material_block():
    session = Session(
        subject="Statistics",
        material_source=MaterialSource.knowledge,
        quiz_type=QuizType.multiple_choice,
    )
    prompt = build_question_prompt(session, Difficulty.easy)
    assert "Statistics" in prompt
    assert "general knowledge" in prompt
    assert MATERIAL_HEADER not in prompt
    assert "a), b), c) and d)" in prompt


def test_upload_prompt_embeds_material_verbatim():
    session = Session(
        subject="Law",
        material_source=MaterialSource.upload,
        material_text="=== a.txt ===\nHello",
        quiz_type=QuizType.open,
    )
    prompt = build_question_prompt(session, Difficulty.hard)
    assert f"{MATERIAL_HEADER}\n=== a.txt ===\nHello" in prompt
    assert "1 hard open question" in prompt


def test_upload_without_text_falls_back_to_general_knowledge():
    session = Session(subject="Law", material_source=MaterialSource.upload)
    block = material_block(session)
    assert MATERIAL_HEADER not in block
    assert "general knowledge of Law" in block


def test_link_prompt_asks_to_fetch_the_url():
    session = Session(
        subject="Law",
        material_source=MaterialSource.link,
        link_url="https://example.org/notes",
        quiz_type=QuizType.open,
    )
    block = material_block(session)
    assert "https://example.org/notes" in block
    assert "Fetch and analyse" in block


def test_feedback_prompt_contains_answer_justification_and_options():
    session = Session(subject="Statistics", material_source=MaterialSource.knowledge)
    q = Question(
        id=1,
        kind=QuizType.multiple_choice,
        prompt="Which measure is most affected by outliers?",
        difficulty=Difficulty.easy,
        options=("a) Median", "b) Mean"),
        user_answer="b) Mean",
        user_justification="Every value enters the average.",
    )
    prompt = build_feedback_prompt(session, q)
    assert "QUESTION: Which measure is most affected by outliers?" in prompt
    assert "OPTIONS:\na) Median\nb) Mean" in prompt
    assert "STUDENT ANSWER: b) Mean" in prompt
    assert "STUDENT EXPLANATION: Every value enters the average." in prompt
    assert "do not ask a new question" in prompt


def test_feedback_prompt_for_open_question_has_no_options_or_explanation():
    session = Session(subject="Law", material_source=MaterialSource.knowledge)
    q = Question(id=1, kind=QuizType.open, prompt="Define tort.", difficulty=Difficulty.easy,
                 user_answer="A civil wrong.")
    prompt = build_feedback_prompt(session, q)
    assert "OPTIONS" not in prompt
    assert "STUDENT EXPLANATION" not in prompt


# ──────────────────────────────────────────────────────────────
# parse_verdict
# ──────────────────────────────────────────────────────────────

@pytest.mark.parametrize("text,expected", [
    ("Verdict: correct\nNice.", Verdict.correct),
    ("**Verdict:** Incorrect\nNo.", Verdict.incorrect),
    ("\n  verdict: partially correct - almost", Verdict.partial),
    ("Great answer! Verdict: correct", None),
    ("", None),
])
def test_parse_verdict(text, expected):
    assert parse_verdict(text) is expected


# ──────────────────────────────────────────────────────────────
# QuestionGenerator
# ──────────────────────────────────────────────────────────────

class _StubCompletion:
    def __init__(self, reply):
        self.reply = reply
        self.messages = []

    async def complete(self, message, abort=None):
        self.messages.append(message)
        return self.reply


def test_generate_question_uses_schedule_from_answer_count():
    stub = _StubCompletion(MC_REPLY)
    gen = QuestionGenerator(stub)
    session = Session(
        subject="Statistics",
        material_source=MaterialSource.knowledge,
        quiz_type=QuizType.multiple_choice,
        questions_answered=4,
    )
    q = asyncio.run(gen.generate_question(session, question_id=5))
    assert q.id == 5
    assert q.difficulty is Difficulty.medium
    assert len(stub.messages) == 1
    assert "Difficulty: medium" in stub.messages[0]


def test_generate_feedback_returns_reply_verbatim():
    stub = _StubCompletion("Verdict: incorrect\n  Not quite.  ")
    gen = QuestionGenerator(stub)
    session = Session(subject="Law", material_source=MaterialSource.knowledge)
    q = Question(id=1, kind=QuizType.open, prompt="Define tort.", difficulty=Difficulty.easy,
                 user_answer="A crime.")
    text = asyncio.run(gen.generate_feedback(session, q))
    assert text == "Verdict: incorrect\n  Not quite.  "
