"""
Prompt templates for card illustrations.
Providers treat the result as an opaque string.
"""
import re
from dataclasses import dataclass


@dataclass(frozen=True)
class StyleTemplate:
    vocabulary: str
    concept: str
    default: str


STYLE_TEMPLATES: dict[str, StyleTemplate] = {
    "educational": StyleTemplate(
        vocabulary="Create a simple visual symbol representing '{question}' and '{answer}'. NO TEXT, NO LABELS, NO WRITING. Pure visual icon only. Style: clean, symbolic, recognizable.",
        concept="Generate a simple visual icon for {question} representing {answer}. NO TEXT, NO LABELS, NO WRITING. Style: symbolic representation, visual metaphor only.",
        default="Create a visual symbol for this concept. Question: {question}. Answer: {answer}. NO TEXT, NO LABELS, NO WRITING. Pure icon only.",
    ),
    "medical": StyleTemplate(
        vocabulary="Create an anatomical symbol showing {question} representing {answer}. NO TEXT, NO LABELS, NO WRITING. Style: anatomical shape, medical symbol only.",
        concept="Generate a medical-style visual symbol for {question} showing {answer}. NO TEXT, NO LABELS, NO WRITING. Style: anatomical icon, medical symbol.",
        default="Create a medical symbol for {question} representing {answer}. NO TEXT, NO LABELS, NO WRITING. Anatomical icon only.",
    ),
    "colorful": StyleTemplate(
        vocabulary="Create a bright, colorful symbol for {question} representing {answer}. NO TEXT, NO LABELS, NO WRITING. Style: vibrant icon, memorable visual symbol.",
        concept="Generate a colorful visual symbol for {question} showing {answer}. NO TEXT, NO LABELS, NO WRITING. Style: bright colors, symbolic representation.",
        default="Create a colorful symbol for {question} and {answer}. NO TEXT, NO LABELS, NO WRITING. Vibrant icon only.",
    ),
    "minimal": StyleTemplate(
        vocabulary="Create a simple geometric icon representing {question} and {answer}. NO TEXT, NO LABELS, NO WRITING. Style: minimal shapes, essential visual elements only.",
        concept="Generate a minimalist symbol for {question} showing {answer}. NO TEXT, NO LABELS, NO WRITING. Style: geometric shapes, pure visual abstraction.",
        default="Create a minimalist icon for {question} and {answer}. NO TEXT, NO LABELS, NO WRITING. Simple geometric symbol only.",
    ),
    "iconic": StyleTemplate(
        vocabulary="Create a universally recognizable icon for '{question}' representing '{answer}'. NO TEXT, NO LABELS, NO WRITING. Style: simple symbol, instantly recognizable.",
        concept="Generate a symbolic icon for {question} representing {answer}. NO TEXT, NO LABELS, NO WRITING. Style: universal symbol, visual metaphor.",
        default="Create a pure icon representing {question} and {answer}. NO TEXT, NO LABELS, NO WRITING. Universal symbol only.",
    ),
}

VOCABULARY_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (r"what is.*\?", r"what does.*mean\?", r"define.*\?", r"definition.*\?", r"meaning.*\?")
]
CONCEPT_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (r"how.*\?", r"why.*\?", r"explain.*\?", r"describe.*\?", r"process.*\?", r"function.*\?")
]

PLACEHOLDER = re.compile(r"\{(question|answer)\}")
MAX_FIELD_LENGTH = 200


def clean_text(text: str) -> str:
    """Drop quotes, collapse whitespace, cap length."""
    text = re.sub(r"['\"]", "", text)
    text = re.sub(r"\s+", " ", text).strip()
    return text[:MAX_FIELD_LENGTH]


class PromptGenerator:
    def __init__(self, style: str = "educational") -> None:
        if style not in STYLE_TEMPLATES:
            raise ValueError(f"Unknown image style: {style}. Available styles: {', '.join(STYLE_TEMPLATES)}")
        self.style = style

    def generate_prompt(self, question: str, answer: str) -> str:
        template = self.select_template(question, answer)
        values = {"question": clean_text(question), "answer": clean_text(answer)}
        # single pass: card text may itself contain braces
        return PLACEHOLDER.sub(lambda m: values[m.group(1)], template)

    def select_template(self, question: str, answer: str) -> str:
        templates = STYLE_TEMPLATES[self.style]
        if self.is_vocabulary_card(question, answer):
            return templates.vocabulary
        if self.is_concept_card(question, answer):
            return templates.concept
        return templates.default

    @staticmethod
    def is_vocabulary_card(question: str, answer: str) -> bool:
        # Short answers are usually definitions
        return any(p.search(question) for p in VOCABULARY_PATTERNS) or len(answer) < 50

    @staticmethod
    def is_concept_card(question: str, answer: str) -> bool:
        return any(p.search(question) for p in CONCEPT_PATTERNS) or len(answer) > 100
