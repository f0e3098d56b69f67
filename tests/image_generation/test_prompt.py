"""Tests for PromptGenerator template selection and text cleanup."""
import pytest

from card_illustrator.services.image_generation.prompt import STYLE_TEMPLATES, PromptGenerator, clean_text


def test_vocabulary_template_for_short_answer():
    prompt = PromptGenerator("educational").generate_prompt("What is ATP?", "Energy currency")
    assert prompt.startswith("Create a simple visual symbol representing 'What is ATP?' and 'Energy currency'.")


def test_concept_template_for_how_questions_with_long_answers():
    answer = "Through a sequence of reactions in the mitochondria that " * 3
    prompt = PromptGenerator("medical").generate_prompt("How does respiration work?", answer)
    assert prompt.startswith("Generate a medical-style visual symbol")


def test_default_template():
    answer = "x" * 60
    prompt = PromptGenerator("minimal").generate_prompt("Capital of France", answer)
    assert prompt == STYLE_TEMPLATES["minimal"].default.replace("{question}", "Capital of France").replace("{answer}", answer)


def test_braces_in_card_text_are_left_alone():
    prompt = PromptGenerator("iconic").generate_prompt("Set {answer}", "{question}")
    assert "Set {answer}" in prompt
    assert "representing '{question}'" in prompt


def test_clean_text():
    assert clean_text('  "quoted"   and\n\tspaced  ') == "quoted and spaced"
    assert len(clean_text("a" * 500)) == 200


def test_unknown_style():
    with pytest.raises(ValueError, match="Unknown image style"):
        PromptGenerator("baroque")
