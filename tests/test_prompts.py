"""Tests for classifier prompts and strict answer parsing."""

import pytest

from link_engine.ai.prompts import (
    AnswerParseError,
    CandidateConfirmPrompt,
    CandidateOption,
    ListMatchOption,
    ListMatchPrompt,
    parse_index_answer,
)


@pytest.mark.parametrize(
    "text, expected",
    [("1", 0), (" 3 \n", 2), ("5", 4), ("none", None), ("NONE", None), (" None ", None)],
)
def test_parse_valid_answers(text, expected):
    assert parse_index_answer(text, 5) == expected


@pytest.mark.parametrize(
    "text",
    [None, "", "0", "6", "-1", "2.", "#2", "2 or 3", "Answer: 2", "nothing", "01x"],
)
def test_parse_rejects_everything_else(text):
    with pytest.raises(AnswerParseError):
        parse_index_answer(text, 5)


def test_list_match_prompt_numbers_every_option():
    prompt = ListMatchPrompt(
        slice_description="Red Cruz Jacket",
        options=[
            ListMatchOption(link_type="product", title="Cruz Snow Jacket — Red", url="https://brand.com/products/cruz"),
            ListMatchOption(link_type="collection", title=None, url="https://brand.com/collections/jackets"),
        ],
    ).to_prompt()

    assert '"Red Cruz Jacket"' in prompt
    assert "1. [product] Cruz Snow Jacket — Red -> https://brand.com/products/cruz" in prompt
    assert "2. [collection] Untitled -> https://brand.com/collections/jackets" in prompt
    assert "Winter 2025" in prompt
    assert prompt.rstrip().endswith("or the word none.")


def test_candidate_prompt_shows_similarity_percent():
    prompt = CandidateConfirmPrompt(
        slice_description="Cruz Jacket",
        candidates=[CandidateOption(title="Cruz", url="https://brand.com/products/cruz", similarity=0.834)],
    ).to_prompt()
    assert "1. Cruz (83% match) -> https://brand.com/products/cruz" in prompt
