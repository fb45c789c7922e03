import pytest

from narrator.core.exceptions import EmptyInput
from narrator.text.chunker import Chunker

CHAPTER = (
    "It was a bright cold day in April, and the clocks were striking thirteen. "
    "Winston Smith, his chin nuzzled into his breast in an effort to escape the vile wind, "
    "slipped quickly through the glass doors of Victory Mansions, though not quickly enough "
    "to prevent a swirl of gritty dust from entering along with him. "
    "The hallway smelt of boiled cabbage and old rag mats!   Who lived there?\n\n"
    "Nobody knew"
)


def texts(segments):
    return [segment.text for segment in segments]


def test_splits_on_sentence_terminators():
    segments = Chunker().split("Hello world. This is a test.")

    assert texts(segments) == ["Hello world.", "This is a test."]
    assert [(s.start, s.end) for s in segments] == [(0, 12), (13, 28)]
    assert [s.index for s in segments] == [0, 1]


def test_trailing_text_without_terminator_is_kept():
    assert texts(Chunker().split("First one. and then")) == ["First one.", "and then"]


def test_terminator_runs_and_closing_quotes_stay_together():
    assert texts(Chunker().split("Really?! Yes... \"Stop.\" He said.")) == [
        "Really?!", "Yes...", "\"Stop.\"", "He said."
    ]


def test_long_sentence_wraps_at_whitespace():
    segments = Chunker(max_length=10).split("one two three four five")

    assert texts(segments) == ["one two", "three four", "five"]
    assert all(s.length <= 10 for s in segments)


@pytest.mark.parametrize("sentence", ["Ça déjà vu été.", "日本語の文章です。", "Привет, мир!"])
def test_length_counts_characters_not_bytes(sentence):
    assert len(sentence.encode("utf-8")) > 16 >= len(sentence)

    segments = Chunker(max_length=16).split(sentence)

    assert texts(segments) == [sentence]
    assert segments[0].length == len(sentence)
    assert (segments[0].start, segments[0].end) == (0, len(sentence))


def test_word_longer_than_limit_is_not_broken():
    assert texts(Chunker(max_length=5).split("abcdefghij klm")) == ["abcdefghij", "klm"]


@pytest.mark.parametrize("max_length", [1, 8, 40, 200])
def test_segments_cover_the_source(max_length):
    segments = Chunker(max_length).split(CHAPTER)

    assert [s.index for s in segments] == list(range(len(segments)))
    for segment in segments:
        assert segment.text
        assert segment.text == CHAPTER[segment.start:segment.end]
        assert segment.text == segment.text.strip()
    assert all(a.end <= b.start for a, b in zip(segments, segments[1:]))
    # only whitespace is dropped between segments
    assert "".join("".join(s.text.split()) for s in segments) == "".join(CHAPTER.split())


def test_segments_respect_max_length_when_words_fit():
    segments = Chunker(max_length=40).split(CHAPTER)

    assert all(s.length <= 40 for s in segments)
    assert segments[-1].text == "Nobody knew"


@pytest.mark.parametrize("text", ["", "   ", "\n\t \n"])
def test_empty_text_is_rejected(text):
    with pytest.raises(EmptyInput):
        Chunker().split(text)


def test_invalid_max_length():
    with pytest.raises(ValueError):
        Chunker(max_length=0)
