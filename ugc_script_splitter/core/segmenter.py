"""Script segmentation into speakable 6-8 second chunks.

WHY: Text-to-video models produce clips of about 8 seconds. Each clip's
dialogue has to be short enough to say in that time and long enough not to
leave dead air. At a speaking rate of 150 wpm (2.5 words/sec), that is
roughly 15-22 words per chunk.

HOW: Two passes over the sentences of the script.
  1. Grouping: greedily accumulate sentences until the running chunk
     reaches min_words. A sentence that would push the chunk past
     max_words is still added while the chunk is under the floor.
  2. Rebalancing: for every raw chunk under the floor (except the last),
     try in order (a) borrowing only the first sentence of the next chunk,
     (b) merging the whole next chunk, (c) leaving it as-is.

RULES:
- Sentence boundary: run of ".", "!" or "?"; trailing text without terminal
  punctuation is its own sentence, so no words are ever dropped
- Word count: whitespace-separated tokens
- Borrowing requires the next chunk to exceed min_words, to keep at least
  one sentence after the split, and the result to stay <= max_words
- Merging requires the combined chunk to stay <= merge_ceiling_words
- A single sentence longer than max_words is emitted whole (no truncation)
- Pure function: no I/O besides logging, deterministic for a given input
"""

from __future__ import annotations

import logging
import re

from ugc_script_splitter.core.models import SegmentationConfig, TextSegment

logger = logging.getLogger(__name__)

# A sentence is everything up to and including a run of terminal marks, or
# the unterminated tail of the script.
_SENTENCE_RE = re.compile(r"[^.!?]*[.!?]+|[^.!?]+$")

# Chunks under this many seconds are logged as likely too short for a clip.
_SHORT_CHUNK_WARN_S = 6.0


def count_words(text: str) -> int:
    """Count whitespace-separated words in text."""
    return len(text.split())


def split_sentences(script: str) -> list[str]:
    """Split script into stripped, non-empty sentences.

    A script with no terminal punctuation comes back as a single sentence.
    """
    sentences = [match.strip() for match in _SENTENCE_RE.findall(script)]
    return [s for s in sentences if s]


def _group_sentences(sentences: list[str], config: SegmentationConfig) -> list[str]:
    """First pass: accumulate sentences until each chunk reaches the floor."""
    raw: list[str] = []
    current = ""
    current_words = 0

    for sentence in sentences:
        sentence_words = count_words(sentence)

        if current and current_words >= config.min_words:
            raw.append(current)
            current, current_words = "", 0

        if current and current_words + sentence_words > config.max_words:
            # Over the soft ceiling, but the floor wins while we are under it.
            logger.debug(
                "Accepting overrun to reach floor: %d + %d words",
                current_words, sentence_words,
            )

        current = f"{current} {sentence}" if current else sentence
        current_words += sentence_words

    if current:
        raw.append(current)

    return raw


def _rebalance(raw: list[str], config: SegmentationConfig) -> list[str]:
    """Second pass: lift under-floor chunks by borrowing or merging forward.

    ``raw`` is modified in place when a sentence is borrowed from the next
    chunk; that chunk has not been finalized yet.
    """
    final: list[str] = []
    i = 0

    while i < len(raw):
        current = raw[i]
        current_words = count_words(current)
        is_last = i == len(raw) - 1

        if current_words >= config.min_words or is_last:
            final.append(current)
            i += 1
            continue

        following = raw[i + 1]
        following_words = count_words(following)
        following_sentences = split_sentences(following)

        if following_words > config.min_words and len(following_sentences) > 1:
            borrowed = following_sentences[0]
            if current_words + count_words(borrowed) <= config.max_words:
                final.append(f"{current} {borrowed}")
                raw[i + 1] = " ".join(following_sentences[1:])
                logger.debug("Chunk %d borrowed one sentence from chunk %d", i, i + 1)
                i += 1
                continue

        if current_words + following_words <= config.merge_ceiling_words:
            final.append(f"{current} {following}")
            logger.debug("Chunk %d merged with chunk %d", i, i + 1)
            i += 2
            continue

        final.append(current)
        i += 1

    return final


def split_script(
    script: str,
    config: SegmentationConfig | None = None,
) -> list[TextSegment]:
    """Split a marketing script into ordered, speakable text segments.

    WHY: Every downstream model call is keyed to one of these chunks, and
    the length of each chunk decides how long its clip will run.

    HOW: split_sentences → _group_sentences → _rebalance, then wrap each
    chunk in a TextSegment carrying the configured speaking rate.

    RULES:
    - Output order matches script order
    - Whitespace-normalized concatenation of the output equals the
      whitespace-normalized input
    - Empty or whitespace-only input → empty list

    Args:
        script: Raw script text.
        config: Word-count rules; defaults to SegmentationConfig().

    Returns:
        List of TextSegment in script order.
    """
    config = config or SegmentationConfig()

    sentences = split_sentences(script)
    if not sentences:
        return []

    raw = _group_sentences(sentences, config)
    logger.debug(
        "Raw segments: %s",
        ", ".join(f"{count_words(chunk)}w" for chunk in raw),
    )

    chunks = _rebalance(list(raw), config)
    segments = [TextSegment(text=chunk, words_per_second=config.words_per_second) for chunk in chunks]

    for index, segment in enumerate(segments, start=1):
        if segment.estimated_duration_s < _SHORT_CHUNK_WARN_S:
            logger.warning(
                "Segment %d is short: %d words (%.1fs)",
                index, segment.word_count, segment.estimated_duration_s,
            )
        else:
            logger.debug(
                "Segment %d: %d words (%.1fs)",
                index, segment.word_count, segment.estimated_duration_s,
            )

    return segments
