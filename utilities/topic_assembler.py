"""
Topic assembler for KYC documents. Classifies paragraphs into topics.

Deterministic keyword scoring, no LLM calls:
1. Split each document on blank lines; drop paragraphs of 20 chars or fewer
2. Score every topic by how many of its keywords appear in the paragraph
3. Append the paragraph to the best topic (first declared topic wins ties)
4. Grade coverage by assembled content length

Paragraphs that match no topic are dropped rather than filed under "other".
"""

import re

from models import Document, EvidenceRef, TopicId, TopicSection, CoverageStatus
from utilities.reference_data import (
    ASSEMBLED_TOPICS, TOPIC_KEYWORDS, HIGH_RISK_KEYWORDS,
    MIN_PARAGRAPH_LENGTH, SNIPPET_LENGTH, COMPLETE_COVERAGE_CHARS,
)

PARAGRAPH_JOINER = "\n\n"

_BLANK_LINE = re.compile(r"\n[ \t]*\n")


def split_paragraphs(content: str) -> list[str]:
    """Split text on blank lines, keeping paragraphs longer than the noise threshold."""
    paragraphs = []
    for raw in _BLANK_LINE.split(content.replace("\r\n", "\n")):
        para = raw.strip()
        if len(para) > MIN_PARAGRAPH_LENGTH:
            paragraphs.append(para)
    return paragraphs


def score_paragraph(paragraph: str) -> tuple[TopicId, int]:
    """Return (best topic, keyword hits). OTHER with 0 hits when nothing matches."""
    lowered = paragraph.lower()
    best_topic, best_score = TopicId.OTHER, 0
    for topic_id in ASSEMBLED_TOPICS:
        hits = sum(1 for kw in TOPIC_KEYWORDS[topic_id] if kw in lowered)
        # Strictly greater keeps the earliest declared topic on ties
        if hits > best_score:
            best_topic, best_score = topic_id, hits
    return best_topic, best_score


def make_snippet(paragraph: str) -> str:
    if len(paragraph) > SNIPPET_LENGTH:
        return paragraph[:SNIPPET_LENGTH] + "..."
    return paragraph


def classify_coverage(content: str) -> CoverageStatus:
    length = len(content)
    if length == 0:
        return CoverageStatus.MISSING
    if length < COMPLETE_COVERAGE_CHARS:
        return CoverageStatus.PARTIAL
    return CoverageStatus.COMPLETE


def assemble_topics(documents: list[Document]) -> list[TopicSection]:
    """
    Assemble topic sections from raw documents.

    Returns one TopicSection per assembled topic (everything except "other"),
    in declaration order, even when a topic received no content.
    """
    contents: dict[TopicId, list[str]] = {t: [] for t in ASSEMBLED_TOPICS}
    refs: dict[TopicId, list[EvidenceRef]] = {t: [] for t in ASSEMBLED_TOPICS}

    for doc in documents:
        for idx, para in enumerate(split_paragraphs(doc.content)):
            topic_id, score = score_paragraph(para)
            if score == 0:
                continue
            contents[topic_id].append(para)
            refs[topic_id].append(EvidenceRef(
                doc_name=doc.name,
                location_hint=f"Para {idx + 1}",
                snippet=make_snippet(para),
            ))

    sections = []
    for topic_id in ASSEMBLED_TOPICS:
        content = PARAGRAPH_JOINER.join(contents[topic_id])
        sections.append(TopicSection(
            topic_id=topic_id,
            content=content,
            evidence_refs=refs[topic_id],
            coverage=classify_coverage(content),
        ))
    return sections


def section_paragraphs(section: TopicSection) -> list[tuple[str, EvidenceRef]]:
    """Pair each assembled paragraph of a section with its evidence reference."""
    if not section.content:
        return []
    return list(zip(section.content.split(PARAGRAPH_JOINER), section.evidence_refs))


def extract_high_risk_keywords(content: str) -> list[str]:
    """High-risk keywords present in content, in reference-list order."""
    lowered = content.lower()
    return [kw for kw in HIGH_RISK_KEYWORDS if kw in lowered]
