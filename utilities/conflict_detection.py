"""
Cross-topic conflict sweep.

Applies the keyword rules in CONFLICT_RULES paragraph by paragraph. A rule
fires on the first pair of distinct paragraphs where one carries an "a"
phrase and the other a "b" phrase; each rule yields at most one conflict.
Iteration follows topic declaration order, then paragraph order, so output
is stable for identical input.
"""

from typing import Optional

from models import TopicSection, TopicId, Conflict, EvidenceRef
from utilities.reference_data import CONFLICT_RULES, ASSEMBLED_TOPICS
from utilities.topic_assembler import section_paragraphs


def _matching_paragraphs(
    sections: dict[TopicId, TopicSection],
    topics: list[TopicId],
    phrases: list[str],
) -> list[tuple[TopicId, int, EvidenceRef]]:
    hits = []
    for topic_id in topics or ASSEMBLED_TOPICS:
        section = sections.get(topic_id)
        if section is None:
            continue
        for idx, (para, ref) in enumerate(section_paragraphs(section)):
            lowered = para.lower()
            if any(p in lowered for p in phrases):
                hits.append((topic_id, idx, ref))
    return hits


def _apply_rule(rule: dict, sections: dict[TopicId, TopicSection]) -> Optional[Conflict]:
    a_hits = _matching_paragraphs(sections, rule["a_topics"], rule["a_phrases"])
    if not a_hits:
        return None
    b_hits = _matching_paragraphs(sections, rule["b_topics"], rule["b_phrases"])

    for a_topic, a_idx, a_ref in a_hits:
        for b_topic, b_idx, b_ref in b_hits:
            if (a_topic, a_idx) == (b_topic, b_idx):
                continue
            topic_ids = [a_topic] if a_topic == b_topic else [a_topic, b_topic]
            return Conflict(
                topic_ids=topic_ids,
                description=rule["description"],
                severity=rule["severity"],
                evidence_refs=[a_ref, b_ref],
            )
    return None


def detect_conflicts(topic_sections: list[TopicSection]) -> list[Conflict]:
    """Run every conflict rule over the assembled topics."""
    sections = {s.topic_id: s for s in topic_sections}
    conflicts = []
    for rule in CONFLICT_RULES:
        conflict = _apply_rule(rule, sections)
        if conflict is not None:
            conflicts.append(conflict)
    return conflicts
