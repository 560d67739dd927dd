"""
Coverage gap collector. One coverage entry per assembled topic.
"""

from models import TopicSection, Coverage, CoverageStatus
from utilities.reference_data import COMPLETE_COVERAGE_CHARS


def collect_coverage_gaps(topic_sections: list[TopicSection]) -> list[Coverage]:
    """Report the coverage status of every topic, with a reason when incomplete."""
    gaps = []
    for section in topic_sections:
        reason = None
        if section.coverage == CoverageStatus.MISSING:
            reason = "Required information not found in documents"
        elif section.coverage == CoverageStatus.PARTIAL:
            reason = (
                f"Only {len(section.content)} characters of supporting content "
                f"(at least {COMPLETE_COVERAGE_CHARS} expected)"
            )
        gaps.append(Coverage(topic_id=section.topic_id, status=section.coverage, reason=reason))
    return gaps
