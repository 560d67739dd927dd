"""
Policy flag check for high-risk keywords and route-driven due diligence.
"""

from models import TopicSection, GraphPath
from utilities.reference_data import EDD_POLICY_FLAG
from utilities.topic_assembler import extract_high_risk_keywords


def keyword_to_flag(keyword: str) -> str:
    """'shell company' -> 'SHELL_COMPANY'"""
    return keyword.strip().upper().replace(" ", "_").replace("-", "_")


def collect_policy_flags(topic_sections: list[TopicSection], route_path: GraphPath) -> list[str]:
    """Flags for every high-risk keyword in the file, plus EDD on escalated routes."""
    all_content = " ".join(s.content for s in topic_sections)
    flags = [keyword_to_flag(kw) for kw in extract_high_risk_keywords(all_content)]
    if route_path in (GraphPath.ESCALATE, GraphPath.HUMAN_GATE):
        flags.append(EDD_POLICY_FLAG)
    return flags
