"""Pytest configuration and fixtures for KYC graph review tests."""

import pytest
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


TEST_CASES_DIR = os.path.join(
    os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
    "test_cases",
)


def _load_document(filename: str):
    from models import Document
    with open(os.path.join(TEST_CASES_DIR, filename), "r", encoding="utf-8") as f:
        return Document(name=filename, content=f.read())


@pytest.fixture(autouse=True)
def reset_config():
    """Reset configuration before each test."""
    import config
    config._config = None
    yield
    config._config = None


@pytest.fixture
def low_risk_documents():
    """Case 1: complete identity, wealth, ownership and screening; no risk terms."""
    return [_load_document("case1_low_risk_profile.txt")]


@pytest.fixture
def high_risk_documents():
    """Case 2: PEP with offshore, cash-intensive activity and a low internal rating."""
    return [_load_document("case2_high_risk_memo.txt")]


@pytest.fixture
def memory_store():
    from resume_store import InMemoryResumeStore
    return InMemoryResumeStore()


@pytest.fixture
def pipeline(memory_store):
    """Pipeline with the deterministic mock provider and an in-memory store."""
    from agents.reflection import MockReflectionProvider
    from pipeline import ReviewPipeline
    return ReviewPipeline(reflection_provider=MockReflectionProvider(), resume_store=memory_store)


@pytest.fixture
def make_section():
    """Build a TopicSection with coverage graded from its content."""
    from models import TopicSection, EvidenceRef
    from utilities.topic_assembler import classify_coverage, PARAGRAPH_JOINER

    def _make(topic_id, *paragraphs, doc_name="doc.txt"):
        content = PARAGRAPH_JOINER.join(paragraphs)
        refs = [
            EvidenceRef(doc_name=doc_name, location_hint=f"Para {i + 1}", snippet=p[:100])
            for i, p in enumerate(paragraphs)
        ]
        return TopicSection(
            topic_id=topic_id,
            content=content,
            evidence_refs=refs,
            coverage=classify_coverage(content),
        )

    return _make


@pytest.fixture
def empty_sections(make_section):
    """One empty (missing) section per assembled topic."""
    from utilities.reference_data import ASSEMBLED_TOPICS
    return [make_section(t) for t in ASSEMBLED_TOPICS]
