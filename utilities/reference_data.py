"""
Static reference data for KYC document review.
Topic keywords, high-risk terms, critical topics, conflict rules, thresholds.
"""

from models import TopicId, ConflictSeverity, GraphPath

# Topics the assembler fills, in declaration order. "other" is never assembled.
ASSEMBLED_TOPICS = [t for t in TopicId if t != TopicId.OTHER]

# Keywords per topic (case-insensitive substring match)
TOPIC_KEYWORDS = {
    TopicId.CLIENT_IDENTITY: ["name", "identity", "passport", "id number", "date of birth", "nationality"],
    TopicId.SOURCE_OF_WEALTH: ["wealth", "income", "salary", "inheritance", "business", "employment"],
    TopicId.BUSINESS_RELATIONSHIP: ["relationship", "purpose", "account", "services", "products"],
    TopicId.BENEFICIAL_OWNERSHIP: ["beneficial owner", "ownership", "shareholder", "director", "ubo"],
    TopicId.RISK_PROFILE: ["risk", "appetite", "tolerance", "aml", "rating"],
    TopicId.SANCTIONS_PEP: ["sanctions", "pep", "politically exposed", "watchlist", "screening"],
    TopicId.TRANSACTION_PATTERNS: ["transaction", "volume", "frequency", "pattern", "activity"],
    TopicId.OTHER: [],
}

# Paragraphs at or below this many characters (after trimming) are noise
MIN_PARAGRAPH_LENGTH = 20

# Evidence snippets are cut to this length with a trailing "..."
SNIPPET_LENGTH = 100

# Coverage by assembled content length: 0 missing, below this partial
COMPLETE_COVERAGE_CHARS = 200

# Terms that raise risk and become policy flags
HIGH_RISK_KEYWORDS = [
    "sanctions",
    "pep",
    "politically exposed",
    "high risk",
    "shell company",
    "offshore",
    "cash intensive",
    "cryptocurrency",
    "gambling",
    "arms",
    "tobacco",
]

# Topics whose absence is penalized by triage
CRITICAL_TOPICS = [
    TopicId.CLIENT_IDENTITY,
    TopicId.SOURCE_OF_WEALTH,
    TopicId.BENEFICIAL_OWNERSHIP,
    TopicId.SANCTIONS_PEP,
]

# Triage points
MISSING_CRITICAL_TOPIC_POINTS = 15
PARTIAL_TOPIC_POINTS = 8
HIGH_RISK_KEYWORD_POINTS = 10
MAX_RISK_SCORE = 100

# Route bands (inclusive upper bounds); anything above the last is human_gate
ROUTE_BANDS = [
    (30, GraphPath.FAST, "Low risk → Fast path"),
    (60, GraphPath.CROSSCHECK, "Medium risk → Cross-check path"),
    (80, GraphPath.ESCALATE, "High risk → Escalate path"),
]
HUMAN_GATE_ROUTE_REASON = "Critical risk → Human gate required"

# Policy flag added on routes that demand enhanced due diligence
EDD_POLICY_FLAG = "ENHANCED_DUE_DILIGENCE"

# =============================================================================
# Cross-topic conflict rules
# =============================================================================
# Each rule fires when one paragraph in side "a" topics contains an "a" phrase
# and a *different* paragraph in side "b" topics contains a "b" phrase.
# Empty topic list means any assembled topic.

CONFLICT_RULES = [
    {
        "rule_id": "nationality_statement",
        "a_topics": [TopicId.CLIENT_IDENTITY],
        "a_phrases": ["sole nationality", "single nationality", "only nationality", "no other citizenship"],
        "b_topics": [],
        "b_phrases": ["second passport", "dual citizen", "second nationality", "citizenship by investment"],
        "severity": ConflictSeverity.MEDIUM,
        "description": "Identity documents state a single nationality, "
                       "but other documents mention a second citizenship or passport",
    },
    {
        "rule_id": "pep_declaration",
        "a_topics": [TopicId.SANCTIONS_PEP],
        "a_phrases": ["not a pep", "no pep", "not politically exposed", "not a politically exposed"],
        "b_topics": [],
        "b_phrases": ["minister", "senator", "ambassador", "government official", "public office"],
        "severity": ConflictSeverity.HIGH,
        "description": "PEP declaration states the client is not politically exposed, "
                       "but documents reference a public office role",
    },
    {
        "rule_id": "sanctions_clearance",
        "a_topics": [TopicId.SANCTIONS_PEP],
        "a_phrases": ["no sanctions", "no match", "screening clear", "cleared screening"],
        "b_topics": [],
        "b_phrases": ["sanctioned", "sanctions list", "ofac", "designated person", "asset freeze"],
        "severity": ConflictSeverity.HIGH,
        "description": "Screening is reported as clear, but documents mention a sanctions designation",
    },
    {
        "rule_id": "wealth_vs_cash_activity",
        "a_topics": [TopicId.SOURCE_OF_WEALTH],
        "a_phrases": ["salary", "salaried", "employment income", "pension"],
        "b_topics": [TopicId.TRANSACTION_PATTERNS],
        "b_phrases": ["large cash", "cash deposits", "cash intensive", "high volume"],
        "severity": ConflictSeverity.MEDIUM,
        "description": "Declared salaried source of wealth is inconsistent with "
                       "cash-heavy or high-volume transaction activity",
    },
    {
        "rule_id": "sole_ownership",
        "a_topics": [TopicId.BENEFICIAL_OWNERSHIP],
        "a_phrases": ["sole owner", "sole shareholder", "100%", "wholly owned"],
        "b_topics": [TopicId.BENEFICIAL_OWNERSHIP],
        "b_phrases": ["nominee", "co-owner", "joint owner", "other shareholders"],
        "severity": ConflictSeverity.MEDIUM,
        "description": "Ownership is described as sole, but other owners or nominees are also named",
    },
    {
        "rule_id": "domestic_vs_cross_border",
        "a_topics": [TopicId.BUSINESS_RELATIONSHIP],
        "a_phrases": ["domestic only", "local clients only", "no international"],
        "b_topics": [TopicId.TRANSACTION_PATTERNS],
        "b_phrases": ["cross-border", "international wire", "foreign transfers", "offshore"],
        "severity": ConflictSeverity.MEDIUM,
        "description": "Relationship is declared domestic, but transaction activity is cross-border",
    },
    {
        "rule_id": "low_rating_vs_indicators",
        "a_topics": [TopicId.RISK_PROFILE],
        "a_phrases": ["low risk", "risk rating: low", "rated low"],
        "b_topics": [],
        "b_phrases": ["high risk", "shell company", "offshore", "cash intensive"],
        "severity": ConflictSeverity.LOW,
        "description": "Risk profile is rated low despite high-risk indicators elsewhere in the file",
    },
]
