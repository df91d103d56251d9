"""
Constants for registry_resolver package.

Centralizes scoring weights, decision thresholds and operational defaults.
"""

# Embedding defaults
EMBEDDING_MODEL = "text-embedding-3-small"
EMBEDDING_DIMENSION = 1536

# Arbitration (LLM tie-break) defaults
ARBITRATION_MODEL = "gpt-4o"
ARBITRATION_MAX_CANDIDATES = 3
ARBITRATION_ABSTAIN_TOKEN = "NONE"

# Composite score weights (sum to 1.0)
WEIGHT_COSINE = 0.60
WEIGHT_EMAIL_MATCH = 0.25
WEIGHT_DOMAIN_MATCH = 0.10  # Only applied when there is no exact email match
WEIGHT_NAME_MATCH = 0.05

# Cosine similarity assumed for candidates with no usable embedding signal.
# A lexical-only candidate therefore scores at most 0.60 (0.30 + email + name),
# below ARBITRATION_THRESHOLD: without embeddings every scored match lands in review.
LEXICAL_ONLY_COSINE_BASELINE = 0.50

# Decision thresholds
AUTO_ACCEPT_THRESHOLD = 0.85
AUTO_ACCEPT_MIN_MARGIN = 0.03
ARBITRATION_THRESHOLD = 0.75
LOW_CONFIDENCE_FLOOR = 0.30
ARBITRATED_CONFIDENCE = 0.80

# Verification recorder: minimum confidence that counts as a registry-confirming event
VERIFICATION_MIN_CONFIDENCE = 0.70

# Evidence thresholds
HIGH_SEMANTIC_SIMILARITY = 0.80
HIGH_COMPOSITE_SCORE = 0.85

# Candidate retrieval limits
CANDIDATE_LIMIT = 25
EXACT_LOOKUP_LIMIT = 25
LEXICAL_TERM_LIMIT = 10
MIN_LEXICAL_TERM_LENGTH = 3
MIN_PHONE_DIGITS = 10
MAX_ALTERNATIVES = 2

# Registry cache
REGISTRY_CACHE_TTL_SECONDS = 300  # Bounded staleness window (5 minutes)
QUERY_EMBEDDING_CACHE_TTL_DAYS = 30

# Batch maintenance
EMBEDDING_BATCH_SIZE = 100
DEFAULT_WORKERS = 8

# Public mailbox providers: a domain match here says nothing about the organization
FREEMAIL_DOMAINS = frozenset(
    {
        "gmail.com",
        "googlemail.com",
        "yahoo.com",
        "ymail.com",
        "hotmail.com",
        "outlook.com",
        "live.com",
        "msn.com",
        "aol.com",
        "icloud.com",
        "me.com",
        "mac.com",
        "comcast.net",
        "att.net",
        "verizon.net",
        "sbcglobal.net",
        "proton.me",
        "protonmail.com",
    }
)
