"""
Default Rule Catalogue

Seed rule layers for the in-memory rule store and for a fresh `rule_layer`
table: one total base layer, vertical layers, market layers and a sample client
layer.

The base layer stays vertical-neutral: domain vocabulary such as "learn" gets
its relevance and intent only from the matching vertical layer.

Hook categories: learning_educational, outcome_benefit, status_authority,
ease_of_use, time_to_result, trust_safety.
"""

from typing import List

from listing_audit.models.enums import RuleLayerKind
from listing_audit.models.rules import (
    HookPattern,
    IntentPattern,
    RecommendationTemplate,
    RuleLayer,
)


BASE_LAYER_KEY = "default"


# =============================================================================
# Base Layer
# =============================================================================

BASE_STOPWORDS = [
    "a", "an", "and", "are", "as", "at", "be", "by", "for", "from", "in", "is",
    "it", "its", "of", "on", "or", "our", "the", "this", "that", "to", "with",
    "you", "your", "my", "all", "more", "&",
]

BASE_TEMPLATES = [
    RecommendationTemplate(
        id="overall_low",
        text=(
            "Overall metadata score is {value} (below {threshold}). Rework the title and "
            "subtitle around core phrases such as '{example_1}' and '{example_2}'."
        ),
    ),
    RecommendationTemplate(
        id="improve_title",
        text="Title element score is {value}. Lead with a high-intent phrase like '{example_1}' and drop filler words.",
    ),
    RecommendationTemplate(
        id="add_title_keywords",
        text="Your title carries few high-value keywords. Add a category phrase such as '{example_1}' to improve search relevance.",
    ),
    RecommendationTemplate(
        id="add_hooks",
        text="No strong hooks detected in title or subtitle. Add an outcome or ease-of-use hook, for example '{example_2}'.",
    ),
    RecommendationTemplate(
        id="title_underused",
        text=(
            "The title uses a small share of its character limit ({metric} scored {value}). "
            "Use the remaining space for a keyword like '{example_1}'."
        ),
    ),
    RecommendationTemplate(
        id="subtitle_underused",
        text="The subtitle uses a small share of its character limit. Extend it with a supporting phrase such as '{example_2}'.",
    ),
    RecommendationTemplate(
        id="subtitle_incremental",
        text="The subtitle repeats title keywords. Use it for new terms, e.g. '{example_2}', to widen keyword coverage.",
    ),
    RecommendationTemplate(
        id="reduce_title_noise",
        text="Too many filler words in the title ({metric} scored {value}). Replace them with ranking keywords.",
    ),
    RecommendationTemplate(
        id="clarify_intent",
        text="Most phrases match no search intent. Add phrases users actually search for, such as '{example_1}'.",
    ),
    RecommendationTemplate(
        id="reduce_branding",
        text="Brand terms dominate the title and subtitle. Balance them with generic discovery phrases like '{example_1}'.",
    ),
    RecommendationTemplate(
        id="expand_description",
        text="The description length is far from the recommended ~300 words ({metric} scored {value}). Expand it with concrete benefits.",
    ),
]

BASE_LAYER = RuleLayer(
    kind=RuleLayerKind.BASE,
    key=BASE_LAYER_KEY,
    version="1",
    token_relevance={
        "best": 2,
        "free": 2,
    },
    intent_patterns=[
        IntentPattern(
            id="base_transactional",
            label="transactional",
            pattern=r"\b(download|buy|subscribe|install|order|book|shop)\b",
            priority=120,
        ),
        IntentPattern(
            id="base_commercial",
            label="commercial",
            pattern=r"\b(best|top|free|premium|pro|cheap|vs|review|compare|deals?)\b",
            priority=110,
        ),
        IntentPattern(
            id="base_navigational",
            label="navigational",
            pattern=r"\b(official|login|sign in|account)\b",
            priority=100,
        ),
        IntentPattern(
            id="base_informational",
            label="informational",
            pattern=r"\b(how|what|why|guide|tips|tutorial|ideas)\b",
            priority=90,
        ),
    ],
    hook_patterns=[
        HookPattern(id="base_outcome", label="outcome_benefit", pattern=r"\b(save|boost|improve|grow|achieve|results?)\b"),
        HookPattern(id="base_ease", label="ease_of_use", pattern=r"\b(easy|simple|quick|effortless|intuitive)\b"),
        HookPattern(id="base_time", label="time_to_result", pattern=r"\b(in \d+ (days|minutes|weeks)|instant(ly)?|fast|daily)\b"),
        HookPattern(id="base_trust", label="trust_safety", pattern=r"\b(secure|safe|private|trusted|verified)\b"),
        HookPattern(id="base_status", label="status_authority", pattern=r"\b(award|winning|millions|expert|top rated|leading)\b"),
    ],
    stopwords=BASE_STOPWORDS,
    low_value_patterns=[
        r"^[\d\s-]+$",
        r"^(\d+ )?(day|days|minute|minutes|hour|hours|week|weeks|today|now)$",
        r"^(app|apps|application|mobile|new)$",
    ],
    recommendation_templates=BASE_TEMPLATES,
    template_variables={
        "example_1": "habit tracker",
        "example_2": "plan your day",
    },
)


# =============================================================================
# Vertical Layers
# =============================================================================

LANGUAGE_LEARNING_LAYER = RuleLayer(
    kind=RuleLayerKind.VERTICAL,
    key="language_learning",
    version="3",
    token_relevance={
        "learn": 3,
        "language": 3,
        "languages": 3,
        "spanish": 3,
        "french": 3,
        "english": 3,
        "german": 3,
        "italian": 3,
        "japanese": 3,
        "speak": 2,
        "fluent": 2,
        "fluently": 2,
        "vocabulary": 2,
        "grammar": 2,
        "lessons": 2,
        "practice": 2,
    },
    intent_patterns=[
        IntentPattern(
            id="ll_learning",
            label="informational",
            category="learning",
            pattern=r"\b(learn|learning|study|practice|lessons?|course|master)\b",
            priority=150,
        ),
        IntentPattern(
            id="ll_language_app",
            label="commercial",
            category="language_app",
            pattern=r"\b(language app|language course|tutor)\b",
            priority=140,
        ),
    ],
    hook_patterns=[
        HookPattern(
            id="ll_educational",
            label="learning_educational",
            pattern=r"\b(learn|master|study|practice|lessons?|course|tutorial)\b",
        ),
        HookPattern(
            id="ll_outcome",
            label="outcome_benefit",
            pattern=r"\b(speak fluently|become fluent|fluent|expand vocabulary|sound natural)\b",
        ),
    ],
    kpi_multipliers={"title_high_value_keyword_count": 1.5},
    recommendation_templates=[
        RecommendationTemplate(
            id="add_hooks",
            text=(
                "Your title lacks educational hooks like '{example_1}' or '{example_2}'. Adding one or "
                "two learning-focused terms improves educational intent visibility."
            ),
        ),
    ],
    template_variables={
        "example_1": "learn spanish",
        "example_2": "speak fluently",
    },
)

REWARDS_LAYER = RuleLayer(
    kind=RuleLayerKind.VERTICAL,
    key="rewards",
    version="2",
    token_relevance={
        "earn": 3,
        "cash": 3,
        "rewards": 3,
        "money": 2,
        "gift": 2,
        "cards": 2,
        "paypal": 2,
    },
    intent_patterns=[
        IntentPattern(
            id="rw_earning",
            label="transactional",
            category="earning",
            pattern=r"\b(earn|cash out|get paid|win)\b",
            priority=150,
        ),
    ],
    hook_patterns=[
        HookPattern(id="rw_trust", label="trust_safety", pattern=r"\b(real money|guaranteed|legit|millions paid)\b"),
        HookPattern(id="rw_ease", label="ease_of_use", pattern=r"\b(instant rewards|easy to earn|no hassle)\b"),
    ],
    recommendation_templates=[
        RecommendationTemplate(
            id="add_title_keywords",
            text="Add at least one earning-related term (e.g. '{example_1}'). This is core to rewards visibility and intent matching.",
        ),
    ],
    template_variables={
        "example_1": "earn cash",
        "example_2": "gift cards",
    },
)

FINANCE_LAYER = RuleLayer(
    kind=RuleLayerKind.VERTICAL,
    key="finance",
    version="2",
    token_relevance={
        "budget": 3,
        "invest": 3,
        "investing": 3,
        "money": 2,
        "save": 2,
        "bank": 2,
        "secure": 2,
    },
    intent_patterns=[
        IntentPattern(
            id="fin_money_management",
            label="transactional",
            category="money_management",
            pattern=r"\b(invest|budget|save money|track spending)\b",
            priority=140,
        ),
    ],
    hook_patterns=[
        HookPattern(id="fin_trust", label="trust_safety", pattern=r"\b(fdic|insured|bank-grade|encrypted)\b"),
    ],
    kpi_multipliers={"benefit_density": 1.2},
    family_weights={
        "clarity_structure": 0.20,
        "keyword_architecture": 0.30,
        "hook_strength": 0.15,
        "brand_balance": 0.05,
        "psychology_alignment": 0.15,
        "intent_quality": 0.15,
    },
    recommendation_templates=[
        RecommendationTemplate(
            id="add_hooks",
            text="Finance apps need trust signals. Add a term like '{example_2}' to improve user confidence and conversion.",
        ),
    ],
    template_variables={
        "example_1": "budget tracker",
        "example_2": "bank-grade security",
    },
)

HEALTH_FITNESS_LAYER = RuleLayer(
    kind=RuleLayerKind.VERTICAL,
    key="health_fitness",
    version="1",
    token_relevance={
        "workout": 3,
        "workouts": 3,
        "fitness": 3,
        "yoga": 3,
        "steps": 2,
        "calories": 2,
        "meditation": 2,
    },
    intent_patterns=[
        IntentPattern(
            id="hf_training",
            label="informational",
            category="fitness",
            pattern=r"\b(workouts?|training|yoga|meditation|exercises?)\b",
            priority=140,
        ),
    ],
    hook_patterns=[
        HookPattern(id="hf_outcome", label="outcome_benefit", pattern=r"\b(lose weight|get fit|build muscle|sleep better)\b"),
    ],
    template_variables={
        "example_1": "home workout",
        "example_2": "lose weight",
    },
)

PRODUCTIVITY_LAYER = RuleLayer(
    kind=RuleLayerKind.VERTICAL,
    key="productivity",
    version="1",
    token_relevance={
        "tasks": 3,
        "planner": 3,
        "notes": 3,
        "todo": 3,
        "calendar": 2,
        "reminders": 2,
    },
    intent_patterns=[
        IntentPattern(
            id="pr_organize",
            label="transactional",
            category="organization",
            pattern=r"\b(organize|schedule|plan|track tasks)\b",
            priority=130,
        ),
    ],
    hook_patterns=[
        HookPattern(id="pr_ease", label="ease_of_use", pattern=r"\b(stay focused|get organized|one tap)\b"),
    ],
    template_variables={
        "example_1": "to-do list",
        "example_2": "daily planner",
    },
)


# =============================================================================
# Market Layers
# =============================================================================

EN_US_LAYER = RuleLayer(
    kind=RuleLayerKind.MARKET,
    key="en-US",
    version="1",
    stopwords=["me", "we", "us"],
)

DE_DE_LAYER = RuleLayer(
    kind=RuleLayerKind.MARKET,
    key="de-DE",
    version="1",
    stopwords=["der", "die", "das", "und", "mit", "für", "ein", "eine", "dein", "deine"],
    intent_patterns=[
        IntentPattern(id="de_transactional", label="transactional", pattern=r"\b(kaufen|herunterladen|buchen)\b", priority=120),
        IntentPattern(id="de_informational", label="informational", pattern=r"\b(lernen|anleitung|tipps)\b", priority=90),
    ],
    low_value_patterns=[r"^(tag|tage|minuten|heute|jetzt)$"],
)

ES_ES_LAYER = RuleLayer(
    kind=RuleLayerKind.MARKET,
    key="es-ES",
    version="1",
    stopwords=["de", "la", "el", "los", "las", "y", "con", "para", "tu", "en"],
    intent_patterns=[
        IntentPattern(id="es_informational", label="informational", pattern=r"\b(aprender|aprende|guía|consejos)\b", priority=90),
    ],
)

TR_TR_LAYER = RuleLayer(
    kind=RuleLayerKind.MARKET,
    key="tr-TR",
    version="1",
    stopwords=["ve", "ile", "için", "bir", "bu"],
)


# =============================================================================
# Client Layers
# =============================================================================

SAMPLE_CLIENT_LAYER = RuleLayer(
    kind=RuleLayerKind.CLIENT,
    key="acme",
    version="1",
    brand_terms=["acme"],
    brand_whitelist_patterns=[r"^365$"],
    kpi_multipliers={"title_hook_strength": 1.25},
    template_variables={"example_1": "acme planner 365"},
)


def default_layers() -> List[RuleLayer]:
    """Every seed layer, base first."""
    return [
        BASE_LAYER,
        LANGUAGE_LEARNING_LAYER,
        REWARDS_LAYER,
        FINANCE_LAYER,
        HEALTH_FITNESS_LAYER,
        PRODUCTIVITY_LAYER,
        EN_US_LAYER,
        DE_DE_LAYER,
        ES_ES_LAYER,
        TR_TR_LAYER,
        SAMPLE_CLIENT_LAYER,
    ]
