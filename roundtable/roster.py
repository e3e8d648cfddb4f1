"""Role registry and the declarative ordering tables built on it.

Participant indices exposed to callers (speaking orders, validate_order) are
derived from ROLES; every table below is keyed by the stable role key and is
checked by validate_tables() when this module is imported.
"""

from dataclasses import dataclass

from roundtable.models import DiscussionPhase


@dataclass(frozen=True)
class Role:
    key: str
    index: int
    name: str
    title: str
    objectives: tuple[str, ...]
    moderator: bool = False


ROLES: tuple[Role, ...] = (
    Role(
        key="business_analyst",
        index=0,
        name="Sarah Mitchell",
        title="Business Analyst",
        objectives=(
            "Analyze and document requirements",
            "Identify constraints and dependencies",
            "Define business rules and edge cases",
            "Establish KPIs and success metrics",
        ),
    ),
    Role(
        key="key_user",
        index=1,
        name="Alex Chen",
        title="Key User",
        objectives=(
            "Describe pain points and frustrations",
            "Explain current workflows and workarounds",
            "Define acceptance criteria from user perspective",
            "Validate solution meets real-world needs",
        ),
    ),
    Role(
        key="product_owner",
        index=2,
        name="Michael Torres",
        title="Product Owner",
        objectives=(
            "Define product vision and value proposition",
            "Prioritize features based on business value",
            "Set success metrics and acceptance criteria",
            "Determine release strategy and MVP scope",
        ),
    ),
    Role(
        key="scrum_master",
        index=3,
        name="Jamie Park",
        title="Scrum Master",
        objectives=(
            "Facilitate delivery approach and timeline",
            "Identify risks and impediments",
            "Define Definition of Ready and Definition of Done",
            "Coordinate team ceremonies and task breakdown",
        ),
    ),
    Role(
        key="solutions_architect",
        index=4,
        name="Dr. Raj Patel",
        title="Solutions Architect",
        objectives=(
            "Design technical architecture and data model",
            "Evaluate technology options and trade-offs",
            "Define NFRs (performance, security, scalability)",
            "Specify integration points and API contracts",
        ),
    ),
    Role(
        key="moderator",
        index=5,
        name="Morgan AI",
        title="AI Moderator",
        objectives=(
            "Analyze team consensus and alignment levels",
            "Identify unresolved conflicts and gaps in discussion",
            "Guide discussion toward resolution and decision-making",
            "Assess readiness for implementation phase",
        ),
        moderator=True,
    ),
)

ROLES_BY_KEY: dict[str, Role] = {r.key: r for r in ROLES}
ROLES_BY_INDEX: dict[int, Role] = {r.index: r for r in ROLES}

MODERATOR_KEY = "moderator"

PHASE_ORDERS: dict[DiscussionPhase, tuple[str, ...]] = {
    DiscussionPhase.EXPLORATION: (
        "business_analyst", "key_user", "product_owner", "scrum_master", "solutions_architect",
    ),
    DiscussionPhase.ALIGNMENT: (
        "product_owner", "solutions_architect", "business_analyst", "key_user", "scrum_master",
    ),
    DiscussionPhase.RESOLUTION: (
        "scrum_master", "business_analyst", "product_owner", "solutions_architect", "key_user",
    ),
    DiscussionPhase.FINALIZATION: (
        "product_owner", "business_analyst", "solutions_architect", "scrum_master", "key_user",
    ),
}

# Issue keyword category -> (keywords, responsible role)
ISSUE_CATEGORIES: dict[str, tuple[tuple[str, ...], str]] = {
    "requirements": (("requirement", "business"), "business_analyst"),
    "usability": (("user", "interface", "ux"), "key_user"),
    "scope": (("priority", "scope", "decision"), "product_owner"),
    "delivery": (("delivery", "timeline", "process"), "scrum_master"),
    "technical": (("technical", "architecture", "implementation"), "solutions_architect"),
}

# Decision-maker first; the moderator closes when enabled.
FORCED_FINAL_ORDERS: dict[bool, tuple[str, ...]] = {
    True: (
        "product_owner", "solutions_architect", "business_analyst",
        "scrum_master", "key_user", "moderator",
    ),
    False: (
        "product_owner", "solutions_architect", "business_analyst",
        "scrum_master", "key_user",
    ),
}

# Fixed-round mode (dynamic rounds disabled).
FIXED_ROUND_ORDERS: tuple[tuple[str, ...], ...] = (
    ("business_analyst", "key_user", "product_owner", "scrum_master", "solutions_architect"),
    ("key_user", "business_analyst", "product_owner", "solutions_architect", "scrum_master"),
    ("product_owner", "solutions_architect", "key_user", "scrum_master", "business_analyst"),
)


def index_of(key: str) -> int:
    return ROLES_BY_KEY[key].index


def indices(keys: tuple[str, ...]) -> list[int]:
    return [index_of(k) for k in keys]


def moderator_index() -> int:
    return index_of(MODERATOR_KEY)


def core_indices() -> list[int]:
    return [r.index for r in ROLES if not r.moderator]


def validate_tables() -> None:
    """Raise ValueError if the registry or any ordering table is inconsistent."""
    idx = [r.index for r in ROLES]
    if sorted(idx) != list(range(len(ROLES))):
        raise ValueError(f"Role indices must be contiguous from 0, got {idx}")
    if len(ROLES_BY_KEY) != len(ROLES):
        raise ValueError("Duplicate role keys in registry")
    if sum(1 for r in ROLES if r.moderator) != 1 or MODERATOR_KEY not in ROLES_BY_KEY:
        raise ValueError("Registry must contain exactly one moderator role")

    core = {r.key for r in ROLES if not r.moderator}
    for phase in DiscussionPhase:
        order = PHASE_ORDERS.get(phase)
        if order is None:
            raise ValueError(f"No base order for phase {phase.value}")
        if set(order) != core or len(order) != len(core):
            raise ValueError(f"Base order for {phase.value} must be a permutation of core roles")

    for category, (keywords, role_key) in ISSUE_CATEGORIES.items():
        if role_key not in core:
            raise ValueError(f"Issue category {category!r} maps to unknown role {role_key!r}")
        if not keywords:
            raise ValueError(f"Issue category {category!r} has no keywords")

    for with_moderator, order in FORCED_FINAL_ORDERS.items():
        expected = core | {MODERATOR_KEY} if with_moderator else core
        if set(order) != expected or len(order) != len(expected):
            raise ValueError(f"Forced final order (moderator={with_moderator}) is not a permutation")

    for order in FIXED_ROUND_ORDERS:
        if set(order) != core or len(order) != len(core):
            raise ValueError("Fixed round orders must be permutations of core roles")


validate_tables()
