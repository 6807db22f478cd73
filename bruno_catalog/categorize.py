"""Keyword-based categorization of catalog items."""

from typing import Dict, Iterable, List, Optional

FALLBACK_CATEGORY = "General"

# Order matters: categories are reported in table order.
DEFAULT_CATEGORIES: Dict[str, List[str]] = {
    "Payments": ["payment", "stripe", "paypal", "billing", "invoice", "transaction", "checkout"],
    "Authentication": ["auth", "oauth", "login", "sso", "identity", "jwt", "token"],
    "Database": ["database", "sql", "postgres", "mysql", "mongodb", "redis", "storage"],
    "Cloud & Infrastructure": ["cloud", "aws", "azure", "gcp", "kubernetes", "docker",
                               "infrastructure", "terraform"],
    "AI & ML": ["ai", "ml", "machine learning", "llm", "gpt", "openai", "model", "neural"],
    "Communication": ["chat", "messaging", "email", "sms", "notification", "twilio", "sendgrid"],
    "Analytics": ["analytics", "metrics", "tracking", "monitoring", "observability", "telemetry"],
    "E-commerce": ["ecommerce", "e-commerce", "shop", "cart", "product", "inventory"],
    "Social Media": ["social", "twitter", "facebook", "instagram", "linkedin"],
    "Developer Tools": ["api", "sdk", "cli", "developer", "webhook", "rest", "graphql"],
    "Security": ["security", "encryption", "firewall", "vulnerability", "scan"],
    "Media": ["video", "audio", "image", "media", "streaming", "upload"],
    "Documentation": ["docs", "documentation", "wiki", "knowledge"],
    "IoT": ["iot", "sensor", "device", "hardware", "embedded"],
    "Finance": ["finance", "banking", "trading", "stock", "crypto", "blockchain"],
    "Healthcare": ["health", "medical", "patient", "hospital", "clinical"],
    "Education": ["education", "learning", "course", "student", "school"],
    "Gaming": ["game", "gaming", "player", "unity", "unreal"],
}


class Categorizer:
    """Match ``name + description`` against an ordered keyword table.

    Matching is case-insensitive substring matching, so short keywords
    ("ai", "ml") also hit inside longer words. An item can land in several
    categories; one with no match gets ``fallback``.
    """

    def __init__(self, categories: Optional[Dict[str, List[str]]] = None,
                 fallback: str = FALLBACK_CATEGORY):
        table = categories if categories is not None else DEFAULT_CATEGORIES
        self.categories = {
            name: [k.lower() for k in keywords if k]
            for name, keywords in table.items()
        }
        self.fallback = fallback

    def classify(self, name: str, description: str = "") -> List[str]:
        combined = f"{name or ''} {description or ''}".lower()
        matched = [
            category for category, keywords in self.categories.items()
            if any(keyword in combined for keyword in keywords)
        ]
        return matched or [self.fallback]

    def tags_for(self, name: str, description: str = "",
                 extra: Iterable[str] = ()) -> List[str]:
        """Classifier output plus any categories the source already supplied."""
        tags: List[str] = []
        for tag in extra or ():
            if tag and tag not in tags:
                tags.append(tag)

        matched = self.classify(name, description)
        if tags and matched == [self.fallback]:
            return tags
        for category in matched:
            if category not in tags:
                tags.append(category)
        return tags
