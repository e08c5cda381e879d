"""
Default localization rule catalogue.

Seeded into an empty store at start-up. Conditions use the trigger vocabulary
understood by the built-in trigger detectors.
"""

from typing import Any, Dict, List

GDPR_REGIONS = ["DE", "FR", "ES", "IT", "NL", "BE", "AT", "SE", "DK", "FI", "PL", "GB"]


def get_default_rule_definitions() -> List[Dict[str, Any]]:
    """Return fresh copies of the default rule definitions."""
    return [
        # Language
        {
            "id": "language-consistency-check",
            "category": "language",
            "name": "Language consistency check",
            "description": "Declared page language should match the target region language",
            "priority": "high",
            "enabled": True,
            "weight": 25,
            "conditions": {
                "triggers": ["language_mismatch"],
                "thresholds": {"min_confidence": 0.7},
            },
            "actions": {
                "scoring": {"deduction": 20},
                "message": "Page language does not match the target market",
            },
            "regions": ["*"],
            "version": "1.0.0",
            "tags": ["language", "seo", "basic"],
        },
        {
            "id": "multi-language-support",
            "category": "language",
            "name": "Multi-language support",
            "description": "Markets with a non-English primary language need a language switcher",
            "priority": "medium",
            "enabled": True,
            "weight": 15,
            "conditions": {
                "triggers": ["missing_language_switcher"],
                "regions_requiring": ["CN", "JP", "DE", "FR", "ES"],
            },
            "actions": {
                "scoring": {"deduction": 10},
                "message": "Add a language switcher for this market",
            },
            "regions": ["CN", "JP", "DE", "FR", "ES", "BR", "MX"],
            "version": "1.0.0",
            "tags": ["language", "ux", "international"],
        },
        # Culture
        {
            "id": "cultural-color-sensitivity",
            "category": "culture",
            "name": "Cultural colour sensitivity",
            "description": "Dominant colours should suit the target culture",
            "priority": "medium",
            "enabled": True,
            "weight": 15,
            "conditions": {
                "triggers": ["cultural_color_issue"],
                "sensitive_combinations": {
                    "CN": {"avoid": ["white"], "prefer": ["red", "gold"]},
                    "IN": {"avoid": ["black"], "prefer": ["orange", "yellow"]},
                    "JP": {"avoid": ["green"], "prefer": ["white", "red"]},
                },
            },
            "actions": {
                "scoring": {"deduction": 10},
                "message": "Colour choices may be culturally sensitive",
            },
            "regions": ["CN", "IN", "JP", "KR", "AE", "SA"],
            "version": "1.0.0",
            "tags": ["culture", "design", "sensitivity"],
        },
        {
            "id": "holiday-marketing-alignment",
            "category": "culture",
            "name": "Holiday marketing alignment",
            "description": "Seasonal marketing should reference local holidays",
            "priority": "high",
            "enabled": True,
            "weight": 20,
            "conditions": {
                "triggers": ["holiday_mismatch", "religious_conflict"],
                "seasonal_checks": True,
            },
            "actions": {
                "scoring": {"deduction": 15},
                "message": "Holiday marketing content needs local adaptation",
            },
            "regions": ["*"],
            "version": "1.0.0",
            "tags": ["culture", "marketing", "seasonal"],
        },
        # Compliance
        {
            "id": "gdpr-compliance-check",
            "category": "compliance",
            "name": "GDPR compliance",
            "description": "EU privacy requirements",
            "priority": "critical",
            "enabled": True,
            "weight": 30,
            "conditions": {
                "triggers": ["missing_privacy_policy", "missing_cookie_consent"],
                "required_elements": ["privacy_policy", "cookie_banner", "data_processing_info"],
            },
            "actions": {
                "scoring": {"deduction": 25},
                "message": "Missing GDPR privacy statement and cookie consent",
            },
            "regions": list(GDPR_REGIONS),
            "version": "1.1.0",
            "tags": ["compliance", "privacy", "legal", "gdpr"],
        },
        {
            "id": "ccpa-compliance-check",
            "category": "compliance",
            "name": "CCPA compliance",
            "description": "California consumer privacy requirements",
            "priority": "high",
            "enabled": True,
            "weight": 25,
            "conditions": {
                "triggers": ["missing_ccpa_notice", "missing_opt_out"],
                "required_elements": ["privacy_notice", "do_not_sell_link", "opt_out_mechanism"],
            },
            "actions": {
                "scoring": {"deduction": 20},
                "message": "Add a CCPA notice and an opt-out mechanism",
            },
            "regions": ["US"],
            "version": "1.0.0",
            "tags": ["compliance", "privacy", "legal", "ccpa"],
        },
        # User experience
        {
            "id": "mobile-optimization-check",
            "category": "userExperience",
            "name": "Mobile optimization",
            "description": "Viewport, touch targets and mobile load time",
            "priority": "high",
            "enabled": True,
            "weight": 25,
            "conditions": {
                "triggers": ["missing_viewport", "poor_touch_targets", "slow_mobile_load"],
                "mobile_share_threshold": 60,
            },
            "actions": {
                "scoring": {"deduction": 20},
                "message": "Mobile optimization is insufficient",
            },
            "regions": ["*"],
            # Mobile-first markets
            "dynamicWeight": {"CN": 30, "IN": 30, "BR": 28, "KR": 32},
            "version": "1.2.0",
            "tags": ["ux", "mobile", "performance"],
        },
        {
            "id": "network-performance-optimization",
            "category": "userExperience",
            "name": "Network performance",
            "description": "Load time against regional network tolerance",
            "priority": "high",
            "enabled": True,
            "weight": 20,
            "conditions": {
                "triggers": ["slow_load_time", "large_resources"],
                "regional_thresholds": {
                    "US": 3000, "DE": 2800, "JP": 2500, "KR": 2200,
                    "CN": 4200, "IN": 5000, "BR": 5500,
                },
            },
            "actions": {
                "scoring": {"deduction": 15},
                "message": "Page load time exceeds local user tolerance",
            },
            "regions": ["*"],
            "version": "1.1.0",
            "tags": ["ux", "performance", "network"],
        },
        # Cross-border ecommerce
        {
            "id": "multi-currency-support",
            "category": "crossBorder",
            "name": "Multi-currency support",
            "description": "Prices should be shown in the target market currency",
            "priority": "high",
            "enabled": True,
            "weight": 20,
            "conditions": {
                "triggers": ["missing_currency_support", "wrong_currency_display"],
                "required_currencies": {
                    "US": "USD", "GB": "GBP", "DE": "EUR", "JP": "JPY",
                    "CN": "CNY", "KR": "KRW", "AU": "AUD", "CA": "CAD",
                },
            },
            "actions": {
                "scoring": {"deduction": 15},
                "message": "Add local currency support",
                "category": "userExperience",
            },
            "regions": ["*"],
            "version": "1.0.0",
            "tags": ["crossBorder", "currency", "ecommerce"],
        },
        {
            "id": "international-payment-methods",
            "category": "crossBorder",
            "name": "International payment methods",
            "description": "Checkout should offer the market's preferred payment methods",
            "priority": "high",
            "enabled": True,
            "weight": 25,
            "conditions": {
                "triggers": ["limited_payment_options"],
                "regional_preferences": {
                    "CN": ["alipay", "wechat_pay", "unionpay"],
                    "DE": ["paypal", "sofort", "klarna"],
                    "JP": ["paypal", "rakuten_pay", "linepay"],
                    "US": ["paypal", "stripe", "apple_pay", "google_pay"],
                },
            },
            "actions": {
                "scoring": {"deduction": 20},
                "message": "Integrate the market's preferred payment methods",
                "category": "userExperience",
            },
            "regions": ["*"],
            "version": "1.0.0",
            "tags": ["crossBorder", "payment", "ecommerce"],
        },
    ]
