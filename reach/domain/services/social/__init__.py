from reach.domain.services.social.analytics_client import (
    ProfileMetrics,
    SocialAnalyticsClient,
    extract_handle,
    get_social_analytics_client,
    parse_platform,
)

__all__ = [
    "ProfileMetrics",
    "SocialAnalyticsClient",
    "extract_handle",
    "get_social_analytics_client",
    "parse_platform",
]
