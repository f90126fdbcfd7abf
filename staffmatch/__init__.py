"""staffmatch: job/worker matching and ranking for a staffing marketplace.

Public API:
    - MatchingService: Ranked matches for a job or a worker
    - FeedbackService: Accept/reject feedback and acceptance signals
    - build_services: Wire both from settings
"""

from staffmatch.factory import Services, build_services
from staffmatch.feedback.service import FeedbackService
from staffmatch.matching.models import ContextType, MatchRequest, MatchResult
from staffmatch.matching.service import MatchingService

__version__ = "0.1.0"

__all__ = [
    "ContextType",
    "FeedbackService",
    "MatchRequest",
    "MatchResult",
    "MatchingService",
    "Services",
    "build_services",
]
