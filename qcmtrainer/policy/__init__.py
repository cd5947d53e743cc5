from .feedback import DeferredReview, FeedbackPolicy, ImmediateReveal, Verdict, policy_for_flow

__all__ = ["DeferredReview", "FeedbackPolicy", "ImmediateReveal", "Verdict", "policy_for_flow"]
