"""Feedback persistence adapters.

SQLiteFeedbackStore keeps rated report sections in data/feedback.db.
Records feed the retraining pipeline:
    1. Qualifying (unprocessed, highly rated) records trigger a cycle
    2. Each cycle turns them into fine-tuning examples
    3. The cycle marks exactly the records it consumed as processed
"""
