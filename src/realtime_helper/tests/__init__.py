"""
Realtime Helper Test Package.

This package contains unit tests for the realtime helper modules.

Test categories:
- test_config.py: Configuration and environment variable loading
- test_retriever.py: Tokenization, relevance scoring and snippets
- test_knowledge_base.py: Knowledge base loading and degraded loads
- test_stats.py: Search statistics recorders
- test_emotion.py: Arousal/valence heuristics and labels
- test_logging_utils.py: Log formatters and logging setup
- test_session_issuer.py: Upstream session creation, error mapping and deadline
- test_app.py: HTTP endpoints, middleware and error envelopes
"""

__all__ = []
